"""
Custom exception classes for the Discord bot.

These provide a hierarchy of typed exceptions for better error handling.
Lifecycle errors carry the error code that the command layer renders
through ``helpers.error_messages.format_user_error``.
"""


class BotError(Exception):
    """Base exception for bot-related errors."""

    pass


class ConfigError(BotError):
    """Exception raised for configuration-related errors."""

    pass


class DatabaseError(BotError):
    """Exception raised for database-related errors."""

    pass


class ServiceError(BotError):
    """Exception raised for service-related errors."""

    pass


class LifecycleError(BotError):
    """Base exception for lobby/temp channel lifecycle failures."""

    code = "UNKNOWN"

    def __init__(self, message: str = "", *, channel_id: int | None = None) -> None:
        super().__init__(message or self.code)
        self.channel_id = channel_id


class ConflictError(LifecycleError):
    """A channel id is already registered as a lobby or temp channel."""

    code = "CONFLICT"


class UnauthorizedError(LifecycleError):
    """The requester is not allowed to perform the action."""

    code = "UNAUTHORIZED"


class InconsistencyError(LifecycleError):
    """The registry references a channel the platform no longer has."""

    code = "INCONSISTENT"


class RemoteError(LifecycleError):
    """Base exception for failures of the remote channel-management API."""

    code = "REMOTE_ERROR"

    retryable = False


class NotFoundError(RemoteError):
    """The remote channel or member does not exist (any more)."""

    code = "CHANNEL_GONE"


class ForbiddenError(RemoteError):
    """The bot lacks the permissions for the remote call."""

    code = "BOT_FORBIDDEN"


class TransportError(RemoteError):
    """Network failure, server error or timeout. Safe to retry."""

    code = "REMOTE_ERROR"

    retryable = True


class RateLimitedError(TransportError):
    """The remote API asked us to slow down."""

    code = "RATE_LIMITED"

    def __init__(
        self,
        message: str = "",
        *,
        channel_id: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, channel_id=channel_id)
        self.retry_after = retry_after
