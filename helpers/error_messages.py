"""
Centralized error message formatting for user-facing Discord errors.

Every lifecycle error code that can reach a user maps to one short,
actionable message here. Messages never expose internal technical details.

Format: emoji + **Bold Title** + newline + actionable body (≤120 chars total)
"""

from utils.logging import get_logger

logger = get_logger(__name__)


def format_user_error(code: str | None, **kwargs) -> str:
    """
    Format a user-friendly error message based on an error code.

    Args:
        code: Error code identifying the type of error (``LifecycleError.code``
            or a ``VoiceChannelResult.error``)
        **kwargs: Dynamic values to insert into error messages
            - max_length: Longest accepted channel name (for INVALID_NAME)

    Returns:
        User-friendly error message string

    Examples:
        >>> format_user_error("UNAUTHORIZED")
        "❌ **Not allowed**\\nYou don't have permission to do that."

        >>> format_user_error("INVALID_NAME", max_length=100)
        "❌ **Invalid name**\\nChannel names must be 1-100 characters."
    """
    error_messages = {
        "CONFLICT": "❌ **Already set up**\nThat channel is already a lobby or a temporary channel.",
        "UNAUTHORIZED": "❌ **Not allowed**\nYou don't have permission to do that.",
        "NOT_OWNER": "❌ **Not your channel**\nOnly the channel owner can do that.",
        "NOT_MANAGED": "❌ **Not a managed channel**\nThis channel isn't managed by the lobby bot.",
        "NOT_IN_VOICE": "❌ **Not in voice**\nJoin the voice channel you want to manage first.",
        "INVALID_NAME": "❌ **Invalid name**\nChannel names must be 1-{max_length} characters.",
        "CHANNEL_GONE": "❌ **Channel gone**\nThat channel no longer exists.",
        "REMOTE_ERROR": "❌ **Discord error**\nDiscord didn't accept the change. Please try again.",
        "RATE_LIMITED": "⚠️ **Slow down**\nDiscord is rate limiting the bot. Try again shortly.",
        "BOT_FORBIDDEN": "❌ **Missing permissions**\nI need Manage Channels and Move Members to do that.",
        "CREATION_FAILED": "❌ **Creation failed**\nFailed to create voice channel. Please try again.",
        "UNKNOWN": "❌ **Something went wrong**\nAn unexpected error occurred. The issue was logged.",
    }

    kwargs.setdefault("max_length", 100)

    # Log warning if unknown error code is used
    if code not in error_messages:
        logger.warning(f"Unknown error code used in format_user_error: {code}")

    message = error_messages.get(code or "UNKNOWN", error_messages["UNKNOWN"])

    try:
        return message.format(**kwargs)
    except KeyError as e:
        return message.replace("{" + str(e).strip("'") + "}", "???")


def format_user_success(code: str, **kwargs) -> str:
    """
    Format a user-friendly success message based on a success code.

    Format: ✅ + **Bold Title** + \\n + confirmation sentence

    Args:
        code: Success code identifying the type of success
        **kwargs: Dynamic values to insert into success messages
            - channel_mention: Channel mention
            - name: New channel name (for RENAMED)

    Returns:
        User-friendly success message string

    Examples:
        >>> format_user_success("LOBBY_CREATED", channel_mention="#lobby")
        "✅ **Lobby created**\\nMembers joining #lobby get their own channel."
    """
    success_messages = {
        "LOBBY_CREATED": "✅ **Lobby created**\nMembers joining {channel_mention} get their own channel.",
        "LOBBY_CONVERTED": "✅ **Lobby ready**\n{channel_mention} now creates a channel for each member who joins.",
        "LOBBY_REMOVED": "✅ **Lobby removed**\n{channel_mention} is a normal voice channel again.",
        "RENAMED": "✅ **Channel renamed**\nYour channel is now called **{name}**.",
    }

    message = success_messages.get(code, "✅ **Success**\nOperation completed.")

    try:
        return message.format(**kwargs)
    except KeyError:
        return "✅ **Success**\nOperation completed."
