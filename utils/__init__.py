"""
Utilities Package

Common utilities and helper functions for the lobby voice bot.
"""

from .errors import (
    BotError,
    ConfigError,
    ConflictError,
    DatabaseError,
    ForbiddenError,
    InconsistencyError,
    LifecycleError,
    NotFoundError,
    RateLimitedError,
    RemoteError,
    ServiceError,
    TransportError,
    UnauthorizedError,
)
from .logging import get_logger, log_extra, setup_logging
from .tasks import cancel_all, spawn
from .types import (
    ChannelPermissionOverlay,
    ConfigurationPrompt,
    LobbyChannel,
    MemberJoinedChannel,
    MemberLeftChannel,
    PermissionEntry,
    RemoteChannelDeleted,
    SweepReport,
    TargetType,
    TempChannel,
    VoiceChannelResult,
)

__all__ = [
    "BotError",
    "ChannelPermissionOverlay",
    "ConfigError",
    "ConfigurationPrompt",
    "ConflictError",
    "DatabaseError",
    "ForbiddenError",
    "InconsistencyError",
    "LifecycleError",
    "LobbyChannel",
    "MemberJoinedChannel",
    "MemberLeftChannel",
    "NotFoundError",
    "PermissionEntry",
    "RateLimitedError",
    "RemoteChannelDeleted",
    "RemoteError",
    "ServiceError",
    "SweepReport",
    "TargetType",
    "TempChannel",
    "TransportError",
    "UnauthorizedError",
    "VoiceChannelResult",
    "cancel_all",
    "get_logger",
    "log_extra",
    "setup_logging",
    "spawn",
]
