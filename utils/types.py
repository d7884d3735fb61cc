"""
Type definitions and common data structures for the Discord bot.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, NamedTuple


class VoiceChannelResult(NamedTuple):
    """Result of a command-surface voice operation."""

    success: bool
    channel_id: int | None = None
    error: str | None = None
    metadata: dict[str, Any] | None = None  # e.g. the accepted channel name


@dataclass(frozen=True)
class LobbyChannel:
    """A voice channel that spawns temp channels when joined."""

    channel_id: int
    guild_id: int


@dataclass(frozen=True)
class TempChannel:
    """A per-member voice channel spawned from a lobby."""

    channel_id: int
    guild_id: int
    owner_id: int
    lobby_channel_id: int  # plain id; the lobby may be gone


class TargetType(str, Enum):
    """Kind of target a permission entry applies to."""

    ROLE = "role"
    MEMBER = "member"


@dataclass(frozen=True)
class PermissionEntry:
    """Allow/deny grant for one role or member on a channel."""

    target_id: int
    target_type: TargetType
    allow: frozenset[str] = field(default_factory=frozenset)
    deny: frozenset[str] = field(default_factory=frozenset)

    @property
    def key(self) -> tuple[TargetType, int]:
        return (self.target_type, self.target_id)


@dataclass(frozen=True)
class ChannelPermissionOverlay:
    """Ordered set of permission entries applied to a channel."""

    entries: tuple[PermissionEntry, ...] = ()

    def get(self, target_type: TargetType, target_id: int) -> PermissionEntry | None:
        for entry in self.entries:
            if entry.key == (target_type, target_id):
                return entry
        return None

    def __len__(self) -> int:
        return len(self.entries)


@dataclass(frozen=True)
class ConfigurationPrompt:
    """Emitted after a temp channel is created so the UI can greet its owner."""

    temp_channel_id: int
    owner_id: int
    guild_id: int


# ---------------------------------------------------------------------------
# Ingress events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MemberJoinedChannel:
    guild_id: int
    channel_id: int
    member_id: int
    display_name: str = ""


@dataclass(frozen=True)
class MemberLeftChannel:
    guild_id: int
    channel_id: int
    member_id: int


@dataclass(frozen=True)
class RemoteChannelDeleted:
    guild_id: int
    channel_id: int


ChannelEvent = MemberJoinedChannel | MemberLeftChannel | RemoteChannelDeleted


@dataclass
class SweepReport:
    """Counters from one reconciliation pass."""

    lobbies_checked: int = 0
    lobbies_removed: int = 0
    temps_checked: int = 0
    temps_removed: int = 0
    temps_cleaned: int = 0
    errors: int = 0

    @property
    def mutations(self) -> int:
        return self.lobbies_removed + self.temps_removed + self.temps_cleaned
