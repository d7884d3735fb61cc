"""
Utilities for computing temp channel permission overwrites.

``project_overlay`` is pure: it takes the lobby's overwrites and the owner id
and returns the overlay for the new temp channel. The conversion helpers at
the bottom translate between that overlay and discord.py's
``PermissionOverwrite`` mappings and are only used by the Discord gateway.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

import discord

from utils.logging import get_logger
from utils.types import ChannelPermissionOverlay, PermissionEntry, TargetType

logger = get_logger(__name__)

# Extra capabilities granted to a temp channel's owner
OWNER_PERMISSIONS: frozenset[str] = frozenset(
    {"manage_channels", "move_members", "mute_members", "deafen_members"}
)


def owner_entry(
    owner_id: int,
    existing: PermissionEntry | None = None,
    grants: Iterable[str] = OWNER_PERMISSIONS,
) -> PermissionEntry:
    """
    Merge the owner grants into ``existing`` (if any).

    The result allows everything ``existing`` allowed plus ``grants``; granted
    permissions are lifted from the deny set, other denies are kept.
    """
    grant_set = frozenset(grants)
    if existing is None:
        return PermissionEntry(
            target_id=owner_id,
            target_type=TargetType.MEMBER,
            allow=grant_set,
            deny=frozenset(),
        )
    return PermissionEntry(
        target_id=owner_id,
        target_type=TargetType.MEMBER,
        allow=existing.allow | grant_set,
        deny=existing.deny - grant_set,
    )


def project_overlay(
    lobby_overlay: ChannelPermissionOverlay,
    owner_id: int,
    grants: Iterable[str] = OWNER_PERMISSIONS,
) -> ChannelPermissionOverlay:
    """
    Compute the permission overlay for a temp channel.

    Every lobby entry is copied verbatim except the owner's own member entry,
    which is merged with the owner grants in place. If the lobby has no entry
    for the owner one is appended.

    Args:
        lobby_overlay: Current overwrites of the lobby channel
        owner_id: Member who will own the temp channel
        grants: Permission names to grant the owner

    Returns:
        New overlay; ``lobby_overlay`` is not modified
    """
    grants = frozenset(grants)
    entries: list[PermissionEntry] = []
    merged = False
    for entry in lobby_overlay.entries:
        if entry.key == (TargetType.MEMBER, owner_id):
            entries.append(owner_entry(owner_id, entry, grants))
            merged = True
        else:
            entries.append(entry)
    if not merged:
        entries.append(owner_entry(owner_id, None, grants))
    return ChannelPermissionOverlay(entries=tuple(entries))


# ---------------------------------------------------------------------------
# discord.py conversion
# ---------------------------------------------------------------------------


def entry_from_overwrite(
    target: discord.abc.Snowflake, overwrite: discord.PermissionOverwrite
) -> PermissionEntry:
    """Convert one discord.py overwrite into a ``PermissionEntry``."""
    allow, deny = overwrite.pair()
    target_type = TargetType.ROLE if isinstance(target, discord.Role) else TargetType.MEMBER
    return PermissionEntry(
        target_id=int(target.id),
        target_type=target_type,
        allow=frozenset(name for name, value in allow if value),
        deny=frozenset(name for name, value in deny if value),
    )


def overlay_from_overwrites(
    overwrites: Mapping[discord.abc.Snowflake, discord.PermissionOverwrite],
) -> ChannelPermissionOverlay:
    """Snapshot a channel's ``overwrites`` mapping as an overlay."""
    return ChannelPermissionOverlay(
        entries=tuple(
            entry_from_overwrite(target, overwrite)
            for target, overwrite in overwrites.items()
        )
    )


def overwrite_from_entry(entry: PermissionEntry) -> discord.PermissionOverwrite:
    values: dict[str, bool] = {name: True for name in entry.allow}
    values.update({name: False for name in entry.deny})
    return discord.PermissionOverwrite(**values)


def overwrites_from_overlay(
    guild: discord.Guild, overlay: ChannelPermissionOverlay
) -> dict[discord.abc.Snowflake, discord.PermissionOverwrite]:
    """
    Build the ``overwrites=`` mapping for channel creation.

    Roles that no longer exist are skipped with a warning; members not in the
    cache are addressed by a bare ``discord.Object``.
    """
    overwrites: dict[discord.abc.Snowflake, discord.PermissionOverwrite] = {}
    for entry in overlay.entries:
        target: discord.abc.Snowflake | None
        if entry.target_type is TargetType.ROLE:
            target = guild.get_role(entry.target_id)
            if target is None:
                logger.warning(
                    "Skipping overwrite for missing role %s in guild %s",
                    entry.target_id,
                    guild.id,
                )
                continue
        else:
            target = guild.get_member(entry.target_id) or discord.Object(
                id=entry.target_id, type=discord.Member
            )
        overwrites[target] = overwrite_from_entry(entry)
    return overwrites
