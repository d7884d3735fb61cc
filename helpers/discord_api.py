"""
Centralized module for all Discord API calls made by the voice lifecycle.

Services talk to the platform only through the ``ChannelGateway`` protocol.
``DiscordChannelGateway`` implements it on top of discord.py and translates
discord.py / aiohttp failures into the domain errors from ``utils.errors``.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Protocol

import aiohttp
import discord  # type: ignore[import-not-found]

from helpers.voice_permissions import overlay_from_overwrites, overwrites_from_overlay
from utils.errors import (
    ForbiddenError,
    NotFoundError,
    RateLimitedError,
    RemoteError,
    TransportError,
)
from utils.logging import get_logger, log_extra
from utils.types import ChannelPermissionOverlay

logger = get_logger(__name__)


class ChannelGateway(Protocol):
    """Remote channel-management API used by the lifecycle services."""

    async def create_voice_channel(
        self,
        guild_id: int,
        name: str,
        overlay: ChannelPermissionOverlay,
        category_id: int | None = None,
    ) -> int: ...

    async def delete_channel(self, channel_id: int) -> None: ...

    async def move_member(self, guild_id: int, member_id: int, channel_id: int) -> None: ...

    async def rename_channel(self, channel_id: int, name: str) -> None: ...

    async def get_voice_members(self, channel_id: int) -> set[int]: ...

    async def channel_exists(self, channel_id: int) -> bool: ...

    async def get_channel_overlay(self, channel_id: int) -> ChannelPermissionOverlay: ...

    async def get_channel_category(self, channel_id: int) -> int | None: ...

    async def member_can_manage_channels(self, guild_id: int, member_id: int) -> bool: ...


def _retry_after(error: discord.HTTPException) -> float | None:
    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None) or {}
    value = headers.get("Retry-After")
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def translate_error(error: BaseException, channel_id: int | None = None) -> RemoteError:
    """Map a discord.py / aiohttp exception onto the domain error taxonomy."""
    if isinstance(error, RemoteError):
        return error
    if isinstance(error, discord.NotFound):
        return NotFoundError(str(error), channel_id=channel_id)
    if isinstance(error, discord.Forbidden):
        return ForbiddenError(str(error), channel_id=channel_id)
    if isinstance(error, discord.RateLimited):
        return RateLimitedError(
            str(error), channel_id=channel_id, retry_after=error.retry_after
        )
    if isinstance(error, discord.HTTPException):
        if error.status == 429:
            return RateLimitedError(
                str(error), channel_id=channel_id, retry_after=_retry_after(error)
            )
        if isinstance(error, discord.DiscordServerError) or error.status >= 500:
            return TransportError(str(error), channel_id=channel_id)
        return RemoteError(str(error), channel_id=channel_id)
    if isinstance(error, (aiohttp.ClientError, asyncio.TimeoutError, OSError)):
        return TransportError(
            f"{type(error).__name__}: {error}", channel_id=channel_id
        )
    return RemoteError(f"{type(error).__name__}: {error}", channel_id=channel_id)


@asynccontextmanager
async def _remote_call(action: str, channel_id: int | None = None):
    try:
        yield
    except (discord.DiscordException, aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
        mapped = translate_error(e, channel_id)
        logger.debug(
            "Remote %s failed: %s",
            action,
            type(mapped).__name__,
            extra=log_extra(channel_id=channel_id),
        )
        raise mapped from e


class DiscordChannelGateway:
    """``ChannelGateway`` backed by a discord.py client."""

    def __init__(self, bot: discord.Client) -> None:
        self.bot = bot

    async def _guild(self, guild_id: int) -> discord.Guild:
        guild = self.bot.get_guild(guild_id)
        if guild is not None:
            return guild
        async with _remote_call("fetch_guild"):
            return await self.bot.fetch_guild(guild_id)

    async def _channel(self, channel_id: int) -> discord.abc.GuildChannel:
        channel = self.bot.get_channel(channel_id)
        if channel is None:
            async with _remote_call("fetch_channel", channel_id):
                channel = await self.bot.fetch_channel(channel_id)
        if not isinstance(channel, discord.abc.GuildChannel):
            raise NotFoundError(
                f"Channel {channel_id} is not a guild channel", channel_id=channel_id
            )
        return channel

    async def _voice_channel(self, channel_id: int) -> discord.VoiceChannel:
        channel = await self._channel(channel_id)
        if not isinstance(channel, discord.VoiceChannel):
            raise NotFoundError(
                f"Channel {channel_id} is not a voice channel", channel_id=channel_id
            )
        return channel

    async def _member(self, guild: discord.Guild, member_id: int) -> discord.Member:
        member = guild.get_member(member_id)
        if member is not None:
            return member
        async with _remote_call("fetch_member"):
            return await guild.fetch_member(member_id)

    async def create_voice_channel(
        self,
        guild_id: int,
        name: str,
        overlay: ChannelPermissionOverlay,
        category_id: int | None = None,
    ) -> int:
        guild = await self._guild(guild_id)
        category = guild.get_channel(category_id) if category_id else None
        if category is not None and not isinstance(category, discord.CategoryChannel):
            category = None
        async with _remote_call("create_voice_channel"):
            channel = await guild.create_voice_channel(
                name=name,
                category=category,
                overwrites=overwrites_from_overlay(guild, overlay),
            )
        logger.info(
            "Created voice channel '%s'",
            name,
            extra=log_extra(guild_id, channel.id),
        )
        return channel.id

    async def delete_channel(self, channel_id: int) -> None:
        channel = await self._channel(channel_id)
        async with _remote_call("delete_channel", channel_id):
            await channel.delete()
        logger.info("Deleted channel", extra=log_extra(channel.guild.id, channel_id))

    async def move_member(self, guild_id: int, member_id: int, channel_id: int) -> None:
        guild = await self._guild(guild_id)
        member = await self._member(guild, member_id)
        channel = await self._voice_channel(channel_id)
        async with _remote_call("move_member", channel_id):
            await member.move_to(channel)
        logger.debug(
            "Moved member to voice channel", extra=log_extra(guild_id, channel_id, member_id)
        )

    async def rename_channel(self, channel_id: int, name: str) -> None:
        channel = await self._voice_channel(channel_id)
        async with _remote_call("rename_channel", channel_id):
            await channel.edit(name=name)

    async def get_voice_members(self, channel_id: int) -> set[int]:
        channel = await self._voice_channel(channel_id)
        # Bot accounts are not tracked by the membership snapshot
        return {member.id for member in channel.members if not member.bot}

    async def channel_exists(self, channel_id: int) -> bool:
        try:
            await self._channel(channel_id)
        except NotFoundError:
            return False
        return True

    async def get_channel_overlay(self, channel_id: int) -> ChannelPermissionOverlay:
        channel = await self._channel(channel_id)
        return overlay_from_overwrites(channel.overwrites)

    async def get_channel_category(self, channel_id: int) -> int | None:
        channel = await self._channel(channel_id)
        return channel.category_id

    async def member_can_manage_channels(self, guild_id: int, member_id: int) -> bool:
        guild = await self._guild(guild_id)
        try:
            member = await self._member(guild, member_id)
        except NotFoundError:
            return False
        return bool(member.guild_permissions.manage_channels)
