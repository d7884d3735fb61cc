"""
Tests for the Discord gateway and its error translation.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import discord
import pytest

from helpers.discord_api import DiscordChannelGateway, translate_error
from tests.factories import make_entry, make_overlay
from utils.errors import (
    ForbiddenError,
    NotFoundError,
    RateLimitedError,
    RemoteError,
    TransportError,
)
from utils.types import TargetType


def _response(status: int, headers: dict | None = None) -> MagicMock:
    response = MagicMock()
    response.status = status
    response.reason = "reason"
    response.headers = headers or {}
    return response


class TestTranslateError:
    def test_not_found(self):
        mapped = translate_error(discord.NotFound(_response(404), "Unknown Channel"), 5)

        assert isinstance(mapped, NotFoundError)
        assert mapped.channel_id == 5

    def test_forbidden(self):
        mapped = translate_error(discord.Forbidden(_response(403), "Missing Access"))

        assert isinstance(mapped, ForbiddenError)
        assert not mapped.retryable

    def test_http_429_reads_retry_after(self):
        error = discord.HTTPException(_response(429, {"Retry-After": "1.5"}), "slow")

        mapped = translate_error(error)

        assert isinstance(mapped, RateLimitedError)
        assert mapped.retry_after == 1.5
        assert mapped.retryable

    def test_rate_limited(self):
        mapped = translate_error(discord.RateLimited(4.0))

        assert isinstance(mapped, RateLimitedError)
        assert mapped.retry_after == 4.0

    def test_server_error_is_transport(self):
        mapped = translate_error(discord.DiscordServerError(_response(503), "oops"))

        assert isinstance(mapped, TransportError)

    def test_other_http_error_is_generic(self):
        mapped = translate_error(discord.HTTPException(_response(400), "bad"))

        assert type(mapped) is RemoteError
        assert not mapped.retryable

    @pytest.mark.parametrize(
        "error", [aiohttp.ClientConnectionError("reset"), asyncio.TimeoutError(), OSError()]
    )
    def test_network_errors_are_transport(self, error):
        assert isinstance(translate_error(error), TransportError)

    def test_domain_errors_pass_through(self):
        error = NotFoundError("gone")

        assert translate_error(error) is error


def _voice_channel(channel_id: int = 10, guild_id: int = 1) -> MagicMock:
    channel = MagicMock(spec=discord.VoiceChannel)
    channel.id = channel_id
    channel.guild = MagicMock(id=guild_id)
    channel.category_id = 77
    channel.members = []
    channel.overwrites = {}
    channel.delete = AsyncMock()
    channel.edit = AsyncMock()
    return channel


@pytest.fixture
def bot() -> MagicMock:
    bot = MagicMock()
    bot.get_channel.return_value = None
    bot.get_guild.return_value = None
    bot.fetch_channel = AsyncMock()
    bot.fetch_guild = AsyncMock()
    return bot


class TestDiscordChannelGateway:
    @pytest.mark.asyncio
    async def test_channel_exists_uses_cache_then_fetch(self, bot):
        bot.get_channel.return_value = _voice_channel()
        gateway = DiscordChannelGateway(bot)

        assert await gateway.channel_exists(10) is True
        bot.fetch_channel.assert_not_awaited()

        bot.get_channel.return_value = None
        bot.fetch_channel.side_effect = discord.NotFound(_response(404), "Unknown Channel")

        assert await gateway.channel_exists(11) is False

    @pytest.mark.asyncio
    async def test_channel_exists_propagates_transport_errors(self, bot):
        bot.fetch_channel.side_effect = discord.DiscordServerError(_response(502), "bad gw")
        gateway = DiscordChannelGateway(bot)

        with pytest.raises(TransportError):
            await gateway.channel_exists(10)

    @pytest.mark.asyncio
    async def test_text_channel_is_not_a_voice_channel(self, bot):
        bot.get_channel.return_value = MagicMock(spec=discord.TextChannel)
        gateway = DiscordChannelGateway(bot)

        with pytest.raises(NotFoundError):
            await gateway.get_voice_members(10)

    @pytest.mark.asyncio
    async def test_delete_maps_not_found(self, bot):
        channel = _voice_channel()
        channel.delete.side_effect = discord.NotFound(_response(404), "Unknown Channel")
        bot.get_channel.return_value = channel
        gateway = DiscordChannelGateway(bot)

        with pytest.raises(NotFoundError) as exc_info:
            await gateway.delete_channel(10)

        assert exc_info.value.channel_id == 10

    @pytest.mark.asyncio
    async def test_rename_and_members(self, bot):
        channel = _voice_channel()
        channel.members = [
            MagicMock(id=1, bot=False),
            MagicMock(id=2, bot=False),
            MagicMock(id=3, bot=True),
        ]
        bot.get_channel.return_value = channel
        gateway = DiscordChannelGateway(bot)

        await gateway.rename_channel(10, "New name")

        channel.edit.assert_awaited_once_with(name="New name")
        # Bots are left out of the member list
        assert await gateway.get_voice_members(10) == {1, 2}
        assert await gateway.get_channel_category(10) == 77

    @pytest.mark.asyncio
    async def test_create_voice_channel_in_category(self, bot):
        guild = MagicMock()
        guild.id = 1
        category = MagicMock(spec=discord.CategoryChannel)
        guild.get_channel.return_value = category
        guild.get_role.side_effect = lambda role_id: discord.Object(id=role_id)
        guild.get_member.return_value = None
        guild.create_voice_channel = AsyncMock(return_value=MagicMock(id=555))
        bot.get_guild.return_value = guild
        gateway = DiscordChannelGateway(bot)
        overlay = make_overlay(
            make_entry(1, deny={"connect"}),
            make_entry(42, TargetType.MEMBER, allow={"manage_channels"}),
        )

        channel_id = await gateway.create_voice_channel(1, "Alice's Channel", overlay, 77)

        assert channel_id == 555
        kwargs = guild.create_voice_channel.await_args.kwargs
        assert kwargs["name"] == "Alice's Channel"
        assert kwargs["category"] is category
        assert len(kwargs["overwrites"]) == 2
        guild.get_channel.assert_called_once_with(77)

    @pytest.mark.asyncio
    async def test_move_member(self, bot):
        guild = MagicMock()
        member = MagicMock()
        member.move_to = AsyncMock()
        guild.get_member.return_value = member
        bot.get_guild.return_value = guild
        channel = _voice_channel()
        bot.get_channel.return_value = channel
        gateway = DiscordChannelGateway(bot)

        await gateway.move_member(1, 42, 10)

        member.move_to.assert_awaited_once_with(channel)

    @pytest.mark.asyncio
    async def test_move_member_forbidden(self, bot):
        guild = MagicMock()
        member = MagicMock()
        member.move_to = AsyncMock(side_effect=discord.Forbidden(_response(403), "no"))
        guild.get_member.return_value = member
        bot.get_guild.return_value = guild
        bot.get_channel.return_value = _voice_channel()
        gateway = DiscordChannelGateway(bot)

        with pytest.raises(ForbiddenError):
            await gateway.move_member(1, 42, 10)

    @pytest.mark.asyncio
    async def test_member_can_manage_channels(self, bot):
        guild = MagicMock()
        member = MagicMock()
        member.guild_permissions.manage_channels = True
        guild.get_member.return_value = member
        bot.get_guild.return_value = guild
        gateway = DiscordChannelGateway(bot)

        assert await gateway.member_can_manage_channels(1, 42) is True

        guild.get_member.return_value = None
        guild.fetch_member = AsyncMock(side_effect=discord.NotFound(_response(404), "x"))

        assert await gateway.member_can_manage_channels(1, 43) is False
