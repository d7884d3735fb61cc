"""
Tests for the voice events cog and the voice state translation.
"""

from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from cogs.voice.events import VoiceEvents, voice_state_events
from helpers.views import ChannelConfigView
from utils.types import (
    ConfigurationPrompt,
    MemberJoinedChannel,
    MemberLeftChannel,
    RemoteChannelDeleted,
)


class TestVoiceStateEvents:
    def test_join(self):
        assert voice_state_events(1, 2, "Alice", None, 10) == [
            MemberJoinedChannel(1, 10, 2, "Alice")
        ]

    def test_leave(self):
        assert voice_state_events(1, 2, "Alice", 10, None) == [MemberLeftChannel(1, 10, 2)]

    def test_move_emits_leave_before_join(self):
        assert voice_state_events(1, 2, "Alice", 10, 11) == [
            MemberLeftChannel(1, 10, 2),
            MemberJoinedChannel(1, 11, 2, "Alice"),
        ]

    def test_mute_in_same_channel_is_ignored(self):
        assert voice_state_events(1, 2, "Alice", 10, 10) == []


def _state(channel_id: int | None) -> MagicMock:
    state = MagicMock()
    state.channel = MagicMock(id=channel_id) if channel_id is not None else None
    return state


def _member(bot: bool = False) -> MagicMock:
    member = MagicMock()
    member.bot = bot
    member.id = 2
    member.display_name = "Alice"
    member.guild.id = 1
    return member


@pytest.fixture
def bot() -> MagicMock:
    bot = MagicMock()
    bot.services.submit_event = MagicMock()
    bot.services.voice.guild_removed = AsyncMock(return_value={})
    return bot


class TestVoiceEventsCog:
    @pytest.mark.asyncio
    async def test_voice_state_update_submits_events(self, bot):
        cog = VoiceEvents(bot)

        await cog.on_voice_state_update(_member(), _state(10), _state(11))

        submitted = [call.args[0] for call in bot.services.submit_event.call_args_list]
        assert submitted == [
            MemberLeftChannel(1, 10, 2),
            MemberJoinedChannel(1, 11, 2, "Alice"),
        ]

    @pytest.mark.asyncio
    async def test_bots_are_ignored(self, bot):
        cog = VoiceEvents(bot)

        await cog.on_voice_state_update(_member(bot=True), _state(None), _state(11))

        bot.services.submit_event.assert_not_called()

    @pytest.mark.asyncio
    async def test_voice_channel_delete_is_submitted(self, bot):
        cog = VoiceEvents(bot)
        channel = MagicMock(spec=discord.VoiceChannel)
        channel.id = 10
        channel.guild = MagicMock(id=1)

        await cog.on_guild_channel_delete(channel)

        bot.services.submit_event.assert_called_once_with(RemoteChannelDeleted(1, 10))

    @pytest.mark.asyncio
    async def test_text_channel_delete_is_ignored(self, bot):
        cog = VoiceEvents(bot)

        await cog.on_guild_channel_delete(MagicMock(spec=discord.TextChannel))

        bot.services.submit_event.assert_not_called()

    @pytest.mark.asyncio
    async def test_guild_remove_purges(self, bot):
        cog = VoiceEvents(bot)
        guild = MagicMock(id=1)

        await cog.on_guild_remove(guild)

        bot.services.voice.guild_removed.assert_awaited_once_with(1)

    @pytest.mark.asyncio
    async def test_configuration_prompt_posts_view(self, bot):
        channel = MagicMock(spec=discord.VoiceChannel)
        channel.send = AsyncMock()
        bot.get_channel.return_value = channel
        cog = VoiceEvents(bot)

        await cog.send_configuration_prompt(
            ConfigurationPrompt(temp_channel_id=10, owner_id=2, guild_id=1)
        )

        channel.send.assert_awaited_once()
        content = channel.send.await_args.args[0]
        assert "<@2>" in content
        assert isinstance(channel.send.await_args.kwargs["view"], ChannelConfigView)

    @pytest.mark.asyncio
    async def test_configuration_prompt_skips_uncached_channel(self, bot):
        bot.get_channel.return_value = None
        cog = VoiceEvents(bot)

        await cog.send_configuration_prompt(
            ConfigurationPrompt(temp_channel_id=10, owner_id=2, guild_id=1)
        )


class TestChannelConfigView:
    def _interaction(self, user_id: int) -> MagicMock:
        interaction = MagicMock()
        interaction.channel_id = 10
        interaction.guild_id = 1
        interaction.user.id = user_id
        interaction.response.is_done.return_value = False
        interaction.response.send_message = AsyncMock()
        return interaction

    @pytest.mark.asyncio
    async def test_owner_passes_check(self, bot):
        record = MagicMock(owner_id=2)
        bot.services.registry.temp_record = AsyncMock(return_value=record)
        view = ChannelConfigView(bot)

        assert await view.interaction_check(self._interaction(2)) is True

    @pytest.mark.asyncio
    async def test_non_owner_is_rejected(self, bot):
        bot.services.registry.temp_record = AsyncMock(return_value=MagicMock(owner_id=2))
        view = ChannelConfigView(bot)
        interaction = self._interaction(3)

        assert await view.interaction_check(interaction) is False

        message = interaction.response.send_message.await_args.args[0]
        assert "Not your channel" in message

    @pytest.mark.asyncio
    async def test_unmanaged_channel_is_rejected(self, bot):
        bot.services.registry.temp_record = AsyncMock(return_value=None)
        view = ChannelConfigView(bot)

        assert await view.interaction_check(self._interaction(2)) is False

    @pytest.mark.asyncio
    async def test_view_is_persistent(self, bot):
        view = ChannelConfigView(bot)

        assert view.timeout is None
        assert view.is_persistent()
