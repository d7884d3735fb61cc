"""
Tests for the /lobby and /voice slash command cogs and the rename modal.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from cogs.voice.commands import LobbyCommands, VoiceCommands
from helpers.modals import RenameModal
from utils.types import VoiceChannelResult


def _interaction(user_id: int = 9, in_voice_channel: int | None = None) -> MagicMock:
    interaction = MagicMock()
    interaction.guild_id = 1
    interaction.user.id = user_id
    if in_voice_channel is None:
        interaction.user.voice = None
    else:
        interaction.user.voice.channel.id = in_voice_channel
    interaction.response.is_done.return_value = True
    interaction.response.defer = AsyncMock()
    interaction.response.send_message = AsyncMock()
    interaction.followup.send = AsyncMock()
    return interaction


def _sent(interaction: MagicMock) -> str:
    if interaction.followup.send.await_count:
        return interaction.followup.send.await_args.args[0]
    return interaction.response.send_message.await_args.args[0]


@pytest.fixture
def bot() -> MagicMock:
    bot = MagicMock()
    voice = bot.services.voice
    voice.handle_create_lobby = AsyncMock()
    voice.handle_convert_to_lobby = AsyncMock()
    voice.handle_remove_lobby = AsyncMock()
    voice.handle_rename_request = AsyncMock()
    return bot


class TestLobbyCommands:
    @pytest.mark.asyncio
    async def test_create_reports_new_channel(self, bot):
        bot.services.voice.handle_create_lobby.return_value = VoiceChannelResult(
            success=True, channel_id=55, metadata={"name": "Lobby"}
        )
        cog = LobbyCommands(bot)
        interaction = _interaction()

        await cog.create_lobby.callback(cog, interaction, "Lobby")

        bot.services.voice.handle_create_lobby.assert_awaited_once_with(1, 9, "Lobby")
        message = _sent(interaction)
        assert message.startswith("✅")
        assert "<#55>" in message

    @pytest.mark.asyncio
    async def test_create_reports_error_code(self, bot):
        bot.services.voice.handle_create_lobby.return_value = VoiceChannelResult(
            success=False, error="UNAUTHORIZED"
        )
        cog = LobbyCommands(bot)
        interaction = _interaction()

        await cog.create_lobby.callback(cog, interaction, None)

        assert "Not allowed" in _sent(interaction)

    @pytest.mark.asyncio
    async def test_unexpected_failure_is_reported_generically(self, bot):
        bot.services.voice.handle_convert_to_lobby.side_effect = RuntimeError("boom")
        cog = LobbyCommands(bot)
        interaction = _interaction()
        channel = MagicMock(id=10)

        await cog.convert_lobby.callback(cog, interaction, channel)

        assert "Something went wrong" in _sent(interaction)

    @pytest.mark.asyncio
    async def test_remove(self, bot):
        bot.services.voice.handle_remove_lobby.return_value = VoiceChannelResult(
            success=True, channel_id=10
        )
        cog = LobbyCommands(bot)
        interaction = _interaction()

        await cog.remove_lobby.callback(cog, interaction, MagicMock(id=10))

        bot.services.voice.handle_remove_lobby.assert_awaited_once_with(1, 9, 10)
        assert "Lobby removed" in _sent(interaction)


class TestVoiceCommands:
    @pytest.mark.asyncio
    async def test_rename_requires_voice(self, bot):
        cog = VoiceCommands(bot)
        interaction = _interaction()
        interaction.response.is_done.return_value = False

        await cog.rename_channel.callback(cog, interaction, "New")

        bot.services.voice.handle_rename_request.assert_not_awaited()
        assert "Not in voice" in _sent(interaction)

    @pytest.mark.asyncio
    async def test_rename_current_channel(self, bot):
        bot.services.voice.handle_rename_request.return_value = VoiceChannelResult(
            success=True, channel_id=10, metadata={"name": "New"}
        )
        cog = VoiceCommands(bot)
        interaction = _interaction(user_id=2, in_voice_channel=10)

        await cog.rename_channel.callback(cog, interaction, "New")

        bot.services.voice.handle_rename_request.assert_awaited_once_with(10, 2, "New")
        assert "**New**" in _sent(interaction)

    @pytest.mark.asyncio
    async def test_rename_by_non_owner(self, bot):
        bot.services.voice.handle_rename_request.return_value = VoiceChannelResult(
            success=False, channel_id=10, error="UNAUTHORIZED"
        )
        cog = VoiceCommands(bot)
        interaction = _interaction(user_id=3, in_voice_channel=10)

        await cog.rename_channel.callback(cog, interaction, "Mine")

        assert "Not your channel" in _sent(interaction)


class TestRenameModal:
    @pytest.mark.asyncio
    async def test_submit_renames_channel(self, bot):
        bot.services.voice.handle_rename_request.return_value = VoiceChannelResult(
            success=True, channel_id=10, metadata={"name": "Quiet Room"}
        )
        modal = RenameModal(bot, 10, "Alice's Channel")
        modal.channel_name = MagicMock(value="Quiet Room")
        interaction = _interaction(user_id=2)

        await modal.on_submit(interaction)

        bot.services.voice.handle_rename_request.assert_awaited_once_with(10, 2, "Quiet Room")
        assert "Quiet Room" in _sent(interaction)

    @pytest.mark.asyncio
    async def test_submit_reports_invalid_name(self, bot):
        bot.services.voice.handle_rename_request.return_value = VoiceChannelResult(
            success=False, channel_id=10, error="INVALID_NAME"
        )
        modal = RenameModal(bot, 10)
        modal.channel_name = MagicMock(value="   ")
        interaction = _interaction(user_id=2)

        await modal.on_submit(interaction)

        assert "1-100" in _sent(interaction)
