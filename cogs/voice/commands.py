"""
Voice Commands Cog

Slash commands for managing lobbies (``/lobby``) and for temp channel owners
(``/voice``). All business logic is delegated to the VoiceService.
"""

from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from helpers.discord_reply import send_result, send_user_error
from helpers.error_messages import format_user_error
from utils.logging import get_logger, log_extra

if TYPE_CHECKING:
    from services.voice_service import VoiceService

logger = get_logger(__name__)


@app_commands.guild_only()
@app_commands.default_permissions(manage_channels=True)
class LobbyCommands(commands.GroupCog, name="lobby"):
    """Lobby administration commands."""

    def __init__(self, bot: commands.Bot) -> None:
        super().__init__()
        self.bot = bot

    @property
    def voice_service(self) -> "VoiceService":
        """Get the voice service from the bot's service container."""
        if not hasattr(self.bot, "services") or self.bot.services is None:
            raise RuntimeError("Bot services not initialized")
        return self.bot.services.voice

    @app_commands.command(name="create", description="Create a new lobby voice channel")
    @app_commands.describe(name="Name of the lobby channel")
    async def create_lobby(
        self, interaction: discord.Interaction, name: str | None = None
    ) -> None:
        try:
            await interaction.response.defer(ephemeral=True)
            result = await self.voice_service.handle_create_lobby(
                interaction.guild_id, interaction.user.id, name
            )
            await send_result(interaction, result, "LOBBY_CREATED")
        except Exception as e:
            logger.exception(
                "Error in create_lobby command",
                extra=log_extra(interaction.guild_id, user_id=interaction.user.id),
                exc_info=e,
            )
            await send_user_error(interaction, format_user_error("UNKNOWN"))

    @app_commands.command(
        name="convert", description="Turn an existing voice channel into a lobby"
    )
    @app_commands.describe(channel="Voice channel to convert")
    async def convert_lobby(
        self, interaction: discord.Interaction, channel: discord.VoiceChannel
    ) -> None:
        try:
            await interaction.response.defer(ephemeral=True)
            result = await self.voice_service.handle_convert_to_lobby(
                interaction.guild_id, interaction.user.id, channel.id
            )
            await send_result(interaction, result, "LOBBY_CONVERTED")
        except Exception as e:
            logger.exception(
                "Error in convert_lobby command",
                extra=log_extra(interaction.guild_id, channel.id, interaction.user.id),
                exc_info=e,
            )
            await send_user_error(interaction, format_user_error("UNKNOWN"))

    @app_commands.command(
        name="remove", description="Stop using a voice channel as a lobby"
    )
    @app_commands.describe(channel="Lobby channel to turn back into a normal channel")
    async def remove_lobby(
        self, interaction: discord.Interaction, channel: discord.VoiceChannel
    ) -> None:
        try:
            await interaction.response.defer(ephemeral=True)
            result = await self.voice_service.handle_remove_lobby(
                interaction.guild_id, interaction.user.id, channel.id
            )
            await send_result(interaction, result, "LOBBY_REMOVED")
        except Exception as e:
            logger.exception(
                "Error in remove_lobby command",
                extra=log_extra(interaction.guild_id, channel.id, interaction.user.id),
                exc_info=e,
            )
            await send_user_error(interaction, format_user_error("UNKNOWN"))


@app_commands.guild_only()
class VoiceCommands(commands.GroupCog, name="voice"):
    """Commands for temp channel owners."""

    def __init__(self, bot: commands.Bot) -> None:
        super().__init__()
        self.bot = bot

    @property
    def voice_service(self) -> "VoiceService":
        """Get the voice service from the bot's service container."""
        if not hasattr(self.bot, "services") or self.bot.services is None:
            raise RuntimeError("Bot services not initialized")
        return self.bot.services.voice

    @app_commands.command(name="rename", description="Rename your temporary voice channel")
    @app_commands.describe(name="New channel name")
    async def rename_channel(self, interaction: discord.Interaction, name: str) -> None:
        voice_state = getattr(interaction.user, "voice", None)
        if voice_state is None or voice_state.channel is None:
            await send_user_error(interaction, format_user_error("NOT_IN_VOICE"))
            return

        channel_id = voice_state.channel.id
        try:
            await interaction.response.defer(ephemeral=True)
            result = await self.voice_service.handle_rename_request(
                channel_id, interaction.user.id, name
            )
            if result.error == "UNAUTHORIZED":
                await send_user_error(interaction, format_user_error("NOT_OWNER"))
                return
            await send_result(interaction, result, "RENAMED")
        except Exception as e:
            logger.exception(
                "Error in rename_channel command",
                extra=log_extra(interaction.guild_id, channel_id, interaction.user.id),
                exc_info=e,
            )
            await send_user_error(interaction, format_user_error("UNKNOWN"))


async def setup(bot: commands.Bot) -> None:
    """Set up the voice command cogs."""
    await bot.add_cog(LobbyCommands(bot))
    await bot.add_cog(VoiceCommands(bot))
