import discord
from discord.ui import Modal, TextInput

from helpers.discord_reply import send_result, send_user_error
from helpers.error_messages import format_user_error
from services.voice_service import MAX_CHANNEL_NAME_LENGTH
from utils.logging import get_logger, log_extra

logger = get_logger(__name__)


class RenameModal(Modal):
    """
    Modal to change the name of a temp voice channel.
    """

    def __init__(self, bot, channel_id: int, current_name: str | None = None) -> None:
        super().__init__(title="Rename Channel", timeout=300)
        self.bot = bot
        self.channel_id = channel_id
        self.channel_name = TextInput(
            label="New Channel Name",
            placeholder="Enter a new name for your channel",
            default=current_name,
            min_length=1,
            max_length=MAX_CHANNEL_NAME_LENGTH,
        )
        self.add_item(self.channel_name)

    async def on_submit(self, interaction: discord.Interaction) -> None:
        await interaction.response.defer(ephemeral=True)

        voice_service = self.bot.services.voice
        try:
            result = await voice_service.handle_rename_request(
                self.channel_id, interaction.user.id, self.channel_name.value
            )
        except Exception:
            logger.exception(
                "Failed to rename channel",
                extra=log_extra(interaction.guild_id, self.channel_id, interaction.user.id),
            )
            await send_user_error(interaction, format_user_error("UNKNOWN"))
            return

        await send_result(interaction, result, "RENAMED")
