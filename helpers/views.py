# Helpers/views.py
"""
Interactive Views Module

The configuration prompt posted into every new temp channel: a single
"Configure Channel" button that opens the rename modal for the owner.
"""

import discord
from discord import Interaction
from discord.ui import Button, View

from helpers.discord_reply import send_user_error
from helpers.error_messages import format_user_error
from helpers.modals import RenameModal
from utils.logging import get_logger, log_extra
from utils.types import ConfigurationPrompt

logger = get_logger(__name__)

CONFIGURE_BUTTON_ID = "temp_channel_configure"


def prompt_message(prompt: ConfigurationPrompt) -> str:
    """Text posted alongside the view when a temp channel is created."""
    return (
        f"👋 <@{prompt.owner_id}>, this channel is yours and will be deleted once everyone leaves.\n"
        "Use the button below to rename it."
    )


class ChannelConfigView(View):
    """
    Prompt view for temp channel owners.

    Persistent (timeout=None, stable custom_id) so buttons in channels that
    outlive a restart keep working. The temp channel is the channel the
    message was posted in.
    """

    def __init__(self, bot) -> None:
        super().__init__(timeout=None)
        self.bot = bot
        self.configure_button = Button(
            label="Configure Channel",
            style=discord.ButtonStyle.primary,
            emoji="⚙️",
            custom_id=CONFIGURE_BUTTON_ID,
        )
        self.configure_button.callback = self.configure_callback
        self.add_item(self.configure_button)

    async def interaction_check(self, interaction: Interaction) -> bool:
        """
        Ensure that the interacting user owns this temp channel.
        """
        record = await self.bot.services.registry.temp_record(interaction.channel_id)
        if record is None:
            await send_user_error(interaction, format_user_error("NOT_MANAGED"))
            return False
        if record.owner_id != interaction.user.id:
            logger.debug(
                "Non-owner pressed configure button",
                extra=log_extra(interaction.guild_id, interaction.channel_id, interaction.user.id),
            )
            await send_user_error(interaction, format_user_error("NOT_OWNER"))
            return False
        return True

    async def configure_callback(self, interaction: Interaction) -> None:
        current_name = getattr(interaction.channel, "name", None)
        await interaction.response.send_modal(
            RenameModal(self.bot, interaction.channel_id, current_name)
        )
