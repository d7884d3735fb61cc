"""
Voice Events Cog

Translates Discord gateway events into lifecycle events and hands them to the
per-guild dispatcher. Also posts the configuration prompt into new temp
channels.
"""

from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from helpers.discord_reply import send_to_channel
from helpers.views import ChannelConfigView, prompt_message
from utils.logging import get_logger, log_extra
from utils.types import (
    ChannelEvent,
    ConfigurationPrompt,
    MemberJoinedChannel,
    MemberLeftChannel,
    RemoteChannelDeleted,
)

if TYPE_CHECKING:
    from services.service_container import ServiceContainer

logger = get_logger(__name__)


def voice_state_events(
    guild_id: int,
    member_id: int,
    display_name: str,
    before_channel_id: int | None,
    after_channel_id: int | None,
) -> list[ChannelEvent]:
    """
    Split one voice state change into leave/join events.

    A move yields the leave before the join. Changes that keep the member in
    the same channel (mute, deafen, stream) yield nothing.
    """
    if before_channel_id == after_channel_id:
        return []
    events: list[ChannelEvent] = []
    if before_channel_id is not None:
        events.append(MemberLeftChannel(guild_id, before_channel_id, member_id))
    if after_channel_id is not None:
        events.append(
            MemberJoinedChannel(guild_id, after_channel_id, member_id, display_name)
        )
    return events


class VoiceEvents(commands.Cog):
    """Handles voice state change and channel deletion events."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot

    @property
    def services(self) -> "ServiceContainer":
        """Get the bot's service container."""
        if not hasattr(self.bot, "services") or self.bot.services is None:
            raise RuntimeError("Bot services not initialized")
        return self.bot.services

    async def cog_load(self) -> None:
        self.services.voice.add_prompt_listener(self.send_configuration_prompt)
        logger.info("Voice events cog loaded")

    @commands.Cog.listener()
    async def on_voice_state_update(
        self,
        member: discord.Member,
        before: discord.VoiceState,
        after: discord.VoiceState,
    ) -> None:
        """Queue leave/join events for the member's guild."""
        if member.bot:
            return
        events = voice_state_events(
            member.guild.id,
            member.id,
            member.display_name,
            before.channel.id if before.channel else None,
            after.channel.id if after.channel else None,
        )
        for event in events:
            self.services.submit_event(event)

    @commands.Cog.listener()
    async def on_guild_channel_delete(self, channel: discord.abc.GuildChannel) -> None:
        """Queue a deletion event so registry records are dropped."""
        if not isinstance(channel, discord.VoiceChannel):
            return
        self.services.submit_event(RemoteChannelDeleted(channel.guild.id, channel.id))

    @commands.Cog.listener()
    async def on_guild_remove(self, guild: discord.Guild) -> None:
        """Forget every lobby and temp channel of a guild the bot left."""
        try:
            counts = await self.services.voice.guild_removed(guild.id)
            logger.info(f"Removed from guild; purged {counts}", extra=log_extra(guild.id))
        except Exception as e:
            logger.exception(
                "Error purging data for removed guild", extra=log_extra(guild.id), exc_info=e
            )

    async def send_configuration_prompt(self, prompt: ConfigurationPrompt) -> None:
        """Post the configuration view into a freshly created temp channel."""
        channel = self.bot.get_channel(prompt.temp_channel_id)
        if not isinstance(channel, discord.VoiceChannel):
            logger.debug(
                "Temp channel not cached; skipping configuration prompt",
                extra=log_extra(prompt.guild_id, prompt.temp_channel_id, prompt.owner_id),
            )
            return
        await send_to_channel(
            channel, prompt_message(prompt), view=ChannelConfigView(self.bot)
        )


async def setup(bot: commands.Bot) -> None:
    """Set up the Voice Events cog."""
    await bot.add_cog(VoiceEvents(bot))
