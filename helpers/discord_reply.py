"""
Centralized Discord reply helpers for consistent message delivery.

Slash-command and component replies are ephemeral and go through
``send_user_error`` / ``send_user_success`` / ``send_result``. Bot-initiated
messages posted into a voice channel's chat go through ``send_to_channel``.
"""

from __future__ import annotations

import discord

from helpers.error_messages import format_user_error, format_user_success
from utils.logging import get_logger, log_extra
from utils.types import VoiceChannelResult

logger = get_logger(__name__)


async def _reply(interaction: discord.Interaction, text: str, ephemeral: bool) -> None:
    if interaction.response.is_done():
        await interaction.followup.send(text, ephemeral=ephemeral)
    else:
        await interaction.response.send_message(text, ephemeral=ephemeral)


async def send_user_error(
    interaction: discord.Interaction, text: str, ephemeral: bool = True
) -> None:
    """
    Send an error message via interaction response or followup.

    Args:
        interaction: Discord interaction from the slash command or component
        text: Error message text (should already include ❌ prefix)
        ephemeral: Whether to send as ephemeral (default: True)
    """
    if not text.startswith(("❌", "⚠️")):
        text = f"❌ {text}"
    try:
        await _reply(interaction, text, ephemeral)
    except discord.NotFound:
        logger.warning("Interaction expired before error could be sent")
    except discord.HTTPException as e:
        logger.exception(f"Failed to send error message to user: {e}")


async def send_user_success(
    interaction: discord.Interaction, text: str, ephemeral: bool = True
) -> None:
    """Send a success message via interaction response or followup."""
    if not text.startswith("✅"):
        text = f"✅ {text}"
    try:
        await _reply(interaction, text, ephemeral)
    except discord.NotFound:
        logger.warning("Interaction expired before success could be sent")
    except discord.HTTPException as e:
        logger.exception(f"Failed to send success message to user: {e}")


async def send_result(
    interaction: discord.Interaction,
    result: VoiceChannelResult,
    success_code: str,
    **kwargs,
) -> None:
    """
    Render a ``VoiceChannelResult`` for the user.

    On success ``success_code`` is formatted with ``kwargs``, the result's
    metadata and a mention of ``result.channel_id``; on failure the result's
    error code is rendered with ``format_user_error``.
    """
    metadata = result.metadata or {}
    if result.success:
        if result.channel_id is not None:
            kwargs.setdefault("channel_mention", f"<#{result.channel_id}>")
        await send_user_success(
            interaction, format_user_success(success_code, **{**metadata, **kwargs})
        )
    else:
        await send_user_error(interaction, format_user_error(result.error))


async def send_to_channel(
    channel: discord.abc.Messageable,
    content: str,
    *,
    view: discord.ui.View | None = None,
) -> discord.Message | None:
    """
    Post a bot-initiated message into a channel's chat.

    Failures are logged and swallowed; returns None when nothing was sent.
    """
    try:
        if view is not None:
            return await channel.send(content, view=view)
        return await channel.send(content)
    except discord.Forbidden:
        logger.warning(
            "Missing permission to post in channel",
            extra=log_extra(channel_id=getattr(channel, "id", None)),
        )
    except discord.HTTPException as e:
        logger.warning(
            f"Failed to post in channel: {e}",
            extra=log_extra(channel_id=getattr(channel, "id", None)),
        )
    return None


__all__ = [
    "send_result",
    "send_to_channel",
    "send_user_error",
    "send_user_success",
]
