"""
Startup reconciliation between the channel registry and live Discord state.

Runs once before live events are dispatched. Records whose channel is gone
are dropped, the membership snapshot is rebuilt for every surviving temp
channel, and temp channels that are empty are cleaned up through the same
path as a normal "last member left".
"""

from collections.abc import Awaitable, Callable
from typing import TypeVar

from utils.errors import DatabaseError, NotFoundError, RemoteError
from utils.logging import get_logger, log_extra
from utils.types import LobbyChannel, SweepReport, TempChannel

from .voice_service import VoiceService

logger = get_logger(__name__)

T = TypeVar("T")


class ReconciliationSweep:
    """One pass over every registry record. Safe to run repeatedly."""

    def __init__(self, voice_service: VoiceService) -> None:
        self.voice_service = voice_service
        self.registry = voice_service.registry
        self.gateway = voice_service.gateway

    async def run(self) -> SweepReport:
        """
        Reconcile every lobby and temp record.

        A failure on one record is logged and leaves that record for the next
        pass; it never aborts the sweep.
        """
        report = SweepReport()
        logger.info("Starting voice channel reconciliation")

        for lobby in await self._load(self.registry.all_lobbies, "lobbies", report):
            report.lobbies_checked += 1
            try:
                await self._reconcile_lobby(lobby, report)
            except Exception as e:
                report.errors += 1
                logger.exception(
                    f"Failed to reconcile lobby {lobby.channel_id}",
                    extra=log_extra(lobby.guild_id, lobby.channel_id),
                    exc_info=e,
                )

        for temp in await self._load(self.registry.all_temps, "temp channels", report):
            report.temps_checked += 1
            try:
                await self._reconcile_temp(temp, report)
            except Exception as e:
                report.errors += 1
                logger.exception(
                    f"Failed to reconcile temp channel {temp.channel_id}",
                    extra=log_extra(temp.guild_id, temp.channel_id, temp.owner_id),
                    exc_info=e,
                )

        logger.info(
            f"Voice channel reconciliation complete: {report.lobbies_checked} lobbies "
            f"({report.lobbies_removed} removed), {report.temps_checked} temp channels "
            f"({report.temps_removed} removed, {report.temps_cleaned} cleaned), "
            f"{report.errors} errors"
        )
        return report

    async def _load(
        self, load: Callable[[], Awaitable[list[T]]], what: str, report: SweepReport
    ) -> list[T]:
        try:
            return await load()
        except DatabaseError as e:
            report.errors += 1
            logger.error(f"Could not read registered {what}: {e}")
            return []

    async def _exists(self, channel_id: int) -> bool:
        return await self.voice_service.remote_call(
            self.gateway.channel_exists(channel_id),
            action="channel_exists",
            channel_id=channel_id,
        )

    async def _reconcile_lobby(self, lobby: LobbyChannel, report: SweepReport) -> None:
        extra = log_extra(lobby.guild_id, lobby.channel_id)
        try:
            exists = await self._exists(lobby.channel_id)
        except RemoteError as e:
            report.errors += 1
            logger.warning(f"Could not check lobby {lobby.channel_id}: {e}", extra=extra)
            return
        if exists:
            return
        logger.warning(
            f"Lobby {lobby.channel_id} no longer exists; unregistering", extra=extra
        )
        if await self.registry.unregister_lobby(lobby.channel_id):
            report.lobbies_removed += 1

    async def _reconcile_temp(self, temp: TempChannel, report: SweepReport) -> None:
        extra = log_extra(temp.guild_id, temp.channel_id, temp.owner_id)
        try:
            exists = await self._exists(temp.channel_id)
            members = (
                await self.voice_service.remote_call(
                    self.gateway.get_voice_members(temp.channel_id),
                    action="get_voice_members",
                    channel_id=temp.channel_id,
                )
                if exists
                else None
            )
        except NotFoundError:
            # Deleted between the two calls
            exists, members = False, None
        except RemoteError as e:
            report.errors += 1
            logger.warning(
                f"Could not check temp channel {temp.channel_id}: {e}", extra=extra
            )
            return

        if not exists:
            logger.warning(
                f"Temp channel {temp.channel_id} no longer exists; unregistering",
                extra=extra,
            )
            self.voice_service.replace_channel_members(temp.channel_id, ())
            if await self.registry.unregister_temp(temp.channel_id):
                report.temps_removed += 1
            return

        self.voice_service.replace_channel_members(temp.channel_id, members or ())
        if members:
            return

        logger.info(f"Temp channel {temp.channel_id} is empty; cleaning up", extra=extra)
        if await self.voice_service.cleanup_empty_channel(temp.channel_id):
            report.temps_cleaned += 1
