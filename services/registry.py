"""
Channel registry: durable lobby and temp channel records.

The registry is the single source of truth for which channel ids are lobbies
and which are temp channels. Every write is a single-row insert or delete.
Calls that touch the same channel id are serialized through a per-id lock;
calls for different ids never contend.
"""

from __future__ import annotations

import asyncio
import sqlite3
import time
from contextlib import asynccontextmanager
from typing import Any, Protocol

from services.db.database import Database
from services.db.repository import BaseRepository
from utils.errors import ConflictError, DatabaseError
from utils.logging import get_logger, log_extra
from utils.types import LobbyChannel, TempChannel

logger = get_logger(__name__)


class Registry(Protocol):
    """Contract the lifecycle manager and reconciliation sweep depend on."""

    async def register_lobby(self, channel_id: int, guild_id: int) -> None: ...

    async def unregister_lobby(self, channel_id: int) -> bool: ...

    async def is_lobby(self, channel_id: int) -> int | None: ...

    async def register_temp(
        self, channel_id: int, guild_id: int, owner_id: int, lobby_channel_id: int
    ) -> None: ...

    async def unregister_temp(self, channel_id: int) -> bool: ...

    async def temp_record(self, channel_id: int) -> TempChannel | None: ...

    async def all_lobbies(self) -> list[LobbyChannel]: ...

    async def all_temps(self) -> list[TempChannel]: ...

    async def purge_guild(self, guild_id: int) -> dict[str, int]: ...

    async def cleanup_stale_locks(self, max_age_seconds: float = 300) -> int: ...


def _temp_from_row(row: Any) -> TempChannel:
    return TempChannel(
        channel_id=int(row["channel_id"]),
        guild_id=int(row["guild_id"]),
        owner_id=int(row["owner_id"]),
        lobby_channel_id=int(row["lobby_channel_id"]),
    )


class ChannelRegistry(BaseRepository):
    """SQLite-backed registry of lobby and temp channels."""

    def __init__(self) -> None:
        self._key_locks: dict[int, asyncio.Lock] = {}
        self._lock_last_used: dict[int, float] = {}
        self._locks_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Per-channel locking
    # ------------------------------------------------------------------

    async def _get_key_lock(self, channel_id: int) -> asyncio.Lock:
        async with self._locks_lock:
            lock = self._key_locks.get(channel_id)
            if lock is None:
                lock = self._key_locks[channel_id] = asyncio.Lock()
            self._lock_last_used[channel_id] = time.monotonic()
            return lock

    @asynccontextmanager
    async def _locked(self, channel_id: int):
        lock = await self._get_key_lock(channel_id)
        async with lock:
            yield

    async def cleanup_stale_locks(self, max_age_seconds: float = 300) -> int:
        """Drop lock objects that have not been used recently."""
        cutoff = time.monotonic() - max_age_seconds
        removed = 0
        async with self._locks_lock:
            for key in list(self._lock_last_used):
                if self._lock_last_used[key] >= cutoff:
                    continue
                lock = self._key_locks.get(key)
                if lock and lock.locked():
                    continue
                self._key_locks.pop(key, None)
                self._lock_last_used.pop(key, None)
                removed += 1
        return removed

    # ------------------------------------------------------------------
    # Lobby channels
    # ------------------------------------------------------------------

    async def register_lobby(self, channel_id: int, guild_id: int) -> None:
        """
        Record ``channel_id`` as a lobby of ``guild_id``.

        Raises:
            ConflictError: the id is already a lobby or a temp channel
            DatabaseError: the write failed
        """
        async with self._locked(channel_id):
            await self._ensure_unregistered(channel_id)
            await self._insert(
                "INSERT INTO lobby_channels (channel_id, guild_id) VALUES (?, ?)",
                (channel_id, guild_id),
                channel_id,
            )
        logger.info(
            "Registered lobby channel %s", channel_id, extra=log_extra(guild_id, channel_id)
        )

    async def unregister_lobby(self, channel_id: int) -> bool:
        """Remove a lobby record. Returns False when there was nothing to remove."""
        async with self._locked(channel_id):
            removed = await self._delete(
                "DELETE FROM lobby_channels WHERE channel_id = ?", channel_id
            )
        if removed:
            logger.info(
                "Unregistered lobby channel %s", channel_id, extra=log_extra(channel_id=channel_id)
            )
        return removed

    async def is_lobby(self, channel_id: int) -> int | None:
        """Return the owning guild id when ``channel_id`` is a lobby."""
        value = await self._read_value(
            "SELECT guild_id FROM lobby_channels WHERE channel_id = ?", (channel_id,)
        )
        return int(value) if value is not None else None

    async def all_lobbies(self) -> list[LobbyChannel]:
        rows = await self._read_all(
            "SELECT channel_id, guild_id FROM lobby_channels ORDER BY channel_id"
        )
        return [
            LobbyChannel(channel_id=int(row["channel_id"]), guild_id=int(row["guild_id"]))
            for row in rows
        ]

    async def lobbies_for_guild(self, guild_id: int) -> list[LobbyChannel]:
        rows = await self._read_all(
            "SELECT channel_id, guild_id FROM lobby_channels WHERE guild_id = ? ORDER BY channel_id",
            (guild_id,),
        )
        return [
            LobbyChannel(channel_id=int(row["channel_id"]), guild_id=int(row["guild_id"]))
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Temp channels
    # ------------------------------------------------------------------

    async def register_temp(
        self, channel_id: int, guild_id: int, owner_id: int, lobby_channel_id: int
    ) -> None:
        """
        Record ``channel_id`` as a temp channel owned by ``owner_id``.

        Raises:
            ConflictError: the id is already a temp channel or a lobby
            DatabaseError: the write failed
        """
        async with self._locked(channel_id):
            await self._ensure_unregistered(channel_id)
            await self._insert(
                """
                INSERT INTO temp_channels (channel_id, guild_id, owner_id, lobby_channel_id)
                VALUES (?, ?, ?, ?)
                """,
                (channel_id, guild_id, owner_id, lobby_channel_id),
                channel_id,
            )
        logger.info(
            "Registered temp channel %s from lobby %s",
            channel_id,
            lobby_channel_id,
            extra=log_extra(guild_id, channel_id, owner_id),
        )

    async def unregister_temp(self, channel_id: int) -> bool:
        """Remove a temp record. Returns False when there was nothing to remove."""
        async with self._locked(channel_id):
            removed = await self._delete(
                "DELETE FROM temp_channels WHERE channel_id = ?", channel_id
            )
        if removed:
            logger.info(
                "Unregistered temp channel %s", channel_id, extra=log_extra(channel_id=channel_id)
            )
        return removed

    async def temp_record(self, channel_id: int) -> TempChannel | None:
        row = await self._read_one(
            """
            SELECT channel_id, guild_id, owner_id, lobby_channel_id
            FROM temp_channels WHERE channel_id = ?
            """,
            (channel_id,),
        )
        return _temp_from_row(row) if row else None

    async def all_temps(self) -> list[TempChannel]:
        rows = await self._read_all(
            """
            SELECT channel_id, guild_id, owner_id, lobby_channel_id
            FROM temp_channels ORDER BY channel_id
            """
        )
        return [_temp_from_row(row) for row in rows]

    async def temps_for_owner(self, guild_id: int, owner_id: int) -> list[TempChannel]:
        rows = await self._read_all(
            """
            SELECT channel_id, guild_id, owner_id, lobby_channel_id
            FROM temp_channels WHERE guild_id = ? AND owner_id = ?
            ORDER BY channel_id
            """,
            (guild_id, owner_id),
        )
        return [_temp_from_row(row) for row in rows]

    async def purge_guild(self, guild_id: int) -> dict[str, int]:
        """Delete every lobby and temp record of a guild."""
        try:
            return await Database.purge_guild(guild_id)
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to purge guild {guild_id}: {e}") from e

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _ensure_unregistered(self, channel_id: int) -> None:
        """Caller must hold the channel's lock."""
        if await self.is_lobby(channel_id) is not None:
            raise ConflictError(
                f"Channel {channel_id} is already registered as a lobby",
                channel_id=channel_id,
            )
        if await self.temp_record(channel_id) is not None:
            raise ConflictError(
                f"Channel {channel_id} is already registered as a temp channel",
                channel_id=channel_id,
            )

    async def _insert(self, query: str, params: tuple[Any, ...], channel_id: int) -> None:
        try:
            await self.execute(query, params)
        except sqlite3.IntegrityError as e:
            raise ConflictError(
                f"Channel {channel_id} is already registered", channel_id=channel_id
            ) from e
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to register channel {channel_id}: {e}") from e

    async def _delete(self, query: str, channel_id: int) -> bool:
        try:
            return await self.execute(query, (channel_id,)) > 0
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to unregister channel {channel_id}: {e}") from e

    async def _read_one(self, query: str, params: tuple[Any, ...] = ()) -> Any:
        try:
            return await self.fetch_one(query, params)
        except sqlite3.Error as e:
            raise DatabaseError(f"Registry read failed: {e}") from e

    async def _read_value(self, query: str, params: tuple[Any, ...] = ()) -> Any:
        try:
            return await self.fetch_value(query, params)
        except sqlite3.Error as e:
            raise DatabaseError(f"Registry read failed: {e}") from e

    async def _read_all(self, query: str, params: tuple[Any, ...] = ()) -> list[Any]:
        try:
            return await self.fetch_all(query, params)
        except sqlite3.Error as e:
            raise DatabaseError(f"Registry read failed: {e}") from e
