"""
Database Helper Module

Provides a centralized database interface for the bot using aiosqlite.
Handles per-operation connections and schema initialization.
"""

import asyncio
import sqlite3
from contextlib import asynccontextmanager

import aiosqlite

from utils.logging import get_logger

from .schema import init_schema

logger = get_logger(__name__)


class Database:
    _db_path: str = "lobbybot.db"
    _lock = asyncio.Lock()  # Ensures that only one initialization happens
    _initialized = False

    @classmethod
    async def initialize(cls, db_path: str | None = None) -> None:
        async with cls._lock:
            if cls._initialized:
                return
            if db_path:
                cls._db_path = db_path
            async with aiosqlite.connect(cls._db_path) as db:
                await init_schema(db)
            cls._initialized = True
            logger.info("Database initialized at %s.", cls._db_path)

    @classmethod
    def reset(cls) -> None:
        """Forget the current path so the next initialize() starts over."""
        cls._initialized = False

    @classmethod
    @asynccontextmanager
    async def get_connection(cls):
        """
        Get a connection to the database with optimized settings.

        Usage:
            async with Database.get_connection() as db:
                await db.execute("SELECT * FROM table")
        """
        if not cls._initialized:
            await cls.initialize()
        async with aiosqlite.connect(cls._db_path) as db:
            await db.execute("PRAGMA busy_timeout=5000")
            try:
                await db.execute("PRAGMA journal_mode=WAL")
            except sqlite3.OperationalError as exc:
                # WAL transition can fail briefly if another writer holds a lock; retry once
                if "database is locked" in str(exc).lower():
                    await asyncio.sleep(0.05)
                    await db.execute("PRAGMA journal_mode=WAL")
                else:
                    raise
            await db.execute("PRAGMA synchronous=NORMAL")
            db.row_factory = aiosqlite.Row
            yield db

    @classmethod
    async def purge_guild(cls, guild_id: int) -> dict[str, int]:
        """Delete every lobby and temp row for a guild (bot removed from guild)."""
        async with cls.get_connection() as db:
            lobby_cursor = await db.execute(
                "DELETE FROM lobby_channels WHERE guild_id = ?", (guild_id,)
            )
            temp_cursor = await db.execute(
                "DELETE FROM temp_channels WHERE guild_id = ?", (guild_id,)
            )
            await db.commit()
            counts = {
                "lobby_channels": lobby_cursor.rowcount or 0,
                "temp_channels": temp_cursor.rowcount or 0,
            }
        logger.info("Purged voice data for guild %s: %s", guild_id, counts)
        return counts
