"""
Base Repository Pattern for Database Access.

Provides a unified interface for database operations, eliminating
repetitive connection/cursor patterns throughout the codebase.

Usage:
    class LobbyRepository(BaseRepository):
        async def get_lobby(self, channel_id: int) -> Row | None:
            return await self.fetch_one(
                "SELECT * FROM lobby_channels WHERE channel_id = ?", (channel_id,)
            )
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, TypeVar

from .database import Database

if TYPE_CHECKING:
    from aiosqlite import Row

T = TypeVar("T")


class BaseRepository:
    """
    Base class for repository pattern database access.

    Provides common query methods that handle connection management,
    cursor operations, and result processing uniformly.
    """

    @staticmethod
    @asynccontextmanager
    async def transaction():
        """
        Context manager for explicit transaction control.

        Usage:
            async with BaseRepository.transaction() as db:
                await db.execute("INSERT ...", params)
                # Auto-commits on success, rolls back on exception
        """
        async with Database.get_connection() as db:
            try:
                yield db
                await db.commit()
            except Exception:
                await db.rollback()
                raise

    @staticmethod
    async def fetch_one(
        query: str,
        params: tuple[Any, ...] = (),
    ) -> Row | None:
        """Execute a query and return a single row (or None)."""
        async with Database.get_connection() as db:
            cursor = await db.execute(query, params)
            return await cursor.fetchone()

    @staticmethod
    async def fetch_all(
        query: str,
        params: tuple[Any, ...] = (),
    ) -> list[Row]:
        """Execute a query and return all rows (empty list if none found)."""
        async with Database.get_connection() as db:
            cursor = await db.execute(query, params)
            return list(await cursor.fetchall())

    @staticmethod
    async def fetch_value(
        query: str,
        params: tuple[Any, ...] = (),
        default: T = None,
    ) -> T | Any:
        """Execute a query and return the first column of the first row."""
        row = await BaseRepository.fetch_one(query, params)
        return row[0] if row else default

    @staticmethod
    async def execute(
        query: str,
        params: tuple[Any, ...] = (),
    ) -> int:
        """
        Execute a single write statement and commit it.

        Returns:
            Number of affected rows
        """
        async with BaseRepository.transaction() as db:
            cursor = await db.execute(query, params)
            return cursor.rowcount or 0
