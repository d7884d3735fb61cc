"""
Canonical schema definition (version=1).

Two relations, each keyed by channel id: lobby channels and the temp
channels spawned from them.
"""

import aiosqlite

from utils.logging import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = 1


async def init_schema(db: aiosqlite.Connection) -> None:
    """
    Initialize the database schema with all required tables.

    Args:
        db: An open database connection
    """
    await db.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version INTEGER PRIMARY KEY,
            applied_at INTEGER DEFAULT (strftime('%s','now'))
        )
        """
    )

    await db.execute(
        """
        INSERT OR IGNORE INTO schema_migrations (version, applied_at)
        VALUES (?, strftime('%s','now'))
        """,
        (SCHEMA_VERSION,),
    )

    await db.execute(
        """
        CREATE TABLE IF NOT EXISTS lobby_channels (
            channel_id INTEGER PRIMARY KEY,
            guild_id INTEGER NOT NULL,
            created_at INTEGER DEFAULT (strftime('%s','now'))
        )
        """
    )

    await db.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_lobby_channels_guild
        ON lobby_channels(guild_id)
        """
    )

    # lobby_channel_id is a plain id, not a foreign key: the lobby may be
    # deleted while temp channels spawned from it are still alive.
    await db.execute(
        """
        CREATE TABLE IF NOT EXISTS temp_channels (
            channel_id INTEGER PRIMARY KEY,
            guild_id INTEGER NOT NULL,
            owner_id INTEGER NOT NULL,
            lobby_channel_id INTEGER NOT NULL,
            created_at INTEGER DEFAULT (strftime('%s','now'))
        )
        """
    )

    await db.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_temp_channels_guild_owner
        ON temp_channels(guild_id, owner_id)
        """
    )

    await db.commit()
    logger.debug("Schema version %s ensured", SCHEMA_VERSION)
