"""
Database Package

Database access layer for the lobby voice bot.
"""

from .database import Database
from .repository import BaseRepository
from .schema import init_schema

__all__ = [
    "BaseRepository",
    "Database",
    "init_schema",
]
