"""
Test Factories Module

Centralized factory functions for creating test objects.
Provides an in-memory channel gateway, overlay builders and DB seeding.
"""

from .db_factories import count_rows, seed_lobby, seed_temp
from .gateway_factories import FakeChannel, FakeGateway, make_entry, make_overlay

__all__ = [
    "FakeChannel",
    "FakeGateway",
    "count_rows",
    "make_entry",
    "make_overlay",
    "seed_lobby",
    "seed_temp",
]
