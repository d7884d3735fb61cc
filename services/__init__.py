"""
Services package for the Discord bot.

This package contains service classes that handle business logic and data access
for lobby and temp voice channels.
"""

from .base import BaseService
from .config_service import ConfigService
from .reconciliation import ReconciliationSweep
from .registry import ChannelRegistry, Registry
from .service_container import ServiceContainer
from .voice_service import VoiceService

__all__ = [
    "BaseService",
    "ChannelRegistry",
    "ConfigService",
    "ReconciliationSweep",
    "Registry",
    "ServiceContainer",
    "VoiceService",
]
