"""
Voice Package

Manages lobby and temp voice channels through a service-based architecture.
Contains commands and events components.
"""

from .commands import LobbyCommands, VoiceCommands
from .events import VoiceEvents

__all__ = ["LobbyCommands", "VoiceCommands", "VoiceEvents"]
