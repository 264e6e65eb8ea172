"""Sync service Socket.IO event handlers.

Exports all handler registration functions for use in server setup.
"""

from sync_service.handlers.clock import register_clock_handlers
from sync_service.handlers.lifecycle import register_lifecycle_handlers
from sync_service.handlers.playback import register_playback_handlers
from sync_service.handlers.room import register_room_handlers

__all__ = [
    "register_clock_handlers",
    "register_lifecycle_handlers",
    "register_playback_handlers",
    "register_room_handlers",
]
