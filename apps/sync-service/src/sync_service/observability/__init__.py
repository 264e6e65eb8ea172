"""Logging and metrics for the sync service."""

from sync_service.observability.logger import bind_room_context, get_logger, setup_logging

__all__ = [
    "bind_room_context",
    "get_logger",
    "setup_logging",
]
