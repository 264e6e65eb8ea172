"""
Structured logging configuration for the sync service.

Uses structlog for JSON-formatted logs with consistent context binding for
room_id and participant_id throughout a room's lifetime.
"""

import logging
import sys

import structlog


def setup_logging(level: str = "INFO", json_output: bool = True) -> None:
    """
    Configure structlog on top of the standard library logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL). Default: INFO
        json_output: Render JSON lines (True) or human-readable console output
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
        force=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a structlog logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured BoundLogger instance
    """
    return structlog.get_logger(name)


def bind_room_context(logger: structlog.BoundLogger, room_id: str) -> structlog.BoundLogger:
    """
    Bind room context to logger.

    Args:
        logger: Base logger instance
        room_id: Room identifier

    Returns:
        BoundLogger with context bound

    Example:
        >>> logger = bind_room_context(get_logger(__name__), room_id="K3X9QZ")
        >>> logger.info("beacon_emitted", sequence=4)  # Includes room_id
    """
    return logger.bind(room_id=room_id)
