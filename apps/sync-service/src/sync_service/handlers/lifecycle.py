"""Connection lifecycle handlers.

Handles connect and disconnect events. A disconnect counts as leaving the
room, so host promotion and room teardown happen immediately.
"""

import logging
from typing import Any

from sync_service.handlers.room import leave_current_room
from sync_service.session import RoomStore

logger = logging.getLogger(__name__)


async def handle_connect(
    sio: Any,
    sid: str,
    environ: dict[str, Any],
    room_store: RoomStore,
) -> None:
    """Handle connect event.

    Membership starts with room:create or room:join, so nothing is stored yet.
    """
    client = environ.get("HTTP_USER_AGENT", "unknown")
    logger.info(f"Client connected: sid={sid}, user_agent={client}")


async def handle_disconnect(
    sio: Any,
    sid: str,
    room_store: RoomStore,
) -> None:
    """Handle disconnect event.

    Args:
        sio: Socket.IO server instance.
        sid: Socket.IO session ID.
        room_store: Room store instance.
    """
    result = await leave_current_room(sio, sid, room_store)

    if result is None:
        logger.debug(f"Disconnect without room: sid={sid}")
        return

    logger.info(
        f"Client disconnected: room_id={result.room.room_id}, "
        f"participant_id={result.participant.participant_id}, "
        f"room_closed={result.room_closed}, sid={sid}"
    )


def register_lifecycle_handlers(
    sio: Any,
    room_store: RoomStore,
) -> None:
    """Register connection lifecycle event handlers.

    Args:
        sio: Socket.IO server instance.
        room_store: Room store instance.
    """

    @sio.on("connect")
    async def on_connect(sid: str, environ: dict[str, Any], auth: Any = None) -> None:
        await handle_connect(sio, sid, environ, room_store)

    @sio.on("disconnect")
    async def on_disconnect(sid: str, reason: Any = None) -> None:
        await handle_disconnect(sio, sid, room_store)
