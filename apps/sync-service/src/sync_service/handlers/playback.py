"""Playback control handler.

Handles playback:control. The payload is validated into one of the typed
control messages before it reaches the room's PlaybackAuthority; rejections
are returned to the caller only and never broadcast.
"""

import logging
from typing import Any

from pydantic import ValidationError

from sync_service.errors import NotInRoomError, SyncError
from sync_service.models.error import ErrorCode, ErrorResponse
from sync_service.models.messages import ControlAck, parse_control_message
from sync_service.observability.metrics import record_control_op
from sync_service.session import RoomStore

logger = logging.getLogger(__name__)


async def handle_playback_control(
    sio: Any,
    sid: str,
    data: dict[str, Any],
    room_store: RoomStore,
) -> dict[str, Any]:
    """Handle playback:control event.

    Args:
        sio: Socket.IO server instance.
        sid: Socket.IO session ID.
        data: One tagged control message (set_track, play, pause, seek,
            host_report).
        room_store: Room store instance.

    Returns:
        ControlAck carrying the resulting beacon, or ErrorResponse.
    """
    membership = await room_store.get_by_sid(sid)
    if membership is None:
        return NotInRoomError().to_response().model_dump(mode="json")
    room, participant = membership

    try:
        message = parse_control_message(data)
    except ValidationError as e:
        op = data.get("type", "unknown") if isinstance(data, dict) else "unknown"
        record_control_op(str(op), ErrorCode.INVALID_PAYLOAD.value)
        logger.info(f"Invalid control payload: room_id={room.room_id}, sid={sid}, op={op}")
        return ErrorResponse.invalid_payload(
            f"{e.error_count()} validation error(s) for {op}"
        ).model_dump(mode="json")

    try:
        beacon = room.context.submit(participant.participant_id, message)
    except SyncError as e:
        return e.to_response().model_dump(mode="json")
    except Exception as e:
        logger.exception(
            f"Unexpected error applying {message.type}: room_id={room.room_id}, error={e}"
        )
        return ErrorResponse.internal_error().model_dump(mode="json")

    return ControlAck(beacon=beacon).model_dump(mode="json")


def register_playback_handlers(sio: Any, room_store: RoomStore) -> None:
    """Register the playback:control handler.

    Args:
        sio: Socket.IO server instance.
        room_store: Room store instance.
    """

    @sio.on("playback:control")
    async def on_playback_control(sid: str, data: dict[str, Any]) -> dict[str, Any]:
        return await handle_playback_control(sio, sid, data, room_store)
