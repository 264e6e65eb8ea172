"""Room membership handlers.

Handles room:create, room:join, room:leave and room:state. Each handler
returns its acknowledgement payload; membership changes are announced to
the room with room:participants and, on host promotion, room:host_changed.
"""

import logging
from typing import Any

from pydantic import ValidationError

from sync_service.errors import NotInRoomError, SyncError
from sync_service.models.error import ErrorResponse
from sync_service.models.messages import (
    CreateRoomRequest,
    HostChangedEvent,
    JoinRoomRequest,
    RoomJoinedAck,
)
from sync_service.session import LeaveResult, Room, RoomStore

logger = logging.getLogger(__name__)


async def broadcast_participants(sio: Any, room: Room) -> None:
    """Send the current participant list to everyone in the room."""
    await sio.emit(
        "room:participants",
        {
            "room_id": room.room_id,
            "participants": [p.model_dump(mode="json") for p in room.participant_infos()],
        },
        to=room.room_id,
    )


async def leave_current_room(sio: Any, sid: str, room_store: RoomStore) -> LeaveResult | None:
    """Remove a sid from its room and notify the remaining participants.

    Returns:
        The LeaveResult, or None if the sid was not in a room.
    """
    result = await room_store.leave(sid)
    if result is None:
        return None

    room = result.room
    await sio.leave_room(sid, room.room_id)
    if result.room_closed:
        return result

    if result.new_host_id:
        event = HostChangedEvent(room_id=room.room_id, host_id=result.new_host_id)
        await sio.emit("room:host_changed", event.model_dump(mode="json"), to=room.room_id)
    await broadcast_participants(sio, room)
    return result


async def _joined_ack(sio: Any, sid: str, room: Room, participant_id: str) -> dict[str, Any]:
    snapshot = room.snapshot()
    await sio.emit("sync:beacon", snapshot.beacon.model_dump(mode="json"), to=sid)
    ack = RoomJoinedAck(
        participant_id=participant_id,
        is_host=room.is_host(participant_id),
        room=snapshot,
    )
    return ack.model_dump(mode="json")


async def handle_room_create(
    sio: Any,
    sid: str,
    data: dict[str, Any] | None,
    room_store: RoomStore,
) -> dict[str, Any]:
    """Handle room:create event.

    Creates a room with the caller as host. A caller already in a room
    leaves it first.

    Args:
        sio: Socket.IO server instance.
        sid: Socket.IO session ID.
        data: The room:create payload.
        room_store: Room store instance.

    Returns:
        RoomJoinedAck or ErrorResponse payload.
    """
    try:
        payload = CreateRoomRequest(**(data or {}))
    except (ValidationError, TypeError) as e:
        return ErrorResponse.invalid_payload(str(e)).model_dump(mode="json")

    await leave_current_room(sio, sid, room_store)
    room, participant = await room_store.create_room(sid, payload.device_name)
    await sio.enter_room(sid, room.room_id)
    await broadcast_participants(sio, room)
    return await _joined_ack(sio, sid, room, participant.participant_id)


async def handle_room_join(
    sio: Any,
    sid: str,
    data: dict[str, Any] | None,
    room_store: RoomStore,
) -> dict[str, Any]:
    """Handle room:join event.

    Joins an existing room. The joining client receives the room snapshot in
    the acknowledgement and a JOIN beacon so its reconciler can start at once.

    Args:
        sio: Socket.IO server instance.
        sid: Socket.IO session ID.
        data: The room:join payload.
        room_store: Room store instance.

    Returns:
        RoomJoinedAck or ErrorResponse payload.
    """
    try:
        payload = JoinRoomRequest(**(data or {}))
    except (ValidationError, TypeError) as e:
        return ErrorResponse.invalid_payload(str(e)).model_dump(mode="json")

    current = await room_store.get_by_sid(sid)
    if current is not None and current[0].room_id == payload.room_id:
        room, participant = current
        return await _joined_ack(sio, sid, room, participant.participant_id)
    if current is not None:
        await leave_current_room(sio, sid, room_store)

    try:
        room, participant = await room_store.join(
            payload.room_id,
            sid,
            device_name=payload.device_name,
            participant_id=payload.participant_id,
        )
    except SyncError as e:
        logger.info(f"Join rejected: room_id={payload.room_id}, sid={sid}, code={e.code.value}")
        return e.to_response().model_dump(mode="json")

    await sio.enter_room(sid, room.room_id)
    await broadcast_participants(sio, room)
    return await _joined_ack(sio, sid, room, participant.participant_id)


async def handle_room_leave(
    sio: Any,
    sid: str,
    room_store: RoomStore,
) -> dict[str, Any]:
    """Handle room:leave event."""
    result = await leave_current_room(sio, sid, room_store)
    if result is None:
        return NotInRoomError().to_response().model_dump(mode="json")
    return {"success": True, "room_id": result.room.room_id}


async def handle_room_state(
    sio: Any,
    sid: str,
    room_store: RoomStore,
) -> dict[str, Any]:
    """Handle room:state event.

    Used by clients to refresh their view after an UNAUTHORIZED rejection
    or a reconnect.
    """
    membership = await room_store.get_by_sid(sid)
    if membership is None:
        return NotInRoomError().to_response().model_dump(mode="json")

    room, participant = membership
    ack = RoomJoinedAck(
        participant_id=participant.participant_id,
        is_host=room.is_host(participant.participant_id),
        room=room.snapshot(),
    )
    return ack.model_dump(mode="json")


def register_room_handlers(sio: Any, room_store: RoomStore) -> None:
    """Register room membership event handlers.

    Args:
        sio: Socket.IO server instance.
        room_store: Room store instance.
    """

    @sio.on("room:create")
    async def on_room_create(sid: str, data: dict[str, Any] | None = None) -> dict[str, Any]:
        return await handle_room_create(sio, sid, data, room_store)

    @sio.on("room:join")
    async def on_room_join(sid: str, data: dict[str, Any] | None = None) -> dict[str, Any]:
        return await handle_room_join(sio, sid, data, room_store)

    @sio.on("room:leave")
    async def on_room_leave(sid: str, data: Any = None) -> dict[str, Any]:
        return await handle_room_leave(sio, sid, room_store)

    @sio.on("room:state")
    async def on_room_state(sid: str, data: Any = None) -> dict[str, Any]:
        return await handle_room_state(sio, sid, room_store)
