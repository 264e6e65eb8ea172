"""Room membership for the sync service.

Provides Participant / Room dataclasses and RoomStore, the in-memory
registry that owns each room's RoomSyncContext.

Rules:
- Room codes are 6 characters from A-Z0-9, collision-checked
- The first participant to join a room is its host
- When the host leaves, the longest-present remaining participant is promoted
- A room is destroyed, and its sync context stopped, when the last
  participant leaves
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import string
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from sync_service.errors import RoomNotFoundError
from sync_service.models.messages import BeaconReason, ParticipantInfo, RoomSnapshot
from sync_service.observability.metrics import decrement_active_rooms, increment_active_rooms
from sync_service.sync.authority import HostPredicate
from sync_service.sync.context import RoomSyncContext
from sync_service.timing import TimeSource, now_ms

logger = logging.getLogger(__name__)

ROOM_CODE_LENGTH = 6
ROOM_CODE_CHARS = string.ascii_uppercase + string.digits
MAX_CODE_ATTEMPTS = 100

# (room_id, is_host predicate) -> started or startable RoomSyncContext
ContextFactory = Callable[[str, HostPredicate], RoomSyncContext]


def generate_room_code() -> str:
    return "".join(secrets.choice(ROOM_CODE_CHARS) for _ in range(ROOM_CODE_LENGTH))


@dataclass
class Participant:
    """A connected member of a room."""

    participant_id: str
    sid: str  # Socket.IO session ID, replaced on reconnect
    device_name: str = "Device"
    joined_at: float = field(default_factory=now_ms)

    def info(self, is_host: bool) -> ParticipantInfo:
        return ParticipantInfo(
            participant_id=self.participant_id,
            device_name=self.device_name,
            is_host=is_host,
            joined_at=self.joined_at,
        )


@dataclass
class Room:
    """A room and its sync engine.

    ``participants`` preserves join order, so the first entry is always the
    longest-present participant.
    """

    room_id: str
    context: RoomSyncContext
    created_at: float = field(default_factory=now_ms)
    participants: dict[str, Participant] = field(default_factory=dict)
    host_id: str | None = None

    def is_host(self, participant_id: str) -> bool:
        return self.host_id is not None and self.host_id == participant_id

    def participant_infos(self) -> list[ParticipantInfo]:
        return [p.info(self.is_host(p.participant_id)) for p in self.participants.values()]

    def snapshot(self) -> RoomSnapshot:
        """Full room view with a fresh JOIN beacon."""
        beacon = self.context.current_beacon(BeaconReason.JOIN)
        return RoomSnapshot(
            room_id=self.room_id,
            host_id=self.host_id,
            participants=self.participant_infos(),
            track=self.context.authority.track,
            is_playing=beacon.is_playing,
            position_sec=beacon.position_sec,
            beacon=beacon,
        )


@dataclass
class LeaveResult:
    """Outcome of a participant leaving a room."""

    room: Room
    participant: Participant
    new_host_id: str | None = None
    room_closed: bool = False


class RoomStore:
    """In-memory room registry.

    Indexes rooms by code and memberships by Socket.IO sid. Mutations are
    serialized with an asyncio.Lock; ``is_host`` is a plain synchronous read
    so it can serve as the authority's host predicate.
    """

    def __init__(
        self,
        context_factory: ContextFactory,
        time_source: TimeSource = now_ms,
    ) -> None:
        self._context_factory = context_factory
        self._time = time_source
        self._rooms: dict[str, Room] = {}
        self._sid_to_room: dict[str, str] = {}  # sid -> room_id
        self._lock = asyncio.Lock()

    async def create_room(
        self,
        sid: str,
        device_name: str = "Device",
        participant_id: str | None = None,
    ) -> tuple[Room, Participant]:
        """Create a room and join its creator as host.

        Raises:
            RuntimeError: If no free room code could be generated.
        """
        async with self._lock:
            room_id = self._new_room_code()
            context = self._context_factory(room_id, self.is_host)
            room = Room(room_id=room_id, context=context, created_at=self._time())
            self._rooms[room_id] = room
            participant = self._add_participant(room, sid, device_name, participant_id)

        context.start()
        increment_active_rooms()
        logger.info(f"Room created: room_id={room_id}, host_id={participant.participant_id}")
        return room, participant

    async def join(
        self,
        room_id: str,
        sid: str,
        device_name: str = "Device",
        participant_id: str | None = None,
    ) -> tuple[Room, Participant]:
        """Join an existing room.

        A known ``participant_id`` rejoining the same room keeps its join time
        and host role and takes over the new sid.

        Raises:
            RoomNotFoundError: If the room does not exist.
        """
        async with self._lock:
            room = self._rooms.get(room_id)
            if room is None:
                raise RoomNotFoundError(f"Room {room_id} not found")

            existing = room.participants.get(participant_id) if participant_id else None
            if existing is not None:
                self._sid_to_room.pop(existing.sid, None)
                existing.sid = sid
                existing.device_name = device_name
                self._sid_to_room[sid] = room_id
                participant = existing
            else:
                participant = self._add_participant(room, sid, device_name, participant_id)

        logger.info(
            f"Participant joined: room_id={room_id}, participant_id={participant.participant_id}, "
            f"is_host={room.is_host(participant.participant_id)}, total={len(room.participants)}"
        )
        return room, participant

    async def leave(self, sid: str) -> LeaveResult | None:
        """Remove the participant bound to a sid.

        Returns:
            The LeaveResult, or None if the sid is not in a room.
        """
        async with self._lock:
            room_id = self._sid_to_room.pop(sid, None)
            room = self._rooms.get(room_id) if room_id else None
            if room is None:
                return None

            participant = next(
                (p for p in room.participants.values() if p.sid == sid), None
            )
            if participant is None:
                return None
            del room.participants[participant.participant_id]

            result = LeaveResult(room=room, participant=participant)
            if not room.participants:
                del self._rooms[room.room_id]
                result.room_closed = True
            elif room.host_id == participant.participant_id:
                successor = min(room.participants.values(), key=lambda p: p.joined_at)
                room.host_id = successor.participant_id
                result.new_host_id = successor.participant_id

        logger.info(
            f"Participant left: room_id={room.room_id}, "
            f"participant_id={participant.participant_id}, remaining={len(room.participants)}"
        )
        if result.new_host_id:
            logger.info(f"Host reassigned: room_id={room.room_id}, host_id={result.new_host_id}")
        if result.room_closed:
            await room.context.stop()
            decrement_active_rooms()
            logger.info(f"Room closed: room_id={room.room_id}")
        return result

    async def get(self, room_id: str) -> Room | None:
        return self._rooms.get(room_id)

    async def get_by_sid(self, sid: str) -> tuple[Room, Participant] | None:
        """Find the room and participant bound to a Socket.IO sid."""
        room_id = self._sid_to_room.get(sid)
        room = self._rooms.get(room_id) if room_id else None
        if room is None:
            return None
        for participant in room.participants.values():
            if participant.sid == sid:
                return room, participant
        return None

    def is_host(self, participant_id: str, room_id: str) -> bool:
        """Authorization predicate consulted before every control op."""
        room = self._rooms.get(room_id)
        return room is not None and room.is_host(participant_id)

    async def snapshot(self, room_id: str) -> RoomSnapshot:
        """Current room view.

        Raises:
            RoomNotFoundError: If the room does not exist.
        """
        room = self._rooms.get(room_id)
        if room is None:
            raise RoomNotFoundError(f"Room {room_id} not found")
        return room.snapshot()

    def count(self) -> int:
        """Return number of active rooms."""
        return len(self._rooms)

    def stats(self) -> dict[str, Any]:
        """Room statistics for the /rooms debugging endpoint."""
        rooms = []
        total_participants = 0
        for room in self._rooms.values():
            state = room.context.authority.state
            total_participants += len(room.participants)
            rooms.append(
                {
                    "room_id": room.room_id,
                    "participants": len(room.participants),
                    "host_id": room.host_id,
                    "status": state.status.value,
                    "track": state.track.title if state.track else None,
                }
            )
        return {
            "total_rooms": len(self._rooms),
            "total_participants": total_participants,
            "rooms": rooms,
        }

    async def close_all(self) -> None:
        """Stop every room's sync context (server shutdown)."""
        async with self._lock:
            rooms = list(self._rooms.values())
            self._rooms.clear()
            self._sid_to_room.clear()
        for room in rooms:
            await room.context.stop()
            decrement_active_rooms()
        if rooms:
            logger.info(f"Closed {len(rooms)} rooms on shutdown")

    def _new_room_code(self) -> str:
        for _ in range(MAX_CODE_ATTEMPTS):
            code = generate_room_code()
            if code not in self._rooms:
                return code
        raise RuntimeError("Failed to generate unique room code")

    def _add_participant(
        self,
        room: Room,
        sid: str,
        device_name: str,
        participant_id: str | None,
    ) -> Participant:
        participant = Participant(
            participant_id=participant_id or str(uuid.uuid4()),
            sid=sid,
            device_name=device_name,
            joined_at=self._time(),
        )
        room.participants[participant.participant_id] = participant
        self._sid_to_room[sid] = room.room_id
        if room.host_id is None:
            room.host_id = participant.participant_id
        return participant
