"""Typed Socket.IO message contracts for the sync service.

Control messages form a closed, tagged set (discriminated on ``type``) and
are validated here, at the transport boundary, before anything reaches the
PlaybackAuthority.

Event map:
- playback:control  -> ControlMessage          (ack: ControlAck | ErrorResponse)
- clock:probe       -> ClockProbeRequest       (ack: ClockProbeResponse)
- room:create       -> CreateRoomRequest       (ack: RoomJoinedAck | ErrorResponse)
- room:join         -> JoinRoomRequest         (ack: RoomJoinedAck | ErrorResponse)
- sync:beacon       <- SyncBeacon              (room broadcast)
- room:host_changed <- HostChangedEvent        (room broadcast)
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from sync_service.models.playback import TrackRef


class _StrictFloats(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)


# -----------------------------------------------------------------------------
# Control messages (host only)
# -----------------------------------------------------------------------------


class SetTrackRequest(_StrictFloats):
    """Replace the current track; always restarts playback at 0."""

    type: Literal["set_track"] = "set_track"
    track: TrackRef


class PlayRequest(_StrictFloats):
    """Start (or resume) playback, optionally from a given position."""

    type: Literal["play"] = "play"
    start_position_sec: float | None = Field(default=None, ge=0.0)


class PauseRequest(_StrictFloats):
    type: Literal["pause"] = "pause"


class SeekRequest(_StrictFloats):
    type: Literal["seek"] = "seek"
    position_sec: float = Field(ge=0.0)


class HostReportRequest(_StrictFloats):
    """Authoritative overwrite pushed periodically by the host's player.

    ``local_send_time`` is the host's local clock; ``clock_offset_ms`` is the
    host's current estimate of (server - local), when calibrated.
    """

    type: Literal["host_report"] = "host_report"
    position_sec: float = Field(ge=0.0)
    is_playing: bool
    local_send_time: float
    clock_offset_ms: float | None = None


ControlMessage = Annotated[
    Union[SetTrackRequest, PlayRequest, PauseRequest, SeekRequest, HostReportRequest],
    Field(discriminator="type"),
]

_control_adapter: TypeAdapter[ControlMessage] = TypeAdapter(ControlMessage)


def parse_control_message(data: Any) -> ControlMessage:
    """Validate a raw control payload into its concrete message type.

    Raises:
        pydantic.ValidationError: If the payload is not a known, valid message.
    """
    return _control_adapter.validate_python(data)


# -----------------------------------------------------------------------------
# Clock probe RPC
# -----------------------------------------------------------------------------


class ClockProbeRequest(_StrictFloats):
    client_send_time: float


class ClockProbeResponse(BaseModel):
    """Server stamps for one NTP-style probe (t1 on receipt, t2 on reply)."""

    client_send_time: float
    server_receive_time: float
    server_send_time: float


# -----------------------------------------------------------------------------
# Beacons
# -----------------------------------------------------------------------------


class BeaconReason(str, Enum):
    STATE_CHANGE = "state_change"
    PERIODIC = "periodic"
    JOIN = "join"


class SyncBeacon(BaseModel):
    """Broadcast of the authoritative playback state.

    ``position_sec`` is evaluated at ``server_send_time``. ``sequence`` grows
    by one per beacon emitted in the room.
    """

    room_id: str
    sequence: int = Field(ge=0)
    position_sec: float
    is_playing: bool
    server_send_time: float
    track_id: str | None = None
    duration_sec: float = Field(default=0.0, ge=0.0)
    reason: BeaconReason = BeaconReason.STATE_CHANGE

    def is_newer_than(self, other: SyncBeacon) -> bool:
        """Ordering used to drop stale or duplicate beacons."""
        if self.server_send_time != other.server_send_time:
            return self.server_send_time > other.server_send_time
        return self.sequence > other.sequence


class ControlAck(BaseModel):
    """Acknowledgement of an accepted control message."""

    success: bool = True
    beacon: SyncBeacon | None = None


# -----------------------------------------------------------------------------
# Room collaborator payloads
# -----------------------------------------------------------------------------


class CreateRoomRequest(BaseModel):
    device_name: str = Field(default="Device", min_length=1, max_length=50)


class JoinRoomRequest(BaseModel):
    room_id: str = Field(min_length=1)
    device_name: str = Field(default="Device", min_length=1, max_length=50)
    participant_id: str | None = Field(default=None, min_length=1, max_length=64)

    @field_validator("room_id")
    @classmethod
    def _normalize_room_id(cls, value: str) -> str:
        return value.strip().upper()


class ParticipantInfo(BaseModel):
    participant_id: str
    device_name: str
    is_host: bool
    joined_at: float


class RoomSnapshot(BaseModel):
    """Full room view used on join and for the post-rejection refresh."""

    room_id: str
    host_id: str | None
    participants: list[ParticipantInfo]
    track: TrackRef | None = None
    is_playing: bool = False
    position_sec: float = 0.0
    beacon: SyncBeacon


class RoomJoinedAck(BaseModel):
    success: bool = True
    participant_id: str
    is_host: bool
    room: RoomSnapshot


class HostChangedEvent(BaseModel):
    room_id: str
    host_id: str
