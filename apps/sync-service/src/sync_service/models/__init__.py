"""Sync service pydantic models and value types.

Organized by domain:

- playback.py: Track and playback state (TrackRef, PlaybackState)
- messages.py: Socket.IO message contracts (control messages, beacons, probes)
- error.py: Error handling models (ErrorResponse, ErrorCode)
"""

from sync_service.models.error import ErrorCode, ErrorResponse
from sync_service.models.messages import (
    BeaconReason,
    ClockProbeRequest,
    ClockProbeResponse,
    ControlAck,
    ControlMessage,
    CreateRoomRequest,
    HostChangedEvent,
    HostReportRequest,
    JoinRoomRequest,
    ParticipantInfo,
    PauseRequest,
    PlayRequest,
    RoomJoinedAck,
    RoomSnapshot,
    SeekRequest,
    SetTrackRequest,
    SyncBeacon,
    parse_control_message,
)
from sync_service.models.playback import (
    PlaybackState,
    PlaybackStatus,
    TrackKind,
    TrackRef,
)

__all__ = [
    # Error models
    "ErrorCode",
    "ErrorResponse",
    # Playback models
    "PlaybackState",
    "PlaybackStatus",
    "TrackKind",
    "TrackRef",
    # Control messages
    "ControlMessage",
    "SetTrackRequest",
    "PlayRequest",
    "PauseRequest",
    "SeekRequest",
    "HostReportRequest",
    "parse_control_message",
    "ControlAck",
    # Clock probe
    "ClockProbeRequest",
    "ClockProbeResponse",
    # Beacons
    "BeaconReason",
    "SyncBeacon",
    # Room payloads
    "CreateRoomRequest",
    "JoinRoomRequest",
    "ParticipantInfo",
    "RoomSnapshot",
    "RoomJoinedAck",
    "HostChangedEvent",
]
