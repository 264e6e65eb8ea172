"""
Host-authoritative playback state machine for one room.

States: Empty -> Playing (set_track), Paused <-> Playing (play / pause),
seek keeps the state, set_track always restarts at 0 and plays.

Only the room host may mutate state. Every accepted mutation replaces the
frozen PlaybackState and produces exactly one SyncBeacon evaluated at the same
server ``now`` as the mutation. Rejected calls change nothing and emit nothing.

All methods are synchronous: within one event loop a room's control messages
are therefore applied strictly one at a time, in arrival order.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from sync_service.errors import InvalidTrackError, NoTrackLoadedError, UnauthorizedError
from sync_service.models.messages import (
    BeaconReason,
    ControlMessage,
    HostReportRequest,
    PauseRequest,
    PlayRequest,
    SeekRequest,
    SetTrackRequest,
    SyncBeacon,
)
from sync_service.models.playback import PlaybackState, PlaybackStatus, TrackRef
from sync_service.timing import TimeSource, now_ms

logger = logging.getLogger(__name__)

# isHost(participant_id, room_id) supplied by the room membership layer
HostPredicate = Callable[[str, str], bool]
BeaconListener = Callable[[SyncBeacon], None]


class PlaybackAuthority:
    """Single writer of a room's PlaybackState.

    Attributes:
        room_id: Room this authority belongs to
        max_report_transit_ms: Upper bound of host report transit used for
            extrapolation; slower reports are applied as-is
    """

    def __init__(
        self,
        room_id: str,
        is_host: HostPredicate,
        on_beacon: BeaconListener | None = None,
        time_source: TimeSource = now_ms,
        max_report_transit_ms: float = 2000.0,
    ) -> None:
        self.room_id = room_id
        self.max_report_transit_ms = max_report_transit_ms

        self._is_host = is_host
        self._on_beacon = on_beacon
        self._time = time_source
        self._state = PlaybackState()
        self._sequence = 0

    @property
    def state(self) -> PlaybackState:
        """Current state snapshot (immutable)."""
        return self._state

    @property
    def status(self) -> PlaybackStatus:
        return self._state.status

    @property
    def track(self) -> TrackRef | None:
        return self._state.track

    def position_at(self, server_time_ms: float | None = None) -> float:
        """True position in seconds at a server time (defaults to now)."""
        if server_time_ms is None:
            server_time_ms = self._time()
        return self._state.position_at(server_time_ms)

    def beacon(
        self,
        reason: BeaconReason = BeaconReason.STATE_CHANGE,
        at: float | None = None,
    ) -> SyncBeacon:
        """Build the next beacon for the current state.

        Does not notify the listener; used for periodic and join beacons.
        """
        now = self._time() if at is None else at
        track = self._state.track
        beacon = SyncBeacon(
            room_id=self.room_id,
            sequence=self._sequence,
            position_sec=self._state.position_at(now),
            is_playing=self._state.is_playing,
            server_send_time=now,
            track_id=track.id if track else None,
            duration_sec=track.duration_sec if track else 0.0,
            reason=reason,
        )
        self._sequence += 1
        return beacon

    # -------------------------------------------------------------------------
    # Mutating operations (host only)
    # -------------------------------------------------------------------------

    def set_track(self, participant_id: str, track: TrackRef) -> SyncBeacon:
        """Replace the track; position resets to 0 and playback starts."""
        self._authorize(participant_id, "set_track")
        if not track.has_playable_url:
            raise InvalidTrackError(f"Track '{track.title}' has no playable URL")

        now = self._time()
        logger.info(
            f"Track set: room_id={self.room_id}, track_id={track.id}, "
            f"title={track.title!r}, kind={track.kind.value}"
        )
        return self._commit(
            PlaybackState(track=track, is_playing=True, base_position_sec=0.0, epoch_server_time=now),
            now,
        )

    def play(self, participant_id: str, start_position_sec: float | None = None) -> SyncBeacon:
        """Resume playback, optionally from an explicit position.

        Without a position, play while already playing changes nothing.
        """
        self._authorize(participant_id, "play")
        state = self._require_track("play")

        now = self._time()
        if start_position_sec is None:
            if state.is_playing:
                return self._commit(state, now)
            base = state.base_position_sec
        else:
            base = self._clamp(start_position_sec, state.track)

        return self._commit(
            PlaybackState(
                track=state.track, is_playing=True, base_position_sec=base, epoch_server_time=now
            ),
            now,
        )

    def pause(self, participant_id: str) -> SyncBeacon:
        """Freeze the current true position as the new base position."""
        self._authorize(participant_id, "pause")
        state = self._require_track("pause")

        now = self._time()
        if not state.is_playing:
            return self._commit(state, now)
        return self._commit(
            PlaybackState(
                track=state.track,
                is_playing=False,
                base_position_sec=state.position_at(now),
                epoch_server_time=None,
            ),
            now,
        )

    def seek(self, participant_id: str, position_sec: float) -> SyncBeacon:
        """Move to a position; a playing room restarts its epoch at now."""
        self._authorize(participant_id, "seek")
        state = self._require_track("seek")

        now = self._time()
        return self._commit(
            PlaybackState(
                track=state.track,
                is_playing=state.is_playing,
                base_position_sec=self._clamp(position_sec, state.track),
                epoch_server_time=now if state.is_playing else None,
            ),
            now,
        )

    def host_report(
        self,
        participant_id: str,
        position_sec: float,
        is_playing: bool,
        local_send_time: float,
        clock_offset_ms: float | None = None,
    ) -> SyncBeacon:
        """Overwrite state with what the host's player is actually doing.

        Equivalent to seek + play/pause in one step. When the host sent its
        clock offset, the position is advanced by the measured transit time.
        """
        self._authorize(participant_id, "host_report")
        state = self._require_track("host_report")

        now = self._time()
        position = position_sec
        if is_playing and clock_offset_ms is not None:
            transit_ms = now - (local_send_time + clock_offset_ms)
            if 0 <= transit_ms <= self.max_report_transit_ms:
                position += transit_ms / 1000.0
            else:
                logger.debug(
                    f"Host report transit out of range: room_id={self.room_id}, "
                    f"transit_ms={transit_ms:.1f}"
                )

        return self._commit(
            PlaybackState(
                track=state.track,
                is_playing=is_playing,
                base_position_sec=self._clamp(position, state.track),
                epoch_server_time=now if is_playing else None,
            ),
            now,
        )

    def apply(self, participant_id: str, message: ControlMessage) -> SyncBeacon:
        """Dispatch a validated control message to its operation."""
        if isinstance(message, SetTrackRequest):
            return self.set_track(participant_id, message.track)
        if isinstance(message, PlayRequest):
            return self.play(participant_id, message.start_position_sec)
        if isinstance(message, PauseRequest):
            return self.pause(participant_id)
        if isinstance(message, SeekRequest):
            return self.seek(participant_id, message.position_sec)
        if isinstance(message, HostReportRequest):
            return self.host_report(
                participant_id,
                message.position_sec,
                message.is_playing,
                message.local_send_time,
                message.clock_offset_ms,
            )
        raise TypeError(f"Unsupported control message: {type(message).__name__}")

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _authorize(self, participant_id: str, op: str) -> None:
        if not self._is_host(participant_id, self.room_id):
            logger.warning(
                f"Rejected {op} from non-host: room_id={self.room_id}, "
                f"participant_id={participant_id}"
            )
            raise UnauthorizedError()

    def _require_track(self, op: str) -> PlaybackState:
        if self._state.track is None:
            raise NoTrackLoadedError(f"Cannot {op}: no track is loaded")
        return self._state

    def _commit(self, new_state: PlaybackState, now: float) -> SyncBeacon:
        self._state = new_state
        beacon = self.beacon(BeaconReason.STATE_CHANGE, at=now)
        if self._on_beacon is not None:
            self._on_beacon(beacon)
        return beacon

    @staticmethod
    def _clamp(position_sec: float, track: TrackRef | None) -> float:
        position = max(0.0, position_sec)
        if track is not None and track.has_known_duration:
            position = min(position, track.duration_sec)
        return position
