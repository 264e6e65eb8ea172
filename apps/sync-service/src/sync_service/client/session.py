"""
Client-side sync engine for one room.

ClientSyncSession wires the transport to the client components:

- ClockSynchronizer: always running while in a room
- HostReporter: running only while this client is the host
- DriftReconciler: running only while this client is a listener

Role changes (room:host_changed, refreshed snapshots) swap the reporter and
the reconciler. Beacons and snapshots that are not newer than the last one
seen are ignored, whichever track they carry. An UNAUTHORIZED rejection means
the local "I am host" view is stale: the session refreshes the room state
instead of retrying.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel

from sync_service.client.player import MediaPlayer
from sync_service.client.socketio_client import SyncSocketIOClient
from sync_service.config import SyncServiceConfig, get_config
from sync_service.errors import StaleBeaconError, UnauthorizedError
from sync_service.models.messages import (
    ControlAck,
    HostChangedEvent,
    HostReportRequest,
    PauseRequest,
    PlayRequest,
    RoomJoinedAck,
    RoomSnapshot,
    SeekRequest,
    SetTrackRequest,
    SyncBeacon,
)
from sync_service.models.playback import TrackRef
from sync_service.sync.clock import ClockSynchronizer
from sync_service.sync.host_reporter import HostReporter
from sync_service.sync.reconciler import DriftReconciler, DriftThresholds, ensure_newer
from sync_service.timing import TimeSource, now_ms

logger = logging.getLogger(__name__)


class ClientSyncSession:
    """Owns the clock, reconciler and reporter of one client in one room.

    Attributes:
        room_id: Current room, None when not in a room
        participant_id: Identity assigned by the server
        is_host: Whether this client currently controls playback
        track_id: Track of the latest beacon or snapshot
    """

    def __init__(
        self,
        client: SyncSocketIOClient,
        player: MediaPlayer,
        config: SyncServiceConfig | None = None,
        time_source: TimeSource = now_ms,
    ) -> None:
        config = config or get_config()

        self.room_id: str | None = None
        self.participant_id: str | None = None
        self.is_host = False
        self.track_id: str | None = None
        self._latest_beacon: SyncBeacon | None = None

        self._client = client
        self._player = player

        self.clock = ClockSynchronizer(
            client.probe_clock,
            samples_per_round=config.clock.samples_per_round,
            probe_spacing_sec=config.clock.probe_spacing_sec,
            probe_timeout_sec=config.clock.probe_timeout_sec,
            recalibration_interval_sec=config.clock.recalibration_interval_sec,
            time_source=time_source,
        )
        self.reconciler = DriftReconciler(
            player,
            lambda: self.clock.estimate,
            thresholds=DriftThresholds(
                soft_sec=config.drift.soft_threshold_sec,
                hard_sec=config.drift.hard_threshold_sec,
                rate_nudge=config.drift.rate_nudge,
            ),
            interval_sec=config.drift.reconcile_interval_sec,
            time_source=time_source,
        )
        self.reporter = HostReporter(
            player,
            self._send_report,
            lambda: self.clock.estimate,
            interval_sec=config.drift.host_report_interval_sec,
            time_source=time_source,
        )

        client.set_beacon_callback(self.handle_beacon)
        client.set_host_changed_callback(self.handle_host_changed)

    @property
    def in_room(self) -> bool:
        return self.room_id is not None

    async def create_room(self, device_name: str = "Device") -> RoomSnapshot:
        """Create a room as its host and start the engine."""
        return await self._enter(await self._client.create_room(device_name))

    async def join_room(
        self,
        room_id: str,
        device_name: str = "Device",
        participant_id: str | None = None,
    ) -> RoomSnapshot:
        """Join a room and start the engine for the assigned role."""
        ack = await self._client.join_room(room_id, device_name, participant_id)
        return await self._enter(ack)

    async def leave(self) -> None:
        """Leave the room and stop every background task."""
        if self.room_id is None:
            return
        try:
            await self._client.leave_room()
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Cancel the clock, reconciler and reporter loops."""
        await self.clock.stop()
        await self.reconciler.stop()
        await self.reporter.stop()
        self.reconciler.clear()
        self.reporter.set_track_loaded(False)
        if self.room_id is not None:
            logger.info(f"Client sync stopped: room_id={self.room_id}")
        self.room_id = None
        self.track_id = None
        self._latest_beacon = None

    async def refresh(self) -> RoomSnapshot:
        """Re-fetch the room view and re-apply role and state."""
        ack = await self._client.request_state()
        logger.info(f"Room state refreshed: room_id={ack.room.room_id}, is_host={ack.is_host}")
        self.is_host = ack.is_host
        self._apply_snapshot(ack.room)
        await self._apply_role()
        return ack.room

    # -------------------------------------------------------------------------
    # Host controls
    # -------------------------------------------------------------------------

    async def send_control(self, message: BaseModel) -> ControlAck:
        """Send a control message; UNAUTHORIZED triggers a state refresh.

        Raises:
            SyncError: If the server rejects the message (not retried).
        """
        try:
            return await self._client.send_control(message)
        except UnauthorizedError:
            logger.warning("Control rejected as non-host, refreshing room state")
            await self.refresh()
            raise

    async def set_track(self, track: TrackRef) -> ControlAck:
        ack = await self.send_control(SetTrackRequest(track=track))
        self.reporter.set_track_loaded(True)
        self.reporter.set_intent(True)
        return ack

    async def play(self, start_position_sec: float | None = None) -> ControlAck:
        ack = await self.send_control(PlayRequest(start_position_sec=start_position_sec))
        self.reporter.set_intent(True)
        return ack

    async def pause(self) -> ControlAck:
        ack = await self.send_control(PauseRequest())
        self.reporter.set_intent(False)
        return ack

    async def seek(self, position_sec: float) -> ControlAck:
        return await self.send_control(SeekRequest(position_sec=position_sec))

    # -------------------------------------------------------------------------
    # Transport callbacks
    # -------------------------------------------------------------------------

    async def handle_beacon(self, beacon: SyncBeacon) -> None:
        if beacon.room_id != self.room_id:
            return
        try:
            ensure_newer(self._latest_beacon, beacon)
        except StaleBeaconError as e:
            logger.debug(f"Ignoring stale beacon: room_id={self.room_id}, {e.message}")
            return
        self._latest_beacon = beacon

        if beacon.track_id != self.track_id:
            self.track_id = beacon.track_id
            self.reporter.set_track_loaded(beacon.track_id is not None)
        self.reporter.set_intent(beacon.is_playing)

        if self.is_host:
            return
        if beacon.track_id is None:
            self.reconciler.clear()
            return
        self.reconciler.on_beacon(beacon)

    async def handle_host_changed(self, event: HostChangedEvent) -> None:
        if event.room_id != self.room_id:
            return
        was_host = self.is_host
        self.is_host = event.host_id == self.participant_id
        if was_host != self.is_host:
            logger.info(f"Role changed: room_id={self.room_id}, is_host={self.is_host}")
            await self._apply_role()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _enter(self, ack: RoomJoinedAck) -> RoomSnapshot:
        if self.room_id is not None and self.room_id != ack.room.room_id:
            await self.stop()

        self.room_id = ack.room.room_id
        self.participant_id = ack.participant_id
        self.is_host = ack.is_host
        self._apply_snapshot(ack.room)

        self.clock.start()
        await self._apply_role()
        logger.info(
            f"Client sync started: room_id={self.room_id}, "
            f"participant_id={self.participant_id}, is_host={self.is_host}"
        )
        return ack.room

    def _apply_snapshot(self, snapshot: RoomSnapshot) -> None:
        try:
            ensure_newer(self._latest_beacon, snapshot.beacon)
        except StaleBeaconError as e:
            logger.debug(f"Ignoring stale snapshot: room_id={snapshot.room_id}, {e.message}")
            return
        self._latest_beacon = snapshot.beacon

        self.track_id = snapshot.track.id if snapshot.track else None
        self.reporter.set_track_loaded(snapshot.track is not None)
        self.reporter.set_intent(snapshot.is_playing)
        if not self.is_host and snapshot.track is not None:
            self.reconciler.accept_beacon(snapshot.beacon)

    async def _apply_role(self) -> None:
        if self.is_host:
            # The host is the source of truth and never corrects itself
            await self.reconciler.stop()
            self.reconciler.clear()
            self.reporter.start()
        else:
            await self.reporter.stop()
            self.reconciler.start()

    async def _send_report(self, report: HostReportRequest) -> None:
        await self.send_control(report)
