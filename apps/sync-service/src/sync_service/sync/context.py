"""
Per-room sync engine lifecycle.

RoomSyncContext owns one PlaybackAuthority and the two background tasks
that surround it:

- sender: drains a FIFO beacon queue, so beacons leave the room in the same
  order the authority produced them
- periodic: enqueues a PERIODIC beacon every ``beacon_interval_sec`` while
  the room is playing

Contexts are constructed with the room and torn down with it. There are no
module-level timers.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable

from sync_service.errors import SyncError
from sync_service.models.messages import BeaconReason, ControlMessage, SyncBeacon
from sync_service.observability.logger import bind_room_context, get_logger
from sync_service.observability.metrics import record_beacon, record_control_op
from sync_service.sync.authority import HostPredicate, PlaybackAuthority
from sync_service.timing import TimeSource, now_ms

BeaconEmitter = Callable[[SyncBeacon], Awaitable[None]]


class RoomSyncContext:
    """Server-side sync engine for a single room.

    Attributes:
        room_id: Room identifier
        authority: The room's PlaybackAuthority
        beacon_interval_sec: Periodic beacon interval while playing
    """

    def __init__(
        self,
        room_id: str,
        is_host: HostPredicate,
        emit: BeaconEmitter,
        beacon_interval_sec: float = 5.0,
        max_report_transit_ms: float = 2000.0,
        time_source: TimeSource = now_ms,
    ) -> None:
        self.room_id = room_id
        self.beacon_interval_sec = beacon_interval_sec
        self.authority = PlaybackAuthority(
            room_id,
            is_host,
            on_beacon=self._enqueue,
            time_source=time_source,
            max_report_transit_ms=max_report_transit_ms,
        )

        self._emit = emit
        self._queue: asyncio.Queue[SyncBeacon] = asyncio.Queue()
        self._sender_task: asyncio.Task | None = None
        self._periodic_task: asyncio.Task | None = None
        self._log = bind_room_context(get_logger(__name__), room_id)

    @property
    def is_running(self) -> bool:
        return self._sender_task is not None and not self._sender_task.done()

    @property
    def pending_beacons(self) -> int:
        """Beacons produced but not yet handed to the transport."""
        return self._queue.qsize()

    def start(self) -> None:
        """Start the sender and periodic beacon tasks."""
        if self.is_running:
            return
        self._sender_task = asyncio.create_task(self._send_loop())
        self._periodic_task = asyncio.create_task(self._periodic_loop())
        self._log.info("room_sync_started", beacon_interval_sec=self.beacon_interval_sec)

    async def stop(self) -> None:
        """Cancel both tasks. Beacons still queued are discarded."""
        tasks = [t for t in (self._sender_task, self._periodic_task) if t is not None]
        self._sender_task = None
        self._periodic_task = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

        dropped = self._queue.qsize()
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()
        self._log.info("room_sync_stopped", dropped_beacons=dropped)

    async def drain(self) -> None:
        """Wait until every queued beacon has been emitted."""
        await self._queue.join()

    def submit(self, participant_id: str, message: ControlMessage) -> SyncBeacon:
        """Apply a validated control message to the authority.

        Returns:
            The state-change beacon (already queued for broadcast).

        Raises:
            SyncError: If the authority rejects the message.
        """
        try:
            beacon = self.authority.apply(participant_id, message)
        except SyncError as e:
            record_control_op(message.type, e.code.value)
            self._log.info(
                "control_rejected",
                op=message.type,
                participant_id=participant_id,
                code=e.code.value,
            )
            raise

        record_control_op(message.type, "accepted")
        self._log.debug(
            "control_applied",
            op=message.type,
            sequence=beacon.sequence,
            position_sec=round(beacon.position_sec, 3),
            is_playing=beacon.is_playing,
        )
        return beacon

    def current_beacon(self, reason: BeaconReason = BeaconReason.JOIN) -> SyncBeacon:
        """Beacon for the current state, not queued (sent to one client)."""
        return self.authority.beacon(reason)

    def _enqueue(self, beacon: SyncBeacon) -> None:
        self._queue.put_nowait(beacon)

    async def _send_loop(self) -> None:
        while True:
            beacon = await self._queue.get()
            try:
                await self._emit(beacon)
                record_beacon(beacon.reason.value)
            except Exception as e:
                self._log.error("beacon_emit_failed", sequence=beacon.sequence, error=str(e))
            finally:
                self._queue.task_done()

    async def _periodic_loop(self) -> None:
        while True:
            await asyncio.sleep(self.beacon_interval_sec)
            if self.authority.state.is_playing:
                self._enqueue(self.authority.beacon(BeaconReason.PERIODIC))
