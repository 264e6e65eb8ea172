"""Unit tests for RoomSyncContext (per-room beacon lifecycle)."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from sync_service.errors import UnauthorizedError
from sync_service.models.messages import (
    BeaconReason,
    PauseRequest,
    PlayRequest,
    SeekRequest,
    SetTrackRequest,
)
from sync_service.sync.context import RoomSyncContext

HOST = "host-1"


@pytest.fixture
def emit():
    return AsyncMock()


@pytest.fixture
def context(clock, emit):
    return RoomSyncContext(
        "ROOM01",
        is_host=lambda participant_id, room_id: participant_id == HOST,
        emit=emit,
        beacon_interval_sec=0.01,
        time_source=clock,
    )


def emitted(emit):
    return [call.args[0] for call in emit.await_args_list]


class TestSubmit:
    """Tests for control message submission and beacon ordering."""

    @pytest.mark.asyncio
    async def test_beacons_are_emitted_in_mutation_order(self, context, emit, clock, track):
        context.start()
        try:
            context.submit(HOST, SetTrackRequest(track=track))
            clock.advance(seconds=3)
            context.submit(HOST, PauseRequest())
            context.submit(HOST, SeekRequest(position_sec=50.0))
            context.submit(HOST, PlayRequest())
            await context.drain()
        finally:
            await context.stop()

        beacons = [b for b in emitted(emit) if b.reason is BeaconReason.STATE_CHANGE]
        assert [b.sequence for b in beacons] == [0, 1, 2, 3]
        assert [b.is_playing for b in beacons] == [True, False, False, True]
        assert beacons[1].position_sec == pytest.approx(3.0)
        assert beacons[3].position_sec == 50.0

    @pytest.mark.asyncio
    async def test_submit_returns_the_queued_beacon(self, context, track):
        beacon = context.submit(HOST, SetTrackRequest(track=track))

        assert beacon.track_id == track.id
        assert context.pending_beacons == 1

    @pytest.mark.asyncio
    async def test_rejected_submit_emits_nothing(self, context, emit, track):
        context.start()
        try:
            with pytest.raises(UnauthorizedError):
                context.submit("guest", SetTrackRequest(track=track))
            await context.drain()
        finally:
            await context.stop()

        emit.assert_not_awaited()
        assert context.pending_beacons == 0

    @pytest.mark.asyncio
    async def test_emit_failure_does_not_stop_sender(self, context, emit, track):
        emit.side_effect = [RuntimeError("transport down"), None]
        context.start()
        try:
            context.submit(HOST, SetTrackRequest(track=track))
            context.submit(HOST, PauseRequest())
            await context.drain()
        finally:
            await context.stop()

        assert emit.await_count == 2


class TestPeriodicBeacons:
    """Tests for the periodic beacon task."""

    @pytest.mark.asyncio
    async def test_periodic_beacons_while_playing(self, context, emit, track):
        context.submit(HOST, SetTrackRequest(track=track))
        context.start()
        try:
            await asyncio.sleep(0.06)
        finally:
            await context.stop()

        reasons = [b.reason for b in emitted(emit)]
        assert reasons[0] is BeaconReason.STATE_CHANGE
        assert BeaconReason.PERIODIC in reasons

    @pytest.mark.asyncio
    async def test_no_periodic_beacons_while_paused(self, context, emit, track):
        context.submit(HOST, SetTrackRequest(track=track))
        context.submit(HOST, PauseRequest())
        context.start()
        try:
            await asyncio.sleep(0.06)
        finally:
            await context.stop()

        assert [b.reason for b in emitted(emit)] == [
            BeaconReason.STATE_CHANGE,
            BeaconReason.STATE_CHANGE,
        ]

    @pytest.mark.asyncio
    async def test_no_periodic_beacons_when_empty(self, context, emit):
        context.start()
        try:
            await asyncio.sleep(0.05)
        finally:
            await context.stop()

        emit.assert_not_awaited()


class TestLifecycle:
    """Tests for start / stop."""

    @pytest.mark.asyncio
    async def test_stop_cancels_tasks(self, context):
        context.start()
        assert context.is_running is True

        await context.stop()

        assert context.is_running is False

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, context):
        context.start()
        first = context._sender_task
        context.start()
        try:
            assert context._sender_task is first
        finally:
            await context.stop()

    @pytest.mark.asyncio
    async def test_stop_discards_queued_beacons(self, context, emit, track):
        context.submit(HOST, SetTrackRequest(track=track))

        await context.stop()

        assert context.pending_beacons == 0
        emit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_current_beacon_is_not_queued(self, context, track):
        context.submit(HOST, SetTrackRequest(track=track))

        beacon = context.current_beacon()

        assert beacon.reason is BeaconReason.JOIN
        assert beacon.sequence == 1
        assert context.pending_beacons == 1
