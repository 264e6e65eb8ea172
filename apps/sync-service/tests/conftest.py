"""Shared test fixtures for sync service tests.

Provides a manually driven clock, a scriptable media player and a mock
Socket.IO server for both unit and integration tests.
"""

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from sync_service.config import (
    ClockSyncConfig,
    DriftConfig,
    ObservabilityConfig,
    PlaybackConfig,
    ServerConfig,
    SyncServiceConfig,
    reset_config,
)
from sync_service.models.messages import BeaconReason, SyncBeacon
from sync_service.models.playback import TrackRef

T0 = 1_700_000_000_000.0  # server epoch ms used across tests


class ManualClock:
    """Millisecond time source advanced explicitly by tests."""

    def __init__(self, start_ms: float = T0) -> None:
        self.now = start_ms

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float = 0.0, ms: float = 0.0) -> None:
        self.now += seconds * 1000.0 + ms


class FakePlayer:
    """In-memory MediaPlayer that records every command it receives."""

    def __init__(self, position: float = 0.0, playing: bool = False) -> None:
        self.position = position
        self.playing = playing
        self.buffering = False
        self.rate = 1.0
        self.calls: list[tuple[Any, ...]] = []

    def get_position(self) -> float:
        return self.position

    def get_is_playing(self) -> bool:
        return self.playing

    def is_buffering(self) -> bool:
        return self.buffering

    def seek(self, position_sec: float) -> None:
        self.calls.append(("seek", position_sec))
        self.position = position_sec

    def play(self) -> None:
        self.calls.append(("play",))
        self.playing = True

    def pause(self) -> None:
        self.calls.append(("pause",))
        self.playing = False

    def set_playback_rate(self, rate: float) -> None:
        self.calls.append(("rate", rate))
        self.rate = rate


@pytest.fixture(autouse=True)
def _reset_global_config():
    """Keep the config singleton from leaking between tests."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def player() -> FakePlayer:
    return FakePlayer()


@pytest.fixture
def track() -> TrackRef:
    """A 180 second direct media track."""
    return TrackRef(id="track-1", title="Song", url="https://cdn.example.com/a.mp3", duration_sec=180)


@pytest.fixture
def make_beacon():
    """Factory for SyncBeacon instances with sensible defaults."""

    def _make(**overrides: Any) -> SyncBeacon:
        fields: dict[str, Any] = {
            "room_id": "ROOM01",
            "sequence": 1,
            "position_sec": 10.0,
            "is_playing": True,
            "server_send_time": T0,
            "track_id": "track-1",
            "duration_sec": 180.0,
            "reason": BeaconReason.STATE_CHANGE,
        }
        fields.update(overrides)
        return SyncBeacon(**fields)

    return _make


@pytest.fixture
def mock_sio():
    """Create a mock Socket.IO server."""
    sio = MagicMock()
    sio.emit = AsyncMock()
    sio.enter_room = AsyncMock()
    sio.leave_room = AsyncMock()
    return sio


@pytest.fixture
def fast_config() -> SyncServiceConfig:
    """Configuration with short intervals for loop tests."""
    return SyncServiceConfig(
        server=ServerConfig(),
        playback=PlaybackConfig(beacon_interval_sec=0.01, max_report_transit_ms=2000.0),
        clock=ClockSyncConfig(
            samples_per_round=3,
            probe_spacing_sec=0.0,
            probe_timeout_sec=0.5,
            recalibration_interval_sec=60.0,
        ),
        drift=DriftConfig(
            soft_threshold_sec=0.25,
            hard_threshold_sec=2.0,
            rate_nudge=0.03,
            reconcile_interval_sec=0.01,
            host_report_interval_sec=0.01,
        ),
        observability=ObservabilityConfig(log_level="DEBUG", log_json=False),
    )


@pytest.fixture
def clock_factory():
    """Build additional ManualClock instances (e.g. a skewed client clock)."""
    return ManualClock


@pytest.fixture
def player_factory():
    return FakePlayer
