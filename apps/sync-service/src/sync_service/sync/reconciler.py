"""
Listener-side drift detection and correction.

The DriftReconciler keeps a local media player within a bounded error of
the authoritative position:

1. expected = beacon position, advanced by the network delay while playing
   (elapsed server time since the beacon when calibrated, rtt/2 plus time
   since receipt otherwise), clamped to [0, duration)
2. drift = local position - expected
3. three tiers:
   |drift| <= soft          -> no correction, playback rate back to 1.0
   soft < |drift| <= hard   -> nudge the rate by +/- rate_nudge toward expected
   |drift| > hard           -> seek to expected, rate back to 1.0
4. play/pause intent follows the beacon, except while the player buffers

Behaviour is re-derived from the latest accepted beacon on every pass, so
applying a beacon twice, or a stale one, has no further effect. The host
never runs a reconciler against its own beacons.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from sync_service.client.player import MediaPlayer
from sync_service.errors import StaleBeaconError
from sync_service.models.messages import SyncBeacon
from sync_service.observability.metrics import record_drift_correction, record_stale_beacon
from sync_service.sync.clock import ClockEstimate
from sync_service.timing import TimeSource, now_ms

logger = logging.getLogger(__name__)

NORMAL_RATE = 1.0

# Never extrapolate onto the very last frame of a track
END_MARGIN_SEC = 0.05

EstimateProvider = Callable[[], ClockEstimate]


class CorrectionTier(str, Enum):
    NONE = "none"
    SOFT = "soft"
    HARD = "hard"


@dataclass(frozen=True)
class DriftThresholds:
    """Tunable correction policy.

    Attributes:
        soft_sec: Drift tolerated without any correction
        hard_sec: Drift above which the player is seeked
        rate_nudge: Relative rate change used for soft correction
    """

    soft_sec: float = 0.25
    hard_sec: float = 2.0
    rate_nudge: float = 0.03

    def __post_init__(self) -> None:
        if not 0 < self.soft_sec < self.hard_sec:
            raise ValueError(
                f"Thresholds must satisfy 0 < soft_sec < hard_sec, "
                f"got soft_sec={self.soft_sec}, hard_sec={self.hard_sec}"
            )
        if not 0 < self.rate_nudge < 0.5:
            raise ValueError(f"rate_nudge must be in (0, 0.5), got {self.rate_nudge}")


def classify_drift(drift_sec: float, thresholds: DriftThresholds) -> CorrectionTier:
    """Select the correction tier for a drift value.

    Boundaries belong to the lower tier: exactly ``soft_sec`` is NONE and
    exactly ``hard_sec`` is SOFT.
    """
    magnitude = abs(drift_sec)
    if magnitude <= thresholds.soft_sec:
        return CorrectionTier.NONE
    if magnitude <= thresholds.hard_sec:
        return CorrectionTier.SOFT
    return CorrectionTier.HARD


def ensure_newer(current: SyncBeacon | None, beacon: SyncBeacon) -> None:
    """Raise StaleBeaconError unless ``beacon`` supersedes ``current``."""
    if current is not None and not beacon.is_newer_than(current):
        raise StaleBeaconError(
            f"sequence={beacon.sequence} is not newer than current_sequence={current.sequence}"
        )


@dataclass(frozen=True)
class CorrectionDecision:
    """What one reconcile pass observed and did.

    ``seek_to``, ``playback_rate`` and ``transport`` are only set for actions
    actually issued to the player during the pass.
    """

    tier: CorrectionTier = CorrectionTier.NONE
    drift_sec: float | None = None
    expected_position_sec: float | None = None
    seek_to: float | None = None
    playback_rate: float | None = None
    transport: str | None = None  # "play" or "pause"
    skipped: str | None = None

    @property
    def is_noop(self) -> bool:
        return self.seek_to is None and self.playback_rate is None and self.transport is None


class DriftReconciler:
    """Corrects a listener's player against the latest accepted beacon.

    Attributes:
        thresholds: Correction policy
        interval_sec: Delay between passes of the background loop
    """

    def __init__(
        self,
        player: MediaPlayer,
        estimate_provider: EstimateProvider,
        thresholds: DriftThresholds | None = None,
        interval_sec: float = 0.5,
        time_source: TimeSource = now_ms,
    ) -> None:
        self.thresholds = thresholds or DriftThresholds()
        self.interval_sec = interval_sec

        self._player = player
        self._estimate = estimate_provider
        self._time = time_source

        self._beacon: SyncBeacon | None = None
        self._received_at: float | None = None  # local ms
        self._applied_rate = NORMAL_RATE
        self._task: asyncio.Task | None = None

    @property
    def latest_beacon(self) -> SyncBeacon | None:
        return self._beacon

    @property
    def applied_rate(self) -> float:
        return self._applied_rate

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def accept_beacon(self, beacon: SyncBeacon) -> bool:
        """Adopt a beacon unless it is stale or a duplicate.

        Sequence numbers are room-wide, so the ordering holds across track
        changes. Only ``clear()`` resets the guard.

        Returns:
            True if the beacon is now the reference, False if dropped.
        """
        try:
            ensure_newer(self._beacon, beacon)
        except StaleBeaconError as e:
            record_stale_beacon()
            logger.debug(f"Dropping stale beacon: {e.message}")
            return False

        self._beacon = beacon
        self._received_at = self._time()
        return True

    def clear(self) -> None:
        """Forget the reference beacon (track cleared or room left)."""
        self._beacon = None
        self._received_at = None

    def expected_position(self, local_now: float | None = None) -> float | None:
        """Latency-adjusted authoritative position at a local time.

        Returns:
            Position in seconds, or None without a reference beacon.
        """
        beacon = self._beacon
        if beacon is None or self._received_at is None:
            return None
        if local_now is None:
            local_now = self._time()

        position = beacon.position_sec
        if beacon.is_playing:
            estimate = self._estimate()
            if estimate.is_calibrated:
                elapsed_ms = estimate.to_server_time(local_now) - beacon.server_send_time
            else:
                elapsed_ms = estimate.one_way_delay_ms + (local_now - self._received_at)
            position += max(0.0, elapsed_ms) / 1000.0

        return self._clamp(position, beacon.duration_sec)

    def reconcile(self) -> CorrectionDecision:
        """Run one correction pass against the local player."""
        beacon = self._beacon
        if beacon is None or beacon.track_id is None:
            return CorrectionDecision(skipped="no_track")
        if self._player.is_buffering():
            return CorrectionDecision(skipped="buffering")

        expected = self.expected_position()
        local_position = self._player.get_position()
        drift = local_position - expected
        tier = classify_drift(drift, self.thresholds)
        local_playing = self._player.get_is_playing()

        transport = None
        if not beacon.is_playing and local_playing:
            self._player.pause()
            transport = "pause"

        seek_to = None
        desired_rate = NORMAL_RATE
        if tier is CorrectionTier.HARD or (tier is CorrectionTier.SOFT and not beacon.is_playing):
            self._player.seek(expected)
            seek_to = expected
        elif tier is CorrectionTier.SOFT:
            # Ahead of the authority: slow down. Behind: speed up.
            nudge = self.thresholds.rate_nudge
            desired_rate = NORMAL_RATE - nudge if drift > 0 else NORMAL_RATE + nudge

        rate = None
        if desired_rate != self._applied_rate:
            self._player.set_playback_rate(desired_rate)
            self._applied_rate = desired_rate
            rate = desired_rate

        if beacon.is_playing and not local_playing:
            self._player.play()
            transport = "play"

        decision = CorrectionDecision(
            tier=tier,
            drift_sec=drift,
            expected_position_sec=expected,
            seek_to=seek_to,
            playback_rate=rate,
            transport=transport,
        )
        if seek_to is not None or (rate is not None and rate != NORMAL_RATE):
            record_drift_correction(tier.value)
            logger.debug(
                f"Drift correction: tier={tier.value}, drift={drift:+.3f}s, "
                f"expected={expected:.3f}s, seek_to={seek_to}, rate={rate}"
            )
        return decision

    def on_beacon(self, beacon: SyncBeacon) -> CorrectionDecision | None:
        """Accept a beacon and reconcile immediately.

        Returns:
            The decision, or None if the beacon was dropped.
        """
        if not self.accept_beacon(beacon):
            return None
        return self.reconcile()

    def start(self) -> None:
        """Start the periodic reconcile loop."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Cancel the loop and restore the normal playback rate."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if self._applied_rate != NORMAL_RATE:
            self._player.set_playback_rate(NORMAL_RATE)
            self._applied_rate = NORMAL_RATE

    async def _run(self) -> None:
        while True:
            try:
                self.reconcile()
            except Exception as e:
                logger.exception(f"Unexpected error during drift reconciliation: {e}")
            await asyncio.sleep(self.interval_sec)

    @staticmethod
    def _clamp(position_sec: float, duration_sec: float) -> float:
        position = max(0.0, position_sec)
        if duration_sec > 0:
            position = min(position, max(0.0, duration_sec - END_MARGIN_SEC))
        return position
