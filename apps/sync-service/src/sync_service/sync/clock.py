"""
NTP-style clock offset estimation for sync clients.

Each client estimates, independently, the offset between its local clock and
the server clock:

- One probe records local t0, the server stamps t1 (receive) and t2 (send),
  the client records local t3 on reply.
- offset = ((t1 - t0) + (t2 - t3)) / 2, rtt = (t3 - t0) - (t2 - t1)
- A calibration round spaces 3-5 probes apart, drops rtt outliers with a
  Tukey fence (Q3 + 1.5 * IQR) and takes the median offset of the rest.
- A failed round keeps the previous estimate; an uncalibrated client uses
  offset 0 and is reported as degraded.

``offset_ms`` is the value to ADD to local time to obtain server time.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import statistics
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from pydantic import ValidationError
from socketio.exceptions import SocketIOError

from sync_service.errors import CalibrationFailedError, SyncError
from sync_service.observability.metrics import record_calibration
from sync_service.timing import TimeSource, now_ms

logger = logging.getLogger(__name__)

# Probe callable: sends t0, returns the server's (t1, t2)
ProbeFn = Callable[[float], Awaitable[tuple[float, float]]]

OUTLIER_IQR_FACTOR = 1.5
MIN_SAMPLES_FOR_OUTLIER_REJECTION = 3


@dataclass(frozen=True)
class ClockSample:
    """Result of a single probe. Ephemeral, discarded after aggregation."""

    offset_ms: float
    round_trip_ms: float
    taken_at: float

    @classmethod
    def from_timestamps(cls, t0: float, t1: float, t2: float, t3: float) -> ClockSample:
        """Build a sample from the four probe timestamps.

        Args:
            t0: Local send time
            t1: Server receive time
            t2: Server send time
            t3: Local receive time
        """
        return cls(
            offset_ms=((t1 - t0) + (t2 - t3)) / 2.0,
            round_trip_ms=(t3 - t0) - (t2 - t1),
            taken_at=t3,
        )


@dataclass(frozen=True)
class ClockEstimate:
    """Client's current estimate of the server clock.

    Owned by exactly one client; never transmitted or merged with another
    client's estimate.
    """

    offset_ms: float = 0.0
    round_trip_ms: float = 0.0
    calibrated_at: float | None = None
    is_calibrated: bool = False

    def to_server_time(self, local_ms: float) -> float:
        return local_ms + self.offset_ms

    def to_local_time(self, server_ms: float) -> float:
        return server_ms - self.offset_ms

    @property
    def one_way_delay_ms(self) -> float:
        return self.round_trip_ms / 2.0


def reject_outliers(samples: Sequence[ClockSample]) -> list[ClockSample]:
    """Drop samples whose rtt lies above the Tukey fence of the batch.

    Batches smaller than three samples are returned unchanged.
    """
    if len(samples) < MIN_SAMPLES_FOR_OUTLIER_REJECTION:
        return list(samples)

    rtts = [s.round_trip_ms for s in samples]
    q1, _, q3 = statistics.quantiles(rtts, n=4, method="inclusive")
    fence = q3 + OUTLIER_IQR_FACTOR * (q3 - q1)
    return [s for s in samples if s.round_trip_ms <= fence]


def aggregate_samples(samples: Sequence[ClockSample], calibrated_at: float) -> ClockEstimate:
    """Aggregate one round of samples into a ClockEstimate.

    Args:
        samples: Successful samples of the round
        calibrated_at: Local timestamp of the aggregation

    Returns:
        Calibrated estimate using the median offset of the kept samples

    Raises:
        CalibrationFailedError: If there are no samples
    """
    if not samples:
        raise CalibrationFailedError()

    kept = reject_outliers(samples)
    return ClockEstimate(
        offset_ms=statistics.median(s.offset_ms for s in kept),
        round_trip_ms=statistics.median(s.round_trip_ms for s in kept),
        calibrated_at=calibrated_at,
        is_calibrated=True,
    )


class ClockSynchronizer:
    """Runs calibration rounds against the server and keeps the estimate.

    Re-calibrates on an interval once started. Never blocks playback: until the
    first successful round the estimate is offset 0, uncalibrated.

    Attributes:
        samples_per_round: Probes issued per round
        probe_spacing_sec: Delay between probes of a round
        probe_timeout_sec: Probe abandoned after this long
        recalibration_interval_sec: Delay between rounds
    """

    def __init__(
        self,
        probe: ProbeFn,
        samples_per_round: int = 5,
        probe_spacing_sec: float = 0.15,
        probe_timeout_sec: float = 2.0,
        recalibration_interval_sec: float = 30.0,
        time_source: TimeSource = now_ms,
    ) -> None:
        if samples_per_round < 1:
            raise ValueError(f"samples_per_round must be >= 1, got {samples_per_round}")

        self.samples_per_round = samples_per_round
        self.probe_spacing_sec = probe_spacing_sec
        self.probe_timeout_sec = probe_timeout_sec
        self.recalibration_interval_sec = recalibration_interval_sec

        self._probe = probe
        self._time = time_source
        self._estimate = ClockEstimate()
        self._last_round_failed = False
        self._task: asyncio.Task | None = None

    @property
    def estimate(self) -> ClockEstimate:
        return self._estimate

    @property
    def is_calibrated(self) -> bool:
        return self._estimate.is_calibrated

    @property
    def is_degraded(self) -> bool:
        """True until calibrated, and after any failed round."""
        return not self._estimate.is_calibrated or self._last_round_failed

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def server_now(self) -> float:
        """Estimated current server time in milliseconds."""
        return self._estimate.to_server_time(self._time())

    def to_server_time(self, local_ms: float) -> float:
        return self._estimate.to_server_time(local_ms)

    def to_local_time(self, server_ms: float) -> float:
        return self._estimate.to_local_time(server_ms)

    async def take_sample(self) -> ClockSample | None:
        """Issue one probe.

        Returns:
            The sample, or None if the probe timed out or failed.
        """
        t0 = self._time()
        try:
            t1, t2 = await asyncio.wait_for(self._probe(t0), timeout=self.probe_timeout_sec)
        except (asyncio.TimeoutError, TimeoutError):
            logger.debug(f"Clock probe timed out after {self.probe_timeout_sec}s")
            return None
        except ConnectionError as e:
            logger.debug(f"Clock probe failed: {e}")
            return None
        except (SyncError, ValidationError, SocketIOError) as e:
            logger.warning(f"Clock probe rejected: {type(e).__name__}: {e}")
            return None

        t3 = self._time()
        sample = ClockSample.from_timestamps(t0, t1, t2, t3)
        if sample.round_trip_ms < 0:
            logger.debug(f"Discarding probe with negative rtt: {sample.round_trip_ms:.1f}ms")
            return None
        return sample

    async def calibrate(self) -> bool:
        """Run one calibration round.

        Returns:
            True if the estimate was updated, False if every probe failed
            (the previous estimate is retained).
        """
        samples: list[ClockSample] = []
        for i in range(self.samples_per_round):
            if i > 0 and self.probe_spacing_sec > 0:
                await asyncio.sleep(self.probe_spacing_sec)
            sample = await self.take_sample()
            if sample is not None:
                samples.append(sample)

        try:
            estimate = aggregate_samples(samples, calibrated_at=self._time())
        except CalibrationFailedError:
            self._last_round_failed = True
            record_calibration(success=False)
            logger.warning(
                f"Clock calibration failed: 0/{self.samples_per_round} probes answered, "
                f"keeping offset={self._estimate.offset_ms:.1f}ms "
                f"calibrated={self._estimate.is_calibrated}"
            )
            return False

        self._estimate = estimate
        self._last_round_failed = False
        record_calibration(success=True, round_trip_ms=estimate.round_trip_ms)
        logger.info(
            f"Clock calibrated: offset={estimate.offset_ms:.1f}ms, "
            f"rtt={estimate.round_trip_ms:.1f}ms, samples={len(samples)}/{self.samples_per_round}"
        )
        return True

    def start(self) -> None:
        """Start periodic re-calibration (first round runs immediately)."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Cancel periodic re-calibration."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _run(self) -> None:
        while True:
            try:
                await self.calibrate()
            except Exception as e:
                logger.exception(f"Unexpected error during clock calibration: {e}")
            await asyncio.sleep(self.recalibration_interval_sec)
