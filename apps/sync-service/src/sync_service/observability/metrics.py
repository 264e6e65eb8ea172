"""Prometheus metrics for the sync service.

Defines and exports metrics for monitoring:
- Control operations by op and outcome (counter)
- Beacons emitted by reason (counter)
- Active rooms (gauge)
- Clock calibration outcomes and round-trip times (counter, histogram)
- Drift corrections by tier and stale beacons dropped (counters)
"""

import logging

from prometheus_client import Counter, Gauge, Histogram

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Server: Playback Authority Metrics
# -----------------------------------------------------------------------------

sync_control_ops_total = Counter(
    "sync_control_ops_total",
    "Playback control operations by op and outcome",
    labelnames=["op", "outcome"],
)

sync_beacons_emitted_total = Counter(
    "sync_beacons_emitted_total",
    "Sync beacons emitted to room subscribers",
    labelnames=["reason"],
)

sync_rooms_active = Gauge(
    "sync_rooms_active",
    "Current number of rooms with a running sync context",
)

# -----------------------------------------------------------------------------
# Client: Clock Sync and Drift Metrics
# -----------------------------------------------------------------------------

sync_clock_calibrations_total = Counter(
    "sync_clock_calibrations_total",
    "Clock calibration rounds by outcome",
    labelnames=["outcome"],
)

sync_clock_rtt_seconds = Histogram(
    "sync_clock_rtt_seconds",
    "Round-trip time of clock probes in seconds",
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, float("inf")),
)

sync_drift_corrections_total = Counter(
    "sync_drift_corrections_total",
    "Drift corrections applied by tier",
    labelnames=["tier"],
)

sync_stale_beacons_total = Counter(
    "sync_stale_beacons_total",
    "Beacons dropped because a newer one was already applied",
)

# -----------------------------------------------------------------------------
# Metric Recording Functions
# -----------------------------------------------------------------------------


def record_control_op(op: str, outcome: str) -> None:
    """Record a control operation.

    Args:
        op: Control message type (set_track, play, pause, seek, host_report)
        outcome: "accepted" or an error code
    """
    try:
        sync_control_ops_total.labels(op=op, outcome=outcome).inc()
    except Exception as e:
        logger.error(f"Failed to record control op: {e}")


def record_beacon(reason: str) -> None:
    try:
        sync_beacons_emitted_total.labels(reason=reason).inc()
    except Exception as e:
        logger.error(f"Failed to record beacon: {e}")


def increment_active_rooms() -> None:
    """Increment active rooms count."""
    try:
        sync_rooms_active.inc()
    except Exception as e:
        logger.error(f"Failed to increment active rooms: {e}")


def decrement_active_rooms() -> None:
    """Decrement active rooms count."""
    try:
        sync_rooms_active.dec()
    except Exception as e:
        logger.error(f"Failed to decrement active rooms: {e}")


def record_calibration(success: bool, round_trip_ms: float | None = None) -> None:
    """Record the outcome of a calibration round.

    Args:
        success: Whether at least one probe succeeded
        round_trip_ms: Aggregated round-trip time when successful
    """
    try:
        sync_clock_calibrations_total.labels(outcome="success" if success else "failed").inc()
        if success and round_trip_ms is not None:
            sync_clock_rtt_seconds.observe(max(0.0, round_trip_ms) / 1000.0)
    except Exception as e:
        logger.error(f"Failed to record calibration: {e}")


def record_drift_correction(tier: str) -> None:
    try:
        sync_drift_corrections_total.labels(tier=tier).inc()
    except Exception as e:
        logger.error(f"Failed to record drift correction: {e}")


def record_stale_beacon() -> None:
    try:
        sync_stale_beacons_total.inc()
    except Exception as e:
        logger.error(f"Failed to record stale beacon: {e}")
