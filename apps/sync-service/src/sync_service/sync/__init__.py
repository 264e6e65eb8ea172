"""Sync engine: clock offset estimation, playback authority, drift correction."""

from sync_service.sync.authority import PlaybackAuthority
from sync_service.sync.clock import ClockEstimate, ClockSample, ClockSynchronizer
from sync_service.sync.context import RoomSyncContext
from sync_service.sync.host_reporter import HostReporter
from sync_service.sync.reconciler import (
    CorrectionDecision,
    CorrectionTier,
    DriftReconciler,
    DriftThresholds,
    classify_drift,
)

__all__ = [
    "ClockEstimate",
    "ClockSample",
    "ClockSynchronizer",
    "CorrectionDecision",
    "CorrectionTier",
    "DriftReconciler",
    "DriftThresholds",
    "HostReporter",
    "PlaybackAuthority",
    "RoomSyncContext",
    "classify_drift",
]
