"""
Host-side position reporting.

The host controls playback through its own player, whose native controls
can pause or seek outside the application's explicit commands. HostReporter
periodically reads the player and pushes an authoritative overwrite
(position, is_playing, local send time, clock offset) to the server.

A player that is buffering or not yet started is reported with the last
intended playing state, so a transient stall is never echoed to every
listener as a pause.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from sync_service.client.player import MediaPlayer
from sync_service.errors import SyncError
from sync_service.models.messages import HostReportRequest
from sync_service.sync.clock import ClockEstimate
from sync_service.timing import TimeSource, now_ms

logger = logging.getLogger(__name__)

ReportSender = Callable[[HostReportRequest], Awaitable[Any]]


class HostReporter:
    """Pushes the host player's state to the PlaybackAuthority.

    Attributes:
        interval_sec: Delay between reports
    """

    def __init__(
        self,
        player: MediaPlayer,
        send_report: ReportSender,
        estimate_provider: Callable[[], ClockEstimate],
        interval_sec: float = 2.0,
        time_source: TimeSource = now_ms,
    ) -> None:
        self.interval_sec = interval_sec

        self._player = player
        self._send = send_report
        self._estimate = estimate_provider
        self._time = time_source

        self._track_loaded = False
        self._intended_playing = False
        self._task: asyncio.Task | None = None

    @property
    def track_loaded(self) -> bool:
        return self._track_loaded

    @property
    def intended_playing(self) -> bool:
        return self._intended_playing

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def set_track_loaded(self, loaded: bool) -> None:
        self._track_loaded = loaded

    def set_intent(self, is_playing: bool) -> None:
        """Record the playing state the room is supposed to be in."""
        self._intended_playing = is_playing

    def build_report(self) -> HostReportRequest:
        """Read the player and build the overwrite message."""
        if self._player.is_buffering():
            is_playing = self._intended_playing
        else:
            is_playing = self._player.get_is_playing()
            self._intended_playing = is_playing

        estimate = self._estimate()
        return HostReportRequest(
            position_sec=max(0.0, self._player.get_position()),
            is_playing=is_playing,
            local_send_time=self._time(),
            clock_offset_ms=estimate.offset_ms if estimate.is_calibrated else None,
        )

    async def report_once(self) -> HostReportRequest | None:
        """Send one report if a track is loaded.

        Returns:
            The report sent, or None when no track is loaded.

        Raises:
            SyncError: If the server rejects the report.
        """
        if not self._track_loaded:
            return None
        report = self.build_report()
        await self._send(report)
        return report

    def start(self) -> None:
        """Start periodic reporting."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_sec)
            try:
                await self.report_once()
            except SyncError as e:
                logger.warning(f"Host report rejected: code={e.code.value}, message={e.message}")
            except Exception as e:
                logger.exception(f"Unexpected error sending host report: {e}")
