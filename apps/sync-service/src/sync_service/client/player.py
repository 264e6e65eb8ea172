"""Media player capability required by the sync engine.

The engine never depends on a concrete backend (HTML5 audio element,
embedded video player, ...); it only needs this small surface.
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class MediaPlayer(Protocol):
    """Local media player controlled by HostReporter and DriftReconciler.

    Positions are in seconds from the start of the track.
    """

    def get_position(self) -> float: ...

    def get_is_playing(self) -> bool: ...

    def is_buffering(self) -> bool:
        """True while the player is stalled, loading or not yet started."""
        ...

    def seek(self, position_sec: float) -> None: ...

    def play(self) -> None: ...

    def pause(self) -> None: ...

    def set_playback_rate(self, rate: float) -> None: ...
