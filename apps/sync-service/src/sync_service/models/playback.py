"""Playback state models.

- TrackKind / TrackRef: immutable description of the media being played
- PlaybackStatus: Empty / Paused / Playing
- PlaybackState: the authoritative position record owned by PlaybackAuthority

Position invariant:
    playing: position(t) = base_position_sec + (t - epoch_server_time) / 1000
    paused:  position(t) = base_position_sec, epoch_server_time is None
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Hosts whose media is rendered by an embedded third-party player
EMBEDDED_VIDEO_HOSTS = frozenset(
    {
        "youtube.com",
        "www.youtube.com",
        "m.youtube.com",
        "music.youtube.com",
        "youtu.be",
        "vimeo.com",
        "player.vimeo.com",
    }
)


class TrackKind(str, Enum):
    """Media backend required to play a track."""

    DIRECT_MEDIA = "direct_media"
    EMBEDDED_VIDEO = "embedded_video"

    @classmethod
    def infer(cls, url: str) -> TrackKind:
        """Infer the track kind from its URL host."""
        host = urlparse(url.strip()).netloc.lower()
        if host in EMBEDDED_VIDEO_HOSTS:
            return cls.EMBEDDED_VIDEO
        return cls.DIRECT_MEDIA


class TrackRef(BaseModel):
    """Immutable reference to the room's current track.

    Replaced wholesale on a track change, never mutated field by field.
    A duration of 0 means the duration is unknown.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(int(time.time() * 1000)))
    title: str = Field(default="Unknown Track")
    artist: str = Field(default="")
    url: str = Field(default="", description="Playable media URL")
    duration_sec: float = Field(default=0.0, ge=0.0)
    kind: TrackKind = Field(default=TrackKind.DIRECT_MEDIA)

    @model_validator(mode="before")
    @classmethod
    def _infer_kind(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("kind") is None:
            data = dict(data)
            data["kind"] = TrackKind.infer(str(data.get("url") or ""))
        return data

    @property
    def has_playable_url(self) -> bool:
        """Whether the track carries a non-empty URL."""
        return bool(self.url.strip())

    @property
    def has_known_duration(self) -> bool:
        return self.duration_sec > 0


class PlaybackStatus(str, Enum):
    """States of the authority state machine."""

    EMPTY = "empty"
    PAUSED = "paused"
    PLAYING = "playing"


@dataclass(frozen=True)
class PlaybackState:
    """Authoritative playback record for one room.

    Frozen: the authority replaces it on every transition, so any reference
    held elsewhere is a read-only snapshot.
    """

    track: TrackRef | None = None
    is_playing: bool = False
    base_position_sec: float = 0.0
    epoch_server_time: float | None = None

    def __post_init__(self) -> None:
        if self.is_playing and self.epoch_server_time is None:
            raise ValueError("Playing state requires epoch_server_time")
        if not self.is_playing and self.epoch_server_time is not None:
            raise ValueError("Paused state must not carry epoch_server_time")

    @property
    def status(self) -> PlaybackStatus:
        if self.track is None:
            return PlaybackStatus.EMPTY
        return PlaybackStatus.PLAYING if self.is_playing else PlaybackStatus.PAUSED

    def position_at(self, server_time_ms: float) -> float:
        """True position in seconds at the given server time.

        Args:
            server_time_ms: Server timestamp in milliseconds.

        Returns:
            Position in seconds per the position invariant.
        """
        if not self.is_playing or self.epoch_server_time is None:
            return self.base_position_sec
        return self.base_position_sec + (server_time_ms - self.epoch_server_time) / 1000.0
