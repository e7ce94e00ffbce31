"""Model for a snapshot of the playback session."""

from __future__ import annotations

from dataclasses import dataclass

from mashumaro import DataClassDictMixin

from .enums import PlaybackState, TrackSource
from .queue import QueueInfo
from .track import Track


@dataclass
class SessionInfo(DataClassDictMixin):
    """Snapshot of the playback session state."""

    session_id: str
    state: PlaybackState
    current_track: Track | None
    position: float
    volume: int
    active_source: TrackSource | None
    error_reason: str | None
    queue: QueueInfo
