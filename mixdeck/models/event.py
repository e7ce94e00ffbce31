"""Model for the events emitted by the playback session and its backends."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from mashumaro import DataClassDictMixin

from .enums import ErrorKind, EventType, PlaybackState, TrackSource
from .track import Track


@dataclass
class BackendErrorInfo(DataClassDictMixin):
    """Details of a classified backend failure."""

    kind: ErrorKind
    message: str
    source: TrackSource | None = None


@dataclass
class PlaybackEvent(DataClassDictMixin):
    """A fact about something that happened in the playback session."""

    event: EventType
    data: Any = None
    message: str | None = None

    @classmethod
    def state_changed(cls, state: PlaybackState, message: str | None = None) -> PlaybackEvent:
        """Create a state changed event."""
        return cls(EventType.STATE_CHANGED, state, message)

    @classmethod
    def track_changed(cls, track: Track | None) -> PlaybackEvent:
        """Create a track changed event."""
        return cls(EventType.TRACK_CHANGED, track)

    @classmethod
    def position_updated(cls, position: float) -> PlaybackEvent:
        """Create a position updated event."""
        return cls(EventType.POSITION_UPDATED, position)

    @classmethod
    def volume_changed(cls, volume: int) -> PlaybackEvent:
        """Create a volume changed event."""
        return cls(EventType.VOLUME_CHANGED, volume)

    @classmethod
    def backend_error(
        cls, kind: ErrorKind, message: str, source: TrackSource | None = None
    ) -> PlaybackEvent:
        """Create a backend error event."""
        return cls(EventType.BACKEND_ERROR, BackendErrorInfo(kind, message, source), message)

    @classmethod
    def track_ended(cls) -> PlaybackEvent:
        """Create a track ended event."""
        return cls(EventType.TRACK_ENDED)
