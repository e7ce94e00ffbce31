"""All enums used by the MixDeck models."""

from __future__ import annotations

from enum import StrEnum


class TrackSource(StrEnum):
    """Playback source a track belongs to."""

    LOCAL = "local"
    SPOTIFY = "spotify"
    YOUTUBE = "youtube"


class PlaybackState(StrEnum):
    """Transport state of the playback session."""

    STOPPED = "stopped"
    LOADING = "loading"
    PLAYING = "playing"
    PAUSED = "paused"
    ERROR = "error"


class RepeatMode(StrEnum):
    """Repeat policy of the queue."""

    OFF = "off"
    ONE = "one"
    ALL = "all"


class Direction(StrEnum):
    """Direction to advance the queue in."""

    NEXT = "next"
    PREVIOUS = "previous"


class ErrorKind(StrEnum):
    """Classification of a backend failure."""

    TRANSIENT = "transient"
    AUTH = "auth"
    TRACK_UNAVAILABLE = "track_unavailable"
    FATAL = "fatal"

    @property
    def skips_track(self) -> bool:
        """Return if the session should move on to the next track for this kind."""
        return self != ErrorKind.FATAL


class EventType(StrEnum):
    """Types of playback events."""

    STATE_CHANGED = "state_changed"
    TRACK_CHANGED = "track_changed"
    POSITION_UPDATED = "position_updated"
    VOLUME_CHANGED = "volume_changed"
    BACKEND_ERROR = "backend_error"
    QUEUE_UPDATED = "queue_updated"
    # only emitted by adapters, consumed by the session
    TRACK_ENDED = "track_ended"
