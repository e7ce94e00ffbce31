"""Model for a playable track."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, replace
from urllib.parse import parse_qs, urlparse

from mashumaro import DataClassDictMixin

from .enums import TrackSource

SPOTIFY_URI_REGEX = re.compile(r"^spotify:track:(?P<id>[A-Za-z0-9]+)$")
SPOTIFY_URL_REGEX = re.compile(
    r"^https?://open\.spotify\.com/(?:intl-\w+/)?track/(?P<id>[A-Za-z0-9]+)"
)
YOUTUBE_HOSTS = ("youtube.com", "www.youtube.com", "m.youtube.com", "music.youtube.com")


@dataclass(frozen=True, kw_only=True)
class Track(DataClassDictMixin):
    """Immutable reference to something a backend can play."""

    id: str
    source: TrackSource
    title: str
    locator: str
    duration: float | None = None
    artist: str | None = None
    image_url: str | None = None

    @property
    def uri(self) -> str:
        """Return a unique uri for this track."""
        return f"{self.source}://track/{self.id}"

    def with_duration(self, duration: float | None) -> Track:
        """Return a copy of this track with a (resolved) duration."""
        return replace(self, duration=duration)

    def __str__(self) -> str:
        """Return a human readable representation."""
        if self.artist:
            return f"{self.artist} - {self.title}"
        return self.title


def track_from_uri(value: str) -> Track:
    """Create a Track from a spotify uri, a youtube url or a local file path."""
    value = value.strip()
    if match := (SPOTIFY_URI_REGEX.match(value) or SPOTIFY_URL_REGEX.match(value)):
        track_id = match.group("id")
        return Track(
            id=track_id,
            source=TrackSource.SPOTIFY,
            title=f"spotify:track:{track_id}",
            locator=f"spotify:track:{track_id}",
        )
    if video_id := _parse_youtube_id(value):
        return Track(
            id=video_id,
            source=TrackSource.YOUTUBE,
            title=video_id,
            locator=f"https://www.youtube.com/watch?v={video_id}",
        )
    path = os.path.expanduser(value.removeprefix("file://"))
    return Track(
        id=os.path.abspath(path),
        source=TrackSource.LOCAL,
        title=os.path.splitext(os.path.basename(path))[0],
        locator=path,
    )


def _parse_youtube_id(value: str) -> str | None:
    """Return the video id of a youtube url, if it is one."""
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https"):
        return None
    if parsed.netloc == "youtu.be":
        return parsed.path.lstrip("/") or None
    if parsed.netloc in YOUTUBE_HOSTS and parsed.path == "/watch":
        if video_ids := parse_qs(parsed.query).get("v"):
            return video_ids[0]
    return None
