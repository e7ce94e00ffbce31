"""Adapter for playback of YouTube videos (audio only)."""

from __future__ import annotations

from typing import TYPE_CHECKING

from mixdeck.constants import CONF_YTDL_FORMAT, DEFAULT_YTDL_FORMAT
from mixdeck.models.enums import TrackSource
from mixdeck.models.errors import TrackUnavailable
from mixdeck.providers.mpv import MpvAdapter

if TYPE_CHECKING:
    from mixdeck.models.track import Track

WATCH_URL = "https://www.youtube.com/watch?v={video_id}"


class YouTubeAdapter(MpvAdapter):
    """Stream YouTube audio through mpv, which resolves urls with yt-dlp."""

    source = TrackSource.YOUTUBE
    # resolving the stream url with yt-dlp can take a while
    load_timeout = 60.0

    def get_extra_args(self) -> list[str]:
        """Enable the ytdl hook of mpv."""
        ytdl_format = self.config.get_value(CONF_YTDL_FORMAT, DEFAULT_YTDL_FORMAT)
        return ["--ytdl=yes", f"--ytdl-format={ytdl_format}"]

    async def resolve_locator(self, track: Track) -> str:
        """Return the watch url for the track."""
        locator = track.locator.strip()
        if not locator:
            raise TrackUnavailable(f"Track {track.id} has no YouTube locator")
        if locator.startswith(("http://", "https://", "ytdl://")):
            return locator
        return WATCH_URL.format(video_id=locator)
