"""YouTube backend, played with mpv and its yt-dlp hook."""

from .adapter import YouTubeAdapter

__all__ = ["YouTubeAdapter"]
