"""Playback through an mpv process, shared by the local and YouTube backends."""

from .adapter import MpvAdapter
from .ipc import MpvCommandError, MpvIpcClient

__all__ = ["MpvAdapter", "MpvCommandError", "MpvIpcClient"]
