"""Local files backend, played with mpv."""

from .adapter import LocalAdapter
from .folders import MusicFolder, get_music_folder, scan_music_folders

__all__ = ["LocalAdapter", "MusicFolder", "get_music_folder", "scan_music_folders"]
