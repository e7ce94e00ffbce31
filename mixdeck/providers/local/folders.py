"""
Music folders of the local backend.

Each configured folder, and each direct subfolder of it, is a MusicFolder:
a playlist of the audio files directly inside that folder, in name order.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Final

from aiofiles.os import wrap
from mashumaro import DataClassDictMixin

from mixdeck.constants import MIXDECK_LOGGER_NAME
from mixdeck.models.enums import TrackSource
from mixdeck.models.track import Track

LOGGER = logging.getLogger(f"{MIXDECK_LOGGER_NAME}.providers.local")

AUDIO_EXTENSIONS: Final = frozenset(
    {".aac", ".aiff", ".alac", ".ape", ".flac", ".m4a", ".mp3", ".ogg", ".opus", ".wav", ".wma"}
)

isdir = wrap(os.path.isdir)
isfile = wrap(os.path.isfile)
listdir = wrap(os.listdir)


@dataclass(kw_only=True)
class MusicFolder(DataClassDictMixin):
    """Folder with audio files."""

    id: str
    title: str
    tracks: list[Track] = field(default_factory=list)


def folder_path(path: str) -> str:
    """Return the absolute path of a folder given as path, file uri or relative to home."""
    return os.path.abspath(os.path.expanduser(path.removeprefix("file://")))


async def find_subfolders(folders: Iterable[str]) -> list[str]:
    """Return the given folders followed by their direct (non hidden) subfolders."""
    paths = [folder_path(folder) for folder in folders]
    result = list(paths)
    for path in paths:
        if not await isdir(path):
            continue
        for name in sorted(await listdir(path)):
            if name.startswith("."):
                continue
            subfolder = os.path.join(path, name)
            if await isdir(subfolder):
                result.append(subfolder)
    # a configured folder can also be the subfolder of another one
    return list(dict.fromkeys(result))


async def get_music_folder(path: str) -> MusicFolder:
    """Return the audio files directly inside a folder, raises OSError if it can't be read."""
    path = folder_path(path)
    tracks: list[Track] = []
    for name in sorted(await listdir(path)):
        title, ext = os.path.splitext(name)
        if name.startswith(".") or ext.lower() not in AUDIO_EXTENSIONS:
            continue
        file_path = os.path.join(path, name)
        if not await isfile(file_path):
            continue
        tracks.append(
            Track(id=file_path, source=TrackSource.LOCAL, title=title, locator=file_path)
        )
    return MusicFolder(id=path, title=os.path.basename(path) or path, tracks=tracks)


async def scan_music_folders(folders: Iterable[str]) -> list[MusicFolder]:
    """Scan folders and their direct subfolders, skipping the ones that can't be read."""
    result: list[MusicFolder] = []
    for path in await find_subfolders(folders):
        try:
            music_folder = await get_music_folder(path)
        except OSError as err:
            LOGGER.warning("Checking folder %s failed: %s", path, err)
            continue
        LOGGER.debug("Found %s track(s) in %s", len(music_folder.tracks), path)
        result.append(music_folder)
    return result
