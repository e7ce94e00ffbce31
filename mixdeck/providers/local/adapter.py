"""Adapter for playback of local audio files."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

from aiofiles.os import wrap

from mixdeck.constants import CONF_MUSIC_DIR
from mixdeck.models.enums import TrackSource
from mixdeck.models.errors import TrackUnavailable
from mixdeck.providers.mpv import MpvAdapter

if TYPE_CHECKING:
    from mixdeck.models.track import Track

isfile = wrap(os.path.isfile)


class LocalAdapter(MpvAdapter):
    """Play files from the local filesystem."""

    source = TrackSource.LOCAL

    async def resolve_locator(self, track: Track) -> str:
        """Return the absolute path of the file, relative paths are taken from the music dir."""
        path = os.path.expanduser(track.locator.removeprefix("file://"))
        if not os.path.isabs(path) and (music_dir := self.config.get_value(CONF_MUSIC_DIR)):
            path = os.path.join(os.path.expanduser(music_dir), path)
        if not await isfile(path):
            raise TrackUnavailable(f"File not found: {path}")
        return os.path.abspath(path)
