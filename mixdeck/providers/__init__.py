"""Builtin playback backends."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from mixdeck.models.enums import TrackSource

from .local import LocalAdapter
from .spotify import SpotifyAdapter
from .youtube import YouTubeAdapter

if TYPE_CHECKING:
    from mixdeck.hub import MixDeck
    from mixdeck.models.backend import BackendAdapter
    from mixdeck.models.config import BackendConfig

BackendFactory = Callable[["MixDeck", "BackendConfig"], "BackendAdapter"]

BUILTIN_BACKENDS: dict[TrackSource, BackendFactory] = {
    TrackSource.LOCAL: LocalAdapter,
    TrackSource.SPOTIFY: SpotifyAdapter,
    TrackSource.YOUTUBE: YouTubeAdapter,
}

__all__ = ["BUILTIN_BACKENDS", "BackendFactory", "LocalAdapter", "SpotifyAdapter", "YouTubeAdapter"]
