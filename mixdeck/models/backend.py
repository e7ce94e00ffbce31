"""
Base class/model for a playback backend adapter.

Every playback source (local files, Spotify, YouTube) is driven through an
adapter implementing this model. The adapter translates the generic transport
commands into calls on its own engine and normalizes whatever that engine
reports (push events, polled state) into one stream of PlaybackEvents.

An adapter is single-use: once stopped it can not be started again, the
session creates a fresh instance when it needs the source again.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator
from typing import TYPE_CHECKING, ClassVar

import shortuuid

from mixdeck.constants import MIXDECK_LOGGER_NAME, VERBOSE_LOG_LEVEL

from .enums import EventType, TrackSource
from .event import PlaybackEvent

if TYPE_CHECKING:
    from mixdeck.hub import MixDeck

    from .config import BackendConfig
    from .track import Track


class BackendAdapter(ABC):
    """Base representation of a playback backend adapter."""

    source: ClassVar[TrackSource]

    def __init__(self, mixdeck: MixDeck, config: BackendConfig) -> None:
        """Initialize the adapter with its (pre-resolved) configuration."""
        self.mixdeck = mixdeck
        self.config = config
        self.instance_id = f"{self.source}_{shortuuid.random(length=8)}"
        self.logger = logging.getLogger(f"{MIXDECK_LOGGER_NAME}.backends.{self.source}")
        self._events: asyncio.Queue[PlaybackEvent | None] = asyncio.Queue()
        self._stream_claimed = False
        self._emitted = 0
        self._consumed = 0
        self._stopped = False
        self._setup_done = False
        self._setup_lock = asyncio.Lock()
        self._position = 0.0
        self._position_last_updated = time.monotonic()
        self._playing = False

    @property
    def stopped(self) -> bool:
        """Return if this adapter has been stopped (and can not be used anymore)."""
        return self._stopped

    @property
    def pending_events(self) -> int:
        """Return the number of events not yet consumed from the stream."""
        return self._events.qsize()

    @property
    def events_emitted(self) -> int:
        """Return the number of events emitted so far."""
        return self._emitted

    @property
    def events_consumed(self) -> int:
        """Return the number of events consumed from the stream so far."""
        return self._consumed

    async def ensure_ready(self) -> None:
        """Run setup once, retrying on the next call if it did not complete."""
        async with self._setup_lock:
            if self._setup_done:
                return
            if self._stopped:
                raise RuntimeError(f"Adapter {self.instance_id} is stopped")
            await self.setup()
            self._setup_done = True

    async def setup(self) -> None:
        """Handle async initialization of the adapter (spawn engine, open session)."""

    @abstractmethod
    async def load(self, track: Track) -> None:
        """
        Load the given track, ready to start playback.

        This is the only command with backend dependent latency (remote lookups,
        resolving stream urls) and may be cancelled when superseded.

        :param track: The track to load.
        """

    @abstractmethod
    async def play(self) -> None:
        """Start playback of the loaded track."""

    @abstractmethod
    async def pause(self) -> None:
        """Pause playback."""

    @abstractmethod
    async def resume(self) -> None:
        """Resume paused playback."""

    @abstractmethod
    async def seek(self, position: float) -> None:
        """
        Seek to a position in the current track.

        :param position: The (absolute) position to seek to, in seconds.
        """

    @abstractmethod
    async def set_volume(self, volume: int) -> None:
        """
        Set the output volume.

        :param volume: Volume level (0..100).
        """

    async def stop(self) -> None:
        """Stop playback, tear down the backend and end the event stream."""
        if self._stopped:
            return
        self._stopped = True
        self._playing = False
        try:
            await self.on_stop()
        finally:
            self._events.put_nowait(None)

    async def on_stop(self) -> None:
        """Handle teardown of the engine/session, called once on stop."""

    def position(self) -> float:
        """Return the (corrected) position of the current track in seconds."""
        if not self._playing:
            return self._position
        return self._position + (time.monotonic() - self._position_last_updated)

    def event_stream(self) -> AsyncGenerator[PlaybackEvent, None]:
        """Return the stream of events of this adapter, can be consumed only once."""
        if self._stream_claimed:
            raise RuntimeError(f"Event stream of {self.instance_id} is already consumed")
        if self._stopped:
            raise RuntimeError(f"Adapter {self.instance_id} is stopped")
        self._stream_claimed = True
        return self._iter_events()

    async def _iter_events(self) -> AsyncGenerator[PlaybackEvent, None]:
        while (event := await self._events.get()) is not None:
            self._consumed += 1
            yield event

    def emit(self, event: PlaybackEvent) -> None:
        """Put an event on the event stream of this adapter."""
        if self._stopped:
            return
        if event.event == EventType.POSITION_UPDATED:
            self.logger.log(VERBOSE_LOG_LEVEL, "[%s] position %s", self.instance_id, event.data)
        else:
            self.logger.debug("[%s] %s %s", self.instance_id, event.event, event.data or "")
        self._emitted += 1
        self._events.put_nowait(event)

    def update_position(self, position: float, playing: bool | None = None) -> None:
        """Update the cached position (and optionally the playing flag)."""
        self._position = position
        self._position_last_updated = time.monotonic()
        if playing is not None:
            self._playing = playing

    def __repr__(self) -> str:
        """Return a string representation."""
        return f"<{self.__class__.__name__} {self.instance_id}>"
