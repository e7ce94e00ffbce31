"""Fake backend and helpers shared by the tests."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from mixdeck.models.backend import BackendAdapter
from mixdeck.models.enums import EventType, PlaybackState, TrackSource
from mixdeck.models.event import PlaybackEvent
from mixdeck.models.track import Track

if TYPE_CHECKING:
    from mixdeck.controllers.event_bus import EventSubscription
    from mixdeck.hub import MixDeck
    from mixdeck.models.config import BackendConfig
    from mixdeck.models.errors import BackendError


def make_track(
    track_id: str,
    source: TrackSource = TrackSource.LOCAL,
    duration: float | None = 200.0,
) -> Track:
    """Return a track for tests."""
    return Track(
        id=track_id,
        source=source,
        title=f"Track {track_id}",
        locator=f"/music/{track_id}.mp3",
        duration=duration,
    )


@dataclass
class FakeBackendControl:
    """Steers the behavior of all FakeAdapters of a test."""

    adapters: list[FakeAdapter] = field(default_factory=list)
    load_errors: dict[str, BackendError] = field(default_factory=dict)
    command_errors: dict[str, BackendError] = field(default_factory=dict)
    durations: dict[str, float] = field(default_factory=dict)
    # when set, load waits until the gate is opened
    load_gate: asyncio.Event | None = None
    confirm_play: bool = True
    stop_delay: float = 0

    def factory(self, source: TrackSource) -> Any:
        """Return an adapter factory for the given source."""

        def create(mixdeck: MixDeck, config: BackendConfig) -> FakeAdapter:
            adapter = FakeAdapter(mixdeck, config, self, source)
            self.adapters.append(adapter)
            return adapter

        return create

    def adapters_for(self, source: TrackSource) -> list[FakeAdapter]:
        """Return the adapters created for a source."""
        return [adapter for adapter in self.adapters if adapter.source == source]


class FakeAdapter(BackendAdapter):
    """In-memory adapter recording the calls it receives."""

    source = TrackSource.LOCAL

    def __init__(
        self,
        mixdeck: MixDeck,
        config: BackendConfig,
        control: FakeBackendControl,
        source: TrackSource,
    ) -> None:
        """Initialize the fake adapter."""
        self.source = source  # type: ignore[misc]
        super().__init__(mixdeck, config)
        self.control = control
        self.calls: list[tuple[Any, ...]] = []
        self.loaded: Track | None = None

    async def load(self, track: Track) -> None:
        """Record and (optionally) fail the load."""
        self.calls.append(("load", track.id))
        if self.control.load_gate is not None:
            await self.control.load_gate.wait()
        if error := self.control.load_errors.get(track.id):
            raise error
        self.loaded = track
        if (duration := self.control.durations.get(track.id)) is not None:
            self.emit(PlaybackEvent.track_changed(track.with_duration(duration)))

    async def play(self) -> None:
        """Record and confirm playback."""
        self.calls.append(("play",))
        self.update_position(0.0, playing=True)
        if self.control.confirm_play:
            self.emit(PlaybackEvent.state_changed(PlaybackState.PLAYING))

    async def pause(self) -> None:
        """Record the pause."""
        self._command("pause")
        self.update_position(self.position(), playing=False)

    async def resume(self) -> None:
        """Record the resume."""
        self._command("resume")
        self.update_position(self._position, playing=True)

    async def seek(self, position: float) -> None:
        """Record the seek."""
        self._command("seek", position)
        self.update_position(position)

    async def set_volume(self, volume: int) -> None:
        """Record the volume."""
        self._command("set_volume", volume)

    async def on_stop(self) -> None:
        """Record the stop."""
        self.calls.append(("stop",))
        if self.control.stop_delay:
            await asyncio.sleep(self.control.stop_delay)

    def _command(self, name: str, *args: Any) -> None:
        self.calls.append((name, *args))
        if error := self.control.command_errors.get(name):
            raise error


def drain(subscription: EventSubscription) -> list[PlaybackEvent]:
    """Return all events buffered in a subscription."""
    events = []
    while (event := subscription.get_nowait()) is not None:
        events.append(event)
    return events


def transport_events(events: list[PlaybackEvent]) -> list[tuple[EventType, Any]]:
    """Return the state and track changes, the track as its id."""
    result: list[tuple[EventType, Any]] = []
    for event in events:
        if event.event == EventType.STATE_CHANGED:
            result.append((event.event, event.data))
        elif event.event == EventType.TRACK_CHANGED:
            result.append((event.event, event.data.id if event.data else None))
    return result
