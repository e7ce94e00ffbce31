"""
MediaControlService: exposes the playback session as a system media player.

The service translates media-control calls (Play, Pause, Seek, ...) into
session commands and keeps a presentation snapshot of the player, built from
the PlaybackEvents on the EventBus. Property changes are batched and handed to
the listeners (the MPRIS D-Bus server) as one notification per short window.
Position is never notified as a property change; a jump of the position
(seek, restart) is reported as Seeked instead.
"""

from __future__ import annotations

import hashlib
import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from mixdeck.constants import (
    MIXDECK_LOGGER_NAME,
    MPRIS_NOTIFY_DELAY,
    MPRIS_SEEK_TOLERANCE,
)
from mixdeck.models.enums import EventType, PlaybackState, RepeatMode
from mixdeck.models.errors import SetupFailedError

if TYPE_CHECKING:
    from mixdeck.hub import MixDeck
    from mixdeck.models.event import PlaybackEvent
    from mixdeck.models.queue import QueueInfo
    from mixdeck.models.track import Track

    from .mpris import MprisServer

PropertiesChangedCallback = Callable[[dict[str, Any]], None]
SeekedCallback = Callable[[int], None]

TRACKID_PREFIX = "/org/mpris/MediaPlayer2/TrackList/"
NO_TRACK = "/org/mpris/MediaPlayer2/TrackList/NoTrack"

STATUS_PLAYING = "Playing"
STATUS_PAUSED = "Paused"
STATUS_STOPPED = "Stopped"

PLAYBACK_STATUS = {
    PlaybackState.PLAYING: STATUS_PLAYING,
    # a loading track is about to play
    PlaybackState.LOADING: STATUS_PLAYING,
    PlaybackState.PAUSED: STATUS_PAUSED,
    PlaybackState.STOPPED: STATUS_STOPPED,
    PlaybackState.ERROR: STATUS_STOPPED,
}

LOOP_STATUS = {
    RepeatMode.OFF: "None",
    RepeatMode.ONE: "Track",
    RepeatMode.ALL: "Playlist",
}
REPEAT_MODES = {value: key for key, value in LOOP_STATUS.items()}

US_PER_SECOND = 1_000_000


def make_trackid(track: Track | None) -> str:
    """Return the D-Bus object path identifying a track."""
    if track is None:
        return NO_TRACK
    return TRACKID_PREFIX + hashlib.sha1(track.uri.encode()).hexdigest()  # noqa: S324


class MediaControlService:
    """Translate between the playback session and a system media-control protocol."""

    def __init__(self, mixdeck: MixDeck) -> None:
        """Initialize the service."""
        self.mixdeck = mixdeck
        self.logger = logging.getLogger(f"{MIXDECK_LOGGER_NAME}.media_control")
        self.server: MprisServer | None = None
        info = mixdeck.session.info
        self._status = PLAYBACK_STATUS[info.state]
        self._track = info.current_track
        self._playing = info.state == PlaybackState.PLAYING
        self._position = info.position
        self._position_updated = time.monotonic()
        self._volume = info.volume
        self._loop_status = LOOP_STATUS[info.queue.repeat_mode]
        self._shuffle = info.queue.shuffle_enabled
        self._error: str | None = None
        self._changed: set[str] = set()
        self._flush_scheduled = False
        self._listeners: list[tuple[PropertiesChangedCallback, SeekedCallback]] = []
        self._unsub: Callable[[], None] | None = None

    async def setup(self, export: bool = True) -> None:
        """Start following the session and (optionally) export it on the session bus."""
        self._unsub = self.mixdeck.event_bus.subscribe(
            self._on_event,
            (
                EventType.STATE_CHANGED,
                EventType.TRACK_CHANGED,
                EventType.POSITION_UPDATED,
                EventType.VOLUME_CHANGED,
                EventType.QUEUE_UPDATED,
                EventType.BACKEND_ERROR,
            ),
        )
        if not export:
            return
        # imported here so the translator itself has no D-Bus requirement
        from .mpris import MprisServer  # noqa: PLC0415

        server = MprisServer(self)
        try:
            await server.start()
        except SetupFailedError as err:
            self.logger.warning("Media control is not available: %s", err)
            return
        self.server = server

    async def close(self) -> None:
        """Stop following the session and remove the exported object."""
        if self._unsub is not None:
            self._unsub()
            self._unsub = None
        if self.server is not None:
            await self.server.stop()
            self.server = None

    def add_listener(
        self, on_properties_changed: PropertiesChangedCallback, on_seeked: SeekedCallback
    ) -> Callable[[], None]:
        """Add a listener for (batched) property changes and seeks."""
        listener = (on_properties_changed, on_seeked)
        self._listeners.append(listener)

        def remove_listener() -> None:
            self._listeners.remove(listener)

        return remove_listener

    # properties

    @property
    def playback_status(self) -> str:
        """Return the MPRIS PlaybackStatus."""
        return self._status

    @property
    def position(self) -> int:
        """Return the position in microseconds."""
        position = self._position
        if self._playing:
            position += time.monotonic() - self._position_updated
        if self._track is not None and self._track.duration:
            position = min(position, self._track.duration)
        return int(position * US_PER_SECOND)

    @property
    def volume(self) -> float:
        """Return the volume (0.0 - 1.0)."""
        return self._volume / 100

    @property
    def loop_status(self) -> str:
        """Return the MPRIS LoopStatus."""
        return self._loop_status

    @property
    def shuffle(self) -> bool:
        """Return if shuffle is enabled."""
        return self._shuffle

    @property
    def can_seek(self) -> bool:
        """Return if seeking is possible."""
        return self._track is not None

    @property
    def metadata(self) -> dict[str, Any]:
        """Return the MPRIS metadata of the current track."""
        track = self._track
        metadata: dict[str, Any] = {"mpris:trackid": make_trackid(track)}
        if track is None:
            if self._error:
                metadata["xesam:comment"] = [self._error]
            return metadata
        metadata["xesam:title"] = track.title
        metadata["xesam:url"] = track.uri
        if track.duration is not None:
            metadata["mpris:length"] = int(track.duration * US_PER_SECOND)
        if track.artist:
            metadata["xesam:artist"] = [track.artist]
        if track.image_url:
            metadata["mpris:artUrl"] = track.image_url
        if self._error:
            metadata["xesam:comment"] = [self._error]
        return metadata

    def get_property(self, name: str) -> Any:
        """Return a notifiable property by its MPRIS name."""
        match name:
            case "PlaybackStatus":
                return self.playback_status
            case "Metadata":
                return self.metadata
            case "Volume":
                return self.volume
            case "LoopStatus":
                return self.loop_status
            case "Shuffle":
                return self.shuffle
            case "CanSeek":
                return self.can_seek
        raise KeyError(name)

    # commands

    def play(self) -> None:
        """Start or resume playback."""
        self.mixdeck.session.resume()

    def pause(self) -> None:
        """Pause playback."""
        self.mixdeck.session.pause()

    def play_pause(self) -> None:
        """Toggle playback."""
        self.mixdeck.session.play_pause()

    def stop(self) -> None:
        """Stop playback."""
        self.mixdeck.session.stop()

    def next(self) -> None:
        """Skip to the next track."""
        self.mixdeck.session.next()

    def previous(self) -> None:
        """Go to the previous track."""
        self.mixdeck.session.previous()

    def seek(self, offset: int) -> None:
        """Seek relative to the current position, offset in microseconds."""
        if self._track is None:
            return
        self.mixdeck.session.seek_relative(offset / US_PER_SECOND)

    def set_position(self, track_id: str, position: int) -> None:
        """Seek to a position (microseconds), ignored when it does not apply to the track."""
        track = self._track
        if track is None or track_id != make_trackid(track):
            self.logger.debug("Ignoring SetPosition for %s: not the current track", track_id)
            return
        if position < 0 or (
            track.duration is not None and position > track.duration * US_PER_SECOND
        ):
            self.logger.debug("Ignoring SetPosition: %s is out of range", position)
            return
        self.mixdeck.session.seek(position / US_PER_SECOND)

    def set_volume(self, volume: float) -> None:
        """Set the volume (0.0 - 1.0)."""
        self.mixdeck.session.set_volume(max(0.0, min(1.0, volume)) * 100)

    def set_loop_status(self, loop_status: str) -> None:
        """Set the repeat mode from a MPRIS LoopStatus."""
        if (repeat_mode := REPEAT_MODES.get(loop_status)) is None:
            self.logger.warning("Ignoring invalid LoopStatus %s", loop_status)
            return
        self.mixdeck.session.set_repeat_mode(repeat_mode)

    def set_shuffle(self, shuffle: bool) -> None:
        """Enable or disable shuffle."""
        self.mixdeck.session.set_shuffle(shuffle)

    def quit(self) -> None:
        """Ask the application to quit."""
        self.mixdeck.request_stop()

    # events

    def _on_event(self, event: PlaybackEvent) -> None:
        match event.event:
            case EventType.STATE_CHANGED:
                self._on_state(event.data)
            case EventType.TRACK_CHANGED:
                self._on_track(event.data)
            case EventType.POSITION_UPDATED:
                self._on_position(float(event.data))
            case EventType.VOLUME_CHANGED:
                self._set("_volume", int(event.data), "Volume")
            case EventType.QUEUE_UPDATED:
                self._on_queue(event.data)
            case EventType.BACKEND_ERROR:
                self._error = event.message or "Playback error"
                self._mark_changed("Metadata")

    def _on_state(self, state: PlaybackState) -> None:
        # freeze or restart the position anchor
        self._position = self.position / US_PER_SECOND
        self._position_updated = time.monotonic()
        self._playing = state == PlaybackState.PLAYING
        if state == PlaybackState.STOPPED:
            self._position = 0.0
        self._set("_status", PLAYBACK_STATUS[state], "PlaybackStatus")

    def _on_track(self, track: Track | None) -> None:
        if track == self._track:
            if self._error is not None:
                # the same track was started again
                self._error = None
                self._mark_changed("Metadata")
            return
        if track is None or self._track is None or track.uri != self._track.uri:
            self._position = 0.0
            self._position_updated = time.monotonic()
            self._error = None
        had_track = self._track is not None
        self._track = track
        self._mark_changed("Metadata")
        if had_track != (track is not None):
            self._mark_changed("CanSeek")

    def _on_position(self, position: float) -> None:
        expected = self.position / US_PER_SECOND
        self._position = position
        self._position_updated = time.monotonic()
        if abs(position - expected) > MPRIS_SEEK_TOLERANCE:
            self._notify_seeked(int(position * US_PER_SECOND))

    def _on_queue(self, info: QueueInfo) -> None:
        self._set("_loop_status", LOOP_STATUS[info.repeat_mode], "LoopStatus")
        self._set("_shuffle", info.shuffle_enabled, "Shuffle")

    # notifications

    def _set(self, attr: str, value: Any, prop: str) -> None:
        if getattr(self, attr) == value:
            return
        setattr(self, attr, value)
        self._mark_changed(prop)

    def _mark_changed(self, prop: str) -> None:
        self._changed.add(prop)
        if not self._flush_scheduled:
            self._flush_scheduled = True
            self.mixdeck.call_later(
                MPRIS_NOTIFY_DELAY, self.flush_notifications, task_id="media_control_notify"
            )

    def flush_notifications(self) -> None:
        """Send all pending property changes as one notification."""
        self._flush_scheduled = False
        if not self._changed:
            return
        changed = {name: self.get_property(name) for name in sorted(self._changed)}
        self._changed.clear()
        self.logger.debug("Properties changed: %s", ", ".join(changed))
        for on_properties_changed, _ in list(self._listeners):
            try:
                on_properties_changed(changed)
            except Exception as err:
                self.logger.warning("Error in properties listener: %s", err, exc_info=err)

    def _notify_seeked(self, position: int) -> None:
        self.logger.debug("Seeked to %s", position)
        for _, on_seeked in list(self._listeners):
            try:
                on_seeked(position)
            except Exception as err:
                self.logger.warning("Error in seeked listener: %s", err, exc_info=err)
