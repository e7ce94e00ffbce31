"""
Spotify backend adapter.

Playback happens on a Spotify Connect device (the official client, a
speaker, ...) which is remote controlled through the Spotify Web API.
The Web API has no push channel, so the adapter polls the playback state
and turns the differences into PlaybackEvents.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any

from mixdeck.constants import CONF_DEVICE_ID, CONF_POLL_INTERVAL
from mixdeck.models.backend import BackendAdapter
from mixdeck.models.enums import ErrorKind, PlaybackState, TrackSource
from mixdeck.models.errors import AuthenticationFailed, BackendError, TrackUnavailable
from mixdeck.models.event import PlaybackEvent

from .api_client import SpotifyAPIClient
from .constants import COMMAND_SETTLE_TIME, DEFAULT_POLL_INTERVAL, END_OF_TRACK_MARGIN

if TYPE_CHECKING:
    from mixdeck.hub import MixDeck
    from mixdeck.models.config import BackendConfig
    from mixdeck.models.track import Track


class SpotifyAdapter(BackendAdapter):
    """Remote control playback on a Spotify Connect device."""

    source = TrackSource.SPOTIFY

    def __init__(self, mixdeck: MixDeck, config: BackendConfig) -> None:
        """Initialize the adapter."""
        super().__init__(mixdeck, config)
        self.client = SpotifyAPIClient(self)
        self.device_id: str | None = config.get_value(CONF_DEVICE_ID)
        self.poll_interval = float(config.get_value(CONF_POLL_INTERVAL, DEFAULT_POLL_INTERVAL))
        self._track: Track | None = None
        self._uri: str | None = None
        self._volume: int | None = None
        self._started = False
        # playing state as last reported on the event stream
        self._remote_playing = False
        self._seen_playing = False
        self._last_command = 0.0
        self._poll_task: asyncio.Task[None] | None = None

    async def setup(self) -> None:
        """Validate the configuration."""
        if not self.client.access_token:
            raise AuthenticationFailed("No Spotify access token configured")

    async def load(self, track: Track) -> None:
        """Look up the track and check that it can be played."""
        self._stop_polling()
        self._started = False
        self._seen_playing = False
        self._remote_playing = False
        data = await self.client.get_track(track.id)
        if data.get("is_playable") is False:
            raise TrackUnavailable(f"{track} is not playable on this Spotify account")
        self._track = track
        self._uri = data.get("uri") or f"spotify:track:{track.id}"
        if (duration_ms := data.get("duration_ms")) and track.duration is None:
            self._track = track.with_duration(duration_ms / 1000)
            self.emit(PlaybackEvent.track_changed(self._track))
        self.update_position(0.0, playing=False)

    async def play(self) -> None:
        """Start playback of the loaded track on the device."""
        if self._uri is None:
            raise TrackUnavailable("No track loaded")
        await self.client.start_playback([self._uri], self.device_id)
        self._last_command = time.monotonic()
        self._started = True
        if self._volume is not None:
            try:
                await self.client.set_volume(self._volume, self.device_id)
            except BackendError as err:
                self.logger.warning("Unable to set volume on Spotify device: %s", err)
        self.update_position(0.0, playing=True)
        self._remote_playing = True
        self.emit(PlaybackEvent.state_changed(PlaybackState.PLAYING))
        self._start_polling()

    async def pause(self) -> None:
        """Pause playback."""
        await self.client.pause_playback(self.device_id)
        self._last_command = time.monotonic()
        self._remote_playing = False
        self.update_position(self.position(), playing=False)

    async def resume(self) -> None:
        """Resume playback."""
        await self.client.resume_playback(self.device_id)
        self._last_command = time.monotonic()
        self._remote_playing = True
        self.update_position(self._position, playing=True)

    async def seek(self, position: float) -> None:
        """Seek to an absolute position."""
        await self.client.seek(int(position * 1000), self.device_id)
        self._last_command = time.monotonic()
        self.update_position(position)

    async def set_volume(self, volume: int) -> None:
        """Set the volume of the device, stored until playback started."""
        self._volume = volume
        if self._started:
            await self.client.set_volume(volume, self.device_id)

    async def on_stop(self) -> None:
        """Stop polling and pause the device."""
        self._stop_polling()
        if self._started and self._remote_playing:
            try:
                await self.client.pause_playback(self.device_id)
            except BackendError as err:
                self.logger.debug("Unable to pause Spotify device on stop: %s", err)

    def _start_polling(self) -> None:
        self._poll_task = self.mixdeck.create_task(
            self._poll_loop(), task_id=f"{self.instance_id}_poll", abort_existing=True
        )

    def _stop_polling(self) -> None:
        if self._poll_task is not None and not self._poll_task.done():
            self._poll_task.cancel()
        self._poll_task = None

    async def _poll_loop(self) -> None:
        """Poll the playback state until the track ended or the adapter stopped."""
        while not self._stopped:
            await asyncio.sleep(self.poll_interval)
            try:
                state = await self.client.get_playback_state()
            except AuthenticationFailed as err:
                self.emit(PlaybackEvent.backend_error(ErrorKind.AUTH, str(err), self.source))
                return
            except BackendError as err:
                self.logger.debug("Unable to poll Spotify playback state: %s", err)
                continue
            if self.process_playback_state(state):
                return

    def process_playback_state(self, state: dict[str, Any]) -> bool:
        """
        Translate a polled playback state into events.

        Returns True when playback of the loaded track is over and polling
        should stop. Right after a command of our own the remote state lags
        behind, so state flips are only trusted once the command settled.
        """
        settled = time.monotonic() - self._last_command >= COMMAND_SETTLE_TIME
        item = state.get("item") or {}
        is_playing = bool(state.get("is_playing"))
        progress = (state.get("progress_ms") or 0) / 1000
        if item.get("uri") != self._uri:
            if not settled:
                return False
            if self._seen_playing:
                # the device moved on to another track (or playback went away)
                self._end_track()
            else:
                self.emit(
                    PlaybackEvent.backend_error(
                        ErrorKind.TRACK_UNAVAILABLE,
                        f"Spotify did not start playback of {self._track}",
                        self.source,
                    )
                )
            return True
        self.update_position(progress, playing=is_playing)
        if is_playing:
            self._seen_playing = True
        if not settled:
            return False
        if is_playing:
            if not self._remote_playing:
                self._remote_playing = True
                self.emit(PlaybackEvent.state_changed(PlaybackState.PLAYING))
            self.emit(PlaybackEvent.position_updated(progress))
            return False
        if not self._remote_playing:
            return False
        duration = self._track.duration if self._track else None
        if self._seen_playing and (
            progress == 0 or (duration is not None and duration - progress <= END_OF_TRACK_MARGIN)
        ):
            self._end_track()
            return True
        self._remote_playing = False
        self.emit(PlaybackEvent.state_changed(PlaybackState.PAUSED))
        return False

    def _end_track(self) -> None:
        self._remote_playing = False
        self.update_position(self.position(), playing=False)
        self.emit(PlaybackEvent.track_ended())
