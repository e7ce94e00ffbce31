"""Base adapter for backends that play through an mpv process."""

from __future__ import annotations

import asyncio
import os
import tempfile
import time
from abc import abstractmethod
from contextlib import suppress
from typing import TYPE_CHECKING, Any, ClassVar

from aiofiles.os import wrap

from mixdeck.constants import (
    CONF_MPV_PATH,
    DEFAULT_MPV_PATH,
    DEFAULT_VOLUME,
    POSITION_UPDATE_INTERVAL,
)
from mixdeck.helpers.process import AsyncProcess
from mixdeck.helpers.throttle_retry import ThrottlerManager, throttle_with_retries
from mixdeck.models.backend import BackendAdapter
from mixdeck.models.enums import ErrorKind, PlaybackState
from mixdeck.models.errors import BackendCrashed, BackendError, TrackUnavailable
from mixdeck.models.event import PlaybackEvent

from .constants import (
    END_FILE_EOF,
    END_FILE_ERROR,
    IPC_RATE_LIMIT,
    IPC_RETRY_ATTEMPTS,
    IPC_RETRY_BACKOFF,
    LOAD_TIMEOUT,
    OBSERVED_PROPERTIES,
)
from .ipc import MpvIpcClient

if TYPE_CHECKING:
    from mixdeck.hub import MixDeck
    from mixdeck.models.config import BackendConfig
    from mixdeck.models.track import Track

remove_file = wrap(os.remove)


class MpvAdapter(BackendAdapter):
    """Play tracks with an (idle) mpv process controlled over JSON IPC."""

    load_timeout: ClassVar[float] = LOAD_TIMEOUT

    def __init__(self, mixdeck: MixDeck, config: BackendConfig) -> None:
        """Initialize the adapter."""
        super().__init__(mixdeck, config)
        self.mpv_path: str = config.get_value(CONF_MPV_PATH, DEFAULT_MPV_PATH)
        self.socket_path = os.path.join(tempfile.gettempdir(), f"mixdeck-{self.instance_id}.sock")
        self._process: AsyncProcess | None = None
        self._ipc: MpvIpcClient | None = None
        self._volume: int | None = None
        self._track: Track | None = None
        self._file_loaded = False
        self._load_waiter: asyncio.Future[None] | None = None
        self._last_position_emit = 0.0
        self.throttler = ThrottlerManager(
            rate_limit=IPC_RATE_LIMIT,
            retry_attempts=IPC_RETRY_ATTEMPTS,
            initial_backoff=IPC_RETRY_BACKOFF,
        )

    @abstractmethod
    async def resolve_locator(self, track: Track) -> str:
        """Return the path or url mpv should open for the track."""

    def get_extra_args(self) -> list[str]:
        """Return extra (backend specific) arguments for the mpv process."""
        return []

    def get_mpv_args(self) -> list[str]:
        """Return the full command line to start mpv."""
        volume = DEFAULT_VOLUME if self._volume is None else self._volume
        return [
            self.mpv_path,
            "--idle=yes",
            "--no-video",
            "--no-input-terminal",
            "--msg-level=all=warn",
            "--keep-open=no",
            "--pause=yes",
            f"--volume={volume}",
            f"--input-ipc-server={self.socket_path}",
            *self.get_extra_args(),
        ]

    async def setup(self) -> None:
        """Start the mpv process and connect to its IPC socket."""
        # leftovers of an interrupted (cancelled) setup
        await self._close_mpv()
        self._process = AsyncProcess(self.get_mpv_args(), name="mpv")
        try:
            await self._process.start()
        except OSError as err:
            self._process = None
            raise BackendCrashed(f"Unable to start mpv ({self.mpv_path}): {err}") from err
        try:
            self._ipc = MpvIpcClient(
                self.socket_path, self.logger, self._on_mpv_event, self._on_mpv_disconnect
            )
            await self._ipc.connect()
            for name, observer_id in OBSERVED_PROPERTIES.items():
                await self._ipc.observe_property(observer_id, name)
        except BaseException:
            await self._close_mpv()
            raise
        self.logger.debug("[%s] mpv started (pid %s)", self.instance_id, self._process.proc.pid)

    @property
    def ipc(self) -> MpvIpcClient:
        """Return the (connected) IPC client."""
        if self._ipc is None or not self._ipc.connected:
            raise BackendCrashed("mpv is not running")
        return self._ipc

    async def load(self, track: Track) -> None:
        """Load the track in mpv (paused) and wait until mpv opened it."""
        url = await self.resolve_locator(track)
        self._track = track
        self._file_loaded = False
        self._load_waiter = asyncio.get_running_loop().create_future()
        try:
            await self._set_property("pause", True)
            await self._command("loadfile", url, "replace")
            async with asyncio.timeout(self.load_timeout):
                await self._load_waiter
        except TimeoutError as err:
            raise TrackUnavailable(f"Timeout while opening {url}") from err
        finally:
            self._load_waiter = None
        self.update_position(0.0, playing=False)

    async def play(self) -> None:
        """Start playback of the loaded file."""
        await self._set_property("pause", False)
        self.update_position(self._position, playing=True)
        self.emit(PlaybackEvent.state_changed(PlaybackState.PLAYING))

    async def pause(self) -> None:
        """Pause playback."""
        await self._set_property("pause", True)
        self.update_position(self.position(), playing=False)

    async def resume(self) -> None:
        """Resume playback."""
        await self._set_property("pause", False)
        self.update_position(self._position, playing=True)

    async def seek(self, position: float) -> None:
        """Seek to an absolute position."""
        await self._command("seek", position, "absolute")
        self.update_position(position)

    async def set_volume(self, volume: int) -> None:
        """Set the volume, applied on start when mpv is not running yet."""
        self._volume = volume
        if self._ipc is not None and self._ipc.connected:
            await self._set_property("volume", volume)

    async def on_stop(self) -> None:
        """Quit mpv and clean up."""
        await self._close_mpv()

    async def _close_mpv(self) -> None:
        ipc, process = self._ipc, self._process
        self._ipc = None
        self._process = None
        if ipc is not None:
            if ipc.connected:
                with suppress(BackendError):
                    await ipc.command("quit", timeout=1)
            await ipc.close()
        if process is not None:
            await process.close()
        with suppress(FileNotFoundError):
            await remove_file(self.socket_path)

    @throttle_with_retries
    async def _command(self, *args: Any) -> Any:
        return await self.ipc.command(*args)

    @throttle_with_retries
    async def _set_property(self, name: str, value: Any) -> None:
        await self.ipc.set_property(name, value)

    def _on_mpv_event(self, message: dict[str, Any]) -> None:
        """Translate an mpv event into playback events."""
        match message.get("event"):
            case "property-change":
                self._on_property_change(message.get("name"), message.get("data"))
            case "file-loaded":
                self._file_loaded = True
                if self._load_waiter is not None and not self._load_waiter.done():
                    self._load_waiter.set_result(None)
            case "end-file":
                self._on_end_file(message)

    def _on_property_change(self, name: str | None, data: Any) -> None:
        if name == "time-pos" and data is not None:
            self.update_position(float(data))
            now = time.monotonic()
            if self._playing and now - self._last_position_emit >= POSITION_UPDATE_INTERVAL:
                self._last_position_emit = now
                self.emit(PlaybackEvent.position_updated(float(data)))
        elif name == "duration" and data is not None and self._track is not None:
            if self._track.duration != float(data):
                self._track = self._track.with_duration(float(data))
                self.emit(PlaybackEvent.track_changed(self._track))
        elif name == "pause" and self._file_loaded:
            self._playing = not data

    def _on_end_file(self, message: dict[str, Any]) -> None:
        reason = message.get("reason")
        if reason == END_FILE_ERROR:
            error_msg = f"mpv can not play {self._track}: {message.get('file_error', 'error')}"
            if self._load_waiter is not None and not self._load_waiter.done():
                self._load_waiter.set_exception(TrackUnavailable(error_msg))
            else:
                self.emit(
                    PlaybackEvent.backend_error(ErrorKind.TRACK_UNAVAILABLE, error_msg, self.source)
                )
        elif reason == END_FILE_EOF and self._file_loaded:
            self._file_loaded = False
            self.update_position(self._position, playing=False)
            self.emit(PlaybackEvent.track_ended())

    def _on_mpv_disconnect(self) -> None:
        if self._stopped:
            return
        error_msg = "mpv exited unexpectedly"
        self.logger.warning("[%s] %s", self.instance_id, error_msg)
        if self._load_waiter is not None and not self._load_waiter.done():
            self._load_waiter.set_exception(BackendCrashed(error_msg))
        self.emit(PlaybackEvent.backend_error(ErrorKind.FATAL, error_msg, self.source))
