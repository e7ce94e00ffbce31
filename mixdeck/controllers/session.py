"""
PlaybackSession: the single owner of all mutable playback state.

Commands (from the console, the media control service, ...) are put on a
queue and return immediately. One task consumes that queue and is the only
code that ever mutates the session: it drives the attached backend adapter,
applies the events the adapter reports and publishes the resulting
PlaybackEvents on the EventBus. Slow backend work (loading a track, seeking)
runs in separate tasks which report back through the same queue, so a newer
command can always supersede it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import suppress
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import shortuuid

from mixdeck.constants import (
    ADAPTER_COMMAND_TIMEOUT,
    MIXDECK_LOGGER_NAME,
    PREVIOUS_RESTART_THRESHOLD,
    STOP_GRACE_PERIOD,
    VERBOSE_LOG_LEVEL,
)
from mixdeck.models.enums import (
    Direction,
    ErrorKind,
    EventType,
    PlaybackState,
    RepeatMode,
    TrackSource,
)
from mixdeck.models.errors import (
    BackendCrashed,
    BackendError,
    BackendUnavailable,
    InvalidCommand,
    TransientBackendError,
)
from mixdeck.models.event import BackendErrorInfo, PlaybackEvent
from mixdeck.models.queue import PlayQueue
from mixdeck.models.session import SessionInfo
from mixdeck.providers.local.folders import (
    folder_path,
    get_music_folder,
    isdir,
    scan_music_folders,
)

if TYPE_CHECKING:
    from mixdeck.hub import MixDeck
    from mixdeck.models.backend import BackendAdapter
    from mixdeck.models.track import Track

REPEAT_CYCLE = {
    RepeatMode.OFF: RepeatMode.ALL,
    RepeatMode.ALL: RepeatMode.ONE,
    RepeatMode.ONE: RepeatMode.OFF,
}


@dataclass
class _Command:
    name: str
    args: tuple[Any, ...] = field(default_factory=tuple)


@dataclass
class _AdapterEvent:
    adapter: BackendAdapter
    event: PlaybackEvent
    seq: int


@dataclass
class _LoadResult:
    adapter: BackendAdapter
    generation: int
    error: BackendError
    allow_skip: bool


@dataclass
class _SeekResult:
    adapter: BackendAdapter
    seek_id: int
    error: BackendError | None


_Message = _Command | _AdapterEvent | _LoadResult | _SeekResult


def _clamp_volume(volume: float) -> int:
    return max(0, min(100, round(volume)))


class PlaybackSession:
    """Playback state machine driving one backend adapter at a time."""

    def __init__(self, mixdeck: MixDeck) -> None:
        """Initialize the session from the core config."""
        self.mixdeck = mixdeck
        self.logger = logging.getLogger(f"{MIXDECK_LOGGER_NAME}.session")
        self.session_id = shortuuid.random(length=8)
        core_config = mixdeck.config.core
        self.queue = PlayQueue(seed=core_config.shuffle_seed)
        self.queue.set_repeat_mode(core_config.repeat_mode)
        self.queue.set_shuffle(core_config.shuffle)
        self._state = PlaybackState.STOPPED
        self._error_reason: str | None = None
        self._current_track: Track | None = None
        self._volume = _clamp_volume(core_config.volume)
        self._position = 0.0
        self._position_last_updated = time.monotonic()
        self._adapter: BackendAdapter | None = None
        self._pump_task: asyncio.Task[None] | None = None
        self._load_task: asyncio.Task[None] | None = None
        self._seek_task: asyncio.Task[None] | None = None
        self._teardown_tasks: set[asyncio.Task[None]] = set()
        self._generation = 0
        self._seek_id = 0
        self._seek_pending = False
        self._stale_events = 0
        self._error_skips = 0
        self._disabled_sources: set[TrackSource] = set()
        self._commands: asyncio.Queue[_Message] = asyncio.Queue()
        self._processing = False
        self._run_task: asyncio.Task[None] | None = None

    # read-only state

    @property
    def state(self) -> PlaybackState:
        """Return the current playback state."""
        return self._state

    @property
    def current_track(self) -> Track | None:
        """Return the current track."""
        return self._current_track

    @property
    def volume(self) -> int:
        """Return the volume (0..100)."""
        return self._volume

    @property
    def error_reason(self) -> str | None:
        """Return the reason of the error state (if any)."""
        return self._error_reason

    @property
    def active_source(self) -> TrackSource | None:
        """Return the source of the attached backend adapter."""
        if self._adapter is None:
            return None
        return self._adapter.source

    @property
    def position(self) -> float:
        """Return the corrected elapsed time of the current track."""
        position = self._position
        if self._state == PlaybackState.PLAYING and not self._seek_pending:
            position += time.monotonic() - self._position_last_updated
        if self._current_track and self._current_track.duration:
            position = min(position, self._current_track.duration)
        return position

    @property
    def info(self) -> SessionInfo:
        """Return a snapshot of the session."""
        return SessionInfo(
            session_id=self.session_id,
            state=self._state,
            current_track=self._current_track,
            position=self.position,
            volume=self._volume,
            active_source=self.active_source,
            error_reason=self._error_reason,
            queue=self.queue.info,
        )

    # lifecycle

    async def start(self) -> None:
        """Start processing commands."""
        self._run_task = self.mixdeck.create_task(
            self._run(), task_id=f"session_{self.session_id}"
        )

    async def close(self) -> None:
        """Stop processing commands and tear down the attached adapter."""
        if self._run_task and not self._run_task.done():
            self._run_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._run_task
        self._cancel_pending()
        adapter = self._adapter
        self._adapter = None
        if self._pump_task:
            self._pump_task.cancel()
            self._pump_task = None
        if adapter:
            await self._teardown(adapter)
        if self._teardown_tasks:
            await asyncio.gather(*self._teardown_tasks, return_exceptions=True)

    async def wait_idle(self, timeout: float = 10) -> None:
        """Wait until all pending commands, backend work and adapter events are processed."""
        async with asyncio.timeout(timeout):
            while not self._is_idle():
                await asyncio.sleep(0.01)

    def _is_idle(self) -> bool:
        if self._processing or not self._commands.empty():
            return False
        pending = (self._load_task, self._seek_task, *self._teardown_tasks)
        if any(task is not None and not task.done() for task in pending):
            return False
        return self._adapter is None or self._adapter.pending_events == 0

    # commands (fire and observe)

    def play(self, track: Track) -> None:
        """Play the given track (selecting it in the queue or adding it)."""
        self._put("play", track)

    def pause(self) -> None:
        """Pause playback."""
        self._put("pause")

    def resume(self) -> None:
        """Resume playback (or start the queue when stopped)."""
        self._put("resume")

    def play_pause(self) -> None:
        """Toggle between play and pause."""
        self._put("play_pause")

    def stop(self) -> None:
        """Stop playback."""
        self._put("stop")

    def seek(self, position: float) -> None:
        """Seek to an absolute position (in seconds) in the current track."""
        self._put("seek", position)

    def seek_relative(self, offset: float) -> None:
        """Seek forward (or backward with a negative offset) in the current track."""
        self._put("seek_relative", offset)

    def next(self) -> None:
        """Skip to the next track."""
        self._put("next")

    def previous(self) -> None:
        """Go to the previous track (or restart the current one)."""
        self._put("previous")

    def set_volume(self, volume: float) -> None:
        """Set the volume (0..100)."""
        self._put("set_volume", volume)

    def adjust_volume(self, delta: float) -> None:
        """Change the volume relative to the current level."""
        self._put("adjust_volume", delta)

    def enqueue(self, track: Track) -> None:
        """Add a track to the end of the queue."""
        self._put("enqueue", track)

    async def enqueue_folder(self, path: str, include_subfolders: bool = False) -> int:
        """Add the audio files of a folder to the end of the queue, return how many."""
        if not await isdir(folder_path(path)):
            raise InvalidCommand(f"Not a folder: {path}")
        if include_subfolders:
            music_folders = await scan_music_folders([path])
        else:
            music_folders = [await get_music_folder(path)]
        tracks = [track for music_folder in music_folders for track in music_folder.tracks]
        for track in tracks:
            self.enqueue(track)
        return len(tracks)

    def remove_from_queue(self, index: int) -> None:
        """Remove the track at the given index from the queue."""
        self._put("remove_from_queue", index)

    def move_in_queue(self, from_index: int, to_index: int) -> None:
        """Move a track to another position in the queue."""
        self._put("move_in_queue", from_index, to_index)

    def clear_queue(self) -> None:
        """Stop playback and remove all tracks from the queue."""
        self._put("clear_queue")

    def set_repeat_mode(self, repeat_mode: RepeatMode) -> None:
        """Set the repeat mode."""
        self._put("set_repeat_mode", repeat_mode)

    def cycle_repeat_mode(self) -> None:
        """Switch to the next repeat mode (off, all, one)."""
        self._put("cycle_repeat_mode")

    def set_shuffle(self, shuffle_enabled: bool) -> None:
        """Enable or disable shuffle."""
        self._put("set_shuffle", shuffle_enabled)

    def reenable_backend(self, source: TrackSource) -> None:
        """Allow a backend that failed authentication to be used again."""
        self._put("reenable_backend", source)

    def _put(self, name: str, *args: Any) -> None:
        self.logger.debug("Command %s %s", name, args or "")
        self._commands.put_nowait(_Command(name, args))

    # command processing

    async def _run(self) -> None:
        """Process commands and backend results, one at a time."""
        while True:
            message = await self._commands.get()
            self._processing = True
            try:
                await self._process(message)
            except Exception as err:
                self.logger.error(
                    "Error while processing %s: %s",
                    message,
                    str(err),
                    exc_info=err if self.logger.isEnabledFor(logging.DEBUG) else None,
                )
            finally:
                self._processing = False

    async def _process(self, message: _Message) -> None:
        if isinstance(message, _AdapterEvent):
            if message.seq <= self._stale_events:
                # emitted before the current track was started on a reused adapter
                return
            await self._on_adapter_event(message.adapter, message.event)
        elif isinstance(message, _LoadResult):
            await self._on_load_failed(message)
        elif isinstance(message, _SeekResult):
            self._on_seek_done(message)
        else:
            handler = getattr(self, f"_cmd_{message.name}")
            await handler(*message.args)

    async def _cmd_play(self, track: Track) -> None:
        self.queue.select_track(track)
        self._publish_queue()
        await self._start_track(track, allow_skip=False)

    async def _cmd_pause(self) -> None:
        if self._state != PlaybackState.PLAYING:
            self.logger.debug("Ignoring pause in state %s", self._state)
            return
        if not await self._adapter_command("pause"):
            return
        self._position = self.position
        self._set_state(PlaybackState.PAUSED)

    async def _cmd_resume(self) -> None:
        if self._state in (PlaybackState.PLAYING, PlaybackState.LOADING):
            return
        if self._state == PlaybackState.PAUSED:
            if not await self._adapter_command("resume"):
                return
            self._position_last_updated = time.monotonic()
            self._set_state(PlaybackState.PLAYING)
            return
        # stopped or error: (re)start the current track of the queue
        track = (
            self.queue.current_track
            or self.queue.advance(Direction.NEXT)
            or self.queue.rewind()
        )
        if track is None:
            self.logger.debug("Nothing to resume, the queue is empty")
            return
        self._publish_queue()
        await self._start_track(track, allow_skip=False)

    async def _cmd_play_pause(self) -> None:
        if self._state == PlaybackState.PLAYING:
            await self._cmd_pause()
        else:
            await self._cmd_resume()

    async def _cmd_stop(self) -> None:
        await self._stop_playback()

    async def _cmd_seek(self, position: float) -> None:
        if self._state not in (PlaybackState.PLAYING, PlaybackState.PAUSED):
            self.logger.debug("Ignoring seek in state %s", self._state)
            return
        assert self._adapter is not None  # for type checking
        target = max(0.0, float(position))
        if self._current_track and self._current_track.duration is not None:
            target = min(target, self._current_track.duration)
        if self._seek_task and not self._seek_task.done():
            self._seek_task.cancel()
        self._seek_id += 1
        self._seek_pending = True
        self._position = target
        self._position_last_updated = time.monotonic()
        self._publish(PlaybackEvent.position_updated(target))
        self._seek_task = self.mixdeck.create_task(
            self._seek(self._adapter, target, self._seek_id)
        )

    async def _cmd_seek_relative(self, offset: float) -> None:
        await self._cmd_seek(self.position + offset)

    async def _cmd_next(self) -> None:
        await self._advance(Direction.NEXT, is_skip=True)

    async def _cmd_previous(self) -> None:
        if (
            self._state in (PlaybackState.PLAYING, PlaybackState.PAUSED)
            and self.position >= PREVIOUS_RESTART_THRESHOLD
        ):
            await self._cmd_seek(0)
            return
        await self._advance(Direction.PREVIOUS, is_skip=True)

    async def _cmd_set_volume(self, volume: float) -> None:
        volume = _clamp_volume(volume)
        if self._adapter is not None:
            await self._adapter_command("set_volume", volume)
        if volume == self._volume:
            return
        self._volume = volume
        self._publish(PlaybackEvent.volume_changed(volume))

    async def _cmd_adjust_volume(self, delta: float) -> None:
        await self._cmd_set_volume(self._volume + delta)

    async def _cmd_enqueue(self, track: Track) -> None:
        self.queue.append(track)
        self._publish_queue()

    async def _cmd_remove_from_queue(self, index: int) -> None:
        try:
            track = self.queue.remove(index)
        except InvalidCommand as err:
            self.logger.warning("Can not remove item from queue: %s", err)
            return
        self.logger.debug("Removed %s from the queue", track)
        self._publish_queue()

    async def _cmd_move_in_queue(self, from_index: int, to_index: int) -> None:
        try:
            self.queue.move(from_index, to_index)
        except InvalidCommand as err:
            self.logger.warning("Can not move queue item: %s", err)
            return
        self._publish_queue()

    async def _cmd_clear_queue(self) -> None:
        self.queue.clear()
        if self._state != PlaybackState.STOPPED or self._current_track is not None:
            await self._stop_playback(clear_track=True)
        self._publish_queue()

    async def _cmd_set_repeat_mode(self, repeat_mode: RepeatMode) -> None:
        self.queue.set_repeat_mode(RepeatMode(repeat_mode))
        self._publish_queue()

    async def _cmd_cycle_repeat_mode(self) -> None:
        await self._cmd_set_repeat_mode(REPEAT_CYCLE[self.queue.repeat_mode])

    async def _cmd_set_shuffle(self, shuffle_enabled: bool) -> None:
        self.queue.set_shuffle(bool(shuffle_enabled))
        self._publish_queue()

    async def _cmd_reenable_backend(self, source: TrackSource) -> None:
        self._disabled_sources.discard(TrackSource(source))

    # playback helpers

    async def _advance(self, direction: Direction, is_skip: bool) -> None:
        track = self.queue.advance(direction, is_skip=is_skip)
        self._publish_queue()
        if track is None:
            self.logger.debug("End of queue reached")
            await self._stop_playback(clear_track=True)
            return
        await self._start_track(track, allow_skip=True)

    async def _start_track(self, track: Track, allow_skip: bool) -> None:
        """Switch to the given track and start loading it on the right adapter."""
        self._cancel_pending()
        if self._adapter and (self._adapter.source != track.source or self._adapter.stopped):
            self._detach_adapter()
        self._current_track = track
        self._position = 0.0
        self._position_last_updated = time.monotonic()
        self._set_state(PlaybackState.LOADING)
        self._publish(PlaybackEvent.track_changed(track))
        if track.source in self._disabled_sources:
            await self._on_failure(
                BackendErrorInfo(
                    ErrorKind.AUTH,
                    f"Backend {track.source} is disabled until its credentials are refreshed",
                    track.source,
                ),
                allow_skip,
            )
            return
        if self._adapter is None:
            try:
                self._attach_adapter(track.source)
            except BackendUnavailable as err:
                await self._on_failure(
                    BackendErrorInfo(ErrorKind.TRACK_UNAVAILABLE, str(err), track.source),
                    allow_skip,
                )
                return
        assert self._adapter is not None  # for type checking
        self._stale_events = self._adapter.events_emitted
        self.logger.info("Loading %s on %s", track, self._adapter)
        self._load_task = self.mixdeck.create_task(
            self._load(self._adapter, track, self._generation, allow_skip)
        )

    async def _load(
        self, adapter: BackendAdapter, track: Track, generation: int, allow_skip: bool
    ) -> None:
        """Load and start a track on the adapter, report failures to the session."""
        try:
            await adapter.ensure_ready()
            await adapter.load(track)
            await adapter.set_volume(self._volume)
            await adapter.play()
        except BackendError as err:
            self._commands.put_nowait(_LoadResult(adapter, generation, err, allow_skip))
        except Exception as err:
            self.logger.debug("Unexpected error while loading %s", track, exc_info=err)
            self._commands.put_nowait(
                _LoadResult(adapter, generation, BackendCrashed(str(err)), allow_skip)
            )

    async def _seek(self, adapter: BackendAdapter, position: float, seek_id: int) -> None:
        error: BackendError | None = None
        try:
            async with asyncio.timeout(ADAPTER_COMMAND_TIMEOUT):
                await adapter.seek(position)
        except TimeoutError:
            error = TransientBackendError("Seek timed out")
        except BackendError as err:
            error = err
        except Exception as err:
            error = BackendCrashed(str(err))
        self._commands.put_nowait(_SeekResult(adapter, seek_id, error))

    async def _adapter_command(self, name: str, *args: Any) -> bool:
        """Run a short command on the attached adapter, return if it succeeded."""
        if self._adapter is None:
            return False
        error: BackendError
        try:
            async with asyncio.timeout(ADAPTER_COMMAND_TIMEOUT):
                await getattr(self._adapter, name)(*args)
        except TimeoutError:
            error = TransientBackendError(f"{name} timed out")
        except BackendError as err:
            error = err
        else:
            return True
        self._on_command_failed(name, error)
        return False

    def _on_command_failed(self, name: str, error: BackendError) -> None:
        source = self.active_source
        self.logger.warning("Command %s failed on %s backend: %s", name, source, error)
        self._publish(PlaybackEvent.backend_error(error.kind, str(error), source))
        if error.kind == ErrorKind.FATAL:
            self._cancel_pending()
            self._detach_adapter()
            self._set_state(PlaybackState.ERROR, str(error))

    async def _stop_playback(self, clear_track: bool = False) -> None:
        self._cancel_pending()
        self._detach_adapter()
        self._position = 0.0
        self._set_state(PlaybackState.STOPPED)
        if clear_track and self._current_track is not None:
            self._current_track = None
            self._publish(PlaybackEvent.track_changed(None))

    def _cancel_pending(self) -> None:
        """Cancel in-flight load and seek, their results will be discarded."""
        self._generation += 1
        for task in (self._load_task, self._seek_task):
            if task is not None and not task.done():
                task.cancel()
        self._load_task = None
        self._seek_task = None
        self._seek_pending = False

    def _attach_adapter(self, source: TrackSource) -> None:
        adapter = self.mixdeck.create_adapter(source)
        self.logger.debug("Attaching %s", adapter)
        self._adapter = adapter
        self._pump_task = self.mixdeck.create_task(self._pump_events(adapter))

    def _detach_adapter(self) -> None:
        """Detach the current adapter, stopping it in the background."""
        if (adapter := self._adapter) is None:
            return
        self.logger.debug("Detaching %s", adapter)
        self._adapter = None
        if self._pump_task:
            self._pump_task.cancel()
            self._pump_task = None
        task = self.mixdeck.create_task(self._teardown(adapter))
        self._teardown_tasks.add(task)
        task.add_done_callback(self._teardown_tasks.discard)

    async def _teardown(self, adapter: BackendAdapter) -> None:
        """Stop an adapter, not waiting longer than the grace period."""
        try:
            async with asyncio.timeout(STOP_GRACE_PERIOD):
                await adapter.stop()
        except TimeoutError:
            self.logger.warning(
                "%s did not stop within %s seconds, abandoning it", adapter, STOP_GRACE_PERIOD
            )
        except Exception as err:
            self.logger.debug("Ignoring error while stopping %s: %s", adapter, err)

    async def _pump_events(self, adapter: BackendAdapter) -> None:
        """Forward the events of an adapter into the command queue."""
        async for event in adapter.event_stream():
            self._commands.put_nowait(_AdapterEvent(adapter, event, adapter.events_consumed))

    # backend results

    async def _on_adapter_event(self, adapter: BackendAdapter, event: PlaybackEvent) -> None:
        if adapter is not self._adapter:
            self.logger.log(VERBOSE_LOG_LEVEL, "Ignoring %s of detached %s", event.event, adapter)
            return
        match event.event:
            case EventType.STATE_CHANGED:
                self._on_adapter_state(event.data)
            case EventType.POSITION_UPDATED:
                self._on_adapter_position(float(event.data))
            case EventType.TRACK_CHANGED:
                self._on_adapter_track(event.data)
            case EventType.VOLUME_CHANGED:
                volume = _clamp_volume(event.data)
                if volume != self._volume:
                    self._volume = volume
                    self._publish(PlaybackEvent.volume_changed(volume))
            case EventType.TRACK_ENDED:
                await self._on_track_ended()
            case EventType.BACKEND_ERROR:
                await self._on_adapter_error(event.data)
            case _:
                self.logger.debug("Ignoring unexpected %s event from %s", event.event, adapter)

    def _on_adapter_state(self, state: PlaybackState) -> None:
        if state == PlaybackState.PLAYING and self._state in (
            PlaybackState.LOADING,
            PlaybackState.PAUSED,
        ):
            if self._state == PlaybackState.LOADING:
                self._error_skips = 0
            self._position_last_updated = time.monotonic()
            self._set_state(PlaybackState.PLAYING)
        elif state == PlaybackState.PAUSED and self._state == PlaybackState.PLAYING:
            self._position = self.position
            self._set_state(PlaybackState.PAUSED)

    def _on_adapter_position(self, position: float) -> None:
        if self._state != PlaybackState.PLAYING or self._seek_pending:
            return
        if position < self._position:
            # stale or jittery update, elapsed time only moves forward while playing
            return
        self._position = position
        self._position_last_updated = time.monotonic()
        self._publish(PlaybackEvent.position_updated(position))

    def _on_adapter_track(self, track: Track | None) -> None:
        current = self._current_track
        if track is None or current is None or track.uri != current.uri or track == current:
            return
        self._current_track = track
        self.queue.replace_track(track)
        self._publish(PlaybackEvent.track_changed(track))

    async def _on_track_ended(self) -> None:
        if self._state != PlaybackState.PLAYING:
            return
        self.logger.debug("Track %s ended", self._current_track)
        await self._advance(Direction.NEXT, is_skip=False)

    async def _on_adapter_error(self, info: BackendErrorInfo) -> None:
        if self._state in (PlaybackState.LOADING, PlaybackState.PLAYING):
            await self._on_failure(info, allow_skip=True)
            return
        self.logger.warning(
            "%s backend reported %s error: %s", info.source, info.kind, info.message
        )
        self._publish(PlaybackEvent(EventType.BACKEND_ERROR, info, info.message))
        if info.kind == ErrorKind.FATAL:
            self._detach_adapter()
            self._set_state(PlaybackState.ERROR, info.message)

    async def _on_load_failed(self, result: _LoadResult) -> None:
        if result.generation != self._generation or result.adapter is not self._adapter:
            self.logger.debug("Discarding result of superseded load: %s", result.error)
            return
        self._load_task = None
        error = result.error
        message = str(error) or error.__class__.__name__
        await self._on_failure(
            BackendErrorInfo(error.kind, message, self.active_source), result.allow_skip
        )

    def _on_seek_done(self, result: _SeekResult) -> None:
        if result.adapter is not self._adapter or result.seek_id != self._seek_id:
            return
        self._seek_pending = False
        self._seek_task = None
        self._position_last_updated = time.monotonic()
        if result.error is not None:
            self._on_command_failed("seek", result.error)

    async def _on_failure(self, info: BackendErrorInfo, allow_skip: bool) -> None:
        """Apply the error policy for a failure of the current track."""
        self.logger.warning(
            "Playback of %s failed (%s): %s", self._current_track, info.kind, info.message
        )
        self._publish(PlaybackEvent(EventType.BACKEND_ERROR, info, info.message))
        self._cancel_pending()
        if info.kind == ErrorKind.AUTH and info.source is not None:
            self._disabled_sources.add(info.source)
        if info.kind == ErrorKind.FATAL:
            self._detach_adapter()
        self._set_state(PlaybackState.ERROR, info.message)
        if allow_skip and info.kind.skips_track:
            await self._skip_failed_track()

    async def _skip_failed_track(self) -> None:
        """Move on to the next track after a failure, without looping forever."""
        failed_item = self.queue.current_item
        self._error_skips += 1
        if self._error_skips >= len(self.queue):
            self.logger.warning("Stopping playback, %s tracks in a row failed", self._error_skips)
            self._error_skips = 0
            await self._stop_playback()
            return
        track = self.queue.advance(Direction.NEXT, is_skip=True)
        self._publish_queue()
        if track is None or (failed_item is not None and self.queue.current_item is failed_item):
            self._error_skips = 0
            await self._stop_playback(clear_track=track is None)
            return
        await self._start_track(track, allow_skip=True)

    # publishing

    def _set_state(self, state: PlaybackState, message: str | None = None) -> None:
        if state == self._state and (state != PlaybackState.ERROR or message == self._error_reason):
            return
        self._state = state
        self._error_reason = message if state == PlaybackState.ERROR else None
        self.logger.debug("State changed to %s%s", state, f" ({message})" if message else "")
        self._publish(PlaybackEvent.state_changed(state, message))

    def _publish_queue(self) -> None:
        self._publish(PlaybackEvent(EventType.QUEUE_UPDATED, self.queue.info))

    def _publish(self, event: PlaybackEvent) -> None:
        self.mixdeck.event_bus.publish(event)
