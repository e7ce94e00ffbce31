"""Main MixDeck class."""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from collections.abc import Awaitable, Callable, Coroutine
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as package_version
from typing import TYPE_CHECKING, Any, Self, TypeVar, cast
from uuid import uuid4

from mixdeck.constants import CONF_FOLDERS, MIXDECK_LOGGER_NAME
from mixdeck.controllers.config import ConfigController
from mixdeck.controllers.event_bus import EventBus
from mixdeck.controllers.media_control import MediaControlService
from mixdeck.controllers.session import PlaybackSession
from mixdeck.helpers.aiohttp_client import create_clientsession
from mixdeck.models.enums import TrackSource
from mixdeck.models.errors import BackendUnavailable
from mixdeck.providers import BUILTIN_BACKENDS, BackendFactory
from mixdeck.providers.local import MusicFolder, scan_music_folders

if TYPE_CHECKING:
    from types import TracebackType

    from aiohttp import ClientSession

    from mixdeck.models.backend import BackendAdapter
    from mixdeck.models.config import MixDeckConfig

LOGGER = logging.getLogger(MIXDECK_LOGGER_NAME)

_R = TypeVar("_R")


class MixDeck:
    """Main MixDeck object, owning the playback session and everything around it."""

    loop: asyncio.AbstractEventLoop
    config: ConfigController
    event_bus: EventBus
    session: PlaybackSession
    media_control: MediaControlService | None

    def __init__(
        self,
        config_path: str | None = None,
        config: MixDeckConfig | None = None,
        enable_media_control: bool | None = None,
    ) -> None:
        """
        Initialize MixDeck.

        :param config_path: Path of the settings file (defaults to the user config dir).
        :param config: Use this config instead of loading it from disk.
        :param enable_media_control: Override the media_control setting of the config.
        """
        self.config_path = config_path
        self._preset_config = config
        self._enable_media_control = enable_media_control
        self._backends: dict[TrackSource, BackendFactory] = dict(BUILTIN_BACKENDS)
        self._tracked_tasks: dict[str, asyncio.Task[Any]] = {}
        self._tracked_timers: dict[str, asyncio.TimerHandle] = {}
        self._http_session: ClientSession | None = None
        self._stop_requested: asyncio.Event | None = None
        self.media_control = None
        self.closing = False
        self.version: str = "0.0.0"

    async def start(self) -> None:
        """Start MixDeck."""
        self.loop = asyncio.get_running_loop()
        self.loop_thread_id = threading.get_ident()
        self._stop_requested = asyncio.Event()
        try:
            self.version = package_version("mixdeck")
        except PackageNotFoundError:
            self.version = "0.0.0"
        self.config = ConfigController(self, self.config_path, self._preset_config)
        await self.config.setup()
        LOGGER.info("Starting MixDeck version %s", self.version)
        self.event_bus = EventBus()
        self.session = PlaybackSession(self)
        await self.session.start()
        enable_media_control = self._enable_media_control
        if enable_media_control is None:
            enable_media_control = self.config.core.media_control
        if enable_media_control:
            self.media_control = MediaControlService(self)
            await self.media_control.setup()

    async def stop(self) -> None:
        """Stop MixDeck and clean up."""
        LOGGER.info("Stop called, cleaning up...")
        self.closing = True
        if self.media_control is not None:
            await self.media_control.close()
        # the session stops the attached backend, which may still need the http session
        await self.session.close()
        # cancel all running tasks
        for task in list(self._tracked_tasks.values()):
            task.cancel()
        for timer in list(self._tracked_timers.values()):
            timer.cancel()
        self._tracked_timers.clear()
        await self.event_bus.close()
        # close/cleanup shared http session
        if self._http_session:
            await self._http_session.close()
            self._http_session = None

    def request_stop(self) -> None:
        """Ask the application (owner of this instance) to stop."""
        if self._stop_requested is not None:
            self._stop_requested.set()

    async def wait_for_stop_request(self) -> None:
        """Wait until a stop is requested (e.g. by a media controller)."""
        assert self._stop_requested is not None, "Not started"
        await self._stop_requested.wait()

    @property
    def http_session(self) -> ClientSession:
        """
        Return the shared HTTP Client session.

        NOTE: May only be called from the event loop.
        """
        if self._http_session is None:
            self._http_session = create_clientsession(self)
        return self._http_session

    def register_backend(self, source: TrackSource, factory: BackendFactory) -> Callable[[], None]:
        """
        Register (or replace) the adapter factory for a source.

        Returns handle to restore the previous registration.
        """
        previous = self._backends.get(source)
        self._backends[source] = factory

        def unregister() -> None:
            if previous is None:
                self._backends.pop(source, None)
            else:
                self._backends[source] = previous

        return unregister

    def create_adapter(self, source: TrackSource) -> BackendAdapter:
        """Create a new adapter instance for the given source."""
        if (factory := self._backends.get(source)) is None:
            raise BackendUnavailable(f"No backend available for {source}")
        backend_config = self.config.get_backend_config(source)
        if not backend_config.enabled:
            raise BackendUnavailable(f"Backend {source} is disabled in the configuration")
        return factory(self, backend_config)

    async def get_music_folders(self) -> list[MusicFolder]:
        """Return the configured music folders (and their subfolders) with their tracks."""
        backend_config = self.config.get_backend_config(TrackSource.LOCAL)
        return await scan_music_folders(backend_config.get_value(CONF_FOLDERS, []))

    def create_task(
        self,
        target: Callable[..., Coroutine[Any, Any, _R]] | Awaitable[_R],
        *args: Any,
        task_id: str | None = None,
        abort_existing: bool = False,
        **kwargs: Any,
    ) -> asyncio.Task[_R]:
        """Create Task on (main) event loop from Coroutine(function).

        Tasks created by this helper will be properly cancelled on stop.
        """
        if task_id and (existing := self._tracked_tasks.get(task_id)) and not existing.done():
            # prevent duplicate tasks if task_id is given and already present
            if abort_existing:
                existing.cancel()
            else:
                return existing
        self.verify_event_loop_thread("create_task")

        if inspect.iscoroutinefunction(target):
            # coroutine function
            task = self.loop.create_task(target(*args, **kwargs))
        elif asyncio.iscoroutine(target):
            # coroutine
            task = self.loop.create_task(target)
        elif callable(target):
            raise RuntimeError("Function is not a coroutine or coroutine function")
        else:
            raise RuntimeError("Target is missing")

        if task_id is None:
            task_id = uuid4().hex

        def task_done_callback(_task: asyncio.Task[Any]) -> None:
            if self._tracked_tasks.get(task_id) is _task:
                self._tracked_tasks.pop(task_id)
            # log unhandled exceptions
            if not _task.cancelled() and (err := _task.exception()):
                LOGGER.warning(
                    "Exception in task %s - target: %s: %s",
                    _task.get_name(),
                    str(target),
                    str(err),
                    exc_info=err if LOGGER.isEnabledFor(logging.DEBUG) else None,
                )

        self._tracked_tasks[task_id] = task
        task.add_done_callback(task_done_callback)
        return task

    def call_later(
        self,
        delay: float,
        target: Coroutine[Any, Any, _R] | Awaitable[_R] | Callable[..., _R],
        *args: Any,
        task_id: str | None = None,
        **kwargs: Any,
    ) -> asyncio.TimerHandle:
        """
        Run callable/awaitable after given delay.

        Use task_id for debouncing.
        """
        self.verify_event_loop_thread("call_later")

        if not task_id:
            task_id = uuid4().hex

        if existing := self._tracked_timers.get(task_id):
            existing.cancel()

        def _run(_target: Any) -> None:
            self._tracked_timers.pop(task_id, None)
            if inspect.iscoroutinefunction(_target) or asyncio.iscoroutine(_target):
                self.create_task(_target, *args, task_id=task_id, abort_existing=True, **kwargs)
            else:
                _target(*args)

        if TYPE_CHECKING:
            target = cast("Callable[..., _R]", target)
        handle = self.loop.call_later(delay, _run, target)
        self._tracked_timers[task_id] = handle
        return handle

    def get_task(self, task_id: str) -> asyncio.Task[Any] | None:
        """Get existing scheduled task."""
        return self._tracked_tasks.get(task_id)

    def verify_event_loop_thread(self, what: str) -> None:
        """Report and raise if we are not running in the event loop thread."""
        if self.loop_thread_id != threading.get_ident():
            raise RuntimeError(
                f"Non-Async operation detected: {what} may only be called from the eventloop."
            )

    async def __aenter__(self) -> Self:
        """Return Context manager."""
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> bool | None:
        """Exit context manager."""
        await self.stop()
        return None
