"""Client for the JSON IPC protocol of mpv (over its unix socket)."""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Callable
from contextlib import suppress
from typing import TYPE_CHECKING, Any

from mixdeck.constants import VERBOSE_LOG_LEVEL
from mixdeck.models.errors import BackendCrashed, TransientBackendError

from .constants import COMMAND_TIMEOUT, CONNECT_TIMEOUT

if TYPE_CHECKING:
    import logging

MpvEventCallback = Callable[[dict[str, Any]], None]


class MpvCommandError(TransientBackendError):
    """mpv rejected a command."""


class MpvIpcClient:
    """
    Send commands to mpv and dispatch the events it pushes.

    Every command carries a request_id, the reply with the same id resolves
    the pending future. Messages without request_id are events.
    """

    def __init__(
        self,
        socket_path: str,
        logger: logging.Logger,
        on_event: MpvEventCallback,
        on_disconnect: Callable[[], None],
    ) -> None:
        """Initialize the client."""
        self.socket_path = socket_path
        self.logger = logger
        self._on_event = on_event
        self._on_disconnect = on_disconnect
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._read_task: asyncio.Task[None] | None = None
        self._pending: dict[int, asyncio.Future[Any]] = {}
        self._request_id = 0
        self._closing = False

    @property
    def connected(self) -> bool:
        """Return if the socket is connected."""
        return self._writer is not None and not self._writer.is_closing()

    async def connect(self, timeout: float = CONNECT_TIMEOUT) -> None:
        """Connect to the socket, waiting for mpv to create it."""
        deadline = time.monotonic() + timeout
        last_err: OSError | None = None
        while time.monotonic() < deadline:
            try:
                self._reader, self._writer = await asyncio.open_unix_connection(self.socket_path)
                break
            except OSError as err:
                last_err = err
                await asyncio.sleep(0.05)
        else:
            raise BackendCrashed(
                f"Failed to connect to mpv socket {self.socket_path}: {last_err}"
            )
        self._read_task = asyncio.create_task(self._read_loop())

    async def command(self, *args: Any, timeout: float = COMMAND_TIMEOUT) -> Any:
        """Send a command and return the data of its reply."""
        if not self.connected:
            raise BackendCrashed("mpv is not connected")
        assert self._writer is not None  # for type checking
        self._request_id += 1
        request_id = self._request_id
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        payload = json.dumps({"command": list(args), "request_id": request_id})
        self.logger.log(VERBOSE_LOG_LEVEL, "mpv <- %s", payload)
        try:
            self._writer.write(payload.encode() + b"\n")
            await self._writer.drain()
            async with asyncio.timeout(timeout):
                response = await future
        except (ConnectionError, BrokenPipeError) as err:
            raise BackendCrashed(f"Lost connection to mpv: {err}") from err
        except TimeoutError as err:
            raise TransientBackendError(f"mpv did not answer {args[0]} in time") from err
        finally:
            self._pending.pop(request_id, None)
        if (error := response.get("error")) != "success":
            raise MpvCommandError(f"mpv command {args[0]} failed: {error}")
        return response.get("data")

    async def set_property(self, name: str, value: Any) -> None:
        """Set a property."""
        await self.command("set_property", name, value)

    async def get_property(self, name: str) -> Any:
        """Get the value of a property."""
        return await self.command("get_property", name)

    async def observe_property(self, observer_id: int, name: str) -> None:
        """Ask mpv to send property-change events for a property."""
        await self.command("observe_property", observer_id, name)

    async def close(self) -> None:
        """Close the connection."""
        self._closing = True
        if self._read_task and not self._read_task.done():
            self._read_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._read_task
        if self._writer is not None:
            self._writer.close()
            with suppress(ConnectionError, BrokenPipeError):
                await self._writer.wait_closed()
        self._fail_pending("mpv connection closed")

    async def _read_loop(self) -> None:
        assert self._reader is not None  # for type checking
        while True:
            try:
                line = await self._reader.readline()
            except (ConnectionError, ValueError) as err:
                self.logger.debug("Error reading from mpv socket: %s", err)
                line = b""
            if not line:
                break
            try:
                message = json.loads(line)
            except json.JSONDecodeError:
                self.logger.debug("Ignoring malformed message from mpv: %s", line)
                continue
            if not isinstance(message, dict):
                continue
            self.logger.log(VERBOSE_LOG_LEVEL, "mpv -> %s", message)
            if (request_id := message.get("request_id")) in self._pending:
                if not (future := self._pending[request_id]).done():
                    future.set_result(message)
            elif "event" in message:
                self._on_event(message)
        # connection lost
        if self._writer is not None:
            self._writer.close()
        self._fail_pending("mpv closed the connection")
        if not self._closing:
            self._on_disconnect()

    def _fail_pending(self, reason: str) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(BackendCrashed(reason))
        self._pending.clear()
