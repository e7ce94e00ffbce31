"""
AsyncProcess.

Wrapper around an asyncio subprocess for long running engine processes
(such as mpv), taking care of logging its output and of shutting it down
without leaving zombies behind.
"""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import suppress
from signal import SIGINT

from mixdeck.constants import MIXDECK_LOGGER_NAME, VERBOSE_LOG_LEVEL

LOGGER = logging.getLogger(f"{MIXDECK_LOGGER_NAME}.helpers.process")


def get_subprocess_env(env: dict[str, str] | None = None) -> dict[str, str]:
    """Get environment for subprocess, stripping LD_PRELOAD."""
    result = dict(os.environ)
    result.pop("LD_PRELOAD", None)
    if env:
        result.update(env)
    return result


class AsyncProcess:
    """Long running subprocess with stderr logging and graceful shutdown."""

    def __init__(
        self,
        args: list[str],
        name: str | None = None,
        env: dict[str, str] | None = None,
    ) -> None:
        """Initialize AsyncProcess.

        :param args: Command and arguments to execute.
        :param name: Process name for logging.
        :param env: Extra environment variables for the subprocess.
        """
        self.proc: asyncio.subprocess.Process | None = None
        self.name = name or os.path.basename(args[0])
        self.logger = LOGGER.getChild(self.name)
        self._args = args
        self._env = get_subprocess_env(env)
        self._stderr_task: asyncio.Task[None] | None = None

    @property
    def returncode(self) -> int | None:
        """Return the returncode of the process, None while it runs."""
        return None if self.proc is None else self.proc.returncode

    async def start(self) -> None:
        """Spawn the process."""
        self.proc = await asyncio.create_subprocess_exec(
            *self._args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
            env=self._env,
        )
        self.logger.log(VERBOSE_LOG_LEVEL, "Started %s with PID %s", self.name, self.proc.pid)
        self._stderr_task = asyncio.create_task(self._log_stderr())

    async def _log_stderr(self) -> None:
        assert self.proc is not None
        assert self.proc.stderr is not None
        while True:
            try:
                line = await self.proc.stderr.readline()
            except ValueError:
                # too long for the stream buffer, already consumed
                continue
            if not line:
                return
            if decoded := line.decode("utf-8", errors="ignore").strip():
                self.logger.log(VERBOSE_LOG_LEVEL, decoded)

    async def close(self, timeout: float = 5) -> None:
        """Ask the process to exit (SIGINT), escalating to terminate and kill."""
        if self.proc is None:
            return
        for stop in (self._interrupt, self.proc.terminate, self.proc.kill):
            if self.proc.returncode is not None:
                break
            with suppress(ProcessLookupError):
                stop()
            try:
                await asyncio.wait_for(self.proc.wait(), timeout)
            except TimeoutError:
                self.logger.debug("%s (PID %s) did not stop in time", self.name, self.proc.pid)
        if self._stderr_task is not None and not self._stderr_task.done():
            self._stderr_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._stderr_task
        self.logger.log(
            VERBOSE_LOG_LEVEL,
            "%s (PID %s) stopped with returncode %s",
            self.name,
            self.proc.pid,
            self.returncode,
        )

    def _interrupt(self) -> None:
        assert self.proc is not None
        self.proc.send_signal(SIGINT)
