"""Rate limiting and retry helpers for backend (web) API calls."""

from __future__ import annotations

import asyncio
import functools
import time
from collections import deque
from collections.abc import AsyncGenerator, Awaitable, Callable, Coroutine
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, Concatenate, ParamSpec, Protocol, TypeVar

from mixdeck.models.errors import RetriesExhausted, TransientBackendError

if TYPE_CHECKING:
    import logging

_R = TypeVar("_R")
_P = ParamSpec("_P")


class Throttler:
    """Sliding window rate limiter.

    Allows at most rate_limit acquisitions within period seconds.
    acquire() returns the delay it caused (0 when not throttled).
    """

    def __init__(self, rate_limit: int, period: float = 1.0) -> None:
        """Initialize the Throttler."""
        self.rate_limit = rate_limit
        self.period = period
        self._task_logs: deque[float] = deque()

    def _flush(self) -> None:
        now = time.monotonic()
        while self._task_logs:
            if now - self._task_logs[0] > self.period:
                self._task_logs.popleft()
            else:
                break

    async def acquire(self) -> float:
        """Wait until a slot is free and return how long that took."""
        cur_time = time.monotonic()
        start_time = cur_time
        while True:
            self._flush()
            if len(self._task_logs) < self.rate_limit:
                break
            # sleep until the oldest slot expires
            time_to_release = self._task_logs[0] + self.period - cur_time
            await asyncio.sleep(time_to_release)
            cur_time = time.monotonic()
        self._task_logs.append(cur_time)
        return cur_time - start_time


class ThrottlerManager:
    """Throttler with retry policy for transient failures."""

    def __init__(
        self,
        rate_limit: int,
        period: float = 1,
        retry_attempts: int = 5,
        initial_backoff: float = 5,
    ) -> None:
        """Initialize the ThrottlerManager."""
        self.retry_attempts = retry_attempts
        self.initial_backoff = initial_backoff
        self.throttler = Throttler(rate_limit, period)

    @asynccontextmanager
    async def acquire(self) -> AsyncGenerator[float, None]:
        """Acquire a slot from the throttler, yields the delay."""
        yield await self.throttler.acquire()


class ThrottledClient(Protocol):
    """Object with a throttler and a logger, as used by throttle_with_retries."""

    throttler: ThrottlerManager
    logger: logging.Logger


_T = TypeVar("_T", bound=ThrottledClient)


def throttle_with_retries(
    func: Callable[Concatenate[_T, _P], Awaitable[_R]],
) -> Callable[Concatenate[_T, _P], Coroutine[Any, Any, _R]]:
    """Call the decorated method throttled and retry it on transient errors."""

    @functools.wraps(func)
    async def wrapper(self: _T, *args: _P.args, **kwargs: _P.kwargs) -> _R:
        throttler = self.throttler
        backoff_time = throttler.initial_backoff
        async with throttler.acquire() as delay:
            if delay != 0:
                self.logger.debug(
                    "%s was delayed for %.3f secs due to throttling", func.__name__, delay
                )
            last_error: TransientBackendError | None = None
            for attempt in range(throttler.retry_attempts):
                try:
                    return await func(self, *args, **kwargs)
                except RetriesExhausted:
                    raise
                except TransientBackendError as err:
                    last_error = err
                    backoff_time = max(backoff_time, err.backoff_time)
                    self.logger.info(
                        "Attempt %s/%s failed: %s", attempt + 1, throttler.retry_attempts, err
                    )
                    if attempt < throttler.retry_attempts - 1:
                        self.logger.info("Retrying in %s seconds...", backoff_time)
                        await asyncio.sleep(backoff_time)
                        backoff_time *= 2
            msg = f"Retries exhausted, failed after {throttler.retry_attempts} attempts"
            raise RetriesExhausted(msg) from last_error

    return wrapper
