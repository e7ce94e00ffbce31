"""Tests for the throttle and retry helpers."""

import logging
import time
from unittest.mock import patch

import pytest

from mixdeck.helpers.throttle_retry import Throttler, ThrottlerManager, throttle_with_retries
from mixdeck.models.errors import AuthenticationFailed, RetriesExhausted, TransientBackendError


class FlakyClient:
    """Client failing a number of times before it succeeds."""

    def __init__(
        self, failures: list[Exception], retry_attempts: int = 3, initial_backoff: float = 0
    ) -> None:
        """Initialize the client."""
        self.throttler = ThrottlerManager(
            rate_limit=10,
            period=1,
            retry_attempts=retry_attempts,
            initial_backoff=initial_backoff,
        )
        self.logger = logging.getLogger("test")
        self.failures = failures
        self.calls = 0

    @throttle_with_retries
    async def fetch(self, value: str) -> str:
        """Return the value, after raising the configured failures."""
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return value


async def test_success() -> None:
    """Test a call that succeeds right away."""
    client = FlakyClient([])
    assert await client.fetch("ok") == "ok"
    assert client.calls == 1


async def test_retry_transient_error() -> None:
    """Test transient errors are retried."""
    client = FlakyClient([TransientBackendError("busy"), TransientBackendError("busy")])
    assert await client.fetch("ok") == "ok"
    assert client.calls == 3


async def test_retries_exhausted() -> None:
    """Test retries stop after the configured number of attempts."""
    client = FlakyClient([TransientBackendError("busy")] * 5)
    with pytest.raises(RetriesExhausted) as exc_info:
        await client.fetch("ok")
    assert client.calls == 3
    assert isinstance(exc_info.value.__cause__, TransientBackendError)


async def test_other_errors_are_not_retried() -> None:
    """Test errors that are not transient are raised right away."""
    client = FlakyClient([AuthenticationFailed("nope")])
    with pytest.raises(AuthenticationFailed):
        await client.fetch("ok")
    assert client.calls == 1


async def test_throttler() -> None:
    """Test the throttler delays calls exceeding the rate limit."""
    throttler = Throttler(rate_limit=2, period=0.2)
    assert await throttler.acquire() == 0
    assert await throttler.acquire() == 0
    start = time.monotonic()
    delay = await throttler.acquire()
    assert delay > 0
    assert time.monotonic() - start >= 0.1


async def test_backoff_doubles() -> None:
    """Test the delay between attempts doubles."""
    client = FlakyClient([TransientBackendError("busy")] * 3, retry_attempts=4, initial_backoff=1)
    with patch("asyncio.sleep") as mock_sleep:
        assert await client.fetch("ok") == "ok"
    assert [call.args[0] for call in mock_sleep.call_args_list] == [1, 2, 4]


async def test_backoff_hint_raises_the_delay() -> None:
    """Test a backoff time given by the error raises the delay, which keeps growing."""
    client = FlakyClient(
        [
            TransientBackendError("slow down", backoff_time=5),
            TransientBackendError("busy", backoff_time=1),
            TransientBackendError("busy"),
        ],
        retry_attempts=4,
        initial_backoff=1,
    )
    with patch("asyncio.sleep") as mock_sleep:
        assert await client.fetch("ok") == "ok"
    assert [call.args[0] for call in mock_sleep.call_args_list] == [5, 10, 20]
