"""Tests for the MixDeck hub and the console helpers."""

import asyncio
from unittest.mock import Mock

import pytest

from mixdeck.__main__ import log_event
from mixdeck.hub import MixDeck
from mixdeck.models.enums import ErrorKind, PlaybackState, TrackSource
from mixdeck.models.errors import BackendUnavailable
from mixdeck.models.event import PlaybackEvent
from mixdeck.providers import LocalAdapter
from tests.common import FakeBackendControl, make_track


async def test_register_backend(mixdeck: MixDeck) -> None:
    """Test a registered factory is used until it is unregistered."""
    control = FakeBackendControl()
    unregister = mixdeck.register_backend(TrackSource.LOCAL, control.factory(TrackSource.LOCAL))

    adapter = mixdeck.create_adapter(TrackSource.LOCAL)
    assert adapter is control.adapters[0]

    unregister()
    adapter = mixdeck.create_adapter(TrackSource.LOCAL)
    assert isinstance(adapter, LocalAdapter)


async def test_disabled_backend(mixdeck: MixDeck) -> None:
    """Test no adapter is created for a disabled backend."""
    mixdeck.config.get_backend_config(TrackSource.YOUTUBE).enabled = False
    with pytest.raises(BackendUnavailable):
        mixdeck.create_adapter(TrackSource.YOUTUBE)


async def test_create_task(mixdeck: MixDeck) -> None:
    """Test tasks with the same id are not started twice."""
    event = asyncio.Event()

    task = mixdeck.create_task(event.wait, task_id="waiter")
    assert mixdeck.create_task(event.wait, task_id="waiter") is task
    assert mixdeck.get_task("waiter") is task

    event.set()
    await task
    await asyncio.sleep(0)
    assert mixdeck.get_task("waiter") is None


async def test_create_task_not_a_coroutine(mixdeck: MixDeck) -> None:
    """Test plain functions are refused."""
    with pytest.raises(RuntimeError):
        mixdeck.create_task(print)


async def test_call_later(mixdeck: MixDeck) -> None:
    """Test timers with the same id are debounced."""
    callback = Mock()
    mixdeck.call_later(0.01, callback, 1, task_id="debounce")
    mixdeck.call_later(0.01, callback, 2, task_id="debounce")

    await asyncio.sleep(0.05)

    callback.assert_called_once_with(2)


async def test_stop_request(mixdeck: MixDeck) -> None:
    """Test waiting for a stop request."""
    waiter = asyncio.create_task(mixdeck.wait_for_stop_request())
    await asyncio.sleep(0)
    assert not waiter.done()

    mixdeck.request_stop()
    await asyncio.wait_for(waiter, 1)


def test_log_event(caplog: pytest.LogCaptureFixture) -> None:
    """Test session events are logged for the console."""
    log_event(PlaybackEvent.track_changed(make_track("A")))
    log_event(PlaybackEvent.state_changed(PlaybackState.ERROR, "broken"))
    log_event(PlaybackEvent.backend_error(ErrorKind.AUTH, "token expired"))

    assert "Track: Track A" in caplog.text
    assert "Playback error: broken" in caplog.text
    assert "Backend error (auth): token expired" in caplog.text
