"""Tests for the AsyncProcess helper."""

import asyncio
import sys

import pytest

from mixdeck.constants import VERBOSE_LOG_LEVEL
from mixdeck.helpers.process import AsyncProcess, get_subprocess_env

SCRIPT = "import sys, time; print('engine ready', file=sys.stderr, flush=True); time.sleep(30)"


def test_subprocess_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test LD_PRELOAD is stripped and extra variables are added."""
    monkeypatch.setenv("LD_PRELOAD", "/lib/hook.so")
    env = get_subprocess_env({"MIXDECK": "1"})
    assert "LD_PRELOAD" not in env
    assert env["MIXDECK"] == "1"


async def test_start_and_close(caplog: pytest.LogCaptureFixture) -> None:
    """Test the process output is logged and close stops the process."""
    caplog.set_level(VERBOSE_LOG_LEVEL)
    process = AsyncProcess([sys.executable, "-c", SCRIPT], name="engine")
    await process.start()
    assert process.returncode is None

    for _ in range(100):
        if "engine ready" in caplog.text:
            break
        await asyncio.sleep(0.05)

    await process.close(timeout=2)

    assert process.returncode is not None
    assert "engine ready" in caplog.text


async def test_close_not_started() -> None:
    """Test closing a process that was never started."""
    process = AsyncProcess(["mpv"])
    await process.close()
    assert process.name == "mpv"
    assert process.returncode is None
