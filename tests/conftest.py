"""Fixtures for testing MixDeck."""

import json
import logging
import pathlib
from collections.abc import AsyncGenerator

import aiofiles
import pytest

from mixdeck.hub import MixDeck
from mixdeck.models.enums import TrackSource
from tests.common import FakeBackendControl


@pytest.fixture(name="caplog")
def caplog_fixture(caplog: pytest.LogCaptureFixture) -> pytest.LogCaptureFixture:
    """Set log level to debug for tests using the caplog fixture."""
    caplog.set_level(logging.DEBUG)
    return caplog


@pytest.fixture
async def mixdeck(tmp_path: pathlib.Path) -> AsyncGenerator[MixDeck, None]:
    """Start a MixDeck with a temporary config file and without media control.

    :param tmp_path: Temporary directory for test data.
    """
    config_file = tmp_path / "settings.json"
    config_data = {
        "core": {"volume": 50, "shuffle_seed": 1234},
        "backends": {"spotify": {"enabled": True, "values": {"access_token": "token"}}},
    }
    async with aiofiles.open(config_file, "w") as f:
        await f.write(json.dumps(config_data))

    mixdeck_instance = MixDeck(str(config_file), enable_media_control=False)

    await mixdeck_instance.start()

    try:
        yield mixdeck_instance
    finally:
        await mixdeck_instance.stop()


@pytest.fixture
def fake_backends(mixdeck: MixDeck) -> FakeBackendControl:
    """Replace the backends of all sources by fake adapters."""
    control = FakeBackendControl()
    for source in TrackSource:
        mixdeck.register_backend(source, control.factory(source))
    return control
