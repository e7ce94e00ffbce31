"""Helpers for setting up a aiohttp session."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING, Any

import aiohttp
from aiohttp.hdrs import USER_AGENT

from mixdeck.constants import APPLICATION_NAME

if TYPE_CHECKING:
    from mixdeck.hub import MixDeck

MAXIMUM_CONNECTIONS = 100
MAXIMUM_CONNECTIONS_PER_HOST = 10


def create_clientsession(mixdeck: MixDeck, **kwargs: Any) -> aiohttp.ClientSession:
    """Create a new ClientSession with kwargs, identifying as MixDeck."""
    # if a backend requires a different user agent it should pass its own headers
    user_agent = (
        f"{APPLICATION_NAME}/{mixdeck.version} "
        f"aiohttp/{aiohttp.__version__} Python/{sys.version_info[0]}.{sys.version_info[1]}"
    )
    headers = {USER_AGENT: user_agent, **kwargs.pop("headers", {})}
    return aiohttp.ClientSession(
        connector=aiohttp.TCPConnector(
            limit=MAXIMUM_CONNECTIONS,
            limit_per_host=MAXIMUM_CONNECTIONS_PER_HOST,
        ),
        headers=headers,
        **kwargs,
    )
