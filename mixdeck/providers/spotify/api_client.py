"""API Client for the Spotify Web API (player endpoints)."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import aiohttp

from mixdeck.constants import CONF_ACCESS_TOKEN
from mixdeck.helpers.throttle_retry import ThrottlerManager, throttle_with_retries
from mixdeck.models.errors import (
    AuthenticationFailed,
    TrackUnavailable,
    TransientBackendError,
)

from .constants import (
    API_BASE_URL,
    INITIAL_BACKOFF,
    RATE_LIMIT,
    RATE_LIMIT_PERIOD,
    REQUEST_TIMEOUT,
    RETRY_ATTEMPTS,
)

if TYPE_CHECKING:
    from aiohttp import ClientResponse

    from .adapter import SpotifyAdapter


class SpotifyAPIClient:
    """Client for the Spotify Web API."""

    def __init__(self, adapter: SpotifyAdapter) -> None:
        """Initialize API client."""
        self.adapter = adapter
        self.logger = adapter.logger
        self.mixdeck = adapter.mixdeck
        self.access_token: str | None = adapter.config.get_value(CONF_ACCESS_TOKEN)
        self.throttler = ThrottlerManager(
            rate_limit=RATE_LIMIT,
            period=RATE_LIMIT_PERIOD,
            retry_attempts=RETRY_ATTEMPTS,
            initial_backoff=INITIAL_BACKOFF,
        )

    async def get_track(self, track_id: str) -> dict[str, Any]:
        """Get the catalog details of a track."""
        return await self._request("GET", f"tracks/{track_id}", params={"market": "from_token"})

    async def get_playback_state(self) -> dict[str, Any]:
        """Get the state of the user's playback, empty when nothing is active."""
        return await self._request("GET", "me/player")

    async def start_playback(self, uris: list[str], device_id: str | None = None) -> None:
        """Start playing the given uris."""
        await self._request(
            "PUT",
            "me/player/play",
            params=self._device_params(device_id),
            json={"uris": uris, "position_ms": 0},
        )

    async def resume_playback(self, device_id: str | None = None) -> None:
        """Resume the current playback."""
        await self._request("PUT", "me/player/play", params=self._device_params(device_id))

    async def pause_playback(self, device_id: str | None = None) -> None:
        """Pause the current playback."""
        await self._request("PUT", "me/player/pause", params=self._device_params(device_id))

    async def seek(self, position_ms: int, device_id: str | None = None) -> None:
        """Seek in the current track."""
        params = {"position_ms": position_ms, **self._device_params(device_id)}
        await self._request("PUT", "me/player/seek", params=params)

    async def set_volume(self, volume: int, device_id: str | None = None) -> None:
        """Set the volume of the device."""
        params = {"volume_percent": volume, **self._device_params(device_id)}
        await self._request("PUT", "me/player/volume", params=params)

    @staticmethod
    def _device_params(device_id: str | None) -> dict[str, str]:
        return {"device_id": device_id} if device_id else {}

    @throttle_with_retries
    async def _request(self, method: str, endpoint: str, **kwargs: Any) -> dict[str, Any]:
        """Handle API requests internally."""
        if not self.access_token:
            raise AuthenticationFailed("No Spotify access token configured")
        url = f"{API_BASE_URL}/{endpoint}"
        headers = kwargs.pop("headers", {})
        headers["Authorization"] = f"Bearer {self.access_token}"
        self.logger.debug("Making %s request to Spotify API: %s", method, endpoint)
        try:
            async with self.mixdeck.http_session.request(
                method,
                url,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT),
                **kwargs,
            ) as response:
                return await self._handle_response(response, endpoint)
        except (aiohttp.ClientConnectionError, TimeoutError) as err:
            raise TransientBackendError(f"Unable to reach Spotify: {err}", backoff_time=1) from err

    async def _handle_response(self, response: ClientResponse, endpoint: str) -> dict[str, Any]:
        """Handle API response and common error conditions."""
        if response.status == 401:
            raise AuthenticationFailed("Spotify rejected the access token")
        if response.status == 403:
            raise AuthenticationFailed("Spotify account is not allowed to control playback")
        if response.status == 404:
            if endpoint.startswith("me/player"):
                raise TransientBackendError("No active Spotify device found", backoff_time=1)
            raise TrackUnavailable(f"Item not found: {response.url}")
        if response.status == 429:
            retry_after = int(response.headers.get("Retry-After", 30))
            raise TransientBackendError("Spotify rate limit reached", backoff_time=retry_after)
        if response.status == 400:
            raise TrackUnavailable(f"Spotify refused {endpoint}: {await response.text()}")
        if response.status >= 400:
            text = await response.text()
            self.logger.error("API error: %s - %s", response.status, text)
            raise TransientBackendError(f"Spotify API error {response.status}")

        if response.status in (202, 204) or response.content_length == 0:
            return {}
        try:
            data: dict[str, Any] = await response.json()
        except (json.JSONDecodeError, aiohttp.ContentTypeError) as err:
            raise TransientBackendError("Failed to parse Spotify response") from err
        return data
