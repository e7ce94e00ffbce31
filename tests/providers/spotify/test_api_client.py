"""Test Spotify API Client."""

from unittest.mock import AsyncMock, MagicMock, Mock, patch

import aiohttp
import pytest
from aiohttp import ClientResponse

from mixdeck.helpers.throttle_retry import ThrottlerManager
from mixdeck.models.errors import AuthenticationFailed, RetriesExhausted, TrackUnavailable
from mixdeck.providers.spotify.api_client import SpotifyAPIClient


@pytest.fixture
def adapter_mock() -> Mock:
    """Return a mock adapter."""
    adapter = Mock()
    adapter.config.get_value.return_value = "token"
    adapter.mixdeck = Mock()
    adapter.mixdeck.http_session = AsyncMock()
    adapter.logger = Mock()
    return adapter


@pytest.fixture
def api_client(adapter_mock: Mock) -> SpotifyAPIClient:
    """Return a SpotifyAPIClient instance that retries without waiting."""
    client = SpotifyAPIClient(adapter_mock)
    client.throttler = ThrottlerManager(
        rate_limit=10, period=1, retry_attempts=3, initial_backoff=0
    )
    return client


def mock_response(adapter_mock: Mock, status: int, json_data: dict | None = None) -> AsyncMock:
    """Let the http session answer every request with the given response."""
    response = AsyncMock(spec=ClientResponse)
    response.status = status
    response.content_length = None
    response.json.return_value = json_data
    response.text.return_value = ""
    response.url = "https://api.spotify.com/v1/test"

    request_ctx = AsyncMock()
    request_ctx.__aenter__.return_value = response
    adapter_mock.mixdeck.http_session.request = MagicMock(return_value=request_ctx)
    return response


async def test_get_track(api_client: SpotifyAPIClient, adapter_mock: Mock) -> None:
    """Test successful track lookup."""
    mock_response(adapter_mock, 200, {"uri": "spotify:track:abc", "is_playable": True})

    result = await api_client.get_track("abc")

    assert result == {"uri": "spotify:track:abc", "is_playable": True}
    request = adapter_mock.mixdeck.http_session.request
    request.assert_called_once()
    args, kwargs = request.call_args
    assert args == ("GET", "https://api.spotify.com/v1/tracks/abc")
    assert kwargs["headers"] == {"Authorization": "Bearer token"}
    assert kwargs["params"] == {"market": "from_token"}


async def test_start_playback(api_client: SpotifyAPIClient, adapter_mock: Mock) -> None:
    """Test starting playback on a device."""
    mock_response(adapter_mock, 204)

    await api_client.start_playback(["spotify:track:abc"], "device1")

    args, kwargs = adapter_mock.mixdeck.http_session.request.call_args
    assert args == ("PUT", "https://api.spotify.com/v1/me/player/play")
    assert kwargs["params"] == {"device_id": "device1"}
    assert kwargs["json"] == {"uris": ["spotify:track:abc"], "position_ms": 0}


async def test_seek_and_volume(api_client: SpotifyAPIClient, adapter_mock: Mock) -> None:
    """Test seek and volume are sent as query parameters."""
    mock_response(adapter_mock, 204)
    request = adapter_mock.mixdeck.http_session.request

    await api_client.seek(61500)
    assert request.call_args.args[1].endswith("me/player/seek")
    assert request.call_args.kwargs["params"] == {"position_ms": 61500}

    await api_client.set_volume(30, "device1")
    assert request.call_args.kwargs["params"] == {"volume_percent": 30, "device_id": "device1"}


async def test_empty_response(api_client: SpotifyAPIClient, adapter_mock: Mock) -> None:
    """Test no content responses return an empty dict."""
    response = mock_response(adapter_mock, 204)

    assert await api_client.get_playback_state() == {}
    response.json.assert_not_called()


async def test_401_error(api_client: SpotifyAPIClient, adapter_mock: Mock) -> None:
    """Test request with 401 error."""
    mock_response(adapter_mock, 401)

    with pytest.raises(AuthenticationFailed):
        await api_client.get_track("abc")
    # not retried
    assert adapter_mock.mixdeck.http_session.request.call_count == 1


async def test_404_track(api_client: SpotifyAPIClient, adapter_mock: Mock) -> None:
    """Test a track that does not exist."""
    mock_response(adapter_mock, 404)

    with pytest.raises(TrackUnavailable):
        await api_client.get_track("abc")


async def test_404_no_device(api_client: SpotifyAPIClient, adapter_mock: Mock) -> None:
    """Test player calls without an active device are retried."""
    mock_response(adapter_mock, 404)

    with patch("asyncio.sleep"), pytest.raises(RetriesExhausted):
        await api_client.pause_playback()
    assert adapter_mock.mixdeck.http_session.request.call_count == 3


async def test_429_error(api_client: SpotifyAPIClient, adapter_mock: Mock) -> None:
    """Test request with 429 error."""
    response = mock_response(adapter_mock, 429)
    response.headers = {"Retry-After": "0"}

    with pytest.raises(RetriesExhausted):
        await api_client.get_track("abc")
    assert adapter_mock.mixdeck.http_session.request.call_count == 3


async def test_server_error_then_success(
    api_client: SpotifyAPIClient, adapter_mock: Mock
) -> None:
    """Test a server error is retried."""
    error_response = AsyncMock(spec=ClientResponse)
    error_response.status = 502
    error_response.text.return_value = "Bad Gateway"
    ok_response = AsyncMock(spec=ClientResponse)
    ok_response.status = 200
    ok_response.content_length = 20
    ok_response.json.return_value = {"is_playing": True}

    error_ctx = AsyncMock()
    error_ctx.__aenter__.return_value = error_response
    ok_ctx = AsyncMock()
    ok_ctx.__aenter__.return_value = ok_response
    adapter_mock.mixdeck.http_session.request = MagicMock(side_effect=[error_ctx, ok_ctx])

    result = await api_client.get_playback_state()

    assert result == {"is_playing": True}
    adapter_mock.logger.error.assert_called_once()


async def test_connection_error(api_client: SpotifyAPIClient, adapter_mock: Mock) -> None:
    """Test connection errors are retried with backoff."""
    adapter_mock.mixdeck.http_session.request = MagicMock(
        side_effect=aiohttp.ClientConnectionError("connection refused")
    )

    with patch("asyncio.sleep") as mock_sleep, pytest.raises(RetriesExhausted):
        await api_client.get_playback_state()
    assert [call.args[0] for call in mock_sleep.call_args_list] == [1, 2]


async def test_no_token(api_client: SpotifyAPIClient, adapter_mock: Mock) -> None:
    """Test requests without a token fail without calling the API."""
    api_client.access_token = None
    adapter_mock.mixdeck.http_session.request = MagicMock()

    with pytest.raises(AuthenticationFailed):
        await api_client.get_playback_state()
    adapter_mock.mixdeck.http_session.request.assert_not_called()
