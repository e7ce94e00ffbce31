"""Test the Spotify backend adapter."""

from unittest.mock import AsyncMock

import pytest

from mixdeck.hub import MixDeck
from mixdeck.models.enums import ErrorKind, EventType, PlaybackState, TrackSource
from mixdeck.models.errors import AuthenticationFailed, TrackUnavailable
from mixdeck.models.event import PlaybackEvent
from mixdeck.providers.spotify.adapter import SpotifyAdapter
from tests.common import make_track

URI = "spotify:track:abc"


def emitted(adapter: SpotifyAdapter) -> list[PlaybackEvent]:
    """Return the events put on the event stream so far."""
    events = []
    while not adapter._events.empty():
        if (event := adapter._events.get_nowait()) is not None:
            events.append(event)
    return events


@pytest.fixture
def adapter(mixdeck: MixDeck) -> SpotifyAdapter:
    """Return a Spotify adapter with a mocked API client."""
    config = mixdeck.config.get_backend_config(TrackSource.SPOTIFY)
    spotify_adapter = SpotifyAdapter(mixdeck, config)
    spotify_adapter.client = AsyncMock()
    spotify_adapter.client.get_track.return_value = {
        "uri": URI,
        "is_playable": True,
        "duration_ms": 200000,
    }
    return spotify_adapter


@pytest.fixture
def playing_adapter(adapter: SpotifyAdapter) -> SpotifyAdapter:
    """Return an adapter that started playing a track some time ago."""
    adapter._track = make_track("abc", TrackSource.SPOTIFY, duration=200)
    adapter._uri = URI
    adapter._started = True
    adapter._remote_playing = True
    adapter._last_command = 0.0
    return adapter


def playback_state(is_playing: bool, progress_ms: int, uri: str = URI) -> dict:
    """Return a playback state as reported by the Web API."""
    return {"is_playing": is_playing, "progress_ms": progress_ms, "item": {"uri": uri}}


async def test_load_resolves_duration(adapter: SpotifyAdapter) -> None:
    """Test a track without duration gets the duration of the catalog."""
    await adapter.load(make_track("abc", TrackSource.SPOTIFY, duration=None))

    adapter.client.get_track.assert_awaited_once_with("abc")
    events = emitted(adapter)
    assert len(events) == 1
    assert events[0].event == EventType.TRACK_CHANGED
    assert events[0].data.duration == 200.0


async def test_load_unplayable(adapter: SpotifyAdapter) -> None:
    """Test a track that is not playable in the market of the account."""
    adapter.client.get_track.return_value = {"uri": URI, "is_playable": False}

    with pytest.raises(TrackUnavailable):
        await adapter.load(make_track("abc", TrackSource.SPOTIFY))


async def test_play_applies_volume(adapter: SpotifyAdapter) -> None:
    """Test the volume set before playback is applied once playback started."""
    await adapter.load(make_track("abc", TrackSource.SPOTIFY))
    await adapter.set_volume(70)
    adapter.client.set_volume.assert_not_awaited()

    await adapter.play()

    adapter.client.start_playback.assert_awaited_once_with([URI], None)
    adapter.client.set_volume.assert_awaited_once_with(70, None)
    assert [event.data for event in emitted(adapter)] == [PlaybackState.PLAYING]

    await adapter.stop()
    adapter.client.pause_playback.assert_awaited_once_with(None)
    assert adapter.stopped


async def test_seek(adapter: SpotifyAdapter) -> None:
    """Test seek positions are sent in milliseconds."""
    await adapter.seek(61.5)

    adapter.client.seek.assert_awaited_once_with(61500, None)
    assert adapter.position() == 61.5


async def test_setup_without_token(mixdeck: MixDeck) -> None:
    """Test setup fails without an access token."""
    config = mixdeck.config.get_backend_config(TrackSource.SPOTIFY)
    config.values.pop("access_token")
    spotify_adapter = SpotifyAdapter(mixdeck, config)

    with pytest.raises(AuthenticationFailed):
        await spotify_adapter.ensure_ready()


async def test_state_playing(playing_adapter: SpotifyAdapter) -> None:
    """Test a playing state only reports the position."""
    assert playing_adapter.process_playback_state(playback_state(True, 12000)) is False

    events = emitted(playing_adapter)
    assert [(event.event, event.data) for event in events] == [
        (EventType.POSITION_UPDATED, 12.0)
    ]


async def test_state_paused_and_resumed_on_device(playing_adapter: SpotifyAdapter) -> None:
    """Test pause and resume on the device itself are reported."""
    playing_adapter.process_playback_state(playback_state(True, 50000))
    playing_adapter.process_playback_state(playback_state(False, 60000))
    playing_adapter.process_playback_state(playback_state(True, 61000))

    events = [(event.event, event.data) for event in emitted(playing_adapter)]
    assert events == [
        (EventType.POSITION_UPDATED, 50.0),
        (EventType.STATE_CHANGED, PlaybackState.PAUSED),
        (EventType.STATE_CHANGED, PlaybackState.PLAYING),
        (EventType.POSITION_UPDATED, 61.0),
    ]


@pytest.mark.parametrize("progress_ms", [0, 199000])
async def test_state_track_ended(playing_adapter: SpotifyAdapter, progress_ms: int) -> None:
    """Test playback stopping at the start or the end of the track means it ended."""
    playing_adapter.process_playback_state(playback_state(True, 150000))

    assert playing_adapter.process_playback_state(playback_state(False, progress_ms)) is True

    events = emitted(playing_adapter)
    assert events[-1].event == EventType.TRACK_ENDED


async def test_state_other_track(playing_adapter: SpotifyAdapter) -> None:
    """Test the device moving on to another track ends ours."""
    playing_adapter.process_playback_state(playback_state(True, 150000))

    result = playing_adapter.process_playback_state(
        playback_state(True, 1000, "spotify:track:other")
    )

    assert result is True
    assert emitted(playing_adapter)[-1].event == EventType.TRACK_ENDED


async def test_state_never_started(playing_adapter: SpotifyAdapter) -> None:
    """Test a track that never started playing on the device is reported unavailable."""
    assert playing_adapter.process_playback_state({}) is True

    events = emitted(playing_adapter)
    assert len(events) == 1
    assert events[0].event == EventType.BACKEND_ERROR
    assert events[0].data.kind == ErrorKind.TRACK_UNAVAILABLE


async def test_state_ignored_right_after_command(playing_adapter: SpotifyAdapter) -> None:
    """Test a lagging state right after a command is not trusted."""
    playing_adapter._last_command = float("inf")

    assert playing_adapter.process_playback_state({}) is False
    assert playing_adapter.process_playback_state(playback_state(False, 30000)) is False
    assert emitted(playing_adapter) == []


async def test_poll_auth_failure(playing_adapter: SpotifyAdapter) -> None:
    """Test polling stops with an auth error when the token expired."""
    playing_adapter.poll_interval = 0
    playing_adapter.client.get_playback_state.side_effect = AuthenticationFailed("expired")

    await playing_adapter._poll_loop()

    events = emitted(playing_adapter)
    assert len(events) == 1
    assert events[0].data.kind == ErrorKind.AUTH
    assert events[0].message == "expired"
