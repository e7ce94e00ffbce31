"""Tests for the MPRIS D-Bus interfaces."""

from unittest.mock import AsyncMock, MagicMock, Mock, patch

import pytest
from dbus_fast import Variant
from dbus_fast.constants import RequestNameReply
from dbus_fast.errors import InvalidAddressError

from mixdeck.controllers.mpris import (
    OBJECT_PATH,
    MprisPlayerInterface,
    MprisRootInterface,
    MprisServer,
    metadata_to_variants,
)
from mixdeck.models.errors import SetupFailedError


@pytest.fixture
def service() -> Mock:
    """Return a mocked media control service."""
    media_control = Mock()
    media_control.playback_status = "Playing"
    media_control.loop_status = "Track"
    media_control.shuffle = False
    media_control.volume = 0.4
    media_control.position = 12_000_000
    media_control.can_seek = True
    media_control.metadata = {
        "mpris:trackid": "/org/mpris/MediaPlayer2/TrackList/abc",
        "xesam:title": "Song",
    }
    return media_control


def test_metadata_to_variants() -> None:
    """Test metadata values are wrapped with their D-Bus signature."""
    variants = metadata_to_variants(
        {
            "mpris:trackid": "/org/mpris/MediaPlayer2/TrackList/abc",
            "mpris:length": 1_000_000,
            "xesam:artist": ["Artist"],
            "unknown:key": "dropped",
        }
    )
    assert variants == {
        "mpris:trackid": Variant("o", "/org/mpris/MediaPlayer2/TrackList/abc"),
        "mpris:length": Variant("x", 1_000_000),
        "xesam:artist": Variant("as", ["Artist"]),
    }


def test_root_interface(service: Mock) -> None:
    """Test the root interface properties and Quit."""
    root = MprisRootInterface(service)
    assert root.Identity == "MixDeck"
    assert root.CanQuit is True
    assert root.HasTrackList is False
    root.Quit()
    service.quit.assert_called_once_with()


def test_player_methods(service: Mock) -> None:
    """Test the player methods are passed to the service."""
    player = MprisPlayerInterface(service)
    player.Play()
    player.Pause()
    player.PlayPause()
    player.Stop()
    player.Next()
    player.Previous()
    player.Seek(-5_000_000)
    player.SetPosition("/org/mpris/MediaPlayer2/TrackList/abc", 30_000_000)

    service.play.assert_called_once_with()
    service.pause.assert_called_once_with()
    service.play_pause.assert_called_once_with()
    service.stop.assert_called_once_with()
    service.next.assert_called_once_with()
    service.previous.assert_called_once_with()
    service.seek.assert_called_once_with(-5_000_000)
    service.set_position.assert_called_once_with(
        "/org/mpris/MediaPlayer2/TrackList/abc", 30_000_000
    )


def test_player_properties(service: Mock) -> None:
    """Test the player properties read from the service."""
    player = MprisPlayerInterface(service)
    assert player.PlaybackStatus == "Playing"
    assert player.LoopStatus == "Track"
    assert player.Shuffle is False
    assert player.Volume == 0.4
    assert player.Position == 12_000_000
    assert player.CanSeek is True
    assert player.Rate == 1.0
    assert player.Metadata["xesam:title"] == Variant("s", "Song")


def test_player_property_setters(service: Mock) -> None:
    """Test writable properties are passed to the service."""
    player = MprisPlayerInterface(service)
    player.Volume = 0.8
    player.LoopStatus = "Playlist"
    player.Shuffle = True
    player.Rate = 2.0

    service.set_volume.assert_called_once_with(0.8)
    service.set_loop_status.assert_called_once_with("Playlist")
    service.set_shuffle.assert_called_once_with(True)


async def test_server_start_and_stop(service: Mock) -> None:
    """Test the server exports both interfaces and requests the bus name."""
    bus = MagicMock()
    bus.request_name = AsyncMock(return_value=RequestNameReply.PRIMARY_OWNER)
    remove_listener = Mock()
    service.add_listener.return_value = remove_listener
    with patch("mixdeck.controllers.mpris.MessageBus") as message_bus:
        message_bus.return_value.connect = AsyncMock(return_value=bus)
        server = MprisServer(service, name="test")
        await server.start()

    assert bus.export.call_count == 2
    assert bus.export.call_args_list[0].args == (OBJECT_PATH, server.root)
    assert bus.export.call_args_list[1].args == (OBJECT_PATH, server.player)
    bus.request_name.assert_awaited_once_with("org.mpris.MediaPlayer2.test")
    service.add_listener.assert_called_once()

    await server.stop()
    remove_listener.assert_called_once_with()
    bus.unexport.assert_called_once_with(OBJECT_PATH)
    bus.disconnect.assert_called_once_with()


async def test_server_without_session_bus(service: Mock) -> None:
    """Test a missing session bus fails the setup."""
    with patch("mixdeck.controllers.mpris.MessageBus") as message_bus:
        message_bus.return_value.connect = AsyncMock(side_effect=InvalidAddressError("no bus"))
        server = MprisServer(service)
        with pytest.raises(SetupFailedError):
            await server.start()
    service.add_listener.assert_not_called()


def test_server_notifications(service: Mock) -> None:
    """Test property changes and seeks are emitted on the player interface."""
    server = MprisServer(service)
    with (
        patch.object(server.player, "emit_properties_changed") as emit,
        patch.object(server.player, "Seeked") as seeked,
    ):
        server._on_properties_changed(
            {"PlaybackStatus": "Paused", "Metadata": {"xesam:title": "Song"}}
        )
        server._on_seeked(5_000_000)

    emit.assert_called_once_with(
        {"PlaybackStatus": "Paused", "Metadata": {"xesam:title": Variant("s", "Song")}}
    )
    seeked.assert_called_once_with(5_000_000)
