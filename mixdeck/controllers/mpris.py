"""
MPRIS D-Bus server for the MediaControlService.

Exports org.mpris.MediaPlayer2 and org.mpris.MediaPlayer2.Player on the
session bus. dbus-fast derives the D-Bus signatures from the (string)
annotations of the exported members, so this module does not use postponed
evaluation of annotations.
"""

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from dbus_fast import BusType, PropertyAccess, Variant
from dbus_fast.aio import MessageBus
from dbus_fast.constants import RequestNameReply
from dbus_fast.errors import AuthError, DBusError, InvalidAddressError
from dbus_fast.service import ServiceInterface, dbus_property, method, signal

from mixdeck.constants import APPLICATION_NAME, MIXDECK_LOGGER_NAME, MPRIS_NAME
from mixdeck.models.errors import SetupFailedError

if TYPE_CHECKING:
    from .media_control import MediaControlService

LOGGER = logging.getLogger(f"{MIXDECK_LOGGER_NAME}.mpris")

OBJECT_PATH = "/org/mpris/MediaPlayer2"
ROOT_INTERFACE = "org.mpris.MediaPlayer2"
PLAYER_INTERFACE = "org.mpris.MediaPlayer2.Player"

# D-Bus signature of every metadata key we send
METADATA_SIGNATURES = {
    "mpris:trackid": "o",
    "mpris:length": "x",
    "mpris:artUrl": "s",
    "xesam:title": "s",
    "xesam:artist": "as",
    "xesam:url": "s",
    "xesam:comment": "as",
}


def metadata_to_variants(metadata: dict[str, Any]) -> dict[str, Variant]:
    """Wrap the metadata values in Variants."""
    return {
        key: Variant(METADATA_SIGNATURES[key], value)
        for key, value in metadata.items()
        if key in METADATA_SIGNATURES
    }


class MprisRootInterface(ServiceInterface):
    """The org.mpris.MediaPlayer2 interface."""

    def __init__(self, service: "MediaControlService") -> None:
        """Initialize."""
        super().__init__(ROOT_INTERFACE)
        self.service = service

    @method()
    def Raise(self):
        pass

    @method()
    def Quit(self):
        self.service.quit()

    @dbus_property(access=PropertyAccess.READ)
    def CanQuit(self) -> "b":
        return True

    @dbus_property(access=PropertyAccess.READ)
    def CanRaise(self) -> "b":
        return False

    @dbus_property(access=PropertyAccess.READ)
    def HasTrackList(self) -> "b":
        return False

    @dbus_property(access=PropertyAccess.READ)
    def Identity(self) -> "s":
        return APPLICATION_NAME

    @dbus_property(access=PropertyAccess.READ)
    def SupportedUriSchemes(self) -> "as":
        return []

    @dbus_property(access=PropertyAccess.READ)
    def SupportedMimeTypes(self) -> "as":
        return []


class MprisPlayerInterface(ServiceInterface):
    """The org.mpris.MediaPlayer2.Player interface."""

    def __init__(self, service: "MediaControlService") -> None:
        """Initialize."""
        super().__init__(PLAYER_INTERFACE)
        self.service = service

    @method()
    def Next(self):
        self.service.next()

    @method()
    def Previous(self):
        self.service.previous()

    @method()
    def Pause(self):
        self.service.pause()

    @method()
    def PlayPause(self):
        self.service.play_pause()

    @method()
    def Stop(self):
        self.service.stop()

    @method()
    def Play(self):
        self.service.play()

    @method()
    def Seek(self, offset: "x"):
        self.service.seek(offset)

    @method()
    def SetPosition(self, track_id: "o", position: "x"):
        self.service.set_position(track_id, position)

    @method()
    def OpenUri(self, uri: "s"):
        LOGGER.debug("Ignoring OpenUri %s", uri)

    @signal()
    def Seeked(self, position: int) -> "x":
        return position

    @dbus_property(access=PropertyAccess.READ)
    def PlaybackStatus(self) -> "s":
        return self.service.playback_status

    @dbus_property()
    def LoopStatus(self) -> "s":
        return self.service.loop_status

    @LoopStatus.setter
    def LoopStatus(self, value: "s"):
        self.service.set_loop_status(value)

    @dbus_property()
    def Rate(self) -> "d":
        return 1.0

    @Rate.setter
    def Rate(self, value: "d"):
        LOGGER.debug("Ignoring request to change the playback rate to %s", value)

    @dbus_property()
    def Shuffle(self) -> "b":
        return self.service.shuffle

    @Shuffle.setter
    def Shuffle(self, value: "b"):
        self.service.set_shuffle(value)

    @dbus_property(access=PropertyAccess.READ)
    def Metadata(self) -> "a{sv}":
        return metadata_to_variants(self.service.metadata)

    @dbus_property()
    def Volume(self) -> "d":
        return self.service.volume

    @Volume.setter
    def Volume(self, value: "d"):
        self.service.set_volume(value)

    @dbus_property(access=PropertyAccess.READ)
    def Position(self) -> "x":
        return self.service.position

    @dbus_property(access=PropertyAccess.READ)
    def MinimumRate(self) -> "d":
        return 1.0

    @dbus_property(access=PropertyAccess.READ)
    def MaximumRate(self) -> "d":
        return 1.0

    @dbus_property(access=PropertyAccess.READ)
    def CanGoNext(self) -> "b":
        return True

    @dbus_property(access=PropertyAccess.READ)
    def CanGoPrevious(self) -> "b":
        return True

    @dbus_property(access=PropertyAccess.READ)
    def CanPlay(self) -> "b":
        return True

    @dbus_property(access=PropertyAccess.READ)
    def CanPause(self) -> "b":
        return True

    @dbus_property(access=PropertyAccess.READ)
    def CanSeek(self) -> "b":
        return self.service.can_seek

    @dbus_property(access=PropertyAccess.READ)
    def CanControl(self) -> "b":
        return True


class MprisServer:
    """Own the session bus connection and the exported MPRIS interfaces."""

    def __init__(self, service: "MediaControlService", name: str = MPRIS_NAME) -> None:
        """Initialize the server."""
        self.service = service
        self.bus_name = f"{ROOT_INTERFACE}.{name}"
        self.root = MprisRootInterface(service)
        self.player = MprisPlayerInterface(service)
        self._bus: MessageBus | None = None
        self._remove_listener: Callable[[], None] | None = None

    async def start(self) -> None:
        """Connect to the session bus and export the player."""
        try:
            self._bus = await MessageBus(bus_type=BusType.SESSION).connect()
        except (AuthError, InvalidAddressError, OSError) as err:
            raise SetupFailedError(f"Unable to connect to the D-Bus session bus: {err}") from err
        self._bus.export(OBJECT_PATH, self.root)
        self._bus.export(OBJECT_PATH, self.player)
        try:
            reply = await self._bus.request_name(self.bus_name)
        except DBusError as err:
            self._bus.disconnect()
            self._bus = None
            raise SetupFailedError(f"Unable to acquire {self.bus_name}: {err}") from err
        if reply != RequestNameReply.PRIMARY_OWNER:
            LOGGER.warning("%s is already owned by another process (%s)", self.bus_name, reply)
        self._remove_listener = self.service.add_listener(
            self._on_properties_changed, self._on_seeked
        )
        LOGGER.info("Exported MPRIS player as %s", self.bus_name)

    async def stop(self) -> None:
        """Remove the player from the bus and disconnect."""
        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None
        if self._bus is not None:
            self._bus.unexport(OBJECT_PATH)
            self._bus.disconnect()
            self._bus = None

    def _on_properties_changed(self, changed: dict[str, Any]) -> None:
        if "Metadata" in changed:
            changed = {**changed, "Metadata": metadata_to_variants(changed["Metadata"])}
        self.player.emit_properties_changed(changed)

    def _on_seeked(self, position: int) -> None:
        self.player.Seeked(position)
