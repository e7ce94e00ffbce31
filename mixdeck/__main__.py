"""Run MixDeck as a headless console player."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
from contextlib import suppress

from mixdeck.constants import (
    DEFAULT_CONFIG_DIR,
    DEFAULT_CONFIG_FILENAME,
    MIXDECK_LOGGER_NAME,
    VERBOSE_LOG_LEVEL,
)
from mixdeck.hub import MixDeck
from mixdeck.models.enums import EventType, PlaybackState, RepeatMode
from mixdeck.models.event import PlaybackEvent
from mixdeck.models.track import track_from_uri
from mixdeck.providers.local.folders import MusicFolder, folder_path, isdir

LOGGER = logging.getLogger(f"{MIXDECK_LOGGER_NAME}.console")

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def get_arguments() -> argparse.Namespace:
    """Get parsed passed in arguments."""
    parser = argparse.ArgumentParser(description="MixDeck playback core")
    parser.add_argument(
        "tracks",
        nargs="*",
        metavar="TRACK",
        help=(
            "File or folder path, Spotify uri/url or YouTube url to play (in this order), "
            "folders are played with their direct subfolders"
        ),
    )
    parser.add_argument(
        "--config",
        type=str,
        default=os.path.join(DEFAULT_CONFIG_DIR, DEFAULT_CONFIG_FILENAME),
        help="Path of the settings file",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="info",
        choices=["verbose", "debug", "info", "warning", "error"],
        help="Log level",
    )
    parser.add_argument(
        "--no-media-control",
        action="store_true",
        help="Do not export the player on the D-Bus session bus (MPRIS)",
    )
    parser.add_argument(
        "--list-folders",
        action="store_true",
        help="List the configured music folders and exit",
    )
    parser.add_argument("--shuffle", action="store_true", help="Shuffle the tracks")
    parser.add_argument(
        "--repeat",
        type=RepeatMode,
        choices=list(RepeatMode),
        help="Repeat mode",
    )
    parser.add_argument("--volume", type=int, help="Initial volume (0-100)")
    return parser.parse_args()


def setup_logger(level: str) -> None:
    """Initialize logging."""
    logging.addLevelName(VERBOSE_LOG_LEVEL, "VERBOSE")
    log_level = VERBOSE_LOG_LEVEL if level == "verbose" else logging.getLevelName(level.upper())
    logging.basicConfig(level=log_level, format=LOG_FORMAT)
    # silence some noisy loggers
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


def log_event(event: PlaybackEvent) -> None:
    """Print what happens to the session."""
    match event.event:
        case EventType.STATE_CHANGED if event.data == PlaybackState.ERROR:
            LOGGER.error("Playback error: %s", event.message)
        case EventType.STATE_CHANGED:
            LOGGER.info("State: %s", event.data)
        case EventType.TRACK_CHANGED if event.data is not None:
            LOGGER.info("Track: %s", event.data)
        case EventType.VOLUME_CHANGED:
            LOGGER.info("Volume: %s", event.data)
        case EventType.BACKEND_ERROR:
            LOGGER.warning("Backend error (%s): %s", event.data.kind, event.message)


def log_music_folders(music_folders: list[MusicFolder]) -> None:
    """Print the music folders and the number of tracks in them."""
    if not music_folders:
        LOGGER.info("No music folders configured")
    for music_folder in music_folders:
        LOGGER.info(
            "%s: %s track(s) in %s",
            music_folder.title,
            len(music_folder.tracks),
            music_folder.id,
        )


async def run(args: argparse.Namespace) -> None:
    """Start MixDeck, play the given tracks and run until stopped."""
    enable_media_control = False if args.no_media_control else None
    async with MixDeck(args.config, enable_media_control=enable_media_control) as mixdeck:
        if args.list_folders:
            log_music_folders(await mixdeck.get_music_folders())
            return
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, mixdeck.request_stop)
        remove_listener = mixdeck.event_bus.subscribe(
            log_event,
            (
                EventType.STATE_CHANGED,
                EventType.TRACK_CHANGED,
                EventType.VOLUME_CHANGED,
                EventType.BACKEND_ERROR,
            ),
        )
        session = mixdeck.session
        if args.volume is not None:
            session.set_volume(args.volume)
        if args.repeat is not None:
            session.set_repeat_mode(args.repeat)
        count = 0
        for value in args.tracks:
            if await isdir(folder_path(value)):
                count += await session.enqueue_folder(value, include_subfolders=True)
            else:
                session.enqueue(track_from_uri(value))
                count += 1
        if args.shuffle:
            session.set_shuffle(True)
        if count:
            session.resume()
        else:
            LOGGER.info("Nothing to play, waiting for media control commands")
        await mixdeck.wait_for_stop_request()
        remove_listener()


def main() -> None:
    """Start MixDeck."""
    args = get_arguments()
    setup_logger(args.log_level)
    with suppress(KeyboardInterrupt):
        asyncio.run(run(args))


if __name__ == "__main__":
    main()
