"""All constants for MixDeck."""

import pathlib
from typing import Final

APPLICATION_NAME: Final = "MixDeck"
MIXDECK_LOGGER_NAME: Final = "mixdeck"
VERBOSE_LOG_LEVEL: Final = 5

DEFAULT_CONFIG_DIR: Final = pathlib.Path("~/.config/mixdeck").expanduser()
DEFAULT_CONFIG_FILENAME: Final = "settings.json"

# config keys
CONF_CORE: Final = "core"
CONF_BACKENDS: Final = "backends"
CONF_VOLUME: Final = "volume"
CONF_REPEAT_MODE: Final = "repeat_mode"
CONF_SHUFFLE: Final = "shuffle"
CONF_SHUFFLE_SEED: Final = "shuffle_seed"
CONF_MEDIA_CONTROL: Final = "media_control"
CONF_MPV_PATH: Final = "mpv_path"
CONF_MUSIC_DIR: Final = "music_dir"
CONF_FOLDERS: Final = "folders"
CONF_YTDL_FORMAT: Final = "ytdl_format"
CONF_ACCESS_TOKEN: Final = "access_token"
CONF_DEVICE_ID: Final = "device_id"
CONF_POLL_INTERVAL: Final = "poll_interval"

DEFAULT_VOLUME: Final = 50
DEFAULT_MPV_PATH: Final = "mpv"
DEFAULT_YTDL_FORMAT: Final = "bestaudio/best"

# session timing (seconds)
STOP_GRACE_PERIOD: Final = 2.0
ADAPTER_COMMAND_TIMEOUT: Final = 10.0
PREVIOUS_RESTART_THRESHOLD: Final = 5.0
POSITION_UPDATE_INTERVAL: Final = 1.0

# event bus
EVENT_QUEUE_SIZE: Final = 64
EVENT_QUEUE_HARD_LIMIT: Final = 1024

# media control
MPRIS_NAME: Final = "mixdeck"
MPRIS_NOTIFY_DELAY: Final = 0.2
MPRIS_SEEK_TOLERANCE: Final = 2.0
