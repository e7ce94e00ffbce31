"""Constants for the mpv engine."""

from typing import Final

# properties we observe, value is the observer id
OBSERVED_PROPERTIES: Final = {
    "time-pos": 1,
    "duration": 2,
    "pause": 3,
}

CONNECT_TIMEOUT: Final = 5.0
COMMAND_TIMEOUT: Final = 5.0
LOAD_TIMEOUT: Final = 30.0

END_FILE_EOF: Final = "eof"
END_FILE_ERROR: Final = "error"

# retries of IPC commands that failed transiently
IPC_RATE_LIMIT: Final = 50
IPC_RETRY_ATTEMPTS: Final = 3
IPC_RETRY_BACKOFF: Final = 0.5
