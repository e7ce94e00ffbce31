"""Constants for the Spotify backend."""

from typing import Final

API_BASE_URL: Final = "https://api.spotify.com/v1"
REQUEST_TIMEOUT: Final = 30

DEFAULT_POLL_INTERVAL: Final = 1.0
# ignore remote state for a while after sending a command, the Web API lags behind
COMMAND_SETTLE_TIME: Final = 2.0
# a stop within this many seconds of the end of the track counts as the track ending
END_OF_TRACK_MARGIN: Final = 3.0

RATE_LIMIT: Final = 20
RATE_LIMIT_PERIOD: Final = 10
RETRY_ATTEMPTS: Final = 3
INITIAL_BACKOFF: Final = 1
