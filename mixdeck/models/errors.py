"""Custom errors and exceptions."""

from __future__ import annotations

from .enums import ErrorKind


class MixDeckError(Exception):
    """Custom Exception for all errors."""

    error_code = 0


class SetupFailedError(MixDeckError):
    """Error raised when setup of the hub or a backend fails."""

    error_code = 1


class InvalidCommand(MixDeckError):
    """Error raised when a command has invalid arguments."""

    error_code = 2


class BackendUnavailable(MixDeckError):
    """Error raised when no backend is registered or enabled for a source."""

    error_code = 3


class BackendError(MixDeckError):
    """Base for all classified failures raised by a backend adapter."""

    error_code = 10
    kind = ErrorKind.FATAL


class TransientBackendError(BackendError):
    """Temporary failure (timeout, rate limit, server error) that may be retried."""

    error_code = 11
    kind = ErrorKind.TRANSIENT

    def __init__(self, *args: object, backoff_time: float = 0) -> None:
        """Initialize."""
        super().__init__(*args)
        self.backoff_time = backoff_time


class RetriesExhausted(TransientBackendError):
    """Error raised when a transient failure persisted after all retries."""

    error_code = 12


class AuthenticationFailed(BackendError):
    """Credentials were rejected by the backend."""

    error_code = 13
    kind = ErrorKind.AUTH


class TrackUnavailable(BackendError):
    """Track cannot be played (removed, region locked, corrupt or missing)."""

    error_code = 14
    kind = ErrorKind.TRACK_UNAVAILABLE


class BackendCrashed(BackendError):
    """Backend process died or its control channel went out of sync."""

    error_code = 15
    kind = ErrorKind.FATAL
