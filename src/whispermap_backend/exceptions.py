"""
Exception hierarchy for WhisperMap.

Validation and not-found errors map onto HTTP 400/404 at the API boundary.
Transient fetch and geolocation errors are raised on the client side and are
recovered locally (cache fallback, last known location).
"""


class WhisperMapError(Exception):
    """Base class for all WhisperMap errors."""

    status_code = 500


class WhisperValidationError(WhisperMapError):
    """Input is missing or out of range (coordinates, audio, tier limits)."""

    status_code = 400


class WhisperNotFoundError(WhisperMapError):
    """Whisper does not exist or has already expired."""

    status_code = 404

    def __init__(self, whisper_id: str):
        super().__init__(f"Whisper not found: {whisper_id}")
        self.whisper_id = whisper_id


class TransientFetchError(WhisperMapError):
    """Network failure or timeout while talking to the whisper service."""

    status_code = 503


class GeolocationError(WhisperMapError):
    """Position could not be acquired (denied, unavailable, timed out)."""

    class Reason:
        PERMISSION_DENIED = "permission_denied"
        POSITION_UNAVAILABLE = "position_unavailable"
        TIMEOUT = "timeout"

    def __init__(self, message: str, reason: str = Reason.POSITION_UNAVAILABLE):
        super().__init__(message)
        self.reason = reason
