from whispermap_backend.models.whisper import (
    GeoPoint,
    Reply,
    Whisper,
    WhisperCategory,
    compute_expires_at,
    create_whisper,
)

__all__ = [
    "GeoPoint",
    "Reply",
    "Whisper",
    "WhisperCategory",
    "compute_expires_at",
    "create_whisper",
]
