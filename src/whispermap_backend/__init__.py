"""WhisperMap backend: location-based audio whisper discovery service."""

__version__ = "0.1.0"
