"""
Local object storage for whisper audio payloads.

Uploaded audio is written under the uploads directory as ``<uuid><ext>`` and
addressed by a ``/uploads/<file>`` URL, which the app serves statically.
"""

import asyncio
import logging
import os
import uuid
from pathlib import Path
from typing import Optional

from whispermap_backend.config import StorageSettings
from whispermap_backend.exceptions import WhisperValidationError

logger = logging.getLogger(__name__)

AUDIO_URL_PREFIX = "/uploads/"

SUPPORTED_AUDIO_EXTENSIONS = {".wav", ".mp3", ".webm", ".ogg", ".m4a", ".aac"}

# MediaRecorder blobs usually arrive without a filename extension
DEFAULT_AUDIO_EXTENSION = ".webm"

AUDIO_MEDIA_TYPES = {
    ".wav": "audio/wav",
    ".mp3": "audio/mpeg",
    ".webm": "audio/webm",
    ".ogg": "audio/ogg",
    ".m4a": "audio/mp4",
    ".aac": "audio/aac",
}


class AudioStorage:
    """Stores audio blobs on local disk and maps them to URLs."""

    def __init__(self, settings: StorageSettings):
        self.uploads_dir = Path(settings.uploads_dir)
        self.max_upload_bytes = settings.max_upload_bytes
        self.uploads_dir.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def resolve_extension(filename: Optional[str]) -> str:
        """Pick the stored extension for an upload, rejecting unsupported formats."""
        _, ext = os.path.splitext((filename or "").lower())
        if not ext:
            return DEFAULT_AUDIO_EXTENSION
        if ext not in SUPPORTED_AUDIO_EXTENSIONS:
            supported = ", ".join(sorted(SUPPORTED_AUDIO_EXTENSIONS))
            raise WhisperValidationError(f"Unsupported audio format '{ext}'. Supported: {supported}")
        return ext

    async def save(self, content: bytes, filename: Optional[str] = None) -> str:
        """Persist audio bytes and return their URL.

        Raises:
            WhisperValidationError: Empty, oversized or unsupported audio
        """
        if not content:
            raise WhisperValidationError("No audio file provided")
        if len(content) > self.max_upload_bytes:
            raise WhisperValidationError(
                f"Audio file too large ({len(content)} bytes, limit {self.max_upload_bytes})"
            )

        ext = self.resolve_extension(filename)
        stored_name = f"{uuid.uuid4().hex}{ext}"
        path = self.uploads_dir / stored_name
        await asyncio.to_thread(path.write_bytes, content)

        logger.info(f"Saved audio {stored_name} ({len(content)} bytes)")
        return f"{AUDIO_URL_PREFIX}{stored_name}"

    def path_for(self, audio_url: str) -> Optional[Path]:
        """Local path for an audio URL, or None for foreign/unsafe URLs."""
        if not audio_url or not audio_url.startswith(AUDIO_URL_PREFIX):
            return None
        name = audio_url[len(AUDIO_URL_PREFIX):]
        if not name or "/" in name or "\\" in name or name.startswith("."):
            return None
        return self.uploads_dir / name

    async def delete(self, audio_url: str) -> bool:
        """Remove a stored payload. Missing files are not an error."""
        path = self.path_for(audio_url)
        if path is None:
            return False
        try:
            await asyncio.to_thread(path.unlink)
            logger.debug(f"Deleted audio {path.name}")
            return True
        except FileNotFoundError:
            return False

    @staticmethod
    def media_type_for(path: Path) -> str:
        return AUDIO_MEDIA_TYPES.get(path.suffix.lower(), "application/octet-stream")
