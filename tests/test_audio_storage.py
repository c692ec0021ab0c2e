"""Tests for local audio storage."""

import pytest

from whispermap_backend.config import StorageSettings
from whispermap_backend.exceptions import WhisperValidationError
from whispermap_backend.services.audio_storage import AudioStorage


@pytest.fixture
def storage(tmp_path):
    return AudioStorage(StorageSettings(uploads_dir=str(tmp_path), max_upload_bytes=16))


@pytest.mark.unit
class TestAudioStorage:
    @pytest.mark.asyncio
    async def test_save_and_delete(self, storage):
        url = await storage.save(b"RIFFdata", "clip.wav")
        assert url.startswith("/uploads/") and url.endswith(".wav")

        path = storage.path_for(url)
        assert path.read_bytes() == b"RIFFdata"
        assert await storage.delete(url) is True
        assert not path.exists()
        assert await storage.delete(url) is False

    @pytest.mark.asyncio
    async def test_blob_without_extension_stored_as_webm(self, storage):
        url = await storage.save(b"abc", "blob")
        assert url.endswith(".webm")

    @pytest.mark.asyncio
    async def test_empty_audio_rejected(self, storage):
        with pytest.raises(WhisperValidationError):
            await storage.save(b"", "clip.wav")

    @pytest.mark.asyncio
    async def test_oversize_audio_rejected(self, storage):
        with pytest.raises(WhisperValidationError):
            await storage.save(b"x" * 17, "clip.wav")

    def test_unsupported_extension_rejected(self):
        with pytest.raises(WhisperValidationError):
            AudioStorage.resolve_extension("notes.txt")

    def test_path_traversal_refused(self, storage):
        assert storage.path_for("/uploads/../secret") is None
        assert storage.path_for("/uploads/.hidden") is None
        assert storage.path_for("https://example.com/a.wav") is None
