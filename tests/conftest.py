from datetime import datetime, timedelta, timezone

import pytest

from whispermap_backend.config import DiscoverySettings, StorageSettings
from whispermap_backend.models.whisper import GeoPoint, create_whisper
from whispermap_backend.services import build_services
from whispermap_backend.stores.memory_store import InMemoryWhisperStore

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

NYC = GeoPoint(latitude=40.7128, longitude=-74.0060)


class FakeClock:
    """Settable clock injected into stores and the reconciliation layer."""

    def __init__(self, start: datetime = T0):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


def make_whisper(location=NYC, created_at=T0, lifetime_days=7, **kwargs):
    return create_whisper(
        location,
        kwargs.pop("audio_url", "/uploads/test.webm"),
        created_at=created_at,
        lifetime_days=lifetime_days,
        **kwargs,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_store(clock):
    return InMemoryWhisperStore(clock=clock)


@pytest.fixture
def services(memory_store, tmp_path):
    return build_services(
        memory_store,
        DiscoverySettings(),
        StorageSettings(uploads_dir=str(tmp_path / "uploads")),
    )
