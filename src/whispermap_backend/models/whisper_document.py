"""
MongoDB persistence model for whispers.

The document stores latitude/longitude as flat indexed fields so the store's
bounding-box pre-filter is a plain range query on two indexes.
"""

from datetime import datetime, timezone
from typing import List, Optional

from beanie import Document, Indexed
from pydantic import Field

from whispermap_backend.models.whisper import (
    GeoPoint,
    Reply,
    Whisper,
    WhisperCategory,
    ensure_utc,
)


def to_naive_utc(value: datetime) -> datetime:
    """BSON dates carry no zone; store and compare everything as naive UTC."""
    return ensure_utc(value).replace(tzinfo=None)


class WhisperDocument(Document):
    """
    MongoDB document representing one whisper.

    Indexes:
    - whisper_id: unique public identifier
    - (latitude, longitude): bounding-box pre-filter
    - expires_at: liveness filter and expiry sweep
    - created_at: newest-first ordering and max-age filter
    - owner_id: per-user listing
    """

    whisper_id: Indexed(str, unique=True) = Field(description="Public whisper identifier")
    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)
    audio_url: str = Field(description="Reference to the stored audio payload")
    category: WhisperCategory = WhisperCategory.GENERAL
    title: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime = Field(description="Creation instant (naive UTC)")
    expires_at: datetime = Field(description="Expiry instant (naive UTC)")
    lifetime_days: int = Field(ge=1)
    owner_id: Optional[str] = None
    is_anonymous: bool = False
    whisper_radius_meters: float = Field(gt=0)
    replies: List[Reply] = Field(default_factory=list)

    class Settings:
        """Beanie document settings."""
        name = "whispers"

        indexes = [
            [("latitude", 1), ("longitude", 1)],
            "expires_at",
            "created_at",
            "owner_id",
        ]

    @classmethod
    def from_whisper(cls, whisper: Whisper) -> "WhisperDocument":
        return cls(
            whisper_id=whisper.id,
            latitude=whisper.location.latitude,
            longitude=whisper.location.longitude,
            audio_url=whisper.audio_url,
            category=whisper.category,
            title=whisper.title,
            description=whisper.description,
            created_at=to_naive_utc(whisper.created_at),
            expires_at=to_naive_utc(whisper.expires_at),
            lifetime_days=whisper.lifetime_days,
            owner_id=whisper.owner_id,
            is_anonymous=whisper.is_anonymous,
            whisper_radius_meters=whisper.whisper_radius_meters,
            replies=list(whisper.replies),
        )

    def to_whisper(self) -> Whisper:
        return Whisper(
            id=self.whisper_id,
            location=GeoPoint(latitude=self.latitude, longitude=self.longitude),
            audio_url=self.audio_url,
            category=self.category,
            title=self.title,
            description=self.description,
            created_at=self.created_at.replace(tzinfo=timezone.utc),
            expires_at=self.expires_at.replace(tzinfo=timezone.utc),
            lifetime_days=self.lifetime_days,
            owner_id=self.owner_id,
            is_anonymous=self.is_anonymous,
            whisper_radius_meters=self.whisper_radius_meters,
            replies=list(self.replies),
        )
