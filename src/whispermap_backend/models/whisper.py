"""
Whisper models for the WhisperMap backend.

This module contains the storage-agnostic Pydantic models shared by the
server stores, the discovery engine and the client reconciliation layer,
plus the wire (JSON) codec used on the HTTP surface and in the client cache.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

DEFAULT_LIFETIME_DAYS = 7
ANONYMOUS_USER_ID = "anonymous"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC (MongoDB hands them back naive)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def compute_expires_at(created_at: datetime, lifetime_days: int = DEFAULT_LIFETIME_DAYS) -> datetime:
    """The single place expiry is derived from creation time and lifetime."""
    if lifetime_days < 1:
        raise ValueError(f"lifetime_days must be at least 1, got {lifetime_days}")
    return ensure_utc(created_at) + timedelta(days=lifetime_days)


def new_whisper_id() -> str:
    return uuid.uuid4().hex


def format_timestamp(value: datetime) -> str:
    return ensure_utc(value).isoformat().replace("+00:00", "Z")


class WhisperCategory(str, Enum):
    """Fixed set of whisper categories."""
    GENERAL = "general"
    STORY = "story"
    MUSIC = "music"
    INFORMATION = "information"
    ANNOUNCEMENT = "announcement"
    TIP = "tip"
    GUIDE = "guide"
    HISTORY = "history"
    EVENT = "event"
    WARNING = "warning"

    @classmethod
    def parse(cls, value: Optional[str]) -> "WhisperCategory":
        """Lenient parse for form input; unknown values fall back to GENERAL."""
        if not value:
            return cls.GENERAL
        try:
            return cls(value.strip().lower())
        except ValueError:
            logger.warning(f"Unknown whisper category '{value}', using 'general'")
            return cls.GENERAL


class GeoPoint(BaseModel):
    """A WGS-84 position in decimal degrees."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)

    def to_wire(self) -> Dict[str, float]:
        return {"lat": self.latitude, "lng": self.longitude}

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "GeoPoint":
        lat = data.get("lat", data.get("latitude"))
        lng = data.get("lng", data.get("longitude"))
        return cls(latitude=lat, longitude=lng)


class Reply(BaseModel):
    """A reply in a whisper's conversation thread. Never discovered on its own."""

    id: str = Field(default_factory=new_whisper_id)
    audio_url: Optional[str] = None
    owner_id: Optional[str] = None
    text: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("created_at")
    @classmethod
    def _utc_created_at(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    def to_wire(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "audioUrl": self.audio_url,
            "userId": self.owner_id or ANONYMOUS_USER_ID,
            "text": self.text,
            "timestamp": format_timestamp(self.created_at),
        }

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "Reply":
        return cls(
            id=data.get("id") or new_whisper_id(),
            audio_url=data.get("audioUrl"),
            owner_id=data.get("userId"),
            text=data.get("text"),
            created_at=data.get("timestamp") or utc_now(),
        )


class Whisper(BaseModel):
    """An audio message bound to a geographic point, with ownership and expiry.

    ``id``, ``created_at`` and ``expires_at`` may be absent on a draft; a store
    fills them in on insert. Once ``created_at`` is known, ``expires_at`` is
    always derived from it with :func:`compute_expires_at`.
    """

    id: Optional[str] = None
    location: Optional[GeoPoint] = None
    audio_url: Optional[str] = None
    category: WhisperCategory = WhisperCategory.GENERAL
    title: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    lifetime_days: int = Field(default=DEFAULT_LIFETIME_DAYS, ge=1)
    owner_id: Optional[str] = None
    is_anonymous: bool = False
    whisper_radius_meters: float = Field(default=100.0, gt=0)
    replies: List[Reply] = Field(default_factory=list)

    @field_validator("created_at", "expires_at")
    @classmethod
    def _utc_datetimes(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v) if v is not None else None

    @model_validator(mode="after")
    def _derive_expiry(self) -> "Whisper":
        if self.created_at is not None and self.expires_at is None:
            self.expires_at = compute_expires_at(self.created_at, self.lifetime_days)
        if self.created_at is not None and self.expires_at <= self.created_at:
            raise ValueError("expires_at must be later than created_at")
        return self

    def is_live(self, now: datetime) -> bool:
        """True while ``now`` is strictly before the expiry instant."""
        return self.expires_at is not None and ensure_utc(now) < self.expires_at

    @property
    def public_owner_id(self) -> str:
        """Owner as shown to other clients; anonymous whispers hide it."""
        if self.is_anonymous or not self.owner_id:
            return ANONYMOUS_USER_ID
        return self.owner_id

    def to_wire(self) -> Dict[str, Any]:
        """Serialize to the JSON shape shared by the HTTP API and the client cache."""
        return {
            "id": self.id,
            "audioUrl": self.audio_url,
            "location": self.location.to_wire() if self.location else None,
            "category": self.category.value,
            "title": self.title,
            "description": self.description,
            "timestamp": format_timestamp(self.created_at) if self.created_at else None,
            "expirationDate": format_timestamp(self.expires_at) if self.expires_at else None,
            "expirationDays": self.lifetime_days,
            "isAnonymous": self.is_anonymous,
            "userId": self.public_owner_id,
            "whisperRadius": self.whisper_radius_meters,
            "replies": [reply.to_wire() for reply in self.replies],
        }

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "Whisper":
        """Parse the wire shape.

        Accepts the flat ``latitude``/``longitude`` layout of older payloads.
        A missing ``expirationDate`` is backfilled from ``timestamp`` and the
        lifetime (7 days unless stated).
        """
        if data.get("location"):
            location = GeoPoint.from_wire(data["location"])
        elif "latitude" in data and "longitude" in data:
            location = GeoPoint.from_wire(data)
        else:
            location = None

        is_anonymous = bool(data.get("isAnonymous", False))
        owner_id = data.get("userId")
        if owner_id == ANONYMOUS_USER_ID:
            owner_id = None

        return cls(
            id=data.get("id"),
            location=location,
            audio_url=data.get("audioUrl"),
            category=WhisperCategory.parse(data.get("category")),
            title=data.get("title"),
            description=data.get("description"),
            created_at=data.get("timestamp"),
            expires_at=data.get("expirationDate"),
            lifetime_days=data.get("expirationDays") or DEFAULT_LIFETIME_DAYS,
            owner_id=owner_id,
            is_anonymous=is_anonymous,
            whisper_radius_meters=data.get("whisperRadius") or 100.0,
            replies=[Reply.from_wire(r) for r in data.get("replies") or []],
        )


def create_whisper(
    location: GeoPoint,
    audio_url: str,
    *,
    category: WhisperCategory = WhisperCategory.GENERAL,
    title: Optional[str] = None,
    description: Optional[str] = None,
    lifetime_days: int = DEFAULT_LIFETIME_DAYS,
    owner_id: Optional[str] = None,
    is_anonymous: bool = False,
    whisper_radius_meters: float = 100.0,
    created_at: Optional[datetime] = None,
) -> Whisper:
    """Build a new whisper draft with a fresh id; expiry is derived from ``created_at``."""
    return Whisper(
        id=new_whisper_id(),
        location=location,
        audio_url=audio_url,
        category=category,
        title=title,
        description=description,
        created_at=created_at or utc_now(),
        lifetime_days=lifetime_days,
        owner_id=owner_id,
        is_anonymous=is_anonymous,
        whisper_radius_meters=whisper_radius_meters,
    )
