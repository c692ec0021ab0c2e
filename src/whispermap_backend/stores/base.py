"""Abstract base class for whisper stores.

The discovery engine and the HTTP controllers depend only on this interface;
the backing implementation (in-memory or MongoDB) is chosen at startup.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, List, Optional

from whispermap_backend.exceptions import WhisperValidationError
from whispermap_backend.models.whisper import (
    GeoPoint,
    Reply,
    Whisper,
    compute_expires_at,
    ensure_utc,
    new_whisper_id,
    utc_now,
)

__all__ = ["Clock", "WhisperStoreBase"]

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class WhisperStoreBase(ABC):
    """Authoritative collection of whisper records.

    Reads re-check expiry against the store clock, so a whisper is never
    returned once ``now >= expires_at`` even if the purge sweep has not run.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or utc_now

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return the backend identifier (e.g., 'memory', 'mongo')."""
        ...

    def now(self) -> datetime:
        return ensure_utc(self._clock())

    def prepare_for_insert(self, whisper: Whisper) -> Whisper:
        """Validate a draft and fill in id, creation time and expiry.

        Raises:
            WhisperValidationError: If location or audio reference is missing
        """
        if whisper.location is None:
            raise WhisperValidationError("Location data is required")
        if not whisper.audio_url:
            raise WhisperValidationError("Audio reference is required")

        created_at = whisper.created_at or self.now()
        return whisper.model_copy(
            update={
                "id": whisper.id or new_whisper_id(),
                "created_at": created_at,
                "expires_at": compute_expires_at(created_at, whisper.lifetime_days),
            }
        )

    @abstractmethod
    async def insert(self, whisper: Whisper) -> str:
        """Persist a whisper and return its id.

        Raises:
            WhisperValidationError: If location or audio reference is missing
        """
        pass

    @abstractmethod
    async def query_by_window(
        self,
        center: GeoPoint,
        radius_meters: float,
        max_age_hours: Optional[float] = None,
    ) -> List[Whisper]:
        """Coarse bounding-box query for live whispers, newest first.

        Exact circle filtering is left to the discovery engine.

        Args:
            center: Query centre
            radius_meters: Radius the bounding box must cover
            max_age_hours: When set, only whispers created within this many hours

        Returns:
            Live whispers inside the window
        """
        pass

    @abstractmethod
    async def find_by_id(self, whisper_id: str) -> Whisper:
        """Return a live whisper.

        Raises:
            WhisperNotFoundError: If the whisper is unknown or expired
        """
        pass

    @abstractmethod
    async def find_by_owner(self, owner_id: str) -> List[Whisper]:
        """Live, non-anonymous whispers owned by ``owner_id``, newest first."""
        pass

    @abstractmethod
    async def append_reply(self, whisper_id: str, reply: Reply) -> Whisper:
        """Append a reply to a live whisper and return the updated whisper.

        Raises:
            WhisperNotFoundError: If the whisper is unknown or expired
        """
        pass

    @abstractmethod
    async def purge_expired(self) -> List[Whisper]:
        """Remove every whisper whose expiry has passed and return the removed records."""
        pass

    @abstractmethod
    async def count(self) -> int:
        """Number of stored records, expired-but-unpurged included."""
        pass

    async def close(self) -> None:
        """Release backend resources."""
        return None
