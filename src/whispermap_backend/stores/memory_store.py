"""
Process-local whisper store.

Backed by a list kept in newest-first order. Contents vanish on restart;
clients absorb that through cache reconciliation. All mutations share one
asyncio lock so a purge sweep cannot drop a concurrent insert.
"""

import asyncio
import logging
from datetime import timedelta
from typing import List, Optional

from whispermap_backend.exceptions import WhisperNotFoundError
from whispermap_backend.models.whisper import GeoPoint, Reply, Whisper
from whispermap_backend.stores.base import Clock, WhisperStoreBase
from whispermap_backend.utils.geo_utils import bounding_box

logger = logging.getLogger(__name__)


class InMemoryWhisperStore(WhisperStoreBase):
    """Whisper store held in process memory."""

    def __init__(self, clock: Optional[Clock] = None):
        super().__init__(clock)
        self._whispers: List[Whisper] = []
        self._lock = asyncio.Lock()

    @property
    def backend_name(self) -> str:
        return "memory"

    async def insert(self, whisper: Whisper) -> str:
        prepared = self.prepare_for_insert(whisper)
        async with self._lock:
            # Keep newest-first even when a caller supplies an older created_at
            index = 0
            while index < len(self._whispers) and self._whispers[index].created_at > prepared.created_at:
                index += 1
            self._whispers.insert(index, prepared)
        logger.debug(f"Inserted whisper {prepared.id} (expires {prepared.expires_at.isoformat()})")
        return prepared.id

    async def query_by_window(
        self,
        center: GeoPoint,
        radius_meters: float,
        max_age_hours: Optional[float] = None,
    ) -> List[Whisper]:
        now = self.now()
        box = bounding_box(center, radius_meters)
        oldest = now - timedelta(hours=max_age_hours) if max_age_hours is not None else None

        return [
            whisper
            for whisper in list(self._whispers)
            if whisper.is_live(now)
            and box.contains(whisper.location)
            and (oldest is None or whisper.created_at >= oldest)
        ]

    async def find_by_id(self, whisper_id: str) -> Whisper:
        now = self.now()
        for whisper in self._whispers:
            if whisper.id == whisper_id and whisper.is_live(now):
                return whisper
        raise WhisperNotFoundError(whisper_id)

    async def find_by_owner(self, owner_id: str) -> List[Whisper]:
        now = self.now()
        return [
            whisper
            for whisper in list(self._whispers)
            if whisper.owner_id == owner_id and not whisper.is_anonymous and whisper.is_live(now)
        ]

    async def append_reply(self, whisper_id: str, reply: Reply) -> Whisper:
        async with self._lock:
            now = self.now()
            for index, whisper in enumerate(self._whispers):
                if whisper.id == whisper_id and whisper.is_live(now):
                    updated = whisper.model_copy(update={"replies": [*whisper.replies, reply]})
                    self._whispers[index] = updated
                    return updated
        raise WhisperNotFoundError(whisper_id)

    async def purge_expired(self) -> List[Whisper]:
        async with self._lock:
            now = self.now()
            expired = [w for w in self._whispers if not w.is_live(now)]
            if expired:
                self._whispers = [w for w in self._whispers if w.is_live(now)]
        if expired:
            logger.info(f"Purged {len(expired)} expired whispers from memory store")
        return expired

    async def count(self) -> int:
        return len(self._whispers)
