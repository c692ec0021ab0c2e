"""
MongoDB-backed whisper store (Beanie over motor).

Unlike the in-memory store this survives restarts. Every mutation is a single
MongoDB operation, so inserts, reply appends and the purge sweep stay atomic
with respect to each other at the document level.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from beanie import UpdateResponse, init_beanie
from motor.motor_asyncio import AsyncIOMotorClient

from whispermap_backend.exceptions import WhisperNotFoundError
from whispermap_backend.models.whisper import GeoPoint, Reply, Whisper
from whispermap_backend.models.whisper_document import WhisperDocument, to_naive_utc
from whispermap_backend.stores.base import Clock, WhisperStoreBase
from whispermap_backend.utils.geo_utils import bounding_box
from whispermap_backend.utils.logging_utils import mask_connection_string

logger = logging.getLogger(__name__)


class MongoWhisperStore(WhisperStoreBase):
    """Whisper store persisted in a MongoDB collection.

    Call :meth:`connect` (or ``init_beanie`` yourself, as the tests do) before use.
    """

    def __init__(self, client: Optional[Any] = None, clock: Optional[Clock] = None):
        super().__init__(clock)
        self._client = client

    @classmethod
    async def connect(cls, mongodb_uri: str, database: str, clock: Optional[Clock] = None) -> "MongoWhisperStore":
        """Open a motor client and register the whisper document with Beanie."""
        client = AsyncIOMotorClient(mongodb_uri)
        try:
            await init_beanie(database=client[database], document_models=[WhisperDocument])
        except Exception as e:
            logger.error(f"Failed to initialize Beanie on {mask_connection_string(mongodb_uri)}: {e}")
            client.close()
            raise
        logger.info(f"MongoDB whisper store ready ({mask_connection_string(mongodb_uri)}, db={database})")
        return cls(client=client, clock=clock)

    @property
    def backend_name(self) -> str:
        return "mongo"

    def _live_filter(self) -> Dict[str, Any]:
        return {"expires_at": {"$gt": to_naive_utc(self.now())}}

    async def insert(self, whisper: Whisper) -> str:
        prepared = self.prepare_for_insert(whisper)
        await WhisperDocument.from_whisper(prepared).insert()
        logger.debug(f"Inserted whisper {prepared.id} into MongoDB")
        return prepared.id

    async def query_by_window(
        self,
        center: GeoPoint,
        radius_meters: float,
        max_age_hours: Optional[float] = None,
    ) -> List[Whisper]:
        box = bounding_box(center, radius_meters)
        query = self._live_filter()
        query["latitude"] = {"$gte": box.min_lat, "$lte": box.max_lat}

        lng_ranges = box.longitude_ranges()
        if len(lng_ranges) == 1:
            lo, hi = lng_ranges[0]
            query["longitude"] = {"$gte": lo, "$lte": hi}
        else:
            query["$or"] = [{"longitude": {"$gte": lo, "$lte": hi}} for lo, hi in lng_ranges]

        if max_age_hours is not None:
            oldest = self.now() - timedelta(hours=max_age_hours)
            query["created_at"] = {"$gte": to_naive_utc(oldest)}

        documents = await WhisperDocument.find(query).sort("-created_at").to_list()
        return [document.to_whisper() for document in documents]

    async def find_by_id(self, whisper_id: str) -> Whisper:
        query = self._live_filter()
        query["whisper_id"] = whisper_id
        document = await WhisperDocument.find_one(query)
        if document is None:
            raise WhisperNotFoundError(whisper_id)
        return document.to_whisper()

    async def find_by_owner(self, owner_id: str) -> List[Whisper]:
        query = self._live_filter()
        query.update({"owner_id": owner_id, "is_anonymous": False})
        documents = await WhisperDocument.find(query).sort("-created_at").to_list()
        return [document.to_whisper() for document in documents]

    async def append_reply(self, whisper_id: str, reply: Reply) -> Whisper:
        query = self._live_filter()
        query["whisper_id"] = whisper_id
        reply_data = reply.model_dump()
        reply_data["created_at"] = to_naive_utc(reply.created_at)

        document = await WhisperDocument.find_one(query).update(
            {"$push": {"replies": reply_data}},
            response_type=UpdateResponse.NEW_DOCUMENT,
        )
        if document is None:
            raise WhisperNotFoundError(whisper_id)
        return document.to_whisper()

    async def purge_expired(self) -> List[Whisper]:
        cutoff = to_naive_utc(self.now())
        expired_documents = await WhisperDocument.find({"expires_at": {"$lte": cutoff}}).to_list()
        if not expired_documents:
            return []

        expired_ids = [document.whisper_id for document in expired_documents]
        result = await WhisperDocument.find({"whisper_id": {"$in": expired_ids}}).delete()
        deleted = result.deleted_count if result is not None else 0
        logger.info(f"Purged {deleted} expired whispers from MongoDB")
        return [document.to_whisper() for document in expired_documents]

    async def count(self) -> int:
        return await WhisperDocument.find({}).count()

    async def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
