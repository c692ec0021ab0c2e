"""Whisper store implementations and the factory that picks one from config."""

import logging
from typing import Optional

from whispermap_backend.config import StoreSettings
from whispermap_backend.stores.base import Clock, WhisperStoreBase
from whispermap_backend.stores.memory_store import InMemoryWhisperStore

logger = logging.getLogger(__name__)

__all__ = ["InMemoryWhisperStore", "WhisperStoreBase", "create_whisper_store"]


async def create_whisper_store(settings: StoreSettings, clock: Optional[Clock] = None) -> WhisperStoreBase:
    """Build the store named by ``settings.backend``."""
    backend = settings.backend.lower()
    if backend == "memory":
        logger.warning("Using in-memory whisper store: whispers are lost on restart")
        return InMemoryWhisperStore(clock=clock)
    if backend == "mongo":
        # Lazy import keeps motor/beanie off the path for memory-only deployments
        from whispermap_backend.stores.mongo_store import MongoWhisperStore

        return await MongoWhisperStore.connect(settings.mongodb_uri, settings.database, clock=clock)
    raise ValueError(f"Unknown whisper store backend: {settings.backend}")
