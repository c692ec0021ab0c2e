"""
Service container for the WhisperMap backend.

The store, discovery engine and audio storage are created once during app
startup and shared by every request handler and background job.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from whispermap_backend.config import (
    DiscoverySettings,
    StorageSettings,
    get_discovery_settings,
    get_storage_settings,
    get_store_settings,
)
from whispermap_backend.services.audio_storage import AudioStorage
from whispermap_backend.services.discovery import DiscoveryEngine
from whispermap_backend.stores import WhisperStoreBase, create_whisper_store

logger = logging.getLogger(__name__)


@dataclass
class WhisperServices:
    store: WhisperStoreBase
    discovery: DiscoveryEngine
    audio_storage: AudioStorage
    settings: DiscoverySettings


_services: Optional[WhisperServices] = None


def build_services(
    store: WhisperStoreBase,
    discovery_settings: Optional[DiscoverySettings] = None,
    storage_settings: Optional[StorageSettings] = None,
) -> WhisperServices:
    """Wire services around an existing store."""
    discovery_settings = discovery_settings or get_discovery_settings()
    return WhisperServices(
        store=store,
        discovery=DiscoveryEngine(store, discovery_settings),
        audio_storage=AudioStorage(storage_settings or get_storage_settings()),
        settings=discovery_settings,
    )


async def init_services() -> WhisperServices:
    """Create the configured store and the services around it."""
    store = await create_whisper_store(get_store_settings())
    services = build_services(store)
    set_services(services)
    logger.info(f"Whisper services initialized (store backend: {store.backend_name})")
    return services


def set_services(services: Optional[WhisperServices]) -> None:
    global _services
    _services = services


def get_services() -> WhisperServices:
    """FastAPI dependency and job accessor for the shared services."""
    if _services is None:
        raise RuntimeError("Whisper services not initialized")
    return _services


async def shutdown_services() -> None:
    global _services
    if _services is not None:
        await _services.store.close()
        _services = None
