"""
Client side of WhisperMap: fetches nearby whispers, reconciles them with a
local cache and degrades to cached data when the server is unreachable.
"""

from whispermap_backend.client.api_client import WhisperApiClient
from whispermap_backend.client.cache import CacheSnapshot, LocalWhisperCache
from whispermap_backend.client.location import LocationFix, LocationResolver
from whispermap_backend.client.reconciliation import (
    FetchState,
    Notice,
    ReconciliationLayer,
    merge_whispers,
)
from whispermap_backend.client.settings import ClientSettings

__all__ = [
    "CacheSnapshot",
    "ClientSettings",
    "FetchState",
    "LocalWhisperCache",
    "LocationFix",
    "LocationResolver",
    "Notice",
    "ReconciliationLayer",
    "WhisperApiClient",
    "merge_whispers",
]
