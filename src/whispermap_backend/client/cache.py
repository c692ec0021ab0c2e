"""
Durable client-side cache.

One JSON file holds two keyed snapshots, the way the web client keeps them in
localStorage:

- ``whispers``: the last reconciled display list plus the ids this client
  created itself (those are "persistent" and survive a server reset)
- ``last_location``: the last successful position fix, used as a fallback
  when live geolocation fails

Every write replaces the whole snapshot (last write wins).
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from pydantic import ValidationError

from whispermap_backend.models.whisper import GeoPoint, Whisper, format_timestamp, utc_now

logger = logging.getLogger(__name__)

WHISPERS_KEY = "whispers"
LAST_LOCATION_KEY = "last_location"


@dataclass
class CacheSnapshot:
    whispers: List[Whisper] = field(default_factory=list)
    persistent_ids: Set[str] = field(default_factory=set)
    saved_at: Optional[str] = None


class LocalWhisperCache:
    """File-backed cache owned by a single client process."""

    def __init__(self, path: Path, clock: Callable[[], datetime] = utc_now):
        self.path = Path(path)
        self._clock = clock

    # -- raw file access -----------------------------------------------------

    def _read_all(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("cache root is not an object")
            return data
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable whisper cache {self.path}: {e}")
            return {}

    def _write_key(self, key: str, value: Any) -> None:
        data = self._read_all()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".cache-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    # -- whispers snapshot ---------------------------------------------------

    def load_snapshot(self) -> CacheSnapshot:
        """Read the whisper snapshot; malformed records are skipped."""
        raw = self._read_all().get(WHISPERS_KEY) or {}
        whispers = []
        for item in raw.get("items") or []:
            try:
                whispers.append(Whisper.from_wire(item))
            except (ValidationError, ValueError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping malformed cached whisper {item.get('id') if isinstance(item, dict) else item!r}: {e}")
        return CacheSnapshot(
            whispers=whispers,
            persistent_ids=set(raw.get("persistent_ids") or []),
            saved_at=raw.get("saved_at"),
        )

    def save_snapshot(self, whispers: Iterable[Whisper], persistent_ids: Iterable[str]) -> None:
        """Replace the whisper snapshot. Persistent ids not in the list are dropped."""
        whispers = list(whispers)
        present = {w.id for w in whispers}
        self._write_key(
            WHISPERS_KEY,
            {
                "items": [w.to_wire() for w in whispers],
                "persistent_ids": sorted(set(persistent_ids) & present),
                "saved_at": format_timestamp(self._clock()),
            },
        )

    def add_own_whisper(self, whisper: Whisper) -> None:
        """Mirror a whisper this client just created; it is kept as persistent."""
        snapshot = self.load_snapshot()
        others = [w for w in snapshot.whispers if w.id != whisper.id]
        self.save_snapshot([whisper, *others], snapshot.persistent_ids | {whisper.id})

    # -- last known location -------------------------------------------------

    def load_last_location(self) -> Optional[GeoPoint]:
        raw = self._read_all().get(LAST_LOCATION_KEY)
        if not raw:
            return None
        try:
            return GeoPoint.from_wire(raw)
        except (ValidationError, ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Ignoring malformed cached location: {e}")
            return None

    def save_last_location(self, location: GeoPoint) -> None:
        self._write_key(
            LAST_LOCATION_KEY,
            {**location.to_wire(), "saved_at": format_timestamp(self._clock())},
        )

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
