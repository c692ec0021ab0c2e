"""
Client-side settings for whisper discovery.

Two profiles mirror the web app's behaviour: desktop refreshes often and
shows everything; constrained/mobile contexts refresh less and cap the list.
"""

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional


def default_cache_path() -> Path:
    return Path(os.getenv("WHISPERMAP_CACHE_PATH", Path.home() / ".whispermap" / "cache.json"))


@dataclass
class ClientSettings:
    """Timing, radius and display limits for one client process."""
    base_url: str = "http://localhost:9000"
    detection_radius_meters: float = 100.0
    min_fetch_interval_seconds: float = 10.0
    max_display_count: Optional[int] = None
    fetch_timeout_seconds: float = 15.0
    submit_timeout_seconds: float = 60.0
    location_timeout_seconds: float = 10.0
    # Last-resort watchdog for a whole fetch cycle, independent of the fetch timeout
    safety_timeout_seconds: float = 30.0
    refresh_interval_seconds: float = 30.0
    cache_path: Optional[Path] = None
    user_id: Optional[str] = None
    premium: bool = False

    @classmethod
    def desktop(cls, **overrides) -> "ClientSettings":
        return replace(cls(), **overrides)

    @classmethod
    def mobile(cls, **overrides) -> "ClientSettings":
        base = cls(
            min_fetch_interval_seconds=60.0,
            max_display_count=20,
            refresh_interval_seconds=120.0,
        )
        return replace(base, **overrides)

    def resolved_cache_path(self) -> Path:
        return self.cache_path or default_cache_path()
