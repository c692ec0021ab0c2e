"""
Configuration management for the WhisperMap backend.

Settings come from ``defaults.yml`` merged with an optional ``config.yml``
(both in ``CONFIG_DIR``), with a handful of environment variable overrides.
Typed accessors return dataclasses so callers never index raw dicts.
"""

import copy
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

from whispermap_backend.utils.logging_utils import mask_dict

logger = logging.getLogger(__name__)

# Built-in defaults, used when defaults.yml is missing or incomplete
DEFAULT_CONFIG = {
    "store": {
        "backend": "memory",  # memory | mongo
        "mongodb_uri": "mongodb://localhost:27017",
        "database": "whispermap",
    },
    "discovery": {
        "default_detection_radius_meters": 100.0,
        "max_detection_radius_meters": 2000.0,
        "premium_max_detection_radius_meters": 5000.0,
        "default_whisper_radius_meters": 100.0,
        "max_whisper_radius_meters": 1000.0,
        "premium_max_whisper_radius_meters": 3000.0,
        "default_lifetime_days": 7,
        "max_lifetime_days": 7,
        "premium_max_lifetime_days": 90,
        "max_age_hours": None,  # None = no age limit beyond expiry
        "max_results": 200,
        "enforce_whisper_radius": False,
    },
    "storage": {
        "uploads_dir": "./uploads",
        "max_upload_bytes": 10 * 1024 * 1024,
    },
    "cleanup": {
        "enabled": True,
        "schedule": "0 * * * *",  # hourly expiry sweep
    },
}


# ============================================================================
# Configuration Merging System (defaults.yml + config.yml)
# ============================================================================

def get_config_dir() -> Path:
    """Get config directory path. Single source of truth for config location."""
    return Path(os.getenv("CONFIG_DIR", "config"))


def get_config_yml_path() -> Path:
    """Get path to config.yml file."""
    return get_config_dir() / "config.yml"


def get_defaults_yml_path() -> Path:
    """Get path to defaults.yml file."""
    return get_config_dir() / "defaults.yml"


def merge_configs(defaults: dict, overrides: dict) -> dict:
    """
    Deep merge two configuration dictionaries.

    Override values take precedence over defaults.
    Lists are replaced (not merged).

    Args:
        defaults: Default configuration values
        overrides: User-provided overrides

    Returns:
        Merged configuration dictionary
    """
    result = defaults.copy()

    for key, value in overrides.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = value

    return result


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        logger.info(f"Loaded configuration from {path}")
        return data
    except Exception as e:
        logger.error(f"Error loading configuration from {path}: {e}")
        return {}


def _apply_env_overrides(config: dict) -> dict:
    """Environment variables win over both YAML files for deployment-specific keys."""
    if os.getenv("WHISPER_STORE_BACKEND"):
        config["store"]["backend"] = os.environ["WHISPER_STORE_BACKEND"]
    if os.getenv("MONGODB_URI"):
        config["store"]["mongodb_uri"] = os.environ["MONGODB_URI"]
    if os.getenv("MONGODB_DATABASE"):
        config["store"]["database"] = os.environ["MONGODB_DATABASE"]
    if os.getenv("UPLOADS_DIR"):
        config["storage"]["uploads_dir"] = os.environ["UPLOADS_DIR"]
    return config


# Global cache for merged config
_config_cache: Optional[dict] = None


def get_config(force_reload: bool = False) -> dict:
    """
    Get merged configuration.

    Priority order: environment variables > config.yml > defaults.yml > built-in defaults

    Args:
        force_reload: If True, reload from disk even if cached

    Returns:
        Merged configuration dictionary with all settings
    """
    global _config_cache

    if _config_cache is not None and not force_reload:
        return _config_cache

    merged = merge_configs(copy.deepcopy(DEFAULT_CONFIG), _load_yaml(get_defaults_yml_path()))
    merged = merge_configs(merged, _load_yaml(get_config_yml_path()))
    merged = _apply_env_overrides(merged)

    logger.debug(f"Effective store config: {mask_dict(merged['store'])}")

    _config_cache = merged
    return merged


def reload_config() -> dict:
    """Reload configuration from disk (invalidate cache)."""
    global _config_cache
    _config_cache = None
    return get_config(force_reload=True)


# ============================================================================
# Typed settings
# ============================================================================

@dataclass
class StoreSettings:
    """Backing store selection for whispers."""
    backend: str = "memory"
    mongodb_uri: str = "mongodb://localhost:27017"
    database: str = "whispermap"


@dataclass
class DiscoverySettings:
    """Radius, lifetime and result-size limits, split by tier."""
    default_detection_radius_meters: float = 100.0
    max_detection_radius_meters: float = 2000.0
    premium_max_detection_radius_meters: float = 5000.0
    default_whisper_radius_meters: float = 100.0
    max_whisper_radius_meters: float = 1000.0
    premium_max_whisper_radius_meters: float = 3000.0
    default_lifetime_days: int = 7
    max_lifetime_days: int = 7
    premium_max_lifetime_days: int = 90
    max_age_hours: Optional[float] = None
    max_results: int = 200
    enforce_whisper_radius: bool = False

    def detection_radius_limit(self, premium: bool) -> float:
        return self.premium_max_detection_radius_meters if premium else self.max_detection_radius_meters

    def whisper_radius_limit(self, premium: bool) -> float:
        return self.premium_max_whisper_radius_meters if premium else self.max_whisper_radius_meters

    def lifetime_days_limit(self, premium: bool) -> int:
        return self.premium_max_lifetime_days if premium else self.max_lifetime_days


@dataclass
class StorageSettings:
    """Where uploaded audio lands and how large it may be."""
    uploads_dir: str = "./uploads"
    max_upload_bytes: int = 10 * 1024 * 1024


@dataclass
class CleanupSettings:
    """Expiry sweep schedule."""
    enabled: bool = True
    schedule: str = "0 * * * *"


def get_store_settings() -> StoreSettings:
    return StoreSettings(**get_config()["store"])


def get_discovery_settings() -> DiscoverySettings:
    return DiscoverySettings(**get_config()["discovery"])


def get_storage_settings() -> StorageSettings:
    return StorageSettings(**get_config()["storage"])


def get_cleanup_settings() -> CleanupSettings:
    return CleanupSettings(**get_config()["cleanup"])
