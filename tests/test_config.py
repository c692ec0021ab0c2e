"""Tests for configuration merging and typed settings."""

import pytest

from whispermap_backend import config
from whispermap_backend.config import (
    DEFAULT_CONFIG,
    DiscoverySettings,
    get_cleanup_settings,
    get_discovery_settings,
    get_store_settings,
    merge_configs,
    reload_config,
)
from whispermap_backend.utils.logging_utils import mask_connection_string, mask_dict


@pytest.fixture
def config_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("CONFIG_DIR", str(tmp_path))
    for name in ("WHISPER_STORE_BACKEND", "MONGODB_URI", "MONGODB_DATABASE", "UPLOADS_DIR"):
        monkeypatch.delenv(name, raising=False)
    yield tmp_path
    config._config_cache = None


@pytest.mark.unit
class TestMergeConfigs:
    def test_nested_override(self):
        merged = merge_configs({"a": {"x": 1, "y": 2}, "b": [1]}, {"a": {"y": 3}, "b": [2]})
        assert merged == {"a": {"x": 1, "y": 3}, "b": [2]}

    def test_defaults_not_mutated(self, config_dir):
        (config_dir / "config.yml").write_text("discovery:\n  max_results: 5\n")
        reload_config()
        assert DEFAULT_CONFIG["discovery"]["max_results"] == 200


@pytest.mark.unit
class TestSettings:
    def test_builtin_defaults(self, config_dir):
        reload_config()
        discovery = get_discovery_settings()
        assert discovery.max_detection_radius_meters == 2000.0
        assert discovery.premium_max_lifetime_days == 90
        assert discovery.max_age_hours is None
        assert get_cleanup_settings().schedule == "0 * * * *"

    def test_yaml_layers(self, config_dir):
        (config_dir / "defaults.yml").write_text("store:\n  backend: mongo\n  database: base\n")
        (config_dir / "config.yml").write_text("store:\n  database: override\n")
        reload_config()

        store = get_store_settings()
        assert store.backend == "mongo"
        assert store.database == "override"

    def test_env_wins(self, config_dir, monkeypatch):
        (config_dir / "config.yml").write_text("store:\n  backend: mongo\n")
        monkeypatch.setenv("WHISPER_STORE_BACKEND", "memory")
        reload_config()
        assert get_store_settings().backend == "memory"

    def test_tier_limits(self):
        settings = DiscoverySettings()
        assert settings.detection_radius_limit(False) == 2000.0
        assert settings.detection_radius_limit(True) == 5000.0
        assert settings.whisper_radius_limit(True) == 3000.0
        assert settings.lifetime_days_limit(False) == 7


@pytest.mark.unit
class TestMasking:
    def test_connection_string_password_masked(self):
        masked = mask_connection_string("mongodb://user:s3cret@db:27017/whispers")
        assert "s3cret" not in masked
        assert masked.startswith("mongodb://user:")

    def test_mask_dict(self):
        masked = mask_dict({"mongodb_uri": "mongodb://u:p@h/db", "api_token": "abc", "database": "w"})
        assert masked["api_token"] != "abc"
        assert ":p@" not in masked["mongodb_uri"]
        assert masked["database"] == "w"
