"""Tests for succession.core.config - SuccessionSettings and global config management.

Tests cover:
- Settings loading with defaults
- Environment variable and .env overrides
- Relay URL parsing (comma-separated and JSON)
- Validation of numeric bounds
- Singleton behavior (get_config / clear_config_cache)
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from succession.core.config import (
    ConflictPolicy,
    SuccessionSettings,
    clear_config_cache,
    get_config,
)

# ============================================================================
# SuccessionSettings - Default Values
# ============================================================================


class TestSettingsDefaults:
    """Test that SuccessionSettings loads with correct default values."""

    def test_resolution_defaults(self):
        settings = SuccessionSettings()

        assert settings.max_hops == 64
        assert settings.conflict_policy == ConflictPolicy.LATEST_CREATED
        assert settings.cache_max_size == 1000

    def test_polling_defaults(self):
        settings = SuccessionSettings()

        assert settings.poll_interval_seconds == 2.0
        assert settings.poll_timeout_seconds == 30.0
        assert settings.pending_max_age_seconds == 60.0

    def test_transport_defaults(self):
        settings = SuccessionSettings()

        assert settings.relay_urls == []
        assert settings.fetch_timeout_seconds == 10.0
        assert settings.mapping_path is None
        assert settings.pending_path is None

    def test_logging_defaults(self):
        settings = SuccessionSettings()

        assert settings.log_level == "INFO"
        assert settings.log_format == ""
        assert settings.log_file is None


# ============================================================================
# SuccessionSettings - Overrides
# ============================================================================


class TestSettingsOverrides:
    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("SUCCESSION_MAX_HOPS", "8")
        monkeypatch.setenv("SUCCESSION_CONFLICT_POLICY", "last_observed")
        monkeypatch.setenv("SUCCESSION_MAPPING_PATH", "/tmp/mapping.json")
        monkeypatch.setenv("SUCCESSION_POLL_INTERVAL_SECONDS", "0.5")

        settings = SuccessionSettings()

        assert settings.max_hops == 8
        assert settings.conflict_policy == ConflictPolicy.LAST_OBSERVED
        assert settings.mapping_path == "/tmp/mapping.json"
        assert settings.poll_interval_seconds == 0.5

    def test_keyword_overrides(self):
        settings = SuccessionSettings(max_hops=3, fetch_timeout_seconds=1.5)

        assert settings.max_hops == 3
        assert settings.fetch_timeout_seconds == 1.5

    def test_dotenv_file(self, tmp_path):
        (tmp_path / ".env").write_text("SUCCESSION_CACHE_MAX_SIZE=42\n")

        assert SuccessionSettings().cache_max_size == 42

    def test_relay_urls_comma_separated(self, monkeypatch):
        monkeypatch.setenv("SUCCESSION_RELAY_URLS", "wss://a.example, wss://b.example,")

        assert SuccessionSettings().relay_urls == ["wss://a.example", "wss://b.example"]

    def test_relay_urls_json_array(self, monkeypatch):
        monkeypatch.setenv("SUCCESSION_RELAY_URLS", '["wss://a.example", "wss://b.example"]')

        assert SuccessionSettings().relay_urls == ["wss://a.example", "wss://b.example"]

    @pytest.mark.parametrize(
        "name,value",
        [
            ("SUCCESSION_MAX_HOPS", "0"),
            ("SUCCESSION_POLL_TIMEOUT_SECONDS", "0"),
            ("SUCCESSION_FETCH_TIMEOUT_SECONDS", "-1"),
            ("SUCCESSION_CONFLICT_POLICY", "first_seen"),
            ("SUCCESSION_PENDING_MAX_AGE_SECONDS", "0"),
        ],
    )
    def test_invalid_values_rejected(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)

        with pytest.raises(ValidationError):
            SuccessionSettings()


# ============================================================================
# Global config
# ============================================================================


class TestGlobalConfig:
    def test_get_config_is_cached(self):
        assert get_config() is get_config()

    def test_clear_config_cache_rereads_env(self, monkeypatch):
        first = get_config()
        monkeypatch.setenv("SUCCESSION_MAX_HOPS", "5")

        assert get_config().max_hops == first.max_hops

        clear_config_cache()
        assert get_config().max_hops == 5
        assert get_config() is not first
