"""Core configuration - centralized config for the succession package.

All environment-based configuration flows through this module.

Usage:
    from succession.core.config import get_config
    config = get_config()

    max_hops = config.max_hops
    log_level = config.log_level
"""

from __future__ import annotations

import json
from enum import StrEnum
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class ConflictPolicy(StrEnum):
    """How the store picks between two accepted migrations of the same identity."""

    LATEST_CREATED = "latest_created"
    LAST_OBSERVED = "last_observed"


class SuccessionSettings(BaseSettings):
    """Configuration settings for Succession.

    Every field can be set through a ``SUCCESSION_``-prefixed environment
    variable or a ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ==========================================================================
    # RESOLUTION
    # ==========================================================================

    max_hops: int = Field(
        default=64,
        ge=1,
        description="Maximum migration hops followed while resolving an identity",
        validation_alias="SUCCESSION_MAX_HOPS",
    )
    conflict_policy: ConflictPolicy = Field(
        default=ConflictPolicy.LATEST_CREATED,
        description="Policy for two accepted migrations of the same identity",
        validation_alias="SUCCESSION_CONFLICT_POLICY",
    )
    cache_max_size: int = Field(
        default=1000,
        ge=1,
        description="Maximum number of memoised resolutions",
        validation_alias="SUCCESSION_CACHE_MAX_SIZE",
    )

    # ==========================================================================
    # PERSISTENCE
    # ==========================================================================

    mapping_path: str | None = Field(
        default=None,
        description="JSON file holding the persisted old -> new mapping",
        validation_alias="SUCCESSION_MAPPING_PATH",
    )
    pending_path: str | None = Field(
        default=None,
        description="JSON file marking a migration this device published but has not seen converge",
        validation_alias="SUCCESSION_PENDING_PATH",
    )

    # ==========================================================================
    # TRANSPORT
    # ==========================================================================

    relay_urls: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description="Relay websocket URLs queried for migration evidence",
        validation_alias="SUCCESSION_RELAY_URLS",
    )
    fetch_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Deadline for a single lazy fetch",
        validation_alias="SUCCESSION_FETCH_TIMEOUT_SECONDS",
    )

    # ==========================================================================
    # CONVERGENCE POLLING
    # ==========================================================================

    poll_interval_seconds: float = Field(
        default=2.0,
        gt=0,
        description="Interval between convergence checks",
        validation_alias="SUCCESSION_POLL_INTERVAL_SECONDS",
    )
    poll_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Deadline after which convergence polling gives up",
        validation_alias="SUCCESSION_POLL_TIMEOUT_SECONDS",
    )
    pending_max_age_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Age after which a pending migration marker is considered abandoned",
        validation_alias="SUCCESSION_PENDING_MAX_AGE_SECONDS",
    )

    # ==========================================================================
    # LOGGING
    # ==========================================================================

    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
        validation_alias="SUCCESSION_LOG_LEVEL",
    )
    log_format: str = Field(
        default="",
        description="Log format: 'json', 'text', or '' (auto-detect)",
        validation_alias="SUCCESSION_LOG_FORMAT",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (optional)",
        validation_alias="SUCCESSION_LOG_FILE",
    )

    @field_validator("relay_urls", mode="before")
    @classmethod
    def _split_relay_urls(cls, value: object) -> object:
        # Accept a comma-separated string as well as a JSON array.
        if not isinstance(value, str):
            return value
        if value.lstrip().startswith("["):
            return json.loads(value)
        return [url.strip() for url in value.split(",") if url.strip()]


# Global settings instance, lazily created
_config: SuccessionSettings | None = None


def get_config() -> SuccessionSettings:
    """Get the global settings instance.

    Settings are read from the environment once and cached.
    """
    global _config
    if _config is None:
        _config = SuccessionSettings()
    return _config


def clear_config_cache() -> None:
    """Clear the cached settings so the next call re-reads the environment.

    Primarily for testing purposes.
    """
    global _config
    _config = None
