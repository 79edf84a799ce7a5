"""Succession Core - Shared configuration, logging, errors and primitives."""

from .config import ConflictPolicy, SuccessionSettings, clear_config_cache, get_config
from .exceptions import (
    ConfigException,
    InvalidIdentityError,
    MalformedEventError,
    MigrationFetchError,
    StoreIntegrityError,
    SuccessionException,
    TransportError,
    ValidationException,
)
from .logging import configure_logging, get_correlation_id, log_context
from .lru_cache import LRUDict
from .polling import ConvergencePollWatcher, PollOutcome, PollSession

__all__ = [
    # Config
    "ConflictPolicy",
    "SuccessionSettings",
    "clear_config_cache",
    "get_config",
    # Exceptions
    "ConfigException",
    "InvalidIdentityError",
    "MalformedEventError",
    "MigrationFetchError",
    "StoreIntegrityError",
    "SuccessionException",
    "TransportError",
    "ValidationException",
    # Logging
    "configure_logging",
    "log_context",
    "get_correlation_id",
    # Primitives
    "LRUDict",
    "ConvergencePollWatcher",
    "PollOutcome",
    "PollSession",
]
