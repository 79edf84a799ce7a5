"""Global test fixtures for the Succession test suite."""

from __future__ import annotations

import os
from collections.abc import Callable, Iterable
from typing import Any

import pytest

from succession.core.config import clear_config_cache
from succession.identity.events import Ed25519Signer, SignedEvent
from succession.identity.models import create_migration_event

# ============================================================================
# Environment isolation
# ============================================================================


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Run every test without SUCCESSION_* variables or a stray .env file."""
    for key in list(os.environ):
        if key.startswith("SUCCESSION_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    clear_config_cache()
    yield
    clear_config_cache()


# ============================================================================
# Keys
# ============================================================================


@pytest.fixture
def alice() -> Ed25519Signer:
    """The original identity."""
    return Ed25519Signer.generate()


@pytest.fixture
def alice2() -> Ed25519Signer:
    """Alice's first replacement key."""
    return Ed25519Signer.generate()


@pytest.fixture
def alice3() -> Ed25519Signer:
    """Alice's second replacement key."""
    return Ed25519Signer.generate()


@pytest.fixture
def mallory() -> Ed25519Signer:
    """An attacker's key."""
    return Ed25519Signer.generate()


# ============================================================================
# Events
# ============================================================================


@pytest.fixture
def make_migration() -> Callable[..., dict[str, Any]]:
    """Factory building a raw, correctly signed migration event dict."""

    def _make(
        old: Ed25519Signer,
        new: Ed25519Signer,
        scopes: Iterable[str] = (),
        created_at: int = 1_700_000_000,
    ) -> dict[str, Any]:
        event: SignedEvent = create_migration_event(old, new, scopes, created_at=created_at)
        return event.to_dict()

    return _make


@pytest.fixture
def fixed_clock() -> Callable[[], float]:
    return lambda: 1_700_000_500.0
