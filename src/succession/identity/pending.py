"""Migrations this device has published but not yet seen converge.

After publishing, the host polls until the rest of the network resolves the
old identity to the new one (see
:class:`~succession.core.polling.ConvergencePollWatcher`). Meanwhile a
:class:`PendingMigration` marks which scopes are mid-migration, so the host
can hold back scope traffic signed with the old key. A marker older than
``max_age`` seconds is treated as abandoned.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..core.exceptions import InvalidIdentityError
from .events import normalize_identity
from .models import MigrationRecord
from .store import write_json_atomic

logger = logging.getLogger(__name__)

PENDING_MIGRATION_MAX_AGE = 60.0  # seconds


@dataclass(frozen=True)
class PendingMigration:
    """An in-progress migration of this device's identity."""

    from_identity: str
    to_identity: str
    scopes: tuple[str, ...]
    started_at: float

    @classmethod
    def from_record(cls, record: MigrationRecord, started_at: float) -> PendingMigration:
        return cls(record.from_identity, record.to_identity, record.scopes, started_at)

    @classmethod
    def parse(cls, data: Any, now: float | None = None) -> PendingMigration | None:
        """Validate a stored marker.

        Args:
            data: A JSON string or an already decoded object.
            now: Substituted when the marker carries no start time.

        Returns:
            The marker, or ``None`` if ``data`` is empty or invalid.
        """
        if not data:
            return None
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except (json.JSONDecodeError, RecursionError):
                return None
        if not isinstance(data, dict):
            return None

        scopes = data.get("scopes")
        if not isinstance(scopes, list) or not all(isinstance(s, str) for s in scopes):
            return None
        try:
            from_identity = normalize_identity(data.get("from"))
            to_identity = normalize_identity(data.get("to"))
        except InvalidIdentityError:
            return None

        started_at = data.get("started_at")
        if not isinstance(started_at, (int, float)) or isinstance(started_at, bool) or started_at <= 0:
            started_at = now if now is not None else time.time()

        return cls(from_identity, to_identity, tuple(scopes), float(started_at))

    def to_dict(self) -> dict[str, Any]:
        return {
            "from": self.from_identity,
            "to": self.to_identity,
            "scopes": list(self.scopes),
            "started_at": self.started_at,
        }

    def is_scope_migrating(self, scope: str) -> bool:
        return scope in self.scopes

    def is_expired(self, now: float, max_age: float = PENDING_MIGRATION_MAX_AGE) -> bool:
        return now - self.started_at > max_age


class PendingMigrationTracker:
    """Holds at most one :class:`PendingMigration`.

    Args:
        path: JSON file the marker is persisted to; in memory only if omitted.
        max_age: Seconds after which the marker expires.
        clock: Returns the current UNIX time.
    """

    def __init__(
        self,
        path: str | Path | None = None,
        max_age: float = PENDING_MIGRATION_MAX_AGE,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.path = Path(path).expanduser() if path is not None else None
        self.max_age = max_age
        self._clock = clock or time.time
        self._pending = self._load()

    def _load(self) -> PendingMigration | None:
        if self.path is None or not self.path.exists():
            return None
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning(f"Failed to read pending migration from {self.path}: {e}")
            return None
        pending = PendingMigration.parse(text, now=self._clock())
        if pending is None:
            logger.warning(f"Ignoring invalid pending migration in {self.path}")
        return pending

    @property
    def current(self) -> PendingMigration | None:
        """The pending migration, or ``None`` if there is none or it expired."""
        if self._pending is not None and self._pending.is_expired(self._clock(), self.max_age):
            logger.info(f"Pending migration from {self._pending.from_identity[:12]}… expired")
            self.clear()
        return self._pending

    @property
    def migrating_scopes(self) -> tuple[str, ...]:
        pending = self.current
        return pending.scopes if pending is not None else ()

    def is_migrating(self, scope: str) -> bool:
        pending = self.current
        return pending is not None and pending.is_scope_migrating(scope)

    def start(self, record: MigrationRecord) -> PendingMigration:
        """Mark ``record`` as this device's in-progress migration."""
        pending = PendingMigration.from_record(record, started_at=self._clock())
        self._pending = pending
        if self.path is not None:
            write_json_atomic(self.path, pending.to_dict())
        logger.info(f"Migration to {pending.to_identity[:12]}… pending in {len(pending.scopes)} scope(s)")
        return pending

    def clear(self) -> None:
        self._pending = None
        if self.path is not None:
            self.path.unlink(missing_ok=True)
