"""Migration mapping store.

Holds the ``old identity -> new identity`` edges accepted by the verifier.
Each identity has at most one outgoing edge; a later accepted migration of
the same identity replaces the earlier one according to the configured
:class:`~succession.core.config.ConflictPolicy`.

Persistence is pluggable through :class:`MappingBackend`. The persisted form
is a flat JSON object keyed by lowercase-hex old identity and valued by
lowercase-hex new identity.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Protocol

from ..core.config import ConflictPolicy
from ..core.exceptions import InvalidIdentityError, StoreIntegrityError
from .events import normalize_identity
from .models import MigrationRecord

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Persistence backends
# ---------------------------------------------------------------------------


def write_json_atomic(path: Path, data: object) -> None:
    """Write ``data`` as JSON to ``path`` through a temporary file and rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, sort_keys=True)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


class MappingBackend(Protocol):
    """Storage medium for the flat mapping."""

    def read(self) -> dict[str, str]: ...
    def write(self, mapping: dict[str, str]) -> None: ...


class InMemoryMappingBackend:
    """Keeps the last written mapping in memory (default / tests)."""

    def __init__(self, initial: Mapping[str, str] | None = None) -> None:
        self._mapping: dict[str, str] = dict(initial or {})
        self.writes = 0

    def read(self) -> dict[str, str]:
        return dict(self._mapping)

    def write(self, mapping: dict[str, str]) -> None:
        self._mapping = dict(mapping)
        self.writes += 1


class JSONFileMappingBackend:
    """Stores the mapping as a JSON object in a file.

    Writes go to a temporary file in the same directory and are renamed into
    place, so a crash never leaves a half-written mapping behind.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()

    def read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        with open(self.path, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} does not contain a JSON object")
        return {str(k): str(v) for k, v in data.items()}

    def write(self, mapping: dict[str, str]) -> None:
        write_json_atomic(self.path, mapping)


# ---------------------------------------------------------------------------
# MigrationStore
# ---------------------------------------------------------------------------


class MigrationStore:
    """In-memory ``from -> to`` mapping with optional write-through persistence.

    Writes are synchronous: a :meth:`record` is visible to the very next
    :meth:`lookup_direct`, with no suspension point in between.

    Args:
        backend: Where the mapping is persisted. Read once on construction.
        conflict_policy: How competing migrations of one identity are ordered.
    """

    def __init__(
        self,
        backend: MappingBackend | None = None,
        conflict_policy: ConflictPolicy = ConflictPolicy.LATEST_CREATED,
    ) -> None:
        self._backend = backend
        self.conflict_policy = conflict_policy
        self._edges: dict[str, str] = {}
        self._records: dict[str, MigrationRecord] = {}
        self._revision = 0

        if backend is not None:
            try:
                persisted = backend.read()
            except (OSError, ValueError) as e:
                logger.warning(f"Failed to read persisted migrations: {e}")
            else:
                self._replace(persisted)

    # -- queries --

    @property
    def revision(self) -> int:
        """Counter bumped on every change; used to invalidate derived caches."""
        return self._revision

    def lookup_direct(self, identity: str) -> str | None:
        """Return the direct successor of ``identity``, if any."""
        try:
            return self._edges.get(normalize_identity(identity))
        except InvalidIdentityError:
            return None

    def get_record(self, identity: str) -> MigrationRecord | None:
        """Return the record behind the edge of ``identity``.

        Edges restored through :meth:`load` have no record.
        """
        try:
            return self._records.get(normalize_identity(identity))
        except InvalidIdentityError:
            return None

    def snapshot(self) -> dict[str, str]:
        """Return a copy of the mapping, suitable for persistence."""
        return dict(self._edges)

    def __len__(self) -> int:
        return len(self._edges)

    def __contains__(self, identity: object) -> bool:
        return isinstance(identity, str) and self.lookup_direct(identity) is not None

    # -- mutations --

    def record(self, record: MigrationRecord) -> bool:
        """Upsert the edge ``record.from_identity -> record.to_identity``.

        Returns:
            ``True`` if the edge was written, ``False`` if an existing record
            for the same identity takes precedence.

        Raises:
            StoreIntegrityError: If the record would create a self-loop.
        """
        from_id = normalize_identity(record.from_identity)
        to_id = normalize_identity(record.to_identity)
        if from_id == to_id:
            raise StoreIntegrityError("Refusing to record a self-migration", identity=from_id)

        existing = self._records.get(from_id)
        if existing is not None and not self._supersedes(record, existing):
            logger.debug(
                f"Keeping migration {from_id[:12]}… -> {existing.to_identity[:12]}… "
                f"(event {record.source_event_id[:12]}… does not supersede it)"
            )
            return False

        previous = self._edges.get(from_id)
        self._edges[from_id] = to_id
        self._records[from_id] = record
        self._revision += 1
        self._persist()

        if previous is not None and previous != to_id:
            logger.info(f"Migration {from_id[:12]}… re-pointed from {previous[:12]}… to {to_id[:12]}…")
        else:
            logger.info(f"Stored migration {from_id[:12]}… -> {to_id[:12]}…")
        return True

    def load(self, mapping: Mapping[str, str]) -> None:
        """Replace all state with a previously persisted mapping."""
        self._replace(mapping)
        self._persist()

    def clear(self) -> None:
        self._edges.clear()
        self._records.clear()
        self._revision += 1
        self._persist()

    # -- internals --

    def _supersedes(self, new: MigrationRecord, existing: MigrationRecord) -> bool:
        if self.conflict_policy == ConflictPolicy.LAST_OBSERVED:
            return True
        if new.created_at != existing.created_at:
            return new.created_at > existing.created_at
        # Same timestamp: the lexicographically smaller event id wins
        return new.source_event_id < existing.source_event_id

    def _replace(self, mapping: Mapping[str, str]) -> None:
        edges: dict[str, str] = {}
        for raw_from, raw_to in mapping.items():
            try:
                from_id = normalize_identity(raw_from)
                to_id = normalize_identity(raw_to)
            except InvalidIdentityError:
                logger.warning(f"Skipping malformed persisted migration {raw_from!r} -> {raw_to!r}")
                continue
            if from_id == to_id:
                logger.warning(f"Skipping persisted self-migration of {from_id[:12]}…")
                continue
            edges[from_id] = to_id

        self._edges = edges
        self._records = {}
        self._revision += 1
        logger.debug(f"Loaded {len(edges)} migrations")

    def _persist(self) -> None:
        if self._backend is None:
            return
        try:
            self._backend.write(self.snapshot())
        except OSError as e:
            logger.warning(f"Failed to persist migrations: {e}")
