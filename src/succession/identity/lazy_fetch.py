"""On-demand, deduplicated fetching of migration evidence.

When the resolver cannot answer from its cache, it asks the
:class:`LazyFetchCoordinator` to query the transport. Concurrent requests for
the same identity share one in-flight task, so a burst of lookups for a
single identity costs a single query.

Every event the transport returns goes through the verifier, and accepted
records are written to the store *before* the task completes. Anyone
awaiting the fetch therefore sees the new edges on their next resolution.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from ..core.exceptions import MigrationFetchError, TransportError
from ..core.logging import log_context
from ..transport.base import EventFilter, EventTransport, RawEvent
from .events import MIGRATION_KIND, normalize_identity
from .models import SCOPE_TAG, MigrationRecord
from .store import MigrationStore
from .verifier import MigrationEventVerifier

logger = logging.getLogger(__name__)

DEFAULT_FETCH_TIMEOUT = 10.0  # seconds


class LazyFetchCoordinator:
    """Queries the transport for migrations of one identity at a time.

    Args:
        transport: Where migration events are queried.
        verifier: Validates every returned event.
        store: Receives accepted records.
        timeout: Deadline in seconds for one transport query.
    """

    def __init__(
        self,
        transport: EventTransport,
        verifier: MigrationEventVerifier,
        store: MigrationStore,
        timeout: float = DEFAULT_FETCH_TIMEOUT,
    ) -> None:
        self.transport = transport
        self.verifier = verifier
        self.store = store
        self.timeout = timeout
        self._in_flight: dict[str, asyncio.Task[list[MigrationRecord]]] = {}

    @property
    def in_flight(self) -> set[str]:
        """Identities with a fetch currently outstanding."""
        return set(self._in_flight)

    async def fetch(self, identity: str, scope: str | None = None) -> list[MigrationRecord]:
        """Fetch and apply migrations authored by ``identity``.

        A caller arriving while a fetch for the same identity is outstanding
        joins it instead of issuing another query. Cancelling one caller does
        not cancel the shared fetch.

        Returns:
            Records that were accepted and written to the store.

        Raises:
            InvalidIdentityError: If ``identity`` is not well-formed.
            MigrationFetchError: If the transport failed or timed out.
        """
        key = normalize_identity(identity)
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.get_running_loop().create_task(self._fetch(key, scope))
            task.add_done_callback(_consume_exception)
            self._in_flight[key] = task
        else:
            logger.debug(f"Joining in-flight fetch for {key[:12]}…")
        return await asyncio.shield(task)

    async def fetch_scope(self, scope: str) -> list[MigrationRecord]:
        """Fetch and apply every migration tagged with ``scope``.

        Raises:
            MigrationFetchError: If the transport failed or timed out.
        """
        filters: EventFilter = {"kinds": [MIGRATION_KIND], f"#{SCOPE_TAG}": [scope]}
        with log_context(scope=scope):
            logger.info(f"Fetching migrations for scope {scope}")
            events = await self._query(filters, identity=scope, scope=scope)
            return self._apply(events)

    async def _fetch(self, identity: str, scope: str | None) -> list[MigrationRecord]:
        try:
            filters: EventFilter = {"kinds": [MIGRATION_KIND], "authors": [identity]}
            if scope:
                filters[f"#{SCOPE_TAG}"] = [scope]

            with log_context(identity=identity, scope=scope):
                logger.debug(f"Fetching migrations for {identity[:12]}… (scope={scope})")
                events = await self._query(filters, identity=identity, scope=scope)
                return self._apply(events)
        finally:
            # Removed before the task completes, so later callers start fresh
            self._in_flight.pop(identity, None)

    async def _query(self, filters: EventFilter, identity: str, scope: str | None) -> list[RawEvent]:
        try:
            events = await asyncio.wait_for(self.transport.query_events(filters), timeout=self.timeout)
        except (TransportError, TimeoutError, OSError) as e:
            logger.warning(f"Migration fetch for {identity[:16]} failed: {e or 'timeout'}")
            raise MigrationFetchError(identity, scope, e) from e
        if not isinstance(events, list):
            raise MigrationFetchError(identity, scope, TransportError("transport returned a non-list result"))
        return events

    def _apply(self, events: Iterable[RawEvent]) -> list[MigrationRecord]:
        accepted: list[MigrationRecord] = []
        received = 0
        for event in events:
            received += 1
            result = self.verifier.verify(event)
            if result.record is not None and self.store.record(result.record):
                accepted.append(result.record)
        logger.info(f"Processed {received} migration events, applied {len(accepted)}")
        return accepted


def _consume_exception(task: asyncio.Task) -> None:
    # Marks the exception as retrieved when every waiter was cancelled
    if not task.cancelled():
        task.exception()
