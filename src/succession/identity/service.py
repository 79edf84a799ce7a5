"""Migration service — wires verifier, store, resolver and fetch coordinator.

The host application constructs one :class:`MigrationService` at startup and
hands it to every consumer. Collaborators (store, transport, clock) are
injected, so tests can build the whole engine in memory.

Typical workflow::

    service = MigrationService.from_settings(get_config(), transport)

    # Inbound events from a live subscription
    service.ingest(raw_event)

    # Who is this identity now?
    current = service.resolver.resolve_identity(pubkey)
    current = await service.resolver.resolve_lazy(pubkey, scope=group_id)

    # Rotate our own key
    event = service.create_migration_event(old_signer, new_signer, scopes=[group_id])
    await service.publish(event)
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from ..core.config import SuccessionSettings, get_config
from ..core.exceptions import ConfigException, TransportError
from ..core.polling import CheckFn, Callback, ConvergencePollWatcher
from ..transport.base import EventTransport, RawEvent
from .events import SignedEvent, Signer
from .lazy_fetch import LazyFetchCoordinator
from .models import VerificationResult, create_migration_event
from .pending import PendingMigrationTracker
from .resolver import IdentityResolver
from .store import JSONFileMappingBackend, MigrationStore
from .verifier import MigrationEventVerifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IngestResult:
    """Outcome of feeding one raw event into the engine.

    ``applied`` is false for rejected events and for valid events that lost
    to an existing migration of the same identity.
    """

    result: VerificationResult
    applied: bool

    @property
    def accepted(self) -> bool:
        return self.result.accepted


class MigrationService:
    """Identity migration engine.

    Args:
        store: Mapping store; an unpersisted one is created if omitted.
        transport: Event transport for lazy fetches and publishing. Without
            one, resolution is cache-only.
        settings: Tunables; defaults to :func:`get_config`.
        clock: Time source for ``observed_at`` stamps and pending-migration expiry.
        pending: Tracker for this device's own in-progress migration.
    """

    def __init__(
        self,
        store: MigrationStore | None = None,
        transport: EventTransport | None = None,
        settings: SuccessionSettings | None = None,
        clock: Callable[[], float] | None = None,
        pending: PendingMigrationTracker | None = None,
    ) -> None:
        self.settings = settings or get_config()
        self.store = store or MigrationStore(conflict_policy=self.settings.conflict_policy)
        self.transport = transport
        self.verifier = MigrationEventVerifier(clock=clock or time.time)
        self.pending = pending or PendingMigrationTracker(
            max_age=self.settings.pending_max_age_seconds, clock=clock or time.time
        )

        self.coordinator: LazyFetchCoordinator | None = None
        if transport is not None:
            self.coordinator = LazyFetchCoordinator(
                transport,
                self.verifier,
                self.store,
                timeout=self.settings.fetch_timeout_seconds,
            )

        self.resolver = IdentityResolver(
            self.store,
            coordinator=self.coordinator,
            max_hops=self.settings.max_hops,
            cache_size=self.settings.cache_max_size,
        )

    @classmethod
    def from_settings(
        cls,
        settings: SuccessionSettings | None = None,
        transport: EventTransport | None = None,
    ) -> MigrationService:
        """Build a service persisting to ``mapping_path`` and ``pending_path``."""
        settings = settings or get_config()
        backend = JSONFileMappingBackend(settings.mapping_path) if settings.mapping_path else None
        store = MigrationStore(backend=backend, conflict_policy=settings.conflict_policy)
        pending = PendingMigrationTracker(settings.pending_path, max_age=settings.pending_max_age_seconds)
        return cls(store=store, transport=transport, settings=settings, pending=pending)

    # -------------------------------------------------------------------------
    # INBOUND EVENTS
    # -------------------------------------------------------------------------

    def ingest(self, raw: dict[str, Any] | SignedEvent) -> IngestResult:
        """Verify one raw event and record it if accepted."""
        result = self.verifier.verify(raw)
        applied = result.record is not None and self.store.record(result.record)
        return IngestResult(result=result, applied=applied)

    def ingest_many(self, raws: Iterable[dict[str, Any] | SignedEvent]) -> list[IngestResult]:
        return [self.ingest(raw) for raw in raws]

    # -------------------------------------------------------------------------
    # OUTBOUND EVENTS
    # -------------------------------------------------------------------------

    def create_migration_event(
        self,
        old_signer: Signer,
        new_signer: Signer,
        scopes: Iterable[str] = (),
        created_at: int | None = None,
    ) -> SignedEvent:
        """Create a migration from ``old_signer``'s identity to ``new_signer``'s."""
        return create_migration_event(old_signer, new_signer, scopes, created_at=created_at)

    async def publish(self, event: SignedEvent | RawEvent) -> IngestResult:
        """Publish a migration event, then apply it locally.

        A valid event is also marked as this device's pending migration until
        a convergence watch completes or the marker expires.

        Raises:
            ConfigException: If the service has no transport.
            TransportError: If no relay accepted the event.
        """
        if self.transport is None:
            raise ConfigException("Publishing requires a transport", setting="relay_urls")

        raw = event.to_dict() if isinstance(event, SignedEvent) else event
        logger.info(
            f"Publishing migration event {str(raw.get('id'))[:12]}… from {str(raw.get('pubkey'))[:12]}…"
        )

        try:
            await self.transport.publish_event(raw)
        except TransportError:
            logger.exception("Failed to publish migration event")
            raise

        ingested = self.ingest(raw)
        if ingested.result.record is not None:
            self.pending.start(ingested.result.record)
        return ingested

    def is_scope_migrating(self, scope: str) -> bool:
        """Whether this device's pending migration covers ``scope``."""
        return self.pending.is_migrating(scope)

    # -------------------------------------------------------------------------
    # CONVERGENCE
    # -------------------------------------------------------------------------

    def watch_convergence(
        self,
        check_fn: CheckFn,
        on_complete: Callback,
        on_timeout: Callback,
        interval: float | None = None,
        timeout: float | None = None,
    ) -> ConvergencePollWatcher:
        """Build a poll watcher using the configured interval and timeout.

        Completion clears the pending migration before ``on_complete`` runs.
        A timeout leaves it in place until it expires.
        """

        def completed() -> None:
            self.pending.clear()
            on_complete()

        return ConvergencePollWatcher(
            check_fn,
            completed,
            on_timeout,
            interval=interval if interval is not None else self.settings.poll_interval_seconds,
            timeout=timeout if timeout is not None else self.settings.poll_timeout_seconds,
        )
