"""Tests for MigrationService wiring.

Tests cover:
- Construction from settings (persistence, conflict policy, tunables)
- Ingesting events: accepted, rejected, superseded
- End-to-end publish then resolve
- Convergence watcher configuration
"""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

from succession.core.config import ConflictPolicy, SuccessionSettings
from succession.core.exceptions import ConfigException, TransportError
from succession.core.polling import PollOutcome
from succession.identity.models import RejectionReason
from succession.identity.service import MigrationService
from succession.identity.store import MigrationStore
from succession.transport.memory import InMemoryTransport


@pytest.fixture()
def settings() -> SuccessionSettings:
    return SuccessionSettings(max_hops=8, cache_max_size=32, fetch_timeout_seconds=2.0)


@pytest.fixture()
def service(settings, fixed_clock) -> MigrationService:
    return MigrationService(settings=settings, clock=fixed_clock)


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestConstruction:
    def test_without_transport(self, service):
        assert service.coordinator is None
        assert service.resolver.coordinator is None
        assert service.resolver.max_hops == 8

    def test_with_transport(self, settings):
        service = MigrationService(transport=InMemoryTransport(), settings=settings)

        assert service.coordinator is not None
        assert service.coordinator.timeout == 2.0
        assert service.resolver.coordinator is service.coordinator
        assert service.coordinator.store is service.store

    def test_defaults_to_global_config(self):
        service = MigrationService()

        assert service.resolver.max_hops == 64
        assert service.store.conflict_policy == ConflictPolicy.LATEST_CREATED

    def test_injected_store(self, settings):
        store = MigrationStore()

        assert MigrationService(store=store, settings=settings).store is store

    def test_from_settings_persists(self, tmp_path, alice, alice2, make_migration):
        path = tmp_path / "mapping.json"
        settings = SuccessionSettings(mapping_path=str(path))

        MigrationService.from_settings(settings).ingest(make_migration(alice, alice2))
        reopened = MigrationService.from_settings(settings)

        assert reopened.resolver.resolve_identity(alice.public_key_hex) == alice2.public_key_hex

    def test_from_settings_conflict_policy(self):
        settings = SuccessionSettings(conflict_policy=ConflictPolicy.LAST_OBSERVED)

        service = MigrationService.from_settings(settings)
        assert service.store.conflict_policy == ConflictPolicy.LAST_OBSERVED

    def test_from_settings_restores_pending(self, tmp_path, alice, alice2):
        settings = SuccessionSettings(pending_path=str(tmp_path / "pending.json"))
        service = MigrationService.from_settings(settings)
        record = service.ingest(service.create_migration_event(alice, alice2, scopes=["group-1"])).result.record
        service.pending.start(record)

        reopened = MigrationService.from_settings(settings)

        assert reopened.is_scope_migrating("group-1")


# ---------------------------------------------------------------------------
# Ingest
# ---------------------------------------------------------------------------


class TestIngest:
    def test_valid_event_applied(self, service, alice, alice2, make_migration):
        result = service.ingest(make_migration(alice, alice2))

        assert result.accepted
        assert result.applied
        assert result.result.record.observed_at == 1_700_000_500.0
        assert service.resolver.resolve_identity(alice.public_key_hex) == alice2.public_key_hex

    def test_rejected_event_leaves_store_unchanged(self, service, alice, alice2, make_migration):
        raw = make_migration(alice, alice2)
        raw["sig"] = "00" * 64

        result = service.ingest(raw)

        assert not result.accepted
        assert not result.applied
        assert result.result.rejection.reason == RejectionReason.INVALID_SIGNATURE
        assert len(service.store) == 0

    def test_superseded_event_not_applied(self, service, alice, alice2, alice3, make_migration):
        service.ingest(make_migration(alice, alice3, created_at=2_000))

        result = service.ingest(make_migration(alice, alice2, created_at=1_000))

        assert result.accepted
        assert not result.applied
        assert service.resolver.resolve_identity(alice.public_key_hex) == alice3.public_key_hex

    def test_ingest_many_chain(self, service, alice, alice2, alice3, make_migration):
        results = service.ingest_many(
            [
                make_migration(alice2, alice3, created_at=2_000),
                {"kind": 1},
                make_migration(alice, alice2, created_at=1_000),
            ]
        )

        assert [r.applied for r in results] == [True, False, True]
        assert service.resolver.get_migration_history(alice.public_key_hex) == [
            alice.public_key_hex,
            alice2.public_key_hex,
            alice3.public_key_hex,
        ]

    def test_create_migration_event(self, service, alice, alice2):
        event = service.create_migration_event(alice, alice2, scopes=["group-1"], created_at=1_000)

        assert event.pubkey == alice.public_key_hex
        assert event.created_at == 1_000
        assert event.tag_values("p") == [alice2.public_key_hex]
        assert event.tag_values("h") == ["group-1"]
        assert service.ingest(event).result.record.scopes == ("group-1",)


# ---------------------------------------------------------------------------
# Publish
# ---------------------------------------------------------------------------


class TestPublish:
    @pytest.mark.asyncio
    async def test_publish_then_resolve_elsewhere(self, settings, alice, alice2):
        relay = InMemoryTransport()
        publisher = MigrationService(transport=relay, settings=settings)
        other_device = MigrationService(transport=relay, settings=settings)

        event = publisher.create_migration_event(alice, alice2, scopes=["group-1"])
        result = await publisher.publish(event)

        assert result.applied
        assert publisher.resolver.resolve_identity(alice.public_key_hex) == alice2.public_key_hex
        assert len(relay.events) == 1
        assert await other_device.resolver.resolve_lazy(alice.public_key_hex, "group-1") == alice2.public_key_hex

    @pytest.mark.asyncio
    async def test_publish_raw_dict(self, settings, alice, alice2, make_migration):
        service = MigrationService(transport=InMemoryTransport(), settings=settings)

        result = await service.publish(make_migration(alice, alice2))
        assert result.applied

    @pytest.mark.asyncio
    async def test_publish_without_transport(self, service, alice, alice2):
        event = service.create_migration_event(alice, alice2)

        with pytest.raises(ConfigException):
            await service.publish(event)

    @pytest.mark.asyncio
    async def test_publish_failure_not_applied(self, settings, alice, alice2):
        relay = InMemoryTransport()
        relay.fail_with = TransportError("relay rejected event")
        service = MigrationService(transport=relay, settings=settings)

        with pytest.raises(TransportError):
            await service.publish(service.create_migration_event(alice, alice2))
        assert len(service.store) == 0
        assert service.pending.current is None

    @pytest.mark.asyncio
    async def test_publish_marks_scopes_pending(self, settings, alice, alice2):
        service = MigrationService(transport=InMemoryTransport(), settings=settings)

        await service.publish(service.create_migration_event(alice, alice2, scopes=["group-1"]))

        assert service.is_scope_migrating("group-1")
        assert not service.is_scope_migrating("group-2")
        assert service.pending.current.to_identity == alice2.public_key_hex

    @pytest.mark.asyncio
    async def test_pending_expires(self, settings, alice, alice2):
        now = [1_700_000_000.0]
        service = MigrationService(transport=InMemoryTransport(), settings=settings, clock=lambda: now[0])
        await service.publish(service.create_migration_event(alice, alice2, scopes=["group-1"]))

        now[0] += settings.pending_max_age_seconds + 1

        assert not service.is_scope_migrating("group-1")


# ---------------------------------------------------------------------------
# Convergence
# ---------------------------------------------------------------------------


class TestWatchConvergence:
    def test_uses_configured_timing(self):
        service = MigrationService(settings=SuccessionSettings(poll_interval_seconds=0.5, poll_timeout_seconds=5.0))

        watcher = service.watch_convergence(MagicMock(), MagicMock(), MagicMock())

        assert watcher.interval == 0.5
        assert watcher.timeout == 5.0

    @pytest.mark.asyncio
    async def test_waits_for_remote_resolution(self, settings, alice, alice2):
        relay = InMemoryTransport()
        publisher = MigrationService(transport=relay, settings=settings)
        observer = MigrationService(transport=relay, settings=settings)
        on_complete, on_timeout = MagicMock(), MagicMock()

        async def converged() -> bool:
            current = await observer.resolver.resolve_lazy(alice.public_key_hex)
            return current == alice2.public_key_hex

        watcher = observer.watch_convergence(converged, on_complete, on_timeout, interval=0.01, timeout=2.0)
        session = watcher.enable()
        await asyncio.sleep(0.03)
        await publisher.publish(publisher.create_migration_event(alice, alice2))

        assert await session.wait() == PollOutcome.COMPLETED
        on_complete.assert_called_once_with()
        on_timeout.assert_not_called()

    @pytest.mark.asyncio
    async def test_completion_clears_pending(self, settings, alice, alice2):
        service = MigrationService(transport=InMemoryTransport(), settings=settings)
        await service.publish(service.create_migration_event(alice, alice2, scopes=["group-1"]))
        on_complete = MagicMock()

        async def converged() -> bool:
            return True

        watcher = service.watch_convergence(converged, on_complete, MagicMock(), interval=0.01, timeout=1.0)

        assert await watcher.enable().wait() == PollOutcome.COMPLETED
        on_complete.assert_called_once_with()
        assert not service.is_scope_migrating("group-1")

    @pytest.mark.asyncio
    async def test_timeout_keeps_pending(self, settings, alice, alice2):
        service = MigrationService(transport=InMemoryTransport(), settings=settings)
        await service.publish(service.create_migration_event(alice, alice2, scopes=["group-1"]))
        on_timeout = MagicMock()

        async def never() -> bool:
            return False

        watcher = service.watch_convergence(never, MagicMock(), on_timeout, interval=0.01, timeout=0.05)

        assert await watcher.enable().wait() == PollOutcome.TIMED_OUT
        on_timeout.assert_called_once_with()
        assert service.is_scope_migrating("group-1")
