"""In-process transport backed by a list of events.

Useful for tests, demos, and single-process deployments where another
component already collects events.
"""

from __future__ import annotations

import asyncio
import copy
import logging

from ..core.exceptions import TransportError
from .base import EventFilter, RawEvent, matches_filter

logger = logging.getLogger(__name__)


class InMemoryTransport:
    """:class:`~succession.transport.base.EventTransport` over an in-memory list.

    Args:
        events: Initial events.
        latency: Seconds each call sleeps before answering, so concurrent
            callers can overlap in tests.
    """

    def __init__(self, events: list[RawEvent] | None = None, latency: float = 0.0) -> None:
        self._events: list[RawEvent] = list(events or [])
        self.latency = latency
        self.queries: list[EventFilter] = []
        self.fail_with: Exception | None = None

    @property
    def events(self) -> list[RawEvent]:
        return list(self._events)

    def add_event(self, event: RawEvent) -> None:
        self._events.append(event)

    async def query_events(self, filters: EventFilter) -> list[RawEvent]:
        self.queries.append(copy.deepcopy(filters))
        if self.latency:
            await asyncio.sleep(self.latency)
        if self.fail_with is not None:
            raise self.fail_with

        matched = [copy.deepcopy(e) for e in self._events if matches_filter(e, filters)]
        limit = filters.get("limit")
        if isinstance(limit, int) and limit >= 0:
            matched = matched[:limit]
        logger.debug(f"Query {filters} matched {len(matched)} events")
        return matched

    async def publish_event(self, event: RawEvent) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)
        if self.fail_with is not None:
            raise self.fail_with
        if not isinstance(event, dict) or not isinstance(event.get("id"), str):
            raise TransportError("Refusing to publish an event without an id")
        if any(e.get("id") == event["id"] for e in self._events):
            return
        self._events.append(copy.deepcopy(event))
