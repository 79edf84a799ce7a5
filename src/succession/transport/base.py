"""Transport boundary.

The engine never talks to the network directly. It depends on an
:class:`EventTransport` that can query and publish raw events using
relay-style filters::

    {"kinds": [1776], "authors": ["<hex>"], "#h": ["<scope>"]}

Every returned event is treated as untrusted input and verified before use.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

RawEvent = dict[str, Any]
EventFilter = dict[str, Any]


@runtime_checkable
class EventTransport(Protocol):
    """Query/publish access to a replicated event log."""

    async def query_events(self, filters: EventFilter) -> list[RawEvent]:
        """Return stored events matching ``filters``.

        Raises:
            TransportError: If the query could not be served at all.
        """
        ...

    async def publish_event(self, event: RawEvent) -> None:
        """Publish a signed event.

        Raises:
            TransportError: If the event was not accepted.
        """
        ...


def matches_filter(event: Any, filters: EventFilter) -> bool:
    """Relay-style filter matching for a raw event dict.

    Supports ``ids``, ``kinds``, ``authors``, ``since``, ``until`` and
    ``#<letter>`` tag filters. A list-valued condition matches if any value
    matches; all conditions must hold.
    """
    if not isinstance(event, dict):
        return False

    for key, wanted in filters.items():
        if key == "limit":
            continue
        if key == "ids":
            if event.get("id") not in wanted:
                return False
        elif key == "kinds":
            if event.get("kind") not in wanted:
                return False
        elif key == "authors":
            if event.get("pubkey") not in wanted:
                return False
        elif key == "since":
            if not isinstance(event.get("created_at"), int) or event["created_at"] < wanted:
                return False
        elif key == "until":
            if not isinstance(event.get("created_at"), int) or event["created_at"] > wanted:
                return False
        elif key.startswith("#") and len(key) == 2:
            tag_name = key[1]
            tags = event.get("tags")
            if not isinstance(tags, list):
                return False
            values = {t[1] for t in tags if isinstance(t, list) and len(t) >= 2 and t[0] == tag_name}
            if not values.intersection(wanted):
                return False
    return True
