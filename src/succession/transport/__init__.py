"""Event transports: the engine's only path to the network."""

from .base import EventFilter, EventTransport, RawEvent, matches_filter
from .memory import InMemoryTransport
from .relay import RelayTransport

__all__ = [
    "EventFilter",
    "EventTransport",
    "InMemoryTransport",
    "RawEvent",
    "RelayTransport",
    "matches_filter",
]
