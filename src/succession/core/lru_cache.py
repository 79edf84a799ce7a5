"""Bounded least-recently-used mapping for memoised resolutions."""

from __future__ import annotations

from collections import OrderedDict
from typing import Optional, TypeVar

K = TypeVar("K")
V = TypeVar("V")


class LRUDict(OrderedDict[K, V]):
    """
    An ordered dict that evicts its least recently used entry when full.

    Reads through ``[]`` or :meth:`get` and writes all count as use.
    Intended for use from a single event loop; no locking is performed.

    Example:
        cache = LRUDict(max_size=100)
        cache["key1"] = "value1"
        cache["key1"]  # key1 is now the most recent entry
    """

    def __init__(self, max_size: Optional[int] = None) -> None:
        """
        Args:
            max_size: Maximum number of entries. Defaults to
                      ``SUCCESSION_CACHE_MAX_SIZE``.
        """
        super().__init__()
        if max_size is None:
            from .config import get_config

            max_size = get_config().cache_max_size
        self.max_size = max_size

    def __getitem__(self, key: K) -> V:
        value = super().__getitem__(key)
        self.move_to_end(key)
        return value

    def __setitem__(self, key: K, value: V) -> None:
        super().__setitem__(key, value)
        self.move_to_end(key)
        while len(self) > self.max_size:
            self.popitem(last=False)

    def get(self, key: K, default: Optional[V] = None) -> Optional[V]:  # type: ignore[override]
        if key not in self:
            return default
        return self[key]
