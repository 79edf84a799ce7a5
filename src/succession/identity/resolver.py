"""Identity resolution across migration chains.

Resolution follows ``from -> to`` edges in the :class:`MigrationStore` until
an identity with no outgoing edge is reached. Two guards keep corrupted
mappings from hanging a caller:

- a hop limit (``max_hops``, default 64)
- a visited set; a repeated identity means a cycle

Either guard stops the walk and returns the last identity reached. The worst
outcome of any failure is therefore resolving to the original identity.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..core.exceptions import InvalidIdentityError
from ..core.lru_cache import LRUDict
from .events import normalize_identity
from .store import MigrationStore

if TYPE_CHECKING:
    from .lazy_fetch import LazyFetchCoordinator

logger = logging.getLogger(__name__)

DEFAULT_MAX_HOPS = 64


class IdentityResolver:
    """Synchronous, cache-only resolution plus an async lazy path.

    Args:
        store: The migration mapping to walk.
        coordinator: Fetches missing evidence for :meth:`resolve_lazy`. When
            ``None``, lazy resolution degrades to :meth:`resolve_identity`.
        max_hops: Upper bound on edges followed per resolution.
        cache_size: Number of memoised resolutions.
    """

    def __init__(
        self,
        store: MigrationStore,
        coordinator: LazyFetchCoordinator | None = None,
        max_hops: int = DEFAULT_MAX_HOPS,
        cache_size: int | None = None,
    ) -> None:
        if max_hops < 1:
            raise ValueError(f"max_hops must be >= 1, got {max_hops}")
        self.store = store
        self.coordinator = coordinator
        self.max_hops = max_hops
        # identity -> (store revision, resolved identity)
        self._cache: LRUDict[str, tuple[int, str]] = LRUDict(max_size=cache_size)

    # -------------------------------------------------------------------------
    # CACHE-ONLY RESOLUTION
    # -------------------------------------------------------------------------

    def resolve_identity(self, identity: str) -> str:
        """Return the current identity that ``identity`` has migrated to.

        Never touches the network. Identities that are not well-formed are
        returned unchanged.
        """
        try:
            start = normalize_identity(identity)
        except InvalidIdentityError:
            return identity

        cached = self._cache.get(start)
        if cached is not None and cached[0] == self.store.revision:
            return cached[1]

        resolved = self._walk(start)[-1]
        self._cache[start] = (self.store.revision, resolved)
        return resolved

    def has_migrated(self, identity: str) -> bool:
        return self.store.lookup_direct(identity) is not None

    def get_migration_history(self, identity: str) -> list[str]:
        """Return ``[identity, successor, ..., resolved]``.

        The list has length 1 if ``identity`` never migrated.
        """
        try:
            start = normalize_identity(identity)
        except InvalidIdentityError:
            return [identity]
        return self._walk(start)

    def resolve_all(self) -> dict[str, str]:
        """Map every identity with a recorded migration to its resolved identity."""
        return {old: self.resolve_identity(old) for old in self.store.snapshot()}

    def _walk(self, start: str) -> list[str]:
        chain = [start]
        visited = {start}
        current = start

        while True:
            successor = self.store.lookup_direct(current)
            if successor is None:
                break
            if successor in visited:
                logger.warning(
                    f"Migration cycle detected at {successor[:12]}… while resolving {start[:12]}…; "
                    f"stopping at {current[:12]}…"
                )
                break
            if len(chain) > self.max_hops:
                logger.warning(
                    f"Migration chain for {start[:12]}… exceeds {self.max_hops} hops; "
                    f"stopping at {current[:12]}…"
                )
                break
            chain.append(successor)
            visited.add(successor)
            current = successor

        return chain

    # -------------------------------------------------------------------------
    # LAZY RESOLUTION
    # -------------------------------------------------------------------------

    async def resolve_lazy(self, identity: str, scope: str | None = None) -> str:
        """Resolve ``identity``, fetching migration evidence on a cache miss.

        Args:
            identity: The identity to resolve.
            scope: Group/community identifier bounding which events are queried.

        Returns:
            The resolved identity; ``identity`` itself if no migration exists.

        Raises:
            MigrationFetchError: If the transport failed. The store is unchanged.
        """
        try:
            start = normalize_identity(identity)
        except InvalidIdentityError:
            return identity

        resolved = self.resolve_identity(start)
        if resolved != start or self.coordinator is None:
            return resolved

        await self.coordinator.fetch(start, scope)
        return self.resolve_identity(start)

    async def prefetch_scope(self, scope: str) -> dict[str, str]:
        """Fetch every migration tagged with ``scope`` and return :meth:`resolve_all`.

        Raises:
            MigrationFetchError: If the transport failed.
        """
        if self.coordinator is not None:
            await self.coordinator.fetch_scope(scope)
        resolutions = self.resolve_all()
        logger.info(f"Built resolution table for scope {scope} with {len(resolutions)} mappings")
        return resolutions
