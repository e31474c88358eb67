"""In-memory fragment cache with expiry stamping."""

from typing import Protocol

import structlog

from esi_processor.cache.clock import Clock, SystemClock
from esi_processor.cache.models import CacheEntry, CacheLookup


logger = structlog.get_logger()


class CacheStore(Protocol):
    """Protocol for fragment cache storage.

    Abstracts the storage layer to enable testing and alternative implementations.
    """

    def get(self, key: str) -> CacheLookup | None:
        """Look up a fragment.

        Args:
            key: Fully qualified fragment URL.

        Returns:
            The stored value with its expiry flag, or None if absent.
        """
        ...

    def set(self, key: str, value: str, expires_in_ms: int = 0) -> None:
        """Store a fragment.

        Args:
            key: Fully qualified fragment URL.
            value: Fragment body.
            expires_in_ms: Time-to-live; 0 means stale on next read.
        """
        ...


class MemoryCache:
    """Unbounded dictionary cache.

    Expired entries are kept so they can still be served while a fresh copy
    is fetched. Entries are copied on the way in and out so callers cannot
    alter what is stored.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        """Initialize the cache.

        Args:
            clock: Time source; defaults to the wall clock.
        """
        self._clock = clock or SystemClock()
        self._storage: dict[str, CacheEntry] = {}
        self._log = logger.bind(component="cache")

    def __len__(self) -> int:
        return len(self._storage)

    def __contains__(self, key: object) -> bool:
        return key in self._storage

    def get(self, key: str) -> CacheLookup | None:
        """Look up a fragment and compute its freshness.

        Args:
            key: Fully qualified fragment URL.

        Returns:
            CacheLookup with ``expired`` set when now >= expiration, or None.
        """
        entry = self._storage.get(key)
        if entry is None:
            return None

        entry = entry.model_copy(deep=True)
        expired = self._clock.now_ms() >= entry.expiration_time_ms
        self._log.debug("cache_lookup", key=key, expired=expired)
        return CacheLookup(
            value=entry.value,
            expired=expired,
            expiration_time_ms=entry.expiration_time_ms,
        )

    def set(self, key: str, value: str, expires_in_ms: int = 0) -> None:
        """Store a fragment, replacing any previous entry.

        Args:
            key: Fully qualified fragment URL.
            value: Fragment body.
            expires_in_ms: Time-to-live in milliseconds.
        """
        entry = CacheEntry(
            value=value,
            expiration_time_ms=self._clock.now_ms() + max(0, expires_in_ms or 0),
        )
        self._storage[key] = entry.model_copy(deep=True)
        self._log.debug("cache_update", key=key, expires_in_ms=expires_in_ms)

    def clear(self) -> None:
        """Drop every entry."""
        self._storage.clear()
