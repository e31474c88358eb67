"""Fragment cache with stale-while-revalidate friendly lookups."""

from esi_processor.cache.clock import Clock, SystemClock
from esi_processor.cache.models import CacheEntry, CacheLookup
from esi_processor.cache.store import CacheStore, MemoryCache


__all__ = [
    "CacheEntry",
    "CacheLookup",
    "CacheStore",
    "Clock",
    "MemoryCache",
    "SystemClock",
]
