"""
Tiered Reader

Read-through composition of the memory tier over the persistent tier
over an origin fetch:

1. Memory hit and fresh: return immediately (no suspension)
2. Persistent hit within the TTL band: promote to memory, return
3. Otherwise await the fetcher, write both tiers, return

Concurrent misses on one key share a single in-flight fetch. A failed
fetch writes nothing and leaves existing entries in place.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from src.cache.entry import CacheEntry, Clock, SystemClock
from src.cache.keys import CacheKey, matches_prefix
from src.cache.memory_cache import MemoryCache
from src.cache.persistent_cache import PersistentCache


logger = logging.getLogger(__name__)

Fetcher = Callable[[], Awaitable[Any]]


class ReadSource(str, Enum):
    """Tier that satisfied a read."""
    MEMORY = "memory"
    PERSISTENT = "persistent"
    ORIGIN = "origin"


@dataclass
class ReaderStats:
    """Read statistics."""
    memory_hits: int = 0
    persistent_hits: int = 0
    misses: int = 0
    origin_fetches: int = 0
    coalesced: int = 0
    fetch_errors: int = 0

    @property
    def hits(self) -> int:
        return self.memory_hits + self.persistent_hits

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0


class TieredReader:
    """
    Read-through cache over two tiers.

    Not thread-safe: all reads run on one event loop.
    """

    def __init__(
        self,
        memory: MemoryCache,
        persistent: PersistentCache,
        clock: Optional[Clock] = None,
        enabled: bool = True,
    ):
        self._memory = memory
        self._persistent = persistent
        self._clock = clock or SystemClock()
        self.enabled = enabled
        self._in_flight: Dict[str, "asyncio.Task"] = {}
        self._stats = ReaderStats()

    async def read(
        self,
        key,
        ttl_ms: int,
        fetcher: Fetcher,
    ) -> Tuple[Any, ReadSource]:
        """
        Read a value through the tiers.

        Args:
            key: CacheKey or key string
            ttl_ms: TTL band of the data class
            fetcher: Zero-argument coroutine function hitting the origin

        Returns:
            Tuple of (value, source)

        Raises:
            Whatever the fetcher raised, unchanged
        """
        key = str(key) if isinstance(key, CacheKey) else key

        if not self.enabled:
            self._stats.misses += 1
            self._stats.origin_fetches += 1
            return await fetcher(), ReadSource.ORIGIN

        now = self._clock.now_ms()

        entry = self._memory.get_fresh(key)
        if entry is not None:
            self._stats.memory_hits += 1
            logger.debug(f"Memory hit for {key}")
            return entry.value, ReadSource.MEMORY

        entry = self._persistent.get(key)
        if entry is not None and entry.is_fresh(now, ttl_ms):
            self._memory.set(entry)
            self._stats.persistent_hits += 1
            logger.debug(f"Persistent hit for {key}")
            return entry.value, ReadSource.PERSISTENT

        task = self._in_flight.get(key)
        if task is None:
            self._stats.misses += 1
            logger.debug(f"Cache miss for {key}, fetching from origin")
            task = asyncio.ensure_future(self._fetch_and_store(key, ttl_ms, fetcher))
            task.add_done_callback(self._mark_retrieved)
            self._in_flight[key] = task
        else:
            self._stats.coalesced += 1
            logger.debug(f"Joining in-flight fetch for {key}")

        # Cancelling one waiter must not cancel the shared fetch
        value = await asyncio.shield(task)
        return value, ReadSource.ORIGIN

    async def _fetch_and_store(self, key: str, ttl_ms: int, fetcher: Fetcher) -> Any:
        this_task = asyncio.current_task()
        self._stats.origin_fetches += 1

        try:
            try:
                value = await fetcher()
            except Exception as e:
                self._stats.fetch_errors += 1
                logger.warning(f"Origin fetch failed for {key}: {e}")
                raise

            if self._in_flight.get(key) is this_task:
                entry = CacheEntry(
                    key=key,
                    value=value,
                    written_at=self._clock.now_ms(),
                    ttl_ms=ttl_ms,
                )
                self._memory.set(entry)
                self._persistent.set(entry)
            else:
                logger.debug(f"Key {key} invalidated during fetch, result not cached")

            return value
        finally:
            if self._in_flight.get(key) is this_task:
                del self._in_flight[key]

    @staticmethod
    def _mark_retrieved(task: "asyncio.Task"):
        # Every waiter may have been cancelled; the failure was already logged
        if not task.cancelled():
            task.exception()

    def peek(self, key) -> Optional[CacheEntry]:
        """
        Return whatever entry is held for a key, fresh or not.

        For callers that explicitly choose to serve stale data after a
        failed refetch.
        """
        key = str(key) if isinstance(key, CacheKey) else key
        return self._memory.get(key) or self._persistent.get(key)

    def detach_prefix(self, prefix: str) -> int:
        """
        Detach in-flight fetches under a prefix.

        Their waiters still get the result, but it is not written to
        either tier and the next read starts a fresh fetch.
        """
        detached = [k for k in self._in_flight if not prefix or matches_prefix(k, prefix)]
        for key in detached:
            del self._in_flight[key]
        return len(detached)

    def in_flight(self, key) -> bool:
        key = str(key) if isinstance(key, CacheKey) else key
        return key in self._in_flight

    def get_stats(self) -> Dict:
        """Get read statistics."""
        return {
            "enabled": self.enabled,
            "memory_hits": self._stats.memory_hits,
            "persistent_hits": self._stats.persistent_hits,
            "hits": self._stats.hits,
            "misses": self._stats.misses,
            "origin_fetches": self._stats.origin_fetches,
            "coalesced": self._stats.coalesced,
            "fetch_errors": self._stats.fetch_errors,
            "hit_rate_percent": round(self._stats.hit_rate * 100, 2),
            "in_flight": len(self._in_flight),
        }
