"""
Persistent Cache

Durable tier holding JSON snapshot envelopes with an explicit write
timestamp. Survives process restarts for as long as its backend does.

Failure handling:
- Corrupt snapshots are treated as misses and removed, never raised
- Rejected writes (quota) trigger one eviction pass and one retry;
  a second rejection is logged and tolerated

Retention: a snapshot is kept for ``retention`` TTL bands. Redis drops
it natively; the other backends rely on purge_expired().
"""

import logging
import math
from typing import Dict, List, Optional, Tuple

from src.cache.config import EVICTION_PRIORITY
from src.cache.entry import CacheEntry, Clock, SystemClock
from src.cache.errors import CorruptCacheError, StoreWriteError
from src.cache.backends import KeyValueStore
from src.cache.keys import domain_of, matches_prefix
from src.cache.serialization import encode_entry, decode_entry
from src.cache.store import CacheStore


logger = logging.getLogger(__name__)


class PersistentCache(CacheStore):
    """Snapshot tier over a synchronous key/value backend."""

    name = "persistent"

    def __init__(
        self,
        store: KeyValueStore,
        eviction_fraction: float = 0.25,
        clock: Optional[Clock] = None,
        retention: int = 4,
    ):
        self._store = store
        self.eviction_fraction = eviction_fraction
        self.retention = retention
        self._clock = clock or SystemClock()
        self._stats = {
            "writes": 0,
            "write_failures": 0,
            "corrupt": 0,
            "evicted": 0,
            "expired": 0,
        }

    @property
    def backend(self) -> str:
        return self._store.backend

    def get(self, key: str) -> Optional[CacheEntry]:
        raw = self._store.get(key)
        if raw is None:
            return None

        try:
            return decode_entry(key, raw)
        except CorruptCacheError as e:
            self._stats["corrupt"] += 1
            logger.warning(f"{e}; treating as miss")
            self._store.delete(key)
            return None

    def set(self, entry: CacheEntry) -> bool:
        payload = encode_entry(entry)
        keep_ms = self.retention_ms(entry)

        try:
            self._store.set(entry.key, payload, ttl_ms=keep_ms)
        except StoreWriteError as e:
            if not e.quota_exceeded:
                self._stats["write_failures"] += 1
                logger.warning(f"Persistent cache write failed: {e}")
                return False

            evicted = self.evict()
            logger.info(f"Persistent cache full, evicted {evicted} entries before retrying {entry.key}")
            try:
                self._store.set(entry.key, payload, ttl_ms=keep_ms)
            except StoreWriteError as retry_error:
                self._stats["write_failures"] += 1
                logger.warning(f"Persistent cache write failed after eviction: {retry_error}")
                return False

        self._stats["writes"] += 1
        return True

    def retention_ms(self, entry: CacheEntry) -> int:
        return entry.ttl_ms * self.retention

    def delete(self, key: str) -> bool:
        return self._store.delete(key)

    def keys(self) -> List[str]:
        return self._store.keys()

    def delete_prefix(self, prefix: str) -> int:
        removed = 0
        for key in self._store.keys(prefix):
            if matches_prefix(key, prefix) and self._store.delete(key):
                removed += 1
        return removed

    def purge_expired(self) -> int:
        """Drop snapshots older than their retention. Returns count removed."""
        now = self._clock.now_ms()
        removed = 0

        for key in self._store.keys():
            entry = self.get(key)
            if entry is None:
                continue
            if entry.age_ms(now) >= self.retention_ms(entry) and self._store.delete(key):
                removed += 1

        self._stats["expired"] += removed
        if removed:
            logger.info(f"Purged {removed} expired persistent snapshots")
        return removed

    def evict(self, fraction: Optional[float] = None) -> int:
        """
        Evict a share of entries to make room.

        Lowest priority data classes go first, oldest first within a
        class. Corrupt snapshots are dropped without counting toward
        the share.
        """
        fraction = self.eviction_fraction if fraction is None else fraction
        candidates: List[Tuple[int, int, str]] = []

        for key in self._store.keys():
            entry = self.get(key)
            if entry is None:
                continue
            priority = EVICTION_PRIORITY.get(domain_of(key), 1)
            candidates.append((priority, entry.written_at, key))

        if not candidates:
            return 0

        candidates.sort()
        count = max(1, math.ceil(len(candidates) * fraction))
        removed = 0
        for _, _, key in candidates[:count]:
            if self._store.delete(key):
                removed += 1

        self._stats["evicted"] += removed
        return removed

    def get_stats(self) -> Dict:
        return {"backend": self.backend, **self._stats}

    def health_check(self) -> Dict:
        return self._store.health_check()
