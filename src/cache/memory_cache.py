"""
Memory Cache

Process-local, per-key TTL cache. Authoritative during one process
lifetime; lost on restart. Writes replace whole entries, so readers
never observe a partially written value.
"""

import logging
from typing import Dict, List, Optional

from src.cache.entry import CacheEntry, Clock, SystemClock
from src.cache.store import CacheStore


logger = logging.getLogger(__name__)


class MemoryCache(CacheStore):
    """Dictionary-backed cache tier."""

    name = "memory"

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or SystemClock()
        self._entries: Dict[str, CacheEntry] = {}

    def get(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def get_fresh(self, key: str) -> Optional[CacheEntry]:
        """Return the entry only if it is fresh against its own band."""
        entry = self._entries.get(key)
        if entry is None or not entry.is_fresh(self._clock.now_ms()):
            return None
        return entry

    def set(self, entry: CacheEntry) -> bool:
        self._entries[entry.key] = entry
        return True

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def keys(self) -> List[str]:
        return list(self._entries.keys())

    def purge_expired(self) -> int:
        """Evict every entry past its TTL band. Returns count evicted."""
        now = self._clock.now_ms()
        expired = [k for k, e in self._entries.items() if not e.is_fresh(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Evicted {len(expired)} expired memory entries")
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries
