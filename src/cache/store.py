"""
Cache Store Interface

The memory tier and the persistent tier are two independent
implementations of one capability. The tiered reader composes them;
neither tier knows about the other.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from src.cache.entry import CacheEntry
from src.cache.keys import matches_prefix


class CacheStore(ABC):
    """Whole-entry key/value store for cache entries."""

    name: str = "store"

    @abstractmethod
    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the entry under ``key`` regardless of freshness, or None."""

    @abstractmethod
    def set(self, entry: CacheEntry) -> bool:
        """Replace the entry under ``entry.key``. Returns False if not stored."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove one entry. Returns True if something was removed."""

    @abstractmethod
    def keys(self) -> List[str]:
        """All keys currently held."""

    def delete_prefix(self, prefix: str) -> int:
        """Remove every entry under a key prefix. Returns count removed."""
        removed = 0
        for key in self.keys():
            if matches_prefix(key, prefix) and self.delete(key):
                removed += 1
        return removed

    def clear(self) -> int:
        """Remove everything. Returns count removed."""
        removed = 0
        for key in self.keys():
            if self.delete(key):
                removed += 1
        return removed
