"""
Cache Error Types

Two failure classes cross the cache boundary:
- TransientFetchError: the origin call failed. Never recovered here,
  always propagated to the caller.
- CorruptCacheError: a stored snapshot could not be decoded. Always
  recovered locally as a cache miss.

StoreWriteError is raised by persistent backends when a write is
rejected (quota exceeded, backend unavailable).
"""

from typing import Optional


class CacheError(Exception):
    """Base class for cache errors."""


class TransientFetchError(CacheError):
    """The origin fetch for a record set failed."""

    def __init__(
        self,
        message: str,
        tenant_id: Optional[str] = None,
        record_type: Optional[str] = None,
    ):
        super().__init__(message)
        self.tenant_id = tenant_id
        self.record_type = record_type


class CorruptCacheError(CacheError):
    """A persisted snapshot could not be deserialized."""

    def __init__(self, key: str, reason: str):
        super().__init__(f"Corrupt cache entry {key}: {reason}")
        self.key = key
        self.reason = reason


class StoreWriteError(CacheError):
    """A persistent backend rejected a write."""

    def __init__(self, key: str, reason: str, quota_exceeded: bool = False):
        super().__init__(f"Cache write rejected for {key}: {reason}")
        self.key = key
        self.reason = reason
        self.quota_exceeded = quota_exceeded
