"""
Cache Configuration

Centralized configuration for the caching layer.
TTL is a property of the data class, not of the individual key.
"""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from functools import lru_cache

from src.cache.keys import CacheDomain, DomainLike


@dataclass(frozen=True)
class CacheTTL:
    """
    Cache TTL bands by data class.

    Structural data (classrooms, people) changes rarely and uses the long
    band. Activity and revenue data changes during the day and uses the
    short band. Dashboard rollups sit in between.
    """

    LONG: timedelta = timedelta(minutes=10)
    MEDIUM: timedelta = timedelta(minutes=5)
    SHORT: timedelta = timedelta(minutes=1)

    @classmethod
    def for_domain(cls, domain: DomainLike) -> timedelta:
        """Get the TTL band for a data class."""
        mapping = {
            CacheDomain.CLASSROOM.value: cls.LONG,
            CacheDomain.STUDENT.value: cls.LONG,
            CacheDomain.USER.value: cls.LONG,
            CacheDomain.TEACHER.value: cls.LONG,
            CacheDomain.FAMILY.value: cls.LONG,
            CacheDomain.ARCHIVE.value: cls.LONG,
            CacheDomain.SESSION.value: cls.SHORT,
            CacheDomain.ASSIGNMENT.value: cls.SHORT,
            CacheDomain.ATTENDANCE.value: cls.SHORT,
            CacheDomain.INVOICE.value: cls.SHORT,
            CacheDomain.DASHBOARD.value: cls.MEDIUM,
            CacheDomain.PERFORMANCE.value: cls.MEDIUM,
        }
        key = domain.value if isinstance(domain, CacheDomain) else domain
        return mapping.get(key, cls.MEDIUM)

    @classmethod
    def ms_for_domain(cls, domain: DomainLike) -> int:
        """TTL band in milliseconds."""
        return int(cls.for_domain(domain).total_seconds() * 1000)


# Eviction priority when the persistent tier is full (lowest evicted first)
EVICTION_PRIORITY = {
    CacheDomain.DASHBOARD.value: 1,
    CacheDomain.PERFORMANCE.value: 1,
    CacheDomain.SESSION.value: 2,
    CacheDomain.ASSIGNMENT.value: 2,
    CacheDomain.ATTENDANCE.value: 2,
    CacheDomain.INVOICE.value: 2,
    CacheDomain.CLASSROOM.value: 3,
    CacheDomain.STUDENT.value: 3,
    CacheDomain.USER.value: 3,
    CacheDomain.TEACHER.value: 3,
    CacheDomain.FAMILY.value: 3,
    CacheDomain.ARCHIVE.value: 3,
}


@dataclass
class CacheConfig:
    """
    Main cache configuration.

    Settings can be overridden via environment variables:
    - CACHE_ENABLED: Enable/disable caching globally
    - CACHE_PERSISTENT_BACKEND: memory, redis or sql
    - CACHE_NAMESPACE: Physical key prefix for shared backends
    - CACHE_PERSISTENT_CAPACITY_BYTES: Capacity of the in-process backend
    - CACHE_EVICTION_FRACTION: Share of entries evicted when full
    - CACHE_PERSISTENT_RETENTION: Snapshots are kept for this many TTL
      bands, then expire in the backend
    """

    # Cache namespace (for physical key prefixes in shared backends)
    namespace: str = field(default_factory=lambda: os.getenv(
        "CACHE_NAMESPACE",
        "academy"
    ))

    # Global cache toggle
    enabled: bool = field(default_factory=lambda: os.getenv(
        "CACHE_ENABLED",
        "true"
    ).lower() == "true")

    # Persistent tier backend
    persistent_backend: str = field(default_factory=lambda: os.getenv(
        "CACHE_PERSISTENT_BACKEND",
        "memory"
    ).lower())

    # 5MB, roughly what a browser tab storage allows
    persistent_capacity_bytes: int = field(default_factory=lambda: int(os.getenv(
        "CACHE_PERSISTENT_CAPACITY_BYTES",
        str(5 * 1024 * 1024)
    )))

    eviction_fraction: float = field(default_factory=lambda: float(os.getenv(
        "CACHE_EVICTION_FRACTION",
        "0.25"
    )))

    # TTL bands a snapshot is kept; peek() can serve it as stale until then
    persistent_retention: int = field(default_factory=lambda: int(os.getenv(
        "CACHE_PERSISTENT_RETENTION",
        "4"
    )))


@lru_cache(maxsize=1)
def get_cache_config() -> CacheConfig:
    """Get cached cache configuration."""
    return CacheConfig()
