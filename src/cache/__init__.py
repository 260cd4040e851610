"""
Academy Caching Layer

Two-tier read-through cache for dashboard data:
- Tier 1: MemoryCache (process-local, per-key TTL)
- Tier 2: PersistentCache (JSON snapshots over memory, Redis or SQL)
- Origin: the record source, reached only on miss

Key components:
- CacheKey: ``{domain}-{tenant_id}-{scope...}`` keys
- CacheTTL: TTL bands per data class
- TieredReader: read-through with request coalescing
- InvalidationDispatcher: entity -> dependent domain purges
- CacheSystem: one injected object composing all of the above

Usage:
    system = build_cache_system()
    value, source = await system.reader.read(
        build_key(CacheDomain.CLASSROOM, tenant_id),
        CacheTTL.ms_for_domain(CacheDomain.CLASSROOM),
        fetch_classrooms,
    )

    # Invalidate after a write
    system.dispatcher.invalidate(tenant_id, EntityType.CLASSROOM)
"""

from src.cache.config import CacheConfig, CacheTTL, get_cache_config
from src.cache.entry import CacheEntry, Clock, SystemClock, ManualClock, is_fresh
from src.cache.errors import (
    CacheError,
    TransientFetchError,
    CorruptCacheError,
    StoreWriteError,
)
from src.cache.keys import CacheDomain, CacheKey, build_key, tenant_prefix
from src.cache.backends import (
    KeyValueStore,
    DictKeyValueStore,
    RedisKeyValueStore,
    SqlKeyValueStore,
)
from src.cache.store import CacheStore
from src.cache.memory_cache import MemoryCache
from src.cache.persistent_cache import PersistentCache
from src.cache.tiered_reader import TieredReader, ReadSource
from src.cache.invalidation import (
    InvalidationDispatcher,
    InvalidationResult,
    EntityType,
    MutationKind,
    DEPENDENCY_TABLE,
)
from src.cache.system import CacheSystem, build_cache_system

__all__ = [
    # Config
    "CacheConfig",
    "CacheTTL",
    "get_cache_config",
    # Entries
    "CacheEntry",
    "Clock",
    "SystemClock",
    "ManualClock",
    "is_fresh",
    # Errors
    "CacheError",
    "TransientFetchError",
    "CorruptCacheError",
    "StoreWriteError",
    # Keys
    "CacheDomain",
    "CacheKey",
    "build_key",
    "tenant_prefix",
    # Stores
    "CacheStore",
    "KeyValueStore",
    "DictKeyValueStore",
    "RedisKeyValueStore",
    "SqlKeyValueStore",
    "MemoryCache",
    "PersistentCache",
    # Reading
    "TieredReader",
    "ReadSource",
    # Invalidation
    "InvalidationDispatcher",
    "InvalidationResult",
    "EntityType",
    "MutationKind",
    "DEPENDENCY_TABLE",
    # System
    "CacheSystem",
    "build_cache_system",
]
