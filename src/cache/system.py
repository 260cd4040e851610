"""
Cache System

One object per process composing the clock, both tiers, the tiered
reader and the invalidation dispatcher. Constructed once at startup and
passed by reference to every reader and writer; tests build their own.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from src.cache.backends import (
    KeyValueStore,
    DictKeyValueStore,
    RedisKeyValueStore,
    SqlKeyValueStore,
)
from src.cache.config import CacheConfig, get_cache_config
from src.cache.entry import Clock, SystemClock
from src.cache.invalidation import InvalidationDispatcher
from src.cache.memory_cache import MemoryCache
from src.cache.persistent_cache import PersistentCache
from src.cache.tiered_reader import TieredReader


logger = logging.getLogger(__name__)


@dataclass
class CacheSystem:
    """Everything a reader or writer needs from the cache."""
    config: CacheConfig
    clock: Clock
    memory: MemoryCache
    persistent: PersistentCache
    reader: TieredReader
    dispatcher: InvalidationDispatcher

    def get_stats(self) -> Dict:
        """Combined statistics for both tiers and the reader."""
        return {
            **self.reader.get_stats(),
            "memory_entries": len(self.memory),
            "persistent": self.persistent.get_stats(),
        }

    def health_check(self) -> Dict:
        health = self.persistent.health_check()
        health["memory_entries"] = len(self.memory)
        return health

    def purge_expired(self) -> Dict:
        """
        Drop expired memory entries and snapshots past their retention.

        Returns:
            Dict with the count removed from each tier
        """
        return {
            "memory": self.memory.purge_expired(),
            "persistent": self.persistent.purge_expired(),
        }


def create_key_value_store(config: CacheConfig) -> KeyValueStore:
    """Create the persistent backend named by the configuration."""
    backend = config.persistent_backend

    if backend == "memory":
        return DictKeyValueStore(capacity_bytes=config.persistent_capacity_bytes)

    if backend == "redis":
        from src.utils.config import get_settings
        return RedisKeyValueStore(url=get_settings().REDIS_URL, namespace=config.namespace)

    if backend == "sql":
        from src.database.session import create_db_engine, create_session_factory, init_db
        engine = create_db_engine()
        init_db(engine)
        return SqlKeyValueStore(create_session_factory(engine))

    raise ValueError(f"Unknown persistent cache backend: {backend}")


def build_cache_system(
    config: Optional[CacheConfig] = None,
    clock: Optional[Clock] = None,
    store: Optional[KeyValueStore] = None,
) -> CacheSystem:
    """
    Build a cache system.

    Args:
        config: Cache configuration (defaults to environment)
        clock: Time source (defaults to the wall clock)
        store: Persistent backend (defaults to the configured one)
    """
    config = config or get_cache_config()
    clock = clock or SystemClock()
    store = store or create_key_value_store(config)

    memory = MemoryCache(clock=clock)
    persistent = PersistentCache(
        store,
        eviction_fraction=config.eviction_fraction,
        clock=clock,
        retention=config.persistent_retention,
    )
    reader = TieredReader(memory, persistent, clock=clock, enabled=config.enabled)
    dispatcher = InvalidationDispatcher(memory, persistent, reader=reader)

    logger.info(
        f"Cache system ready: backend={store.backend}, enabled={config.enabled}"
    )
    return CacheSystem(
        config=config,
        clock=clock,
        memory=memory,
        persistent=persistent,
        reader=reader,
        dispatcher=dispatcher,
    )
