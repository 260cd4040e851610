"""
Tests for the caching layer.

These tests verify:
- Key scheme and tenant isolation
- TTL bands and entry freshness boundaries
- Snapshot serialization and corruption handling
- Memory tier, backends and persistent tier eviction

Requires Redis running locally for the Redis backend tests.
Everything else runs without external services.
"""

import json
import pytest
from datetime import date, timedelta
from unittest.mock import MagicMock, patch

from redis import Redis
from redis.exceptions import RedisError

from src.cache.backends import DictKeyValueStore, RedisKeyValueStore, SqlKeyValueStore
from src.cache.config import CacheConfig, CacheTTL, get_cache_config
from src.cache.entry import CacheEntry, ManualClock, is_fresh
from src.cache.errors import CorruptCacheError, StoreWriteError
from src.cache.keys import CacheDomain, CacheKey, build_key, tenant_prefix, matches_prefix, domain_of
from src.cache.memory_cache import MemoryCache
from src.cache.persistent_cache import PersistentCache
from src.cache.serialization import encode_entry, decode_entry, serialize_value
from src.cache.system import build_cache_system, create_key_value_store
from src.database.session import create_db_engine, create_session_factory, init_db, check_db_connection


def make_entry(key: str, written_at: int = 1_000, ttl_ms: int = 60_000, value=None) -> CacheEntry:
    return CacheEntry(key=key, value=value if value is not None else {"v": key}, written_at=written_at, ttl_ms=ttl_ms)


# =============================================================================
# KEY TESTS
# =============================================================================

class TestCacheKeys:
    """Test the key scheme."""

    def test_key_format(self):
        assert build_key(CacheDomain.CLASSROOM, "t1") == "classroom-t1"
        assert build_key("session", "t1", "page", 2) == "session-t1-page-2"

    def test_date_scope_is_compact(self):
        assert build_key(CacheDomain.DASHBOARD, "t1", "stats", date(2024, 1, 15)) == "dashboard-t1-stats-20240115"

    def test_separator_in_components_is_escaped(self):
        assert build_key(CacheDomain.ASSIGNMENT, "a-b") == "assignment-a%2Db"
        assert build_key(CacheDomain.ASSIGNMENT, "t1", "50%") == "assignment-t1-50%25"
        assert tenant_prefix(CacheDomain.ASSIGNMENT, "a-b") == "assignment-a%2Db"

    @pytest.mark.parametrize("first,second", [
        (("a", "grades"), ("a-grades",)),
        (("a", "b-c"), ("a-b", "c")),
        (("a", "x", "y"), ("a", "x-y")),
        (("a", "%2D"), ("a", "-")),
        (("a%2Db",), ("a-b",)),
    ])
    def test_string_form_is_unique_per_components(self, first, second):
        one = CacheKey.build(CacheDomain.ASSIGNMENT, *first)
        two = CacheKey.build(CacheDomain.ASSIGNMENT, *second)
        assert one != two
        assert str(one) != str(two)

    def test_hyphenated_tenant_prefix_stays_in_tenant(self):
        """Tenant a never reaches keys of tenant a-b."""
        prefix = tenant_prefix(CacheDomain.CLASSROOM, "a")
        assert matches_prefix(build_key(CacheDomain.CLASSROOM, "a", "page", 1), prefix)
        assert not matches_prefix(build_key(CacheDomain.CLASSROOM, "a-b"), prefix)
        assert not matches_prefix(build_key(CacheDomain.CLASSROOM, "a-b", "page", 1), prefix)

    def test_scope_changes_key(self):
        """Every scope component is part of the identity."""
        teacher = CacheKey.build(CacheDomain.USER, "t1", "role", "teacher")
        manager = CacheKey.build(CacheDomain.USER, "t1", "role", "manager")
        assert teacher != manager
        assert str(teacher) != str(manager)
        assert teacher == CacheKey.build("user", "t1", "role", "teacher")

    def test_tenant_required(self):
        with pytest.raises(ValueError):
            build_key(CacheDomain.CLASSROOM, "")

    def test_missing_scope_component_rejected(self):
        with pytest.raises(ValueError):
            build_key(CacheDomain.USER, "t1", None)
        with pytest.raises(ValueError):
            build_key(CacheDomain.USER, "t1", "")

    def test_prefix(self):
        key = CacheKey.build(CacheDomain.SESSION, "t1", "day", "2024-01-15")
        assert key.prefix == tenant_prefix(CacheDomain.SESSION, "t1") == "session-t1"

    def test_prefix_matches_whole_components(self):
        """Tenant a1 never matches keys of tenant a10."""
        assert matches_prefix("classroom-a1", "classroom-a1")
        assert matches_prefix("classroom-a1-page-1", "classroom-a1")
        assert not matches_prefix("classroom-a10", "classroom-a1")
        assert not matches_prefix("classroom-a10-page-1", "classroom-a1")

    def test_domain_of(self):
        assert domain_of("performance-t1-students") == "performance"


# =============================================================================
# CACHE TTL TESTS
# =============================================================================

class TestCacheTTL:
    """Test cache TTL configuration."""

    def test_ttl_for_domain(self):
        """Test TTL lookup by data class."""
        assert CacheTTL.for_domain(CacheDomain.CLASSROOM) == CacheTTL.LONG
        assert CacheTTL.for_domain("student") == CacheTTL.LONG
        assert CacheTTL.for_domain(CacheDomain.SESSION) == CacheTTL.SHORT
        assert CacheTTL.for_domain(CacheDomain.INVOICE) == CacheTTL.SHORT
        assert CacheTTL.for_domain(CacheDomain.DASHBOARD) == CacheTTL.MEDIUM

    def test_ttl_for_unknown_domain(self):
        """Test TTL for unknown domain returns default."""
        assert CacheTTL.for_domain("unknown") == CacheTTL.MEDIUM

    def test_ttl_values_reasonable(self):
        """Structural data outlives rollups, which outlive activity data."""
        assert CacheTTL.LONG == timedelta(minutes=10)
        assert CacheTTL.MEDIUM == timedelta(minutes=5)
        assert CacheTTL.SHORT == timedelta(minutes=1)
        assert CacheTTL.ms_for_domain(CacheDomain.SESSION) == 60_000

    def test_every_domain_has_a_band(self):
        for domain in CacheDomain:
            assert CacheTTL.for_domain(domain) in (CacheTTL.LONG, CacheTTL.MEDIUM, CacheTTL.SHORT)


# =============================================================================
# CACHE CONFIG TESTS
# =============================================================================

class TestCacheConfig:
    """Test cache configuration."""

    @patch.dict('os.environ', {}, clear=True)
    def test_config_defaults(self):
        """Test default configuration values."""
        config = CacheConfig()
        assert config.enabled is True
        assert config.persistent_backend == "memory"
        assert config.namespace == "academy"
        assert config.eviction_fraction == 0.25

    @patch.dict('os.environ', {'CACHE_ENABLED': 'false', 'CACHE_PERSISTENT_BACKEND': 'SQL'})
    def test_config_from_env(self):
        """Test configuration from environment variables."""
        get_cache_config.cache_clear()
        config = get_cache_config()
        assert config.enabled is False
        assert config.persistent_backend == "sql"
        get_cache_config.cache_clear()  # Reset

    def test_unknown_backend_rejected(self, cache_config):
        cache_config.persistent_backend = "memcached"
        with pytest.raises(ValueError):
            create_key_value_store(cache_config)

    def test_memory_backend_uses_capacity(self, cache_config):
        cache_config.persistent_capacity_bytes = 1234
        store = create_key_value_store(cache_config)
        assert isinstance(store, DictKeyValueStore)
        assert store.capacity_bytes == 1234


# =============================================================================
# ENTRY AND CLOCK TESTS
# =============================================================================

class TestCacheEntry:
    """Freshness is a pure function of written_at and ttl_ms."""

    def test_fresh_before_boundary(self):
        entry = make_entry("k", written_at=1_000, ttl_ms=500)
        assert is_fresh(entry, 1_499)

    def test_stale_at_boundary(self):
        entry = make_entry("k", written_at=1_000, ttl_ms=500)
        assert not is_fresh(entry, 1_500)

    def test_stale_after_boundary(self):
        entry = make_entry("k", written_at=1_000, ttl_ms=500)
        assert not is_fresh(entry, 10_000)

    def test_request_band_overrides_entry_band(self):
        entry = make_entry("k", written_at=1_000, ttl_ms=500)
        assert entry.is_fresh(1_600, ttl_ms=1_000)

    def test_manual_clock(self):
        clock = ManualClock()
        start = clock.now_ms()
        clock.advance(timedelta(seconds=2), ms=5)
        assert clock.now_ms() - start == 2_005
        assert clock.now().tzinfo is not None


# =============================================================================
# SERIALIZATION TESTS
# =============================================================================

class TestSerialization:
    """Test snapshot envelopes."""

    def test_serialize_date(self):
        assert json.loads(serialize_value({"day": date(2024, 1, 15)})) == {"day": "2024-01-15"}

    def test_envelope_round_trip(self):
        entry = make_entry("dashboard-t1-stats", written_at=42, ttl_ms=300_000, value={"count": 3})
        decoded = decode_entry(entry.key, encode_entry(entry))
        assert decoded == entry

    def test_envelope_accepts_bytes(self):
        entry = make_entry("k")
        assert decode_entry("k", encode_entry(entry).encode("utf-8")) == entry

    @pytest.mark.parametrize("raw", [
        "not json",
        "[1, 2, 3]",
        '{"value": 1}',
        '{"written_at": 1}',
        '{"value": 1, "written_at": "yesterday"}',
        b"\xff\xfe",
    ])
    def test_corrupt_payloads_raise(self, raw):
        with pytest.raises(CorruptCacheError):
            decode_entry("k", raw)


# =============================================================================
# MEMORY CACHE TESTS
# =============================================================================

class TestMemoryCache:
    """Test the process-local tier."""

    def test_set_get_replace(self, clock):
        memory = MemoryCache(clock)
        memory.set(make_entry("k", value={"n": 1}))
        memory.set(make_entry("k", value={"n": 2}))
        assert memory.get("k").value == {"n": 2}
        assert len(memory) == 1

    def test_get_fresh(self, clock):
        memory = MemoryCache(clock)
        now = clock.now_ms()
        memory.set(make_entry("k", written_at=now, ttl_ms=1_000))
        assert memory.get_fresh("k") is not None
        clock.advance(ms=1_000)
        assert memory.get_fresh("k") is None
        assert memory.get("k") is not None

    def test_delete_prefix(self, clock):
        memory = MemoryCache(clock)
        for key in ("classroom-t1", "classroom-t1-page-2", "classroom-t10", "session-t1"):
            memory.set(make_entry(key))
        assert memory.delete_prefix("classroom-t1") == 2
        assert sorted(memory.keys()) == ["classroom-t10", "session-t1"]

    def test_purge_expired(self, clock):
        memory = MemoryCache(clock)
        now = clock.now_ms()
        memory.set(make_entry("old", written_at=now - 2_000, ttl_ms=1_000))
        memory.set(make_entry("new", written_at=now, ttl_ms=1_000))
        assert memory.purge_expired() == 1
        assert "old" not in memory
        assert "new" in memory


# =============================================================================
# BACKEND TESTS
# =============================================================================

class TestDictKeyValueStore:
    """Test the in-process backend."""

    def test_size_accounting(self):
        store = DictKeyValueStore()
        store.set("ab", "cd")
        assert store.size_bytes == 4
        store.set("ab", "cdef")
        assert store.size_bytes == 6
        store.delete("ab")
        assert store.size_bytes == 0

    def test_quota_exceeded(self):
        store = DictKeyValueStore(capacity_bytes=5)
        with pytest.raises(StoreWriteError) as exc_info:
            store.set("key", "value")
        assert exc_info.value.quota_exceeded is True
        assert store.get("key") is None

    def test_keys_by_prefix(self):
        store = DictKeyValueStore()
        store.set("classroom-t1", "x")
        store.set("session-t1", "y")
        assert store.keys("classroom") == ["classroom-t1"]

    def test_health_check(self):
        store = DictKeyValueStore()
        store.set("k", "v")
        health = store.health_check()
        assert health["healthy"] is True
        assert health["cached_entries"] == 1
        assert health["backend"] == "memory"


class TestSqlKeyValueStore:
    """Test the SQL backend against in-memory SQLite."""

    @pytest.fixture
    def sql_store(self):
        engine = create_db_engine("sqlite://")
        init_db(engine)
        assert check_db_connection(engine)
        return SqlKeyValueStore(create_session_factory(engine))

    def test_set_get_overwrite(self, sql_store):
        assert sql_store.get("classroom-t1") is None
        sql_store.set("classroom-t1", "first")
        sql_store.set("classroom-t1", "second")
        assert sql_store.get("classroom-t1") == "second"

    def test_delete(self, sql_store):
        sql_store.set("k", "v")
        assert sql_store.delete("k") is True
        assert sql_store.delete("k") is False

    def test_prefix_is_literal(self, sql_store):
        """LIKE wildcards in a prefix are matched literally."""
        sql_store.set("dashboard-t_1-stats", "a")
        sql_store.set("dashboard-tx1-stats", "b")
        assert sql_store.keys("dashboard-t_1") == ["dashboard-t_1-stats"]

    def test_persistent_tier_over_sql(self, sql_store):
        persistent = PersistentCache(sql_store)
        entry = make_entry("performance-t1-students", value={"top": []})
        assert persistent.set(entry) is True
        assert persistent.get(entry.key) == entry
        assert persistent.delete_prefix("performance-t1") == 1

    def test_purge_expired_over_sql(self, sql_store, clock):
        persistent = PersistentCache(sql_store, clock=clock, retention=2)
        persistent.set(make_entry("dashboard-t1-stats-20240114", written_at=clock.now_ms(), ttl_ms=1_000))
        clock.advance(ms=1_500)
        persistent.set(make_entry("dashboard-t1-stats-20240115", written_at=clock.now_ms(), ttl_ms=1_000))

        clock.advance(ms=1_000)
        assert persistent.purge_expired() == 1
        assert sql_store.keys() == ["dashboard-t1-stats-20240115"]


class TestRedisKeyValueStore:
    """
    Integration tests for the Redis backend.

    These require a running Redis instance.
    Skip if Redis is not available.
    """

    @pytest.fixture
    def redis_store(self):
        client = Redis.from_url("redis://localhost:6379/15", socket_connect_timeout=0.5)
        try:
            client.ping()
        except RedisError:
            pytest.skip("Redis not available")

        store = RedisKeyValueStore(client=client, namespace="academy-test")
        yield store
        for key in store.keys():
            store.delete(key)

    def test_set_and_get(self, redis_store):
        redis_store.set("classroom-t1", '{"value": 1}')
        assert redis_store.get("classroom-t1") == '{"value": 1}'

    def test_get_nonexistent(self, redis_store):
        assert redis_store.get("classroom-missing") is None

    def test_keys_strip_namespace(self, redis_store):
        redis_store.set("session-t1-day-1", "x")
        assert redis_store.keys("session-t1") == ["session-t1-day-1"]

    def test_health_check(self, redis_store):
        assert redis_store.health_check()["healthy"] is True


class TestRedisErrorHandling:
    """Redis failures become misses on read and StoreWriteError on write."""

    def test_read_error_is_a_miss(self):
        client = MagicMock()
        client.get.side_effect = RedisError("connection reset")
        store = RedisKeyValueStore(client=client)
        assert store.get("k") is None

    def test_oom_is_a_quota_error(self):
        client = MagicMock()
        client.set.side_effect = RedisError("OOM command not allowed when used memory > 'maxmemory'")
        store = RedisKeyValueStore(client=client)
        with pytest.raises(StoreWriteError) as exc_info:
            store.set("k", "v")
        assert exc_info.value.quota_exceeded is True

    def test_physical_namespace(self):
        client = MagicMock()
        store = RedisKeyValueStore(client=client, namespace="ns")
        store.set("classroom-t1", "v")
        client.set.assert_called_once_with("ns:classroom-t1", b"v")

    def test_ttl_becomes_native_expiry(self):
        client = MagicMock()
        store = RedisKeyValueStore(client=client, namespace="ns")
        store.set("session-t1", "{}", ttl_ms=240_000)
        client.psetex.assert_called_once_with("ns:session-t1", 240_000, b"{}")
        client.set.assert_not_called()

    def test_persistent_tier_writes_with_retention(self):
        client = MagicMock()
        persistent = PersistentCache(RedisKeyValueStore(client=client, namespace="ns"), retention=4)
        persistent.set(make_entry("session-t1", ttl_ms=60_000))
        key, ttl_ms, _ = client.psetex.call_args.args
        assert (key, ttl_ms) == ("ns:session-t1", 240_000)


# =============================================================================
# PERSISTENT CACHE TESTS
# =============================================================================

class TestPersistentCache:
    """Test the snapshot tier."""

    def test_round_trip(self, store):
        persistent = PersistentCache(store)
        entry = make_entry("classroom-t1", value=[{"id": "math"}])
        assert persistent.set(entry) is True
        assert persistent.get("classroom-t1") == entry

    def test_corrupt_snapshot_is_a_miss_and_removed(self, store):
        persistent = PersistentCache(store)
        store.set("classroom-t1", "{truncated")
        assert persistent.get("classroom-t1") is None
        assert store.get("classroom-t1") is None
        assert persistent.get_stats()["corrupt"] == 1

    def test_evict_lowest_priority_oldest_first(self, store):
        persistent = PersistentCache(store)
        persistent.set(make_entry("dashboard-t1-stats-a", written_at=1_000))
        persistent.set(make_entry("dashboard-t1-stats-b", written_at=2_000))
        persistent.set(make_entry("session-t1", written_at=500))
        persistent.set(make_entry("classroom-t1", written_at=100))

        assert persistent.evict(0.25) == 1
        assert "dashboard-t1-stats-a" not in persistent.keys()
        assert len(persistent.keys()) == 3

    def test_quota_triggers_eviction_and_retry(self):
        entries = [make_entry(f"dashboard-t1-{c}", written_at=1_000 * (i + 1)) for i, c in enumerate("abcde")]
        size = len(entries[0].key) + len(encode_entry(entries[0]))
        persistent = PersistentCache(DictKeyValueStore(capacity_bytes=4 * size))

        for entry in entries[:4]:
            assert persistent.set(entry) is True

        assert persistent.set(entries[4]) is True
        keys = persistent.keys()
        assert "dashboard-t1-a" not in keys
        assert "dashboard-t1-e" in keys
        assert persistent.get_stats()["evicted"] == 1

    def test_second_rejection_is_tolerated(self):
        persistent = PersistentCache(DictKeyValueStore(capacity_bytes=10))
        assert persistent.set(make_entry("classroom-t1")) is False
        assert persistent.get_stats()["write_failures"] == 1

    def test_purge_expired_keeps_snapshots_within_retention(self, store, clock):
        persistent = PersistentCache(store, clock=clock, retention=4)
        now = clock.now_ms()
        persistent.set(make_entry("session-t1", written_at=now, ttl_ms=1_000))
        persistent.set(make_entry("classroom-t1", written_at=now, ttl_ms=10_000))

        clock.advance(ms=3_999)
        assert persistent.purge_expired() == 0

        clock.advance(ms=1)
        assert persistent.purge_expired() == 1
        assert persistent.keys() == ["classroom-t1"]
        assert persistent.get_stats()["expired"] == 1

    def test_stale_snapshot_served_until_purged(self, store, clock):
        persistent = PersistentCache(store, clock=clock, retention=4)
        entry = make_entry("session-t1", written_at=clock.now_ms(), ttl_ms=1_000)
        persistent.set(entry)

        clock.advance(ms=2_000)
        assert persistent.purge_expired() == 0
        assert persistent.get("session-t1") == entry

    def test_non_quota_failure_skips_eviction(self):
        backend = MagicMock()
        backend.set.side_effect = StoreWriteError("k", "read-only replica")
        persistent = PersistentCache(backend)
        assert persistent.set(make_entry("k")) is False
        backend.keys.assert_not_called()


# =============================================================================
# CACHE SYSTEM TESTS
# =============================================================================

class TestCacheSystem:
    """Test composition."""

    def test_systems_are_independent(self, cache_config, clock):
        first = build_cache_system(config=cache_config, clock=clock, store=DictKeyValueStore())
        second = build_cache_system(config=cache_config, clock=clock, store=DictKeyValueStore())
        first.memory.set(make_entry("classroom-t1"))
        assert second.memory.get("classroom-t1") is None

    def test_stats_and_health(self, system):
        stats = system.get_stats()
        assert stats["hits"] == 0
        assert stats["persistent"]["backend"] == "memory"
        assert system.health_check()["healthy"] is True

    def test_purge_expired(self, system, clock):
        entry = make_entry("session-t1", written_at=clock.now_ms(), ttl_ms=1_000)
        system.memory.set(entry)
        system.persistent.set(entry)

        clock.advance(timedelta(seconds=2))
        assert system.purge_expired() == {"memory": 1, "persistent": 0}

        clock.advance(timedelta(seconds=2))
        assert system.purge_expired() == {"memory": 0, "persistent": 1}
        assert system.persistent.keys() == []
