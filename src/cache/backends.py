"""
Persistent Store Backends

String key/value stores behind the persistent cache tier. All calls are
synchronous and capacity-bounded; a rejected write raises StoreWriteError
and the tier decides what to do about it.

Backends:
- DictKeyValueStore: in-process dict with an optional byte capacity
- RedisKeyValueStore: shared Redis with a physical namespace prefix
- SqlKeyValueStore: the cache_snapshots table via SQLAlchemy
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

from redis import Redis
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from src.cache.errors import StoreWriteError
from src.database.models import CacheSnapshot
from src.database.session import session_scope


logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Synchronous string store consumed by the persistent tier."""

    backend: str = "unknown"

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored string or None. Never raises on backend errors."""

    @abstractmethod
    def set(self, key: str, value: str, ttl_ms: Optional[int] = None) -> None:
        """
        Store a string. Raises StoreWriteError if rejected.

        ``ttl_ms`` is how long the backend may keep the value. Backends
        without native expiry ignore it and rely on the tier's purge.
        """

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove a key. Returns True if it existed."""

    @abstractmethod
    def keys(self, prefix: str = "") -> List[str]:
        """Keys starting with ``prefix`` (raw string match)."""

    def health_check(self) -> Dict:
        """Simple health check."""
        try:
            count = len(self.keys())
            return {"healthy": True, "status": "connected", "cached_entries": count, "backend": self.backend}
        except Exception as e:
            return {"healthy": False, "status": "error", "error": str(e), "backend": self.backend}


class DictKeyValueStore(KeyValueStore):
    """
    In-process store with an optional byte capacity.

    Behaves like tab-scoped browser storage: writes past the
    capacity are rejected with a quota error.
    """

    backend = "memory"

    def __init__(self, capacity_bytes: Optional[int] = None):
        self.capacity_bytes = capacity_bytes
        self._data: Dict[str, str] = {}
        self._size = 0

    @staticmethod
    def _entry_size(key: str, value: str) -> int:
        return len(key.encode("utf-8")) + len(value.encode("utf-8"))

    @property
    def size_bytes(self) -> int:
        return self._size

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str, ttl_ms: Optional[int] = None) -> None:
        new_size = self._entry_size(key, value)
        old_size = self._entry_size(key, self._data[key]) if key in self._data else 0
        projected = self._size - old_size + new_size

        if self.capacity_bytes is not None and projected > self.capacity_bytes:
            raise StoreWriteError(
                key,
                f"quota exceeded ({projected} > {self.capacity_bytes} bytes)",
                quota_exceeded=True,
            )

        self._data[key] = value
        self._size = projected

    def delete(self, key: str) -> bool:
        value = self._data.pop(key, None)
        if value is None:
            return False
        self._size -= self._entry_size(key, value)
        return True

    def keys(self, prefix: str = "") -> List[str]:
        return [k for k in self._data if k.startswith(prefix)]


class RedisKeyValueStore(KeyValueStore):
    """
    Redis-backed store.

    Keys are physically namespaced (``{namespace}:{key}``) so several
    applications can share one Redis database.
    """

    backend = "redis"

    def __init__(
        self,
        client: Optional[Redis] = None,
        url: str = "redis://localhost:6379/0",
        namespace: str = "academy",
        socket_timeout: float = 5.0,
    ):
        self._redis = client or Redis.from_url(
            url,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
            decode_responses=False,  # We handle bytes directly
        )
        self.namespace = namespace

    def _make_key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def _strip_key(self, raw) -> str:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return raw[len(self.namespace) + 1:]

    def get(self, key: str) -> Optional[str]:
        try:
            data = self._redis.get(self._make_key(key))
        except RedisError as e:
            logger.error(f"Redis get error for {key}: {e}")
            return None

        if data is None:
            return None
        if isinstance(data, bytes):
            try:
                return data.decode("utf-8")
            except UnicodeDecodeError:
                # Leave it to the snapshot decoder to reject
                return data.decode("utf-8", errors="replace")
        return data

    def set(self, key: str, value: str, ttl_ms: Optional[int] = None) -> None:
        try:
            if ttl_ms:
                self._redis.psetex(self._make_key(key), ttl_ms, value.encode("utf-8"))
            else:
                self._redis.set(self._make_key(key), value.encode("utf-8"))
        except RedisError as e:
            quota = "OOM" in str(e)
            raise StoreWriteError(key, str(e), quota_exceeded=quota) from e

    def delete(self, key: str) -> bool:
        try:
            return self._redis.delete(self._make_key(key)) > 0
        except RedisError as e:
            logger.error(f"Redis delete error for {key}: {e}")
            return False

    def keys(self, prefix: str = "") -> List[str]:
        pattern = self._make_key(prefix) + "*"
        try:
            return [
                self._strip_key(k)
                for k in self._redis.scan_iter(match=pattern, count=100)
            ]
        except RedisError as e:
            logger.error(f"Redis scan error for {pattern}: {e}")
            return []

    def health_check(self) -> Dict:
        try:
            self._redis.ping()
        except RedisError as e:
            return {"healthy": False, "status": "error", "error": str(e), "backend": self.backend}
        return super().health_check()


class SqlKeyValueStore(KeyValueStore):
    """
    SQL-backed store using the cache_snapshots table.

    Each call uses its own short session.
    """

    backend = "sql"

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get(self, key: str) -> Optional[str]:
        try:
            with self._session_factory() as db:
                record = db.get(CacheSnapshot, key)
                return record.payload if record else None
        except SQLAlchemyError as e:
            logger.error(f"Cache snapshot read error for {key}: {e}")
            return None

    def set(self, key: str, value: str, ttl_ms: Optional[int] = None) -> None:
        size_bytes = len(value.encode("utf-8"))
        try:
            with session_scope(self._session_factory) as db:
                record = db.get(CacheSnapshot, key)
                if record:
                    record.payload = value
                    record.size_bytes = size_bytes
                    record.updated_at = datetime.utcnow()
                else:
                    db.add(CacheSnapshot(key=key, payload=value, size_bytes=size_bytes))
        except SQLAlchemyError as e:
            raise StoreWriteError(key, str(e)) from e

    def delete(self, key: str) -> bool:
        try:
            with session_scope(self._session_factory) as db:
                deleted = db.query(CacheSnapshot).filter(CacheSnapshot.key == key).delete()
            return deleted > 0
        except SQLAlchemyError as e:
            logger.error(f"Cache snapshot delete error for {key}: {e}")
            return False

    def keys(self, prefix: str = "") -> List[str]:
        try:
            with self._session_factory() as db:
                query = db.query(CacheSnapshot.key)
                if prefix:
                    query = query.filter(CacheSnapshot.key.startswith(prefix, autoescape=True))
                return [row[0] for row in query.all()]
        except SQLAlchemyError as e:
            logger.error(f"Cache snapshot scan error for {prefix}: {e}")
            return []
