"""
Cache Serialization Utilities

Persisted entries are stored as a JSON snapshot envelope:

    {"key": ..., "value": ..., "written_at": <ms>, "ttl_ms": <ms>}

The envelope is opaque to everything except the tiered reader and the
persistent tier. Anything that fails to decode raises CorruptCacheError.
"""

import json
from typing import Any

from src.cache.entry import CacheEntry
from src.cache.errors import CorruptCacheError


def serialize_value(value: Any) -> str:
    """
    Serialize a Python value to a JSON string.

    Uses JSON with default handler for non-serializable types.
    """
    def default_handler(obj):
        if hasattr(obj, 'isoformat'):
            return obj.isoformat()
        if hasattr(obj, 'to_dict'):
            return obj.to_dict()
        if hasattr(obj, '__dict__'):
            return obj.__dict__
        return str(obj)

    return json.dumps(value, default=default_handler, ensure_ascii=False)


def deserialize_value(data: str) -> Any:
    """
    Deserialize a JSON string back to a Python value.
    """
    if not data:
        return None
    return json.loads(data)


def encode_entry(entry: CacheEntry) -> str:
    """Encode an entry as a snapshot envelope."""
    return serialize_value({
        "key": entry.key,
        "value": entry.value,
        "written_at": entry.written_at,
        "ttl_ms": entry.ttl_ms,
    })


def decode_entry(key: str, raw: Any) -> CacheEntry:
    """
    Decode a snapshot envelope.

    Raises:
        CorruptCacheError: payload is not valid JSON or lacks the envelope
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CorruptCacheError(key, f"invalid encoding: {e}") from e

    try:
        snapshot = deserialize_value(raw)
    except (TypeError, ValueError) as e:
        raise CorruptCacheError(key, f"invalid JSON: {e}") from e

    if not isinstance(snapshot, dict):
        raise CorruptCacheError(key, "snapshot is not an object")

    missing = [f for f in ("value", "written_at") if f not in snapshot]
    if missing:
        raise CorruptCacheError(key, f"missing fields {missing}")

    written_at = snapshot["written_at"]
    ttl_ms = snapshot.get("ttl_ms", 0)
    if isinstance(written_at, bool) or not isinstance(written_at, (int, float)):
        raise CorruptCacheError(key, "written_at is not a timestamp")
    if isinstance(ttl_ms, bool) or not isinstance(ttl_ms, (int, float)):
        raise CorruptCacheError(key, "ttl_ms is not a number")

    return CacheEntry(
        key=key,
        value=snapshot["value"],
        written_at=int(written_at),
        ttl_ms=int(ttl_ms),
    )
