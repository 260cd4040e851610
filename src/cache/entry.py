"""
Cache Entry and Clock

The primitive timestamped value and the time source used for expiry.
Freshness is a pure function of ``written_at`` and ``ttl_ms``; it is
never inferred from the cached content.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional


@dataclass(frozen=True)
class CacheEntry:
    """A cached value with its write timestamp and TTL band (milliseconds)."""
    key: str
    value: Any
    written_at: int
    ttl_ms: int

    def is_fresh(self, now_ms: int, ttl_ms: Optional[int] = None) -> bool:
        """
        Fresh iff ``now - written_at < ttl``.

        ``ttl_ms`` overrides the entry's own band, for readers that
        check against the band of the request.
        """
        ttl = self.ttl_ms if ttl_ms is None else ttl_ms
        return now_ms - self.written_at < ttl

    def age_ms(self, now_ms: int) -> int:
        return now_ms - self.written_at


def is_fresh(entry: CacheEntry, now_ms: int) -> bool:
    """Check an entry against its own TTL band."""
    return entry.is_fresh(now_ms)


class Clock(ABC):
    """Time source for the cache and the aggregation reference "now"."""

    @abstractmethod
    def now_ms(self) -> int:
        """Current time in epoch milliseconds."""

    def now(self) -> datetime:
        """Current time as an aware UTC datetime."""
        return datetime.fromtimestamp(self.now_ms() / 1000, tz=timezone.utc)


class SystemClock(Clock):
    """Wall clock."""

    def now_ms(self) -> int:
        return int(time.time() * 1000)


class ManualClock(Clock):
    """
    Clock that only moves when told to.

    Used to drive TTL boundaries deterministically.
    """

    def __init__(self, start: Optional[datetime] = None):
        if start is None:
            start = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        self._now_ms = int(start.timestamp() * 1000)

    def now_ms(self) -> int:
        return self._now_ms

    def advance(self, delta: timedelta = timedelta(0), ms: int = 0) -> int:
        """Move the clock forward and return the new time."""
        self._now_ms += int(delta.total_seconds() * 1000) + ms
        return self._now_ms

    def set(self, moment: datetime):
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        self._now_ms = int(moment.timestamp() * 1000)
