"""
SQLAlchemy Models for the persistent cache tier

One table holds the JSON snapshot envelopes written by the cache.
The envelope is opaque here; freshness is decided by the reader.
"""

from datetime import datetime

from sqlalchemy import Column, String, Integer, Text, DateTime, Index
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class CacheSnapshot(Base):
    """
    Persisted cache snapshot.

    Keys follow ``{domain}-{tenant_id}-{scope...}``; prefix scans on
    ``key`` drive invalidation.
    """
    __tablename__ = "cache_snapshots"

    key = Column(String(512), primary_key=True)
    payload = Column(Text, nullable=False)
    size_bytes = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_cache_snapshots_updated", "updated_at"),
    )

    def __repr__(self):
        return f"<CacheSnapshot {self.key} ({self.size_bytes} bytes)>"
