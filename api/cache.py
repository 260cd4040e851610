"""
Cache Management API

Provides endpoints for cache monitoring and manual operations.

Endpoints:
- Health check for monitoring/alerting
- Statistics for hit rates and coalescing
- Manual invalidation per academy and domain, or per academy
- Purge of expired entries from both tiers
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from src.cache.invalidation import InvalidationResult
from src.cache.system import CacheSystem


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/cache", tags=["Cache Management"])


def get_cache_system(request: Request) -> CacheSystem:
    return request.app.state.cache_system


# =============================================================================
# RESPONSE MODELS
# =============================================================================

class CacheHealthResponse(BaseModel):
    """Cache health check response."""
    status: str = Field(..., description="healthy or unhealthy")
    backend: str = Field(..., description="Persistent tier backend type")
    cached_entries: int = Field(default=0, description="Entries in the persistent tier")
    memory_entries: int = Field(default=0, description="Entries in the memory tier")
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class PersistentStatsResponse(BaseModel):
    """Persistent tier counters."""
    backend: str
    writes: int
    write_failures: int
    corrupt: int
    evicted: int
    expired: int = 0


class CacheStatsResponse(BaseModel):
    """Cache statistics response."""
    enabled: bool
    memory_hits: int
    persistent_hits: int
    hits: int
    misses: int
    origin_fetches: int
    coalesced: int
    fetch_errors: int
    hit_rate_percent: float
    in_flight: int
    memory_entries: int
    persistent: PersistentStatsResponse


class InvalidationResponse(BaseModel):
    """Cache invalidation response."""
    success: bool
    tenant_id: Optional[str] = None
    domains: List[str] = []
    keys_invalidated: int
    duration_ms: float
    errors: List[str] = []


class PurgeResponse(BaseModel):
    """Expired entry purge response."""
    memory: int
    persistent: int


def _to_response(result: InvalidationResult) -> InvalidationResponse:
    return InvalidationResponse(
        success=result.success,
        tenant_id=result.tenant_id,
        domains=result.domains,
        keys_invalidated=result.keys_invalidated,
        duration_ms=result.duration_ms,
        errors=result.errors,
    )


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("/health", response_model=CacheHealthResponse)
def cache_health_check(system: CacheSystem = Depends(get_cache_system)):
    """
    Check cache infrastructure health.

    Use this endpoint for monitoring and alerting systems.
    """
    health = system.health_check()

    return CacheHealthResponse(
        status="healthy" if health["healthy"] else "unhealthy",
        backend=health["backend"],
        cached_entries=health.get("cached_entries", 0),
        memory_entries=health.get("memory_entries", 0),
        error=health.get("error"),
        timestamp=datetime.utcnow(),
    )


@router.get("/stats", response_model=CacheStatsResponse)
def get_cache_stats(system: CacheSystem = Depends(get_cache_system)):
    """
    Get current cache statistics.

    Note: Stats are reset on application restart.
    """
    return CacheStatsResponse(**system.get_stats())


@router.post("/invalidate/{tenant_id}/{domain}", response_model=InvalidationResponse)
def invalidate_domain_cache(
    tenant_id: str,
    domain: str,
    system: CacheSystem = Depends(get_cache_system),
):
    """
    Invalidate one entity or domain for an academy.

    Entities (classroom, grade, invoice, ...) purge every dependent
    domain; plain domains purge only themselves.
    """
    try:
        result = system.dispatcher.invalidate(tenant_id, domain)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown cache domain: {domain}")

    return _to_response(result)


@router.post("/invalidate/{tenant_id}", response_model=InvalidationResponse)
def invalidate_tenant_cache(tenant_id: str, system: CacheSystem = Depends(get_cache_system)):
    """
    Invalidate all cache for one academy.

    Use this after bulk imports or manual data corrections.
    """
    return _to_response(system.dispatcher.invalidate_tenant(tenant_id))


@router.post("/purge-expired", response_model=PurgeResponse)
def purge_expired_cache(system: CacheSystem = Depends(get_cache_system)):
    """
    Drop expired memory entries and persistent snapshots past retention.

    Run this periodically from a scheduler when the persistent backend
    has no native expiry.
    """
    removed = system.purge_expired()
    logger.info(f"Purged expired cache entries: {removed}")
    return PurgeResponse(**removed)
