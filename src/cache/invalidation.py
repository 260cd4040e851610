"""
Cache Invalidation Service

Event-driven cache invalidation with one central dependency table.

Write paths call ``invalidate(tenant_id, entity)`` right after a
successful mutation and before any refetch. The entity's row in
DEPENDENCY_TABLE lists every domain whose cached values depend on it;
each is purged from both tiers. Invalidation never refetches.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

from src.cache.keys import CacheDomain, DomainLike, tenant_prefix
from src.cache.memory_cache import MemoryCache
from src.cache.persistent_cache import PersistentCache
from src.cache.tiered_reader import TieredReader


logger = logging.getLogger(__name__)


class EntityType(str, Enum):
    """Record types that write paths mutate."""
    CLASSROOM = "classroom"
    SESSION = "session"
    ASSIGNMENT = "assignment"
    GRADE = "grade"
    ATTENDANCE = "attendance"
    INVOICE = "invoice"
    STUDENT = "student"
    TEACHER = "teacher"
    FAMILY = "family"
    USER = "user"


class MutationKind(str, Enum):
    """Kinds of successful writes."""
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    RESTORED = "restored"


D = CacheDomain

# Entity -> every domain holding values derived from it.
# Dependents are leaf domains, never entities, so the table has no cycles.
DEPENDENCY_TABLE: Dict[str, Tuple[CacheDomain, ...]] = {
    EntityType.CLASSROOM.value: (D.CLASSROOM, D.SESSION, D.ASSIGNMENT, D.ATTENDANCE, D.DASHBOARD, D.PERFORMANCE),
    EntityType.SESSION.value: (D.SESSION, D.ASSIGNMENT, D.ATTENDANCE, D.DASHBOARD, D.PERFORMANCE),
    EntityType.ASSIGNMENT.value: (D.ASSIGNMENT, D.PERFORMANCE),
    EntityType.GRADE.value: (D.ASSIGNMENT, D.PERFORMANCE),
    EntityType.ATTENDANCE.value: (D.ATTENDANCE, D.PERFORMANCE),
    EntityType.INVOICE.value: (D.INVOICE, D.DASHBOARD),
    EntityType.STUDENT.value: (D.STUDENT, D.USER, D.FAMILY, D.DASHBOARD, D.PERFORMANCE),
    EntityType.TEACHER.value: (D.TEACHER, D.USER, D.CLASSROOM, D.DASHBOARD),
    EntityType.FAMILY.value: (D.FAMILY, D.STUDENT),
    EntityType.USER.value: (D.USER, D.DASHBOARD),
}

# Deletes and restores also move records in or out of the archive views
ARCHIVE_MUTATIONS = (MutationKind.DELETED, MutationKind.RESTORED)


def dependents_of(target: Union[EntityType, DomainLike]) -> Tuple[CacheDomain, ...]:
    """
    Domains to purge for an entity or a plain domain.

    Entities expand through DEPENDENCY_TABLE (one lookup, no recursion).
    A plain domain that is not an entity purges only itself.
    """
    value = target.value if isinstance(target, Enum) else str(target)
    if value in DEPENDENCY_TABLE:
        return DEPENDENCY_TABLE[value]
    return (CacheDomain(value),)


def validate_dependency_table() -> List[str]:
    """
    Check the table by inspection.

    Returns a list of problems; empty when every entity purges its own
    domain (where one exists) and lists no duplicates.
    """
    problems = []
    domain_values = {d.value for d in CacheDomain}
    for entity, domains in DEPENDENCY_TABLE.items():
        if len(set(domains)) != len(domains):
            problems.append(f"{entity}: duplicate dependents")
        if entity in domain_values and CacheDomain(entity) not in domains:
            problems.append(f"{entity}: does not purge its own domain")
    return problems


@dataclass
class InvalidationResult:
    """Result of a cache invalidation operation."""
    tenant_id: Optional[str]
    domains: List[str]
    memory_removed: int = 0
    persistent_removed: int = 0
    fetches_detached: int = 0
    duration_ms: float = 0.0
    errors: List[str] = field(default_factory=list)

    @property
    def keys_invalidated(self) -> int:
        return self.memory_removed + self.persistent_removed

    @property
    def success(self) -> bool:
        return not self.errors


class InvalidationDispatcher:
    """
    Purges tiered entries for write events.

    Principle: purge every dependent domain, for one tenant only.
    """

    def __init__(
        self,
        memory: MemoryCache,
        persistent: PersistentCache,
        reader: Optional[TieredReader] = None,
    ):
        self._memory = memory
        self._persistent = persistent
        self._reader = reader

    def invalidate(
        self,
        tenant_id: str,
        domain: Union[EntityType, DomainLike],
    ) -> InvalidationResult:
        """
        Remove every entry under ``{domain}-{tenant_id}`` for each
        dependent domain of ``domain``.
        """
        if not tenant_id:
            raise ValueError("Invalidation requires a tenant id")

        domains = dependents_of(domain)
        return self._purge(tenant_id, domains)

    def handle_mutation(
        self,
        tenant_id: str,
        entity: Union[EntityType, str],
        kind: MutationKind = MutationKind.UPDATED,
    ) -> InvalidationResult:
        """Invalidate after a successful create/update/delete/restore."""
        entity = EntityType(entity)
        domains = dependents_of(entity)
        if kind in ARCHIVE_MUTATIONS:
            domains = domains + (CacheDomain.ARCHIVE,)

        logger.info(f"Cache invalidation event: {entity.value} {kind.value}, tenant={tenant_id}")
        return self._purge(tenant_id, domains)

    def invalidate_tenant(self, tenant_id: str) -> InvalidationResult:
        """Purge every domain for one tenant."""
        if not tenant_id:
            raise ValueError("Invalidation requires a tenant id")
        return self._purge(tenant_id, tuple(CacheDomain))

    def invalidate_all(self) -> InvalidationResult:
        """Nuclear option: purge every tenant and domain."""
        start = time.perf_counter()
        result = InvalidationResult(tenant_id=None, domains=[d.value for d in CacheDomain])

        if self._reader is not None:
            result.fetches_detached = self._reader.detach_prefix("")
        result.memory_removed = self._memory.clear()
        result.persistent_removed = self._persistent.clear()

        result.duration_ms = (time.perf_counter() - start) * 1000
        logger.warning(f"All cache entries purged ({result.keys_invalidated} keys)")
        return result

    def _purge(self, tenant_id: str, domains: Tuple[CacheDomain, ...]) -> InvalidationResult:
        start = time.perf_counter()
        result = InvalidationResult(tenant_id=tenant_id, domains=[d.value for d in domains])

        for domain in domains:
            prefix = tenant_prefix(domain, tenant_id)
            if self._reader is not None:
                result.fetches_detached += self._reader.detach_prefix(prefix)
            result.memory_removed += self._memory.delete_prefix(prefix)
            try:
                result.persistent_removed += self._persistent.delete_prefix(prefix)
            except Exception as e:
                result.errors.append(f"{prefix}: {e}")
                logger.error(f"Persistent invalidation error for {prefix}: {e}")

        result.duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"Invalidation complete for tenant {tenant_id}: "
            f"{result.keys_invalidated} keys across {len(domains)} domains, "
            f"duration: {result.duration_ms:.2f}ms"
        )
        return result
