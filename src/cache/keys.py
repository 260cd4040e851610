"""
Cache Key Scheme

Keys are built as ``{domain}-{tenant_id}-{scope...}``:
- domain: the data class tag, which also selects the TTL band
- tenant_id: the academy; the partition boundary for all cached data
- scope: everything that changes the meaning of the value
  (page, role, calendar day, user id, language)

Freshness never goes into a key. That is the TTL band's job.

A literal ``-`` or ``%`` inside a tenant id or scope part is
percent-encoded, so the string form is unique per component tuple and
a tenant prefix never reaches into another tenant's keys. Calendar
days render as ``YYYYMMDD``.
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Tuple, Union


SEPARATOR = "-"

_ESCAPES = (("%", "%25"), (SEPARATOR, "%2D"))


class CacheDomain(str, Enum):
    """Data classes with a cache namespace of their own."""

    # Structural data
    CLASSROOM = "classroom"
    STUDENT = "student"
    USER = "user"
    TEACHER = "teacher"
    FAMILY = "family"
    ARCHIVE = "archive"

    # Activity data
    SESSION = "session"
    ASSIGNMENT = "assignment"
    ATTENDANCE = "attendance"

    # Revenue data
    INVOICE = "invoice"

    # Derived rollups
    DASHBOARD = "dashboard"
    PERFORMANCE = "performance"


DomainLike = Union[CacheDomain, str]


def _domain_value(domain: DomainLike) -> str:
    return domain.value if isinstance(domain, CacheDomain) else str(domain)


def escape_component(text: str) -> str:
    """Encode the separator so a component never splits into two."""
    for raw, encoded in _ESCAPES:
        text = text.replace(raw, encoded)
    return text


def _scope_part(part: Any) -> str:
    if part is None:
        raise ValueError("Cache key scope components cannot be None")
    if isinstance(part, datetime):
        return part.isoformat()
    if isinstance(part, date):
        return part.strftime("%Y%m%d")
    if isinstance(part, Enum):
        return str(part.value)
    text = str(part)
    if not text:
        raise ValueError("Cache key scope components cannot be empty")
    return text


@dataclass(frozen=True)
class CacheKey:
    """
    Composite cache key.

    Two keys are equal iff every component matches exactly.
    """

    domain: str
    tenant_id: str
    scope: Tuple[str, ...] = ()

    @classmethod
    def build(cls, domain: DomainLike, tenant_id: str, *scope: Any) -> "CacheKey":
        if not tenant_id:
            raise ValueError("Cache keys require a tenant id")
        return cls(
            domain=_domain_value(domain),
            tenant_id=str(tenant_id),
            scope=tuple(_scope_part(p) for p in scope),
        )

    @property
    def prefix(self) -> str:
        """Prefix shared by every key of this domain and tenant."""
        return tenant_prefix(self.domain, self.tenant_id)

    def __str__(self) -> str:
        parts = (self.tenant_id,) + self.scope
        return SEPARATOR.join((self.domain,) + tuple(escape_component(p) for p in parts))


def build_key(domain: DomainLike, tenant_id: str, *scope: Any) -> str:
    """Build the string form of a cache key."""
    return str(CacheKey.build(domain, tenant_id, *scope))


def tenant_prefix(domain: DomainLike, tenant_id: str) -> str:
    """Prefix for all keys of one domain and tenant."""
    return f"{_domain_value(domain)}{SEPARATOR}{escape_component(str(tenant_id))}"


def matches_prefix(key: str, prefix: str) -> bool:
    """
    Check whether a key sits under a prefix.

    Matches on whole components so that tenant ``a1`` never matches
    keys of tenant ``a10``.
    """
    return key == prefix or key.startswith(prefix + SEPARATOR)


def domain_of(key: str) -> str:
    """Data class tag of a key string."""
    return key.split(SEPARATOR, 1)[0]
