"""
Pytest Configuration and Shared Fixtures

Provides common fixtures and configuration for all test modules.
"""

import pytest
from collections import Counter
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Set

from src.analytics.models import (
    AssignmentRecord,
    AttendanceRecord,
    ClassroomRecord,
    GradeRecord,
    InvoiceRecord,
    SessionRecord,
    StudentRecord,
    UserRecord,
)
from src.analytics.service import DashboardService, RecordSource
from src.cache.backends import DictKeyValueStore
from src.cache.config import CacheConfig
from src.cache.entry import ManualClock
from src.cache.system import build_cache_system


TENANT = "academy-1"
OTHER_TENANT = "academy-2"

# Monday, 15 January 2024, noon UTC
NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


def utc(year: int, month: int, day: int, hour: int = 9) -> datetime:
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


# ============================================================================
# Fake Record Source
# ============================================================================

class FakeRecordSource(RecordSource):
    """
    In-memory record source.

    Counts calls per record type and raises ConnectionError for the
    record types listed in ``failing``.
    """

    def __init__(self, records: Optional[Dict[str, Dict[str, list]]] = None):
        self.records = records or {}
        self.calls: Counter = Counter()
        self.failing: Set[str] = set()

    def _rows(self, tenant_id: str, record_type: str) -> list:
        self.calls[record_type] += 1
        if record_type in self.failing:
            raise ConnectionError(f"{record_type} backend unreachable")
        return list(self.records.get(tenant_id, {}).get(record_type, []))

    async def fetch_classrooms(self, tenant_id: str) -> List[ClassroomRecord]:
        return self._rows(tenant_id, "classrooms")

    async def fetch_sessions(self, tenant_id: str) -> List[SessionRecord]:
        return self._rows(tenant_id, "sessions")

    async def fetch_assignments(self, tenant_id: str) -> List[AssignmentRecord]:
        return self._rows(tenant_id, "assignments")

    async def fetch_grades(self, tenant_id: str) -> List[GradeRecord]:
        return self._rows(tenant_id, "grades")

    async def fetch_attendance(self, tenant_id: str) -> List[AttendanceRecord]:
        return self._rows(tenant_id, "attendance")

    async def fetch_invoices(self, tenant_id: str) -> List[InvoiceRecord]:
        return self._rows(tenant_id, "invoices")

    async def fetch_students(self, tenant_id: str) -> List[StudentRecord]:
        return self._rows(tenant_id, "students")

    async def fetch_users(self, tenant_id: str) -> List[UserRecord]:
        return self._rows(tenant_id, "users")


# ============================================================================
# Mock Data Fixtures
# ============================================================================

@pytest.fixture
def academy_records() -> Dict[str, list]:
    """
    One academy with three classrooms.

    Math and Art average 90, Science 60. Dan is deactivated and must not
    count anywhere.
    """
    return {
        "classrooms": [
            ClassroomRecord(id="math", name="Math", created_at=utc(2024, 1, 3), color="#ff0000"),
            ClassroomRecord(id="science", name="Science", created_at=utc(2023, 12, 10)),
            ClassroomRecord(id="art", name="Art", created_at=utc(2023, 11, 1)),
        ],
        "sessions": [
            SessionRecord(id="s1", classroom_id="math", date=date(2024, 1, 15), status="completed"),
            SessionRecord(id="s2", classroom_id="science", date=date(2024, 1, 14), status="completed"),
            SessionRecord(id="s3", classroom_id="art", date=date(2024, 1, 10), status="scheduled"),
            SessionRecord(id="s4", classroom_id="math", date=date(2024, 1, 5), status="completed"),
        ],
        "assignments": [
            AssignmentRecord(id="a1", session_id="s1"),
            AssignmentRecord(id="a2", session_id="s2"),
            AssignmentRecord(id="a3", session_id="s3"),
        ],
        "grades": [
            GradeRecord(student_id="alice", assignment_id="a1", score=90),
            GradeRecord(student_id="bob", assignment_id="a2", score=60),
            GradeRecord(student_id="dan", assignment_id="a2", score=10),
            GradeRecord(student_id="alice", assignment_id="a2", score=None, status="pending"),
            GradeRecord(student_id="cara", assignment_id="a3", score=90),
        ],
        "attendance": [
            AttendanceRecord(student_id="alice", session_id="s1", status="present"),
            AttendanceRecord(student_id="bob", session_id="s2", status="absent"),
            AttendanceRecord(student_id="dan", session_id="s2", status="present"),
            AttendanceRecord(student_id="cara", session_id="s3", status="late"),
        ],
        "invoices": [
            InvoiceRecord(id="i1", amount=100, status="paid", created_at=utc(2024, 1, 2), paid_at=utc(2024, 1, 10)),
            InvoiceRecord(id="i2", amount=50, status="pending", created_at=utc(2024, 1, 11)),
            InvoiceRecord(id="i3", amount=80, status="paid", created_at=utc(2023, 12, 20)),
        ],
        "students": [
            StudentRecord(id="alice", name="Alice"),
            StudentRecord(id="bob", name="Bob"),
            StudentRecord(id="cara", name="Cara"),
            StudentRecord(id="dan", name="Dan", active=False),
        ],
        "users": [
            UserRecord(id="u1", name="Teacher One", created_at=utc(2024, 1, 2)),
            UserRecord(id="u2", name="Teacher Two", created_at=utc(2024, 1, 14)),
            UserRecord(id="u3", name="Manager", created_at=utc(2023, 12, 5)),
        ],
    }


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(NOW)


@pytest.fixture
def cache_config() -> CacheConfig:
    return CacheConfig(
        namespace="test",
        enabled=True,
        persistent_backend="memory",
        persistent_capacity_bytes=5 * 1024 * 1024,
        eviction_fraction=0.25,
        persistent_retention=4,
    )


@pytest.fixture
def store() -> DictKeyValueStore:
    return DictKeyValueStore(capacity_bytes=5 * 1024 * 1024)


@pytest.fixture
def system(cache_config, clock, store):
    """A fresh cache system per test."""
    return build_cache_system(config=cache_config, clock=clock, store=store)


@pytest.fixture
def source(academy_records) -> FakeRecordSource:
    return FakeRecordSource({TENANT: academy_records})


@pytest.fixture
def service(system, source) -> DashboardService:
    return DashboardService(system, source)
