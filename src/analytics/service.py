"""
Dashboard Service

Read side of the academy dashboard. Raw record sets and derived outputs
are both read through the tiered cache:

    classroom-{tenant}                raw classrooms       (long band)
    session-{tenant}                  raw sessions         (short band)
    assignment-{tenant}               raw assignments      (short band)
    assignment-{tenant}-grades        raw grades           (short band)
    attendance-{tenant}               raw attendance       (short band)
    invoice-{tenant}                  raw invoices         (short band)
    student-{tenant}                  raw students         (long band)
    user-{tenant}                     raw users            (long band)
    dashboard-{tenant}-stats-{day}    DashboardStats       (medium band)
    dashboard-{tenant}-trends-{day}   DashboardTrends      (medium band)
    performance-{tenant}-classrooms   ClassroomRankings    (medium band)
    performance-{tenant}-students     StudentBoards        (medium band)

Stats and trends are scoped by the academy's calendar day so a value
computed yesterday is never served today.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import tzinfo
from typing import Any, Awaitable, Callable, Dict, List, Optional

from src.analytics.aggregation import (
    build_stats,
    build_trends,
    classroom_rollups,
    get_timezone,
    local_date,
    student_rollups,
)
from src.analytics.models import (
    AssignmentRecord,
    AttendanceRecord,
    ClassroomRankings,
    ClassroomRecord,
    DashboardStats,
    DashboardTrends,
    GradeRecord,
    InvoiceRecord,
    SessionRecord,
    StudentBoards,
    StudentRecord,
    UserRecord,
)
from src.analytics.ranking import rank_classrooms, student_boards
from src.cache.config import CacheTTL
from src.cache.errors import TransientFetchError
from src.cache.keys import CacheDomain, build_key
from src.cache.system import CacheSystem


logger = logging.getLogger(__name__)


class RecordSource(ABC):
    """
    Origin of raw academy records.

    Implementations talk to the relational backend. Any exception they
    raise is surfaced to dashboard callers as a TransientFetchError.
    """

    @abstractmethod
    async def fetch_classrooms(self, tenant_id: str) -> List[ClassroomRecord]:
        """Classrooms that are not deleted."""

    @abstractmethod
    async def fetch_sessions(self, tenant_id: str) -> List[SessionRecord]:
        """Sessions of the academy's classrooms."""

    @abstractmethod
    async def fetch_assignments(self, tenant_id: str) -> List[AssignmentRecord]:
        """Assignments of the academy's sessions."""

    @abstractmethod
    async def fetch_grades(self, tenant_id: str) -> List[GradeRecord]:
        """Grades on the academy's assignments."""

    @abstractmethod
    async def fetch_attendance(self, tenant_id: str) -> List[AttendanceRecord]:
        """Attendance rows of the academy's sessions."""

    @abstractmethod
    async def fetch_invoices(self, tenant_id: str) -> List[InvoiceRecord]:
        """Invoices of the academy, any status."""

    @abstractmethod
    async def fetch_students(self, tenant_id: str) -> List[StudentRecord]:
        """Students with their active flag."""

    @abstractmethod
    async def fetch_users(self, tenant_id: str) -> List[UserRecord]:
        """Users belonging to the academy."""


class DashboardService:
    """
    Dashboard statistics, trends and leaderboards for one process.

    Usage:
        service = DashboardService(system, source)
        stats = await service.get_stats("academy-1")
    """

    def __init__(
        self,
        system: CacheSystem,
        source: RecordSource,
        tz: Optional[tzinfo] = None,
    ):
        self.system = system
        self.source = source
        self.tz = tz or get_timezone(None)

    # ------------------------------------------------------------------
    # Raw record sets
    # ------------------------------------------------------------------

    async def _read_records(
        self,
        tenant_id: str,
        domain: CacheDomain,
        record_type: str,
        fetch: Callable[[str], Awaitable[list]],
        parse: Callable[[Dict], Any],
        *scope: str,
    ) -> list:
        async def fetcher():
            try:
                records = await fetch(tenant_id)
            except TransientFetchError:
                raise
            except Exception as e:
                raise TransientFetchError(
                    f"Failed to fetch {record_type}: {e}",
                    tenant_id=tenant_id,
                    record_type=record_type,
                ) from e
            return [r.to_dict() for r in records]

        key = build_key(domain, tenant_id, *scope)
        rows, source = await self.system.reader.read(key, CacheTTL.ms_for_domain(domain), fetcher)
        logger.debug(f"{record_type} for {tenant_id} served from {source.value}")
        return [parse(row) for row in rows]

    async def classrooms(self, tenant_id: str) -> List[ClassroomRecord]:
        return await self._read_records(
            tenant_id, CacheDomain.CLASSROOM, "classrooms",
            self.source.fetch_classrooms, ClassroomRecord.from_dict,
        )

    async def sessions(self, tenant_id: str) -> List[SessionRecord]:
        return await self._read_records(
            tenant_id, CacheDomain.SESSION, "sessions",
            self.source.fetch_sessions, SessionRecord.from_dict,
        )

    async def assignments(self, tenant_id: str) -> List[AssignmentRecord]:
        return await self._read_records(
            tenant_id, CacheDomain.ASSIGNMENT, "assignments",
            self.source.fetch_assignments, AssignmentRecord.from_dict,
        )

    async def grades(self, tenant_id: str) -> List[GradeRecord]:
        return await self._read_records(
            tenant_id, CacheDomain.ASSIGNMENT, "grades",
            self.source.fetch_grades, GradeRecord.from_dict, "grades",
        )

    async def attendance(self, tenant_id: str) -> List[AttendanceRecord]:
        return await self._read_records(
            tenant_id, CacheDomain.ATTENDANCE, "attendance",
            self.source.fetch_attendance, AttendanceRecord.from_dict,
        )

    async def invoices(self, tenant_id: str) -> List[InvoiceRecord]:
        return await self._read_records(
            tenant_id, CacheDomain.INVOICE, "invoices",
            self.source.fetch_invoices, InvoiceRecord.from_dict,
        )

    async def students(self, tenant_id: str) -> List[StudentRecord]:
        return await self._read_records(
            tenant_id, CacheDomain.STUDENT, "students",
            self.source.fetch_students, StudentRecord.from_dict,
        )

    async def users(self, tenant_id: str) -> List[UserRecord]:
        return await self._read_records(
            tenant_id, CacheDomain.USER, "users",
            self.source.fetch_users, UserRecord.from_dict,
        )

    # ------------------------------------------------------------------
    # Derived outputs
    # ------------------------------------------------------------------

    async def _read_derived(self, key: str, domain: CacheDomain, compute: Callable[[], Awaitable[Dict]]) -> Dict:
        value, source = await self.system.reader.read(key, CacheTTL.ms_for_domain(domain), compute)
        logger.debug(f"{key} served from {source.value}")
        return value

    async def get_stats(self, tenant_id: str) -> DashboardStats:
        """Header card statistics for today."""
        now = self.system.clock.now()
        key = build_key(CacheDomain.DASHBOARD, tenant_id, "stats", local_date(now, self.tz))

        async def compute():
            users, classrooms, sessions, invoices = await asyncio.gather(
                self.users(tenant_id),
                self.classrooms(tenant_id),
                self.sessions(tenant_id),
                self.invoices(tenant_id),
            )
            return build_stats(users, classrooms, sessions, invoices, now, self.tz).to_dict()

        return DashboardStats.from_dict(await self._read_derived(key, CacheDomain.DASHBOARD, compute))

    async def get_trends(self, tenant_id: str) -> DashboardTrends:
        """Trend series ending today."""
        now = self.system.clock.now()
        key = build_key(CacheDomain.DASHBOARD, tenant_id, "trends", local_date(now, self.tz))

        async def compute():
            users, classrooms, sessions, invoices = await asyncio.gather(
                self.users(tenant_id),
                self.classrooms(tenant_id),
                self.sessions(tenant_id),
                self.invoices(tenant_id),
            )
            return build_trends(users, classrooms, sessions, invoices, now, self.tz).to_dict()

        return DashboardTrends.from_dict(await self._read_derived(key, CacheDomain.DASHBOARD, compute))

    async def get_classroom_performance(self, tenant_id: str) -> ClassroomRankings:
        """Highest and lowest classrooms by score and attendance."""
        key = build_key(CacheDomain.PERFORMANCE, tenant_id, "classrooms")

        async def compute():
            classrooms, sessions, assignments, grades, attendance, students = await asyncio.gather(
                self.classrooms(tenant_id),
                self.sessions(tenant_id),
                self.assignments(tenant_id),
                self.grades(tenant_id),
                self.attendance(tenant_id),
                self.students(tenant_id),
            )
            rollups = classroom_rollups(classrooms, sessions, assignments, grades, attendance, students)
            return rank_classrooms(rollups).to_dict()

        return ClassroomRankings.from_dict(await self._read_derived(key, CacheDomain.PERFORMANCE, compute))

    async def get_student_boards(self, tenant_id: str) -> StudentBoards:
        """Top 5 and bottom 5 students by average score."""
        key = build_key(CacheDomain.PERFORMANCE, tenant_id, "students")

        async def compute():
            classrooms, sessions, assignments, grades, students = await asyncio.gather(
                self.classrooms(tenant_id),
                self.sessions(tenant_id),
                self.assignments(tenant_id),
                self.grades(tenant_id),
                self.students(tenant_id),
            )
            rollups = student_rollups(classrooms, sessions, assignments, grades, students)
            return student_boards(rollups).to_dict()

        return StudentBoards.from_dict(await self._read_derived(key, CacheDomain.PERFORMANCE, compute))
