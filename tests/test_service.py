"""
Tests for the dashboard service.

These tests verify:
- End-to-end stats, trends and leaderboards through the cache
- Raw record sets are shared between derived outputs
- Origin failures surface as TransientFetchError
- Writes followed by invalidation produce fresh results
"""

import pytest
from datetime import date, timedelta

from src.analytics.models import AssignmentRecord, GradeRecord, InvoiceRecord
from src.cache.errors import TransientFetchError
from src.cache.invalidation import EntityType
from src.cache.keys import CacheDomain, build_key, tenant_prefix
from tests.conftest import OTHER_TENANT, TENANT, utc


@pytest.mark.asyncio
class TestDashboardService:

    async def test_get_stats(self, service):
        stats = await service.get_stats(TENANT)
        assert stats.user_count == 3
        assert stats.total_revenue == 100
        assert stats.active_sessions_this_week == 3

    async def test_stats_key_is_scoped_by_day(self, service, system):
        await service.get_stats(TENANT)
        assert system.memory.get(build_key(CacheDomain.DASHBOARD, TENANT, "stats", date(2024, 1, 15))) is not None

    async def test_second_read_served_from_cache(self, service, source):
        await service.get_stats(TENANT)
        await service.get_stats(TENANT)
        assert source.calls["users"] == 1
        assert source.calls["invoices"] == 1

    async def test_raw_sets_shared_between_outputs(self, service, source):
        await service.get_stats(TENANT)
        await service.get_trends(TENANT)
        assert source.calls["sessions"] == 1
        assert source.calls["classrooms"] == 1

    async def test_get_trends(self, service):
        trends = await service.get_trends(TENANT)
        assert len(trends.revenue) == 30
        assert trends.weekly_sessions[-1].sessions == 1

    async def test_get_classroom_performance(self, service):
        rankings = await service.get_classroom_performance(TENANT)
        assert rankings.highest_score.id == "math"
        assert rankings.lowest_score.id == "science"
        assert rankings.highest_attendance.id == "math"
        assert rankings.lowest_attendance.id == "science"

    async def test_get_student_boards(self, service):
        boards = await service.get_student_boards(TENANT)
        assert [s.id for s in boards.top] == ["alice", "cara", "bob"]
        assert [s.id for s in boards.bottom] == ["bob", "cara"]
        assert "dan" not in {s.id for s in boards.top + boards.bottom}

    async def test_unknown_tenant_is_empty(self, service):
        stats = await service.get_stats(OTHER_TENANT)
        assert stats.user_count == 0
        boards = await service.get_student_boards(OTHER_TENANT)
        assert boards.top == [] and boards.bottom == []

    async def test_origin_failure_is_transient(self, service, source):
        source.failing.add("invoices")
        with pytest.raises(TransientFetchError) as exc_info:
            await service.get_stats(TENANT)
        assert exc_info.value.tenant_id == TENANT
        assert exc_info.value.record_type == "invoices"
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    async def test_failure_does_not_cache_partial_results(self, service, source, system):
        source.failing.add("invoices")
        with pytest.raises(TransientFetchError):
            await service.get_stats(TENANT)
        assert system.memory.get(build_key(CacheDomain.DASHBOARD, TENANT, "stats", date(2024, 1, 15))) is None

        source.failing.clear()
        stats = await service.get_stats(TENANT)
        assert stats.total_revenue == 100

    async def test_write_then_invalidate_shows_new_data(self, service, source, system, academy_records):
        await service.get_stats(TENANT)
        academy_records["invoices"].append(
            InvoiceRecord(id="i4", amount=40, status="paid", created_at=utc(2024, 1, 15))
        )

        stale = await service.get_stats(TENANT)
        assert stale.total_revenue == 100

        system.dispatcher.invalidate(TENANT, EntityType.INVOICE)
        fresh = await service.get_stats(TENANT)
        assert fresh.total_revenue == 140

    async def test_new_day_recomputes_stats(self, service, source, clock):
        await service.get_stats(TENANT)
        clock.advance(timedelta(days=1))
        await service.get_stats(TENANT)
        assert source.calls["users"] == 2

    async def test_values_survive_memory_loss(self, service, source, system):
        """A restart keeps the persistent tier."""
        first = await service.get_classroom_performance(TENANT)
        system.memory.clear()
        second = await service.get_classroom_performance(TENANT)
        assert second == first
        assert source.calls["classrooms"] == 1

    async def test_hyphenated_tenant_never_sees_neighbour_rows(self, service, source):
        """Grades of tenant ``a`` do not answer assignments of tenant ``a-grades``."""
        source.records["a"] = {"grades": [GradeRecord(student_id="secret", assignment_id="x", score=99, status="graded")]}
        source.records["a-grades"] = {"assignments": [AssignmentRecord(id="hw1", session_id="s1", due_date=None)]}

        grades = await service.grades("a")
        assignments = await service.assignments("a-grades")

        assert [g.student_id for g in grades] == ["secret"]
        assert [a.id for a in assignments] == ["hw1"]
        assert source.calls["assignments"] == 1

    async def test_daily_stats_snapshots_do_not_accumulate(self, service, system, clock):
        for _ in range(30):
            await service.get_stats(TENANT)
            clock.advance(timedelta(days=1))
            system.purge_expired()

        prefix = tenant_prefix(CacheDomain.DASHBOARD, TENANT)
        assert [k for k in system.persistent.keys() if k.startswith(prefix)] == []
