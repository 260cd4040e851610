"""
Dashboard API Endpoints

Read-only endpoints backing the academy dashboard cards. Every response
is served through the tiered cache; an origin failure surfaces as 503.

Endpoints:
- GET /api/dashboard/{tenant_id}/stats
- GET /api/dashboard/{tenant_id}/trends
- GET /api/dashboard/{tenant_id}/classroom-performance
- GET /api/dashboard/{tenant_id}/student-boards
"""

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from src.analytics.models import ClassroomPerformance, StudentPerformance
from src.analytics.service import DashboardService
from src.cache.errors import TransientFetchError


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/dashboard", tags=["Dashboard"])


def get_dashboard_service(request: Request) -> DashboardService:
    return request.app.state.dashboard_service


# =============================================================================
# RESPONSE MODELS
# =============================================================================

class StatsResponse(BaseModel):
    """Dashboard header card statistics."""
    user_count: int
    users_added: int = Field(..., description="Users created this calendar month")
    is_growth_positive: bool
    show_users_added: bool
    classroom_count: int
    classrooms_added: int
    total_revenue: float = Field(..., description="Paid revenue this calendar month")
    last_month_revenue: float
    revenue_growth_percentage: int = Field(..., description="Absolute month-over-month change")
    is_revenue_growth_positive: bool
    active_sessions_this_week: int
    sessions_growth_percentage: int
    is_sessions_growth_positive: bool
    show_sessions_growth: bool


class SessionDayResponse(BaseModel):
    date: date
    sessions: int
    completed: int


class TrendsResponse(BaseModel):
    """Day-bucketed series, oldest first."""
    revenue: List[float] = Field(..., description="30 days of paid revenue")
    users: List[int] = Field(..., description="30 days of cumulative users")
    classrooms: List[int] = Field(..., description="30 days of cumulative classrooms")
    weekly_sessions: List[SessionDayResponse]


class ClassroomResponse(BaseModel):
    id: str
    name: str
    color: Optional[str] = None
    average_score: float
    attendance_rate: float
    total_students: int
    total_assignments: int
    total_sessions: int


class ClassroomPerformanceResponse(BaseModel):
    """Highest and lowest classrooms. Lowest is null with fewer than two classrooms."""
    highest_score: Optional[ClassroomResponse] = None
    lowest_score: Optional[ClassroomResponse] = None
    highest_attendance: Optional[ClassroomResponse] = None
    lowest_attendance: Optional[ClassroomResponse] = None


class StudentResponse(BaseModel):
    id: str
    name: str
    average_score: float
    total_graded_assignments: int
    classroom_name: Optional[str] = None


class StudentBoardsResponse(BaseModel):
    top: List[StudentResponse]
    bottom: List[StudentResponse]


def _classroom(perf: Optional[ClassroomPerformance]) -> Optional[ClassroomResponse]:
    return ClassroomResponse(**perf.to_dict()) if perf else None


def _student(perf: StudentPerformance) -> StudentResponse:
    return StudentResponse(**perf.to_dict())


def _unavailable(tenant_id: str, e: TransientFetchError) -> HTTPException:
    logger.error(f"Dashboard data unavailable for {tenant_id}: {e}")
    return HTTPException(status_code=503, detail=str(e))


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("/{tenant_id}/stats", response_model=StatsResponse)
async def get_dashboard_stats(
    tenant_id: str,
    service: DashboardService = Depends(get_dashboard_service),
):
    """Counts and growth for users, classrooms, revenue and sessions."""
    try:
        stats = await service.get_stats(tenant_id)
    except TransientFetchError as e:
        raise _unavailable(tenant_id, e)

    return StatsResponse(**stats.to_dict())


@router.get("/{tenant_id}/trends", response_model=TrendsResponse)
async def get_dashboard_trends(
    tenant_id: str,
    service: DashboardService = Depends(get_dashboard_service),
):
    """Revenue, user, classroom and weekly session trends ending today."""
    try:
        trends = await service.get_trends(tenant_id)
    except TransientFetchError as e:
        raise _unavailable(tenant_id, e)

    return TrendsResponse(
        revenue=trends.revenue,
        users=trends.users,
        classrooms=trends.classrooms,
        weekly_sessions=[
            SessionDayResponse(date=d.date, sessions=d.sessions, completed=d.completed)
            for d in trends.weekly_sessions
        ],
    )


@router.get("/{tenant_id}/classroom-performance", response_model=ClassroomPerformanceResponse)
async def get_classroom_performance(
    tenant_id: str,
    service: DashboardService = Depends(get_dashboard_service),
):
    """Highest and lowest classrooms by average score and attendance rate."""
    try:
        rankings = await service.get_classroom_performance(tenant_id)
    except TransientFetchError as e:
        raise _unavailable(tenant_id, e)

    return ClassroomPerformanceResponse(
        highest_score=_classroom(rankings.highest_score),
        lowest_score=_classroom(rankings.lowest_score),
        highest_attendance=_classroom(rankings.highest_attendance),
        lowest_attendance=_classroom(rankings.lowest_attendance),
    )


@router.get("/{tenant_id}/student-boards", response_model=StudentBoardsResponse)
async def get_student_boards(
    tenant_id: str,
    service: DashboardService = Depends(get_dashboard_service),
):
    """Top 5 and bottom 5 students by average score."""
    try:
        boards = await service.get_student_boards(tenant_id)
    except TransientFetchError as e:
        raise _unavailable(tenant_id, e)

    return StudentBoardsResponse(
        top=[_student(s) for s in boards.top],
        bottom=[_student(s) for s in boards.bottom],
    )
