"""
Aggregation Engine

Pure functions turning raw academy records into dashboard outputs:
- Counts and month-over-month growth
- Revenue from paid invoices
- Day-bucketed trend series (7 days for sessions, 30 for the rest)
- Classroom and student rollups restricted to active students

Every function takes the reference "now" and the academy timezone
explicitly; nothing here reads a clock or performs I/O.
"""

from collections import defaultdict
from datetime import date, datetime, timedelta, timezone, tzinfo
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple
from zoneinfo import ZoneInfo

from src.analytics.models import (
    AssignmentRecord,
    AttendanceRecord,
    ClassroomPerformance,
    ClassroomRecord,
    DashboardStats,
    DashboardTrends,
    GradeRecord,
    GrowthMetric,
    InvoiceRecord,
    SessionDay,
    SessionRecord,
    StudentPerformance,
    StudentRecord,
    UserRecord,
)


# ============================================================================
# CONSTANTS
# ============================================================================

WEEKLY_TREND_DAYS = 7
MONTHLY_TREND_DAYS = 30

PAID_STATUS = "paid"
COMPLETED_SESSION_STATUS = "completed"
PRESENT_STATUSES = ("present", "late")

YearMonth = Tuple[int, int]


# ============================================================================
# ROUNDING AND GROWTH
# ============================================================================

def round_half_away(value: float, digits: int = 0):
    """
    Round half away from zero.

    Returns an int for ``digits=0``, else a float.
    """
    exponent = Decimal(1).scaleb(-digits)
    rounded = Decimal(str(value)).quantize(exponent, rounding=ROUND_HALF_UP)
    return int(rounded) if digits == 0 else float(rounded)


def growth_percentage(current: float, previous: float) -> int:
    """
    Whole-number growth percentage.

    ``0`` when there is no previous value to compare against; never raises.
    """
    if previous <= 0:
        return 0
    return round_half_away((current - previous) / previous * 100)


def growth(current: float, previous: float) -> GrowthMetric:
    """Growth with an absolute percentage and a direction flag."""
    percentage = growth_percentage(current, previous)
    return GrowthMetric(
        current=current,
        previous=previous,
        percentage=abs(percentage),
        is_positive=current >= previous,
    )


# ============================================================================
# CALENDAR HELPERS
# ============================================================================

def get_timezone(name: Optional[str]) -> tzinfo:
    """Resolve an IANA timezone name, defaulting to UTC."""
    if not name or name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def local_date(moment: datetime, tz: tzinfo) -> date:
    """Calendar day of a moment in the academy timezone."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz).date()


def month_windows(today: date) -> Tuple[YearMonth, YearMonth]:
    """(current month, previous month) as (year, month) pairs."""
    if today.month == 1:
        return (today.year, 1), (today.year - 1, 12)
    return (today.year, today.month), (today.year, today.month - 1)


def day_window(today: date, days: int) -> List[date]:
    """``days`` calendar days ending today, oldest first."""
    return [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]


def _in_month(day: date, month: YearMonth) -> bool:
    return (day.year, day.month) == month


def _count_in_month(moments: Iterable[datetime], tz: tzinfo, month: YearMonth) -> int:
    return sum(1 for m in moments if _in_month(local_date(m, tz), month))


# ============================================================================
# STATS
# ============================================================================

def paid_invoices(invoices: Iterable[InvoiceRecord]) -> List[InvoiceRecord]:
    """Only paid invoices count as revenue."""
    return [inv for inv in invoices if inv.status == PAID_STATUS]


def revenue_for_month(invoices: Iterable[InvoiceRecord], tz: tzinfo, month: YearMonth) -> float:
    """Paid revenue bucketed by payment date (creation date as fallback)."""
    return sum(
        inv.amount
        for inv in paid_invoices(invoices)
        if _in_month(local_date(inv.revenue_at, tz), month)
    )


def sessions_between(sessions: Iterable[SessionRecord], start: date, end: date) -> List[SessionRecord]:
    """Sessions dated within [start, end]."""
    return [s for s in sessions if start <= s.date <= end]


def build_stats(
    users: Sequence[UserRecord],
    classrooms: Sequence[ClassroomRecord],
    sessions: Sequence[SessionRecord],
    invoices: Sequence[InvoiceRecord],
    now: datetime,
    tz: tzinfo = timezone.utc,
) -> DashboardStats:
    """
    Compute header card statistics.

    Users and classrooms compare this calendar month with the last one.
    Sessions compare the last 7 days (today inclusive) with the 7 before.
    """
    today = local_date(now, tz)
    this_month, last_month = month_windows(today)

    user_growth = growth(
        _count_in_month((u.created_at for u in users), tz, this_month),
        _count_in_month((u.created_at for u in users), tz, last_month),
    )
    classrooms_added = _count_in_month((c.created_at for c in classrooms), tz, this_month)

    revenue_growth = growth(
        revenue_for_month(invoices, tz, this_month),
        revenue_for_month(invoices, tz, last_month),
    )

    week_start = today - timedelta(days=WEEKLY_TREND_DAYS - 1)
    this_week = len(sessions_between(sessions, week_start, today))
    previous_week = len(sessions_between(
        sessions,
        week_start - timedelta(days=WEEKLY_TREND_DAYS),
        week_start - timedelta(days=1),
    ))
    session_growth = growth(this_week, previous_week)

    return DashboardStats(
        user_count=len(users),
        users_added=int(user_growth.current),
        is_growth_positive=user_growth.is_positive,
        show_users_added=user_growth.current > 0,
        classroom_count=len(classrooms),
        classrooms_added=classrooms_added,
        total_revenue=revenue_growth.current,
        last_month_revenue=revenue_growth.previous,
        revenue_growth_percentage=revenue_growth.percentage,
        is_revenue_growth_positive=revenue_growth.is_positive,
        active_sessions_this_week=this_week,
        sessions_growth_percentage=session_growth.percentage,
        is_sessions_growth_positive=session_growth.is_positive,
        show_sessions_growth=previous_week > 0,
    )


# ============================================================================
# TRENDS
# ============================================================================

def weekly_session_trend(sessions: Sequence[SessionRecord], today: date) -> List[SessionDay]:
    """Sessions held and completed per day over the last 7 days."""
    per_day: Dict[date, List[SessionRecord]] = defaultdict(list)
    for session in sessions:
        per_day[session.date].append(session)

    trend = []
    for day in day_window(today, WEEKLY_TREND_DAYS):
        day_sessions = per_day.get(day, [])
        trend.append(SessionDay(
            date=day,
            sessions=len(day_sessions),
            completed=sum(1 for s in day_sessions if s.status == COMPLETED_SESSION_STATUS),
        ))
    return trend


def revenue_trend(
    invoices: Sequence[InvoiceRecord],
    today: date,
    tz: tzinfo = timezone.utc,
    days: int = MONTHLY_TREND_DAYS,
) -> List[float]:
    """Paid revenue per day. Days without payments are 0."""
    per_day: Dict[date, float] = defaultdict(float)
    for inv in paid_invoices(invoices):
        per_day[local_date(inv.revenue_at, tz)] += inv.amount
    return [per_day.get(day, 0) for day in day_window(today, days)]


def cumulative_trend(
    created: Iterable[datetime],
    today: date,
    tz: tzinfo = timezone.utc,
    days: int = MONTHLY_TREND_DAYS,
) -> List[int]:
    """Running total of rows created on or before each day."""
    created_days = sorted(local_date(c, tz) for c in created)
    trend = []
    for day in day_window(today, days):
        trend.append(sum(1 for d in created_days if d <= day))
    return trend


def build_trends(
    users: Sequence[UserRecord],
    classrooms: Sequence[ClassroomRecord],
    sessions: Sequence[SessionRecord],
    invoices: Sequence[InvoiceRecord],
    now: datetime,
    tz: tzinfo = timezone.utc,
) -> DashboardTrends:
    """Compute every dashboard trend series for one reference moment."""
    today = local_date(now, tz)
    return DashboardTrends(
        revenue=revenue_trend(invoices, today, tz),
        users=cumulative_trend((u.created_at for u in users), today, tz),
        classrooms=cumulative_trend((c.created_at for c in classrooms), today, tz),
        weekly_sessions=weekly_session_trend(sessions, today),
    )


# ============================================================================
# ROLLUPS
# ============================================================================

def active_student_ids(students: Iterable[StudentRecord]) -> Set[str]:
    return {s.id for s in students if s.active}


def _group(rows: Iterable, attr: str) -> Dict[str, list]:
    grouped: Dict[str, list] = defaultdict(list)
    for row in rows:
        grouped[getattr(row, attr)].append(row)
    return grouped


def classroom_rollups(
    classrooms: Sequence[ClassroomRecord],
    sessions: Sequence[SessionRecord],
    assignments: Sequence[AssignmentRecord],
    grades: Sequence[GradeRecord],
    attendance: Sequence[AttendanceRecord],
    students: Sequence[StudentRecord],
) -> List[ClassroomPerformance]:
    """
    Per-classroom average score and attendance rate.

    Only grades and attendance of active students count. Output keeps
    the input classroom order.
    """
    active = active_student_ids(students)
    sessions_by_classroom = _group(sessions, "classroom_id")
    assignments_by_session = _group(assignments, "session_id")
    grades_by_assignment = _group(grades, "assignment_id")
    attendance_by_session = _group(attendance, "session_id")

    rollups = []
    for classroom in classrooms:
        session_ids = [s.id for s in sessions_by_classroom.get(classroom.id, [])]
        classroom_assignments = [
            a for sid in session_ids for a in assignments_by_session.get(sid, [])
        ]

        classroom_grades = [
            g
            for a in classroom_assignments
            for g in grades_by_assignment.get(a.id, [])
            if g.student_id in active
        ]
        scores = [g.score for g in classroom_grades if g.score is not None]
        average_score = sum(scores) / len(scores) if scores else 0

        classroom_attendance = [
            row
            for sid in session_ids
            for row in attendance_by_session.get(sid, [])
            if row.student_id in active
        ]
        present = sum(1 for row in classroom_attendance if row.status in PRESENT_STATUSES)
        attendance_rate = present / len(classroom_attendance) * 100 if classroom_attendance else 0

        unique_students = {g.student_id for g in classroom_grades}
        unique_students.update(row.student_id for row in classroom_attendance)

        rollups.append(ClassroomPerformance(
            id=classroom.id,
            name=classroom.name,
            color=classroom.color,
            average_score=round_half_away(average_score, 1),
            attendance_rate=round_half_away(attendance_rate, 1),
            total_students=len(unique_students),
            total_assignments=len(classroom_assignments),
            total_sessions=len(session_ids),
        ))

    return rollups


def student_rollups(
    classrooms: Sequence[ClassroomRecord],
    sessions: Sequence[SessionRecord],
    assignments: Sequence[AssignmentRecord],
    grades: Sequence[GradeRecord],
    students: Sequence[StudentRecord],
) -> List[StudentPerformance]:
    """
    Per-student average over scored grades.

    Only active students with a name and at least one scored grade are
    included. A student's classroom is the first one their grades were
    found in.
    """
    names = {s.id: s.name for s in students if s.active and s.name}
    classroom_names = {c.id: c.name for c in classrooms}
    session_classroom = {s.id: classroom_names.get(s.classroom_id) for s in sessions}
    grades_by_assignment = _group(grades, "assignment_id")

    totals: Dict[str, List[float]] = {}
    first_classroom: Dict[str, Optional[str]] = {}
    for assignment in assignments:
        classroom_name = session_classroom.get(assignment.session_id)
        for grade in grades_by_assignment.get(assignment.id, []):
            if grade.score is None or grade.student_id not in names:
                continue
            totals.setdefault(grade.student_id, []).append(grade.score)
            if not first_classroom.get(grade.student_id):
                first_classroom[grade.student_id] = classroom_name

    return [
        StudentPerformance(
            id=student_id,
            name=names[student_id],
            average_score=round_half_away(sum(scores) / len(scores), 1),
            total_graded_assignments=len(scores),
            classroom_name=first_classroom.get(student_id),
        )
        for student_id, scores in totals.items()
    ]
