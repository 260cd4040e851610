"""
Analytics Data Models

Input records as the record source delivers them, and the derived
dashboard outputs. Every model round-trips through ``to_dict`` /
``from_dict`` so it can be cached as a JSON snapshot.
"""

from dataclasses import dataclass, field, asdict
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt is not None and dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _parse_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _iso(value: Optional[Any]) -> Optional[str]:
    return value.isoformat() if value is not None else None


# ============================================================================
# INPUT RECORDS
# ============================================================================

@dataclass(frozen=True)
class ClassroomRecord:
    """A classroom of the academy."""
    id: str
    name: str
    created_at: datetime
    color: Optional[str] = None

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["created_at"] = _iso(self.created_at)
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> "ClassroomRecord":
        return cls(
            id=data["id"],
            name=data["name"],
            created_at=_parse_datetime(data["created_at"]),
            color=data.get("color"),
        )


@dataclass(frozen=True)
class SessionRecord:
    """One scheduled classroom session, dated by calendar day."""
    id: str
    classroom_id: str
    date: date
    status: str = "scheduled"

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["date"] = _iso(self.date)
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> "SessionRecord":
        return cls(
            id=data["id"],
            classroom_id=data["classroom_id"],
            date=_parse_date(data["date"]),
            status=data.get("status", "scheduled"),
        )


@dataclass(frozen=True)
class AssignmentRecord:
    """Assignment handed out in a session."""
    id: str
    session_id: str
    due_date: Optional[date] = None

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["due_date"] = _iso(self.due_date)
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> "AssignmentRecord":
        return cls(
            id=data["id"],
            session_id=data["session_id"],
            due_date=_parse_date(data.get("due_date")),
        )


@dataclass(frozen=True)
class GradeRecord:
    """A student's grade on an assignment. ``score`` is None until graded."""
    student_id: str
    assignment_id: str
    score: Optional[float] = None
    status: Optional[str] = None

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> "GradeRecord":
        return cls(**data)


@dataclass(frozen=True)
class AttendanceRecord:
    """Attendance of a student at a session (present, late, absent, ...)."""
    student_id: str
    session_id: str
    status: str

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> "AttendanceRecord":
        return cls(**data)


@dataclass(frozen=True)
class InvoiceRecord:
    """Tuition invoice."""
    id: str
    amount: float
    status: str
    created_at: datetime
    paid_at: Optional[datetime] = None

    @property
    def revenue_at(self) -> datetime:
        """Moment the revenue counts toward: payment, else creation."""
        return self.paid_at or self.created_at

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["created_at"] = _iso(self.created_at)
        data["paid_at"] = _iso(self.paid_at)
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> "InvoiceRecord":
        return cls(
            id=data["id"],
            amount=data.get("amount") or 0,
            status=data["status"],
            created_at=_parse_datetime(data["created_at"]),
            paid_at=_parse_datetime(data.get("paid_at")),
        )


@dataclass(frozen=True)
class StudentRecord:
    """Student enrolment. Deactivated students are excluded from rollups."""
    id: str
    name: Optional[str] = None
    active: bool = True

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> "StudentRecord":
        return cls(**data)


@dataclass(frozen=True)
class UserRecord:
    """Member of the academy (teachers, staff, families)."""
    id: str
    created_at: datetime
    name: Optional[str] = None

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["created_at"] = _iso(self.created_at)
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> "UserRecord":
        return cls(
            id=data["id"],
            created_at=_parse_datetime(data["created_at"]),
            name=data.get("name"),
        )


# ============================================================================
# DERIVED OUTPUTS
# ============================================================================

@dataclass
class GrowthMetric:
    """Current vs previous window with a display-ready percentage."""
    current: float
    previous: float
    percentage: int
    is_positive: bool

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> "GrowthMetric":
        return cls(**data)


@dataclass
class DashboardStats:
    """Scalar counts and growth deltas for the dashboard header cards."""
    user_count: int
    users_added: int
    is_growth_positive: bool
    show_users_added: bool
    classroom_count: int
    classrooms_added: int
    total_revenue: float
    last_month_revenue: float
    revenue_growth_percentage: int
    is_revenue_growth_positive: bool
    active_sessions_this_week: int
    sessions_growth_percentage: int
    is_sessions_growth_positive: bool
    show_sessions_growth: bool

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> "DashboardStats":
        return cls(**data)


@dataclass
class SessionDay:
    """One bucket of the weekly session trend."""
    date: date
    sessions: int
    completed: int

    def to_dict(self) -> Dict:
        return {"date": self.date.isoformat(), "sessions": self.sessions, "completed": self.completed}

    @classmethod
    def from_dict(cls, data: Dict) -> "SessionDay":
        return cls(
            date=_parse_date(data["date"]),
            sessions=data["sessions"],
            completed=data["completed"],
        )


@dataclass
class DashboardTrends:
    """Day-bucketed series, oldest day first, today last."""
    revenue: List[float] = field(default_factory=list)
    users: List[int] = field(default_factory=list)
    classrooms: List[int] = field(default_factory=list)
    weekly_sessions: List[SessionDay] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "revenue": list(self.revenue),
            "users": list(self.users),
            "classrooms": list(self.classrooms),
            "weekly_sessions": [d.to_dict() for d in self.weekly_sessions],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "DashboardTrends":
        return cls(
            revenue=list(data.get("revenue", [])),
            users=list(data.get("users", [])),
            classrooms=list(data.get("classrooms", [])),
            weekly_sessions=[SessionDay.from_dict(d) for d in data.get("weekly_sessions", [])],
        )


@dataclass
class ClassroomPerformance:
    """Per-classroom rollup."""
    id: str
    name: str
    average_score: float
    attendance_rate: float
    total_students: int
    total_assignments: int
    total_sessions: int
    color: Optional[str] = None

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> "ClassroomPerformance":
        return cls(**data)


@dataclass
class StudentPerformance:
    """Per-student rollup over graded assignments."""
    id: str
    name: str
    average_score: float
    total_graded_assignments: int
    classroom_name: Optional[str] = None

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> "StudentPerformance":
        return cls(**data)


def _optional_classroom(data: Optional[Dict]) -> Optional[ClassroomPerformance]:
    return ClassroomPerformance.from_dict(data) if data else None


@dataclass
class ClassroomRankings:
    """Highest and lowest classrooms by score and by attendance."""
    highest_score: Optional[ClassroomPerformance] = None
    lowest_score: Optional[ClassroomPerformance] = None
    highest_attendance: Optional[ClassroomPerformance] = None
    lowest_attendance: Optional[ClassroomPerformance] = None

    def to_dict(self) -> Dict:
        return {
            "highest_score": self.highest_score.to_dict() if self.highest_score else None,
            "lowest_score": self.lowest_score.to_dict() if self.lowest_score else None,
            "highest_attendance": self.highest_attendance.to_dict() if self.highest_attendance else None,
            "lowest_attendance": self.lowest_attendance.to_dict() if self.lowest_attendance else None,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "ClassroomRankings":
        return cls(
            highest_score=_optional_classroom(data.get("highest_score")),
            lowest_score=_optional_classroom(data.get("lowest_score")),
            highest_attendance=_optional_classroom(data.get("highest_attendance")),
            lowest_attendance=_optional_classroom(data.get("lowest_attendance")),
        )


@dataclass
class StudentBoards:
    """Top and bottom student leaderboards."""
    top: List[StudentPerformance] = field(default_factory=list)
    bottom: List[StudentPerformance] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "top": [s.to_dict() for s in self.top],
            "bottom": [s.to_dict() for s in self.bottom],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "StudentBoards":
        return cls(
            top=[StudentPerformance.from_dict(s) for s in data.get("top", [])],
            bottom=[StudentPerformance.from_dict(s) for s in data.get("bottom", [])],
        )
