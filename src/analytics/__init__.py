"""
Academy Dashboard Analytics

- models: raw records and derived outputs
- aggregation: stats, growth, trends and rollups (pure)
- ranking: highest/lowest classrooms and student boards (pure)
- service: DashboardService reading everything through the tiered cache
"""

from src.analytics.models import (
    ClassroomRecord,
    SessionRecord,
    AssignmentRecord,
    GradeRecord,
    AttendanceRecord,
    InvoiceRecord,
    StudentRecord,
    UserRecord,
    GrowthMetric,
    DashboardStats,
    SessionDay,
    DashboardTrends,
    ClassroomPerformance,
    StudentPerformance,
    ClassroomRankings,
    StudentBoards,
)
from src.analytics.aggregation import (
    round_half_away,
    growth_percentage,
    growth,
    build_stats,
    build_trends,
    classroom_rollups,
    student_rollups,
)
from src.analytics.ranking import select_extremes, rank_classrooms, student_boards
from src.analytics.service import DashboardService, RecordSource

__all__ = [
    # Records
    "ClassroomRecord",
    "SessionRecord",
    "AssignmentRecord",
    "GradeRecord",
    "AttendanceRecord",
    "InvoiceRecord",
    "StudentRecord",
    "UserRecord",
    # Outputs
    "GrowthMetric",
    "DashboardStats",
    "SessionDay",
    "DashboardTrends",
    "ClassroomPerformance",
    "StudentPerformance",
    "ClassroomRankings",
    "StudentBoards",
    # Aggregation
    "round_half_away",
    "growth_percentage",
    "growth",
    "build_stats",
    "build_trends",
    "classroom_rollups",
    "student_rollups",
    # Ranking
    "select_extremes",
    "rank_classrooms",
    "student_boards",
    # Service
    "DashboardService",
    "RecordSource",
]
