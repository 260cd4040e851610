"""
Ranking Engine

Highest/lowest classroom selection and top/bottom student boards.

Policies:
- Entities with no contributing rows for a metric are left out of that
  metric's ranking
- Sorting is descending and stable; ties keep input order
- "Lowest" exists only when at least two entities qualify
- Small student pools never show the top student on the bottom board
"""

from typing import Callable, List, Optional, Sequence, Tuple, TypeVar

from src.analytics.models import (
    ClassroomPerformance,
    ClassroomRankings,
    StudentBoards,
    StudentPerformance,
)


T = TypeVar("T")

BOARD_SIZE = 5


def rank_descending(items: Sequence[T], metric: Callable[[T], float]) -> List[T]:
    """Stable descending sort by a metric."""
    return sorted(items, key=metric, reverse=True)


def select_extremes(
    items: Sequence[T],
    metric: Callable[[T], float],
) -> Tuple[Optional[T], Optional[T]]:
    """
    (highest, lowest) of a pool.

    A single-entity pool has no lowest counterpart.
    """
    ranked = rank_descending(items, metric)
    highest = ranked[0] if ranked else None
    lowest = ranked[-1] if len(ranked) > 1 else None
    return highest, lowest


def rank_classrooms(performances: Sequence[ClassroomPerformance]) -> ClassroomRankings:
    """Highest and lowest classrooms by average score and by attendance rate."""
    with_assignments = [c for c in performances if c.total_assignments > 0]
    with_sessions = [c for c in performances if c.total_sessions > 0]

    highest_score, lowest_score = select_extremes(with_assignments, lambda c: c.average_score)
    highest_attendance, lowest_attendance = select_extremes(with_sessions, lambda c: c.attendance_rate)

    return ClassroomRankings(
        highest_score=highest_score,
        lowest_score=lowest_score,
        highest_attendance=highest_attendance,
        lowest_attendance=lowest_attendance,
    )


def top_and_bottom(ranked: Sequence[T], size: int = BOARD_SIZE) -> Tuple[List[T], List[T]]:
    """
    Split a descending ranking into top and bottom boards.

    Bottom is the last ``size`` entries, lowest first. With ``size`` or
    fewer entries it is everything except the top entry, lowest first.
    """
    top = list(ranked[:size])
    if len(ranked) > size:
        bottom = list(reversed(ranked[-size:]))
    elif len(ranked) > 1:
        bottom = list(reversed(ranked[1:]))
    else:
        bottom = []
    return top, bottom


def student_boards(
    performances: Sequence[StudentPerformance],
    size: int = BOARD_SIZE,
) -> StudentBoards:
    """Top and bottom students by average score."""
    qualifying = [s for s in performances if s.total_graded_assignments >= 1]
    ranked = rank_descending(qualifying, lambda s: s.average_score)
    top, bottom = top_and_bottom(ranked, size)
    return StudentBoards(top=top, bottom=bottom)
