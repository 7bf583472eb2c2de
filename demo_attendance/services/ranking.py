"""
Score rankings within a student's main center and grade.

Rankings are recomputed from the full student list on every call. Callers
load students ordered by id, and the sort below is stable, so students with
equal scores keep that order: the lower id gets the better rank.
"""
from collections import defaultdict
from typing import Callable, Dict, Iterable, List, NamedTuple, Optional

UNKNOWN_GROUP = "Unknown"


class Ranking(NamedTuple):
    center_rank: Optional[int] = None
    center_total: Optional[int] = None
    grade_rank: Optional[int] = None
    grade_total: Optional[int] = None

    def as_response(self) -> Dict[str, Optional[int]]:
        return {
            "centerRank": self.center_rank,
            "centerTotal": self.center_total,
            "gradeRank": self.grade_rank,
            "gradeTotal": self.grade_total,
        }


UNRANKED = Ranking()


def group_name(value: Optional[str]) -> str:
    return value or UNKNOWN_GROUP


def _positions(students: List, key: Callable) -> Dict[int, tuple]:
    """Map student id -> (1-based rank, group size) for one partitioning."""
    groups = defaultdict(list)
    for student in students:
        groups[key(student)].append(student)

    positions = {}
    for members in groups.values():
        ordered = sorted(members, key=lambda s: s.score, reverse=True)
        for index, student in enumerate(ordered):
            # First occurrence wins if an id shows up twice
            positions.setdefault(student.id, (index + 1, len(ordered)))
    return positions


def compute_rankings(students: Iterable) -> Dict[int, Ranking]:
    """
    Rank every student by score within their center and their grade.

    Students whose score is None are left out of every group and get an
    all-None Ranking.
    """
    students = list(students)
    rankable = [s for s in students if s.score is not None]

    by_center = _positions(rankable, lambda s: group_name(s.main_center))
    by_grade = _positions(rankable, lambda s: group_name(s.grade))

    rankings = {}
    for student in students:
        if student.id not in by_center:
            rankings.setdefault(student.id, UNRANKED)
            continue
        center_rank, center_total = by_center[student.id]
        grade_rank, grade_total = by_grade[student.id]
        rankings[student.id] = Ranking(center_rank, center_total, grade_rank, grade_total)
    return rankings


def rank_student(students: Iterable, student_id: int) -> Optional[Ranking]:
    """Ranking for a single student, or None when the student is not in the list."""
    students = list(students)
    if not any(s.id == student_id for s in students):
        return None
    return compute_rankings(students)[student_id]
