"""
Grade Table

Maps a 0-100 feedback score to a letter grade. Shared by the feedback job
(logging), session serialization and the profile's best-grade ranking; the
grade is never stored.
"""

from typing import List, Optional, Tuple

# (lowest score in band, grade), highest band first
GRADE_BANDS: List[Tuple[int, str]] = [
    (97, "A+"),
    (93, "A"),
    (90, "A-"),
    (87, "B+"),
    (83, "B"),
    (80, "B-"),
    (77, "C+"),
    (73, "C"),
    (70, "C-"),
    (67, "D+"),
    (63, "D"),
    (60, "D-"),
]
FAILING_GRADE = "F"


def calculate_grade(score: Optional[int]) -> Optional[str]:
    """
    Letter grade for a score, or None when there is no score yet.

    Scores above 100 are treated as 100.
    """
    if score is None:
        return None

    score = min(int(score), 100)
    for floor, grade in GRADE_BANDS:
        if score >= floor:
            return grade
    return FAILING_GRADE


def best_grade(scores) -> Optional[str]:
    """Best grade across a collection of scores, ignoring missing ones."""
    graded = [s for s in scores if s is not None]
    if not graded:
        return None
    return calculate_grade(max(graded))
