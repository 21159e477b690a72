"""Rubric arithmetic: criteria totals, per-criterion score bounds and letter grades."""

import math
from collections.abc import Mapping
from typing import Any, Iterable

from campus_lms.core.errors import ValidationError

GRADE_LETTERS = (
    "A+", "A", "A-", "B+", "B", "B-", "C+", "C", "C-", "D+", "D", "D-", "F",
    "Incomplete", "Pass", "Fail",
)

# (minimum score, letter), checked top-down
_LETTER_THRESHOLDS = (
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
)


def _field(item: Any, name: str):
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def validate_criteria(criteria: Iterable[Any] | None, total_points: float) -> None:
    """Raise ValidationError unless criteria are empty or their max points sum to total_points."""
    items = list(criteria or [])
    if not items:
        return

    for item in items:
        if (_field(item, "max_points") or 0) < 0:
            raise ValidationError(f"Points cannot be negative for criterion: {_field(item, 'criterion')}")

    criteria_points = sum(_field(item, "max_points") or 0 for item in items)
    if not math.isclose(criteria_points, total_points, abs_tol=1e-9):
        raise ValidationError(
            "Total points must match the sum of grading criteria points",
            criteria_points=criteria_points,
            total_points=total_points,
        )


def validate_criteria_scores(criteria_scores: Iterable[Any] | None) -> None:
    for score in criteria_scores or []:
        earned = _field(score, "earned_points") or 0
        max_points = _field(score, "max_points") or 0
        name = _field(score, "criterion")
        if earned < 0 or max_points < 0:
            raise ValidationError(f"Points cannot be negative for criterion: {name}")
        if earned > max_points:
            raise ValidationError(
                f"Earned points ({earned}) cannot exceed max points ({max_points}) for criterion: {name}"
            )


def criteria_percentage(criteria_scores: Iterable[Any] | None) -> float | None:
    items = list(criteria_scores or [])
    total_max = sum(_field(s, "max_points") or 0 for s in items)
    if not items or total_max == 0:
        return None
    total_earned = sum(_field(s, "earned_points") or 0 for s in items)
    return total_earned * 100 / total_max


def letter_for_score(score: float) -> str:
    for minimum, letter in _LETTER_THRESHOLDS:
        if score >= minimum:
            return letter
    return "F"
