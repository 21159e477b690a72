from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable

from campus_lms.core.clock import as_utc
from campus_lms.services.grading_criteria import criteria_percentage


@dataclass(frozen=True)
class LateAssessment:
    is_late: bool
    penalty_percent: float
    late_by_minutes: int | None = None


def effective_due_date(due_date: datetime, extended_due_date: datetime | None = None) -> datetime:
    return as_utc(extended_due_date or due_date)


def assess(
    due_date: datetime | None,
    extended_due_date: datetime | None,
    requirements: Any,
    submitted_at: datetime,
) -> LateAssessment:
    """
    Policy:
    - late means submitted strictly after the extended due date, or the due date when no extension exists
    - the penalty is the assignment's flat late_penalty_percent, not a per-day accrual
    - no penalty applies when late submissions are not allowed (those are refused upstream)
    """
    if due_date is None:
        return LateAssessment(False, 0.0)

    due = effective_due_date(due_date, extended_due_date)
    submitted = as_utc(submitted_at)

    if submitted <= due:
        return LateAssessment(False, 0.0, 0)

    late_minutes = int((submitted - due).total_seconds() // 60)

    if not requirements.allow_late_submission:
        return LateAssessment(True, 0.0, late_minutes)

    penalty = min(max(float(requirements.late_penalty_percent or 0), 0.0), 100.0)
    return LateAssessment(True, penalty, late_minutes)


def apply_penalty(raw_score: float, penalty_percent: float) -> float:
    return round(raw_score * (1 - penalty_percent / 100), 2)


def raw_score(numerical_score: float | None, criteria_scores: Iterable[Any] | None) -> float | None:
    """Criteria percentage when the grader used criteria, otherwise the directly assigned score."""
    from_criteria = criteria_percentage(criteria_scores)
    if from_criteria is not None:
        return from_criteria
    return numerical_score


def calculated_score(
    numerical_score: float | None,
    criteria_scores: Iterable[Any] | None,
    is_late: bool = False,
    penalty_percent: float = 0,
) -> float | None:
    raw = raw_score(numerical_score, criteria_scores)
    if raw is None:
        return None
    if is_late and penalty_percent > 0:
        return apply_penalty(raw, penalty_percent)
    return round(raw, 2)
