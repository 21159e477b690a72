"""Derived submission statistics.

Per-assignment summaries are cached in ``assignment_statistics`` and refreshed
after every submit, grade and delete. The cache is never a source of truth:
:meth:`StatisticsAggregator.recompute` always starts from the submissions.
"""

import logging
from collections import Counter
from typing import Callable, Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from campus_lms.core.clock import utcnow
from campus_lms.core.config import Settings, settings as default_settings
from campus_lms.core.errors import DomainError
from campus_lms.core.permissions import Actor, Role
from campus_lms.core.states import SubmissionStatus
from campus_lms.models.assignment_statistics import AssignmentStatistics
from campus_lms.models.submission import Submission
from campus_lms.repositories import AssignmentRepository, StatisticsRepository, SubmissionRepository
from campus_lms.schemas.statistics import StatisticsSummary

logger = logging.getLogger(__name__)


def summarize(submissions: Iterable[Submission], count_ungraded_as_zero: bool = True) -> StatisticsSummary:
    items = list(submissions)
    total = len(items)
    late = sum(1 for s in items if s.is_late)
    graded = sum(1 for s in items if s.status == SubmissionStatus.GRADED.value)

    scores: list[float] = []
    for s in items:
        score = s.numerical_score
        if score is not None:
            scores.append(score)
        elif count_ungraded_as_zero:
            scores.append(0.0)

    distribution = Counter(s.grade for s in items if s.grade)

    return StatisticsSummary(
        total_submissions=total,
        on_time_submissions=total - late,
        late_submissions=late,
        graded_submissions=graded,
        pending_submissions=total - graded,
        average_score=round(sum(scores) / len(scores), 2) if scores else 0.0,
        grade_distribution=dict(sorted(distribution.items())),
        plagiarism_flagged=sum(1 for s in items if s.is_flagged),
        verified_submissions=sum(1 for s in items if s.is_verified),
    )


def scope_filters(actor: Actor, assignments: AssignmentRepository) -> dict:
    """Submission filters limiting an actor to what they may see in aggregate."""
    if actor.is_admin:
        return {}
    if actor.role == Role.STUDENT:
        return {"student_id": actor.id}
    return {"assignment_id": assignments.ids_for_faculty(actor.id)}


class StatisticsAggregator:
    def __init__(
        self,
        db: Session,
        settings: Settings = default_settings,
        clock: Callable = utcnow,
    ):
        self.db = db
        self.settings = settings
        self.clock = clock
        self.assignments = AssignmentRepository(db)
        self.submissions = SubmissionRepository(db)
        self.cache = StatisticsRepository(db)

    def recompute(self, assignment_id: int) -> StatisticsSummary:
        submissions = self.submissions.find({"assignment_id": assignment_id})
        summary = summarize(submissions, self.settings.STATISTICS_COUNT_UNGRADED_AS_ZERO)
        self.cache.upsert(assignment_id, summary.model_dump(), self.clock())
        return summary

    def refresh(self, assignment_id: int) -> StatisticsSummary | None:
        try:
            return self.recompute(assignment_id)
        except (SQLAlchemyError, DomainError) as e:
            self.db.rollback()
            logger.warning("Statistics refresh failed for assignment %s: %s", assignment_id, e)
            return None

    def cached(self, assignment_id: int) -> AssignmentStatistics:
        row = self.cache.get(assignment_id)
        if row is None:
            self.recompute(assignment_id)
            row = self.cache.get(assignment_id)
        return row

    def summarize_scope(self, actor: Actor) -> StatisticsSummary:
        submissions = self.submissions.find(scope_filters(actor, self.assignments))
        return summarize(submissions, self.settings.STATISTICS_COUNT_UNGRADED_AS_ZERO)
