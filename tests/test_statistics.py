from datetime import timedelta

import pytest

from campus_lms.core.errors import Forbidden
from campus_lms.models.submission import Submission
from campus_lms.schemas.submission import GradeSubmission, SubmissionFile
from campus_lms.services.statistics import StatisticsAggregator, summarize

from conftest import NOW, assignment_payload, fixed_clock


def graded(score, grade=None, is_late=False, penalty=0, flagged=False):
    return Submission(
        status="graded",
        numerical_score=score,
        grade=grade,
        criteria_scores=[],
        is_late=is_late,
        late_penalty_percent=penalty,
        plagiarism_check={"flagged": flagged},
        verification={},
    )


def pending(is_late=False):
    return Submission(status="submitted", is_late=is_late, criteria_scores=[], plagiarism_check={}, verification={})


def test_summarize_counts_and_distribution():
    summary = summarize(
        [
            graded(90, "A-"),
            graded(100, "A+", is_late=True, penalty=10, flagged=True),
            graded(72, "C-"),
            pending(is_late=True),
        ]
    )

    assert summary.total_submissions == 4
    assert summary.late_submissions == 2
    assert summary.on_time_submissions == 2
    assert summary.graded_submissions == 3
    assert summary.pending_submissions == 1
    assert summary.plagiarism_flagged == 1
    assert summary.grade_distribution == {"A+": 1, "A-": 1, "C-": 1}
    # raw scores, late penalty not applied: 90 + 100 + 72 + 0
    assert summary.average_score == 65.5


def test_ungraded_submissions_can_be_left_out_of_the_average():
    items = [graded(80), pending()]
    assert summarize(items, count_ungraded_as_zero=True).average_score == 40.0
    assert summarize(items, count_ungraded_as_zero=False).average_score == 80.0


def test_empty_summary():
    summary = summarize([])
    assert summary.total_submissions == 0
    assert summary.average_score == 0.0
    assert summary.grade_distribution == {}


def test_recompute_is_idempotent(statistics, submissions, published_assignment, actors):
    s = submissions.submit(
        published_assignment.id,
        actors["student1"].id,
        [SubmissionFile(name="main.py", url="/files/s/main.py", size=100)],
        actor=actors["student1"],
    )
    submissions.grade(s.id, GradeSubmission(numerical_score=84), actors["faculty1"])

    first = statistics.recompute(published_assignment.id)
    second = statistics.recompute(published_assignment.id)
    assert first == second
    assert first.grade_distribution == {"B": 1}

    row = statistics.cached(published_assignment.id)
    assert row.summary == first.model_dump()


def test_cached_computes_when_missing(db, settings, published_assignment):
    aggregator = StatisticsAggregator(db, settings=settings, clock=fixed_clock)
    row = aggregator.cached(published_assignment.id)
    assert row.assignment_id == published_assignment.id
    assert row.summary["total_submissions"] == 0


def test_assignment_statistics_require_ownership(assignments, published_assignment, actors):
    assert assignments.statistics_for(published_assignment.id, actors["faculty1"]).summary["total_submissions"] == 0
    with pytest.raises(Forbidden):
        assignments.statistics_for(published_assignment.id, actors["faculty2"])
    with pytest.raises(Forbidden):
        assignments.statistics_for(published_assignment.id, actors["student1"])


def test_summarize_scope(statistics, assignments, submissions, published_assignment, actors, seed):
    submissions.submit(
        published_assignment.id,
        actors["student1"].id,
        [SubmissionFile(name="main.py", url="/files/s/main.py", size=100)],
        actor=actors["student1"],
    )
    other = assignments.create(assignment_payload(seed["course"], title="Second"), actors["faculty1"])
    assignments.transition(other.id, "published", actors["faculty1"])
    submissions.submit(
        other.id,
        actors["student1"].id,
        [SubmissionFile(name="main.py", url="/files/s/main2.py", size=100)],
        actor=actors["student1"],
    )

    assert statistics.summarize_scope(actors["admin"]).total_submissions == 2
    assert statistics.summarize_scope(actors["faculty1"]).total_submissions == 2
    assert statistics.summarize_scope(actors["faculty2"]).total_submissions == 0
    assert statistics.summarize_scope(actors["student1"]).total_submissions == 2
    assert statistics.summarize_scope(actors["student2"]).total_submissions == 0


def test_average_uses_raw_score_of_late_submissions(statistics, assignments, submissions, actors, seed):
    due = NOW + timedelta(hours=1)
    faculty = actors["faculty1"]
    a = assignments.create(
        assignment_payload(
            seed["course"],
            due_date=due,
            requirements={"allow_late_submission": True, "late_penalty_percent": 10},
        ),
        faculty,
    )
    assignments.transition(a.id, "published", faculty)

    s = submissions.submit(
        a.id,
        actors["student1"].id,
        [SubmissionFile(name="main.py", url="/files/s/late.py", size=100)],
        now=due + timedelta(minutes=5),
        actor=actors["student1"],
    )
    graded_submission = submissions.grade(s.id, GradeSubmission(numerical_score=100), faculty)
    assert graded_submission.calculated_score == 90.0

    summary = statistics.recompute(a.id)
    assert summary.late_submissions == 1
    assert summary.average_score == 100.0
