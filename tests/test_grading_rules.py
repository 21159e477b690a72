from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from campus_lms.core.errors import ValidationError
from campus_lms.schemas.assignment import AssignmentRequirements
from campus_lms.services.file_rules import extension_of, validate_file, validate_files
from campus_lms.services.grading_criteria import (
    criteria_percentage,
    letter_for_score,
    validate_criteria,
    validate_criteria_scores,
)
from campus_lms.services.late_penalty import apply_penalty, assess, calculated_score

DUE = datetime(2030, 1, 10, 23, 59, tzinfo=timezone.utc)


def test_criteria_must_sum_to_total_points():
    validate_criteria([], 100)
    validate_criteria([{"criterion": "Code", "max_points": 60}, {"criterion": "Docs", "max_points": 40}], 100)

    with pytest.raises(ValidationError):
        validate_criteria([{"criterion": "Code", "max_points": 60}], 100)


def test_criteria_sum_tolerates_float_noise():
    criteria = [{"criterion": c, "max_points": 0.1} for c in "abc"]
    validate_criteria(criteria, 0.3)


def test_negative_criterion_points_rejected():
    with pytest.raises(ValidationError):
        validate_criteria([{"criterion": "a", "max_points": -10}, {"criterion": "b", "max_points": 110}], 100)


def test_earned_points_cannot_exceed_max():
    validate_criteria_scores([{"criterion": "Code", "max_points": 60, "earned_points": 60}])

    with pytest.raises(ValidationError) as exc:
        validate_criteria_scores([{"criterion": "Code", "max_points": 60, "earned_points": 61}])
    assert "Code" in exc.value.message

    with pytest.raises(ValidationError):
        validate_criteria_scores([{"criterion": "Code", "max_points": 60, "earned_points": -1}])


@pytest.mark.parametrize(
    "score,letter",
    [(100, "A+"), (97, "A+"), (96.99, "A"), (90, "A-"), (85, "B"), (70, "C-"), (60, "D-"), (59.9, "F")],
)
def test_letter_for_score(score, letter):
    assert letter_for_score(score) == letter


def test_criteria_percentage():
    scores = [
        {"criterion": "Code", "max_points": 60, "earned_points": 55},
        {"criterion": "Docs", "max_points": 40, "earned_points": 35},
    ]
    assert criteria_percentage(scores) == 90
    assert criteria_percentage([]) is None


def test_submission_on_time_is_not_late():
    req = AssignmentRequirements(allow_late_submission=True, late_penalty_percent=10)
    result = assess(DUE, None, req, DUE)
    assert result.is_late is False
    assert result.penalty_percent == 0


def test_late_submission_gets_flat_penalty():
    req = AssignmentRequirements(allow_late_submission=True, late_penalty_percent=10)
    result = assess(DUE, None, req, DUE + timedelta(seconds=1))
    assert result.is_late is True
    assert result.penalty_percent == 10

    # flat, not per-day
    result = assess(DUE, None, req, DUE + timedelta(days=5))
    assert result.penalty_percent == 10


def test_extended_due_date_takes_precedence():
    req = AssignmentRequirements(allow_late_submission=True, late_penalty_percent=25)
    extended = DUE + timedelta(days=2)
    assert assess(DUE, extended, req, DUE + timedelta(days=1)).is_late is False
    assert assess(DUE, extended, req, extended + timedelta(minutes=5)).late_by_minutes == 5


def test_naive_datetimes_are_treated_as_utc():
    req = AssignmentRequirements()
    naive_due = DUE.replace(tzinfo=None)
    assert assess(naive_due, None, req, DUE - timedelta(hours=1)).is_late is False


def test_no_penalty_when_late_not_allowed():
    req = AssignmentRequirements(allow_late_submission=False, late_penalty_percent=50)
    result = assess(DUE, None, req, DUE + timedelta(hours=1))
    assert result.is_late is True
    assert result.penalty_percent == 0


def test_calculated_score_applies_penalty_to_raw_score():
    assert apply_penalty(100, 10) == 90.0
    assert calculated_score(100, [], is_late=True, penalty_percent=10) == 90.0
    assert calculated_score(100, [], is_late=False, penalty_percent=10) == 100.0
    assert calculated_score(None, []) is None

    scores = [{"criterion": "a", "max_points": 3, "earned_points": 2}]
    assert calculated_score(None, scores) == 66.67


def test_extension_of_is_case_insensitive():
    assert extension_of("Report.PDF") == "pdf"
    assert extension_of("archive.tar.gz") == "gz"
    assert extension_of("Makefile") == ""


def test_file_type_and_size_checks_name_the_file():
    req = SimpleNamespace(max_file_size_mb=1, allowed_file_types=["pdf", ".DOCX"])
    validate_file("essay.PDF", 1024, req)
    validate_file("essay.docx", 0, req)

    with pytest.raises(ValidationError) as exc:
        validate_file("essay.exe", 10, req)
    assert "essay.exe" in exc.value.message

    with pytest.raises(ValidationError) as exc:
        validate_file("huge.pdf", 1024 * 1024 + 1, req)
    assert "huge.pdf" in exc.value.message


def test_file_without_size_is_rejected():
    req = SimpleNamespace(max_file_size_mb=1, allowed_file_types=[])
    with pytest.raises(ValidationError) as exc:
        validate_file("unknown.pdf", None, req)
    assert "unknown.pdf" in exc.value.message

    with pytest.raises(ValidationError):
        validate_files([{"name": "notes.py"}], req)


def test_empty_allowed_types_accepts_anything():
    req = AssignmentRequirements(allowed_file_types=[])
    validate_files([{"name": "anything.xyz", "size": 10}], req)
