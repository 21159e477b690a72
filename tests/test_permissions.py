from types import SimpleNamespace

import pytest

from campus_lms.core.errors import Forbidden
from campus_lms.core.permissions import Action, Actor, PermissionPolicy, Relationship, ResourceContext, Role

policy = PermissionPolicy()

ADMIN = Actor(1, Role.ADMIN)
OWNER = Actor(2, Role.FACULTY)
OTHER_FACULTY = Actor(3, Role.FACULTY)
STUDENT = Actor(4, Role.STUDENT)
OTHER_STUDENT = Actor(5, Role.STUDENT)


def assignment(status="published", is_visible=True, created_by=2):
    return SimpleNamespace(faculty_id=2, created_by=created_by, status=status, is_visible=is_visible)


def submission(status="submitted", student_id=4):
    return SimpleNamespace(student_id=student_id, status=status)


def test_admin_is_always_allowed():
    ctx = ResourceContext.for_assignment(assignment(status="draft", is_visible=False))
    for action in Action:
        assert policy.decide(ADMIN, action, ctx).allowed


def test_owner_faculty_can_update_and_non_owner_cannot():
    ctx = ResourceContext.for_assignment(assignment())
    assert policy.decide(OWNER, Action.UPDATE_ASSIGNMENT, ctx).allowed
    assert not policy.decide(OTHER_FACULTY, Action.UPDATE_ASSIGNMENT, ctx).allowed


def test_creator_counts_as_owner():
    ctx = ResourceContext.for_assignment(assignment(created_by=3))
    assert policy.relationship(OTHER_FACULTY, ctx) == Relationship.OWNER
    assert policy.decide(OTHER_FACULTY, Action.UPDATE_ASSIGNMENT, ctx).allowed


def test_non_owner_faculty_reads_only_published_and_visible():
    assert policy.decide(OTHER_FACULTY, Action.READ_ASSIGNMENT, ResourceContext.for_assignment(assignment())).allowed

    for a in (assignment(status="draft"), assignment(is_visible=False)):
        decision = policy.decide(OTHER_FACULTY, Action.READ_ASSIGNMENT, ResourceContext.for_assignment(a))
        assert not decision.allowed
        assert decision.reason


def test_student_must_be_enrolled_to_read():
    published = assignment()
    assert policy.decide(STUDENT, Action.READ_ASSIGNMENT, ResourceContext.for_assignment(published, enrolled=True)).allowed
    assert not policy.decide(STUDENT, Action.READ_ASSIGNMENT, ResourceContext.for_assignment(published)).allowed


def test_submit_requires_enrollment():
    a = assignment()
    assert policy.decide(STUDENT, Action.SUBMIT, ResourceContext.for_new_submission(a, STUDENT.id, True)).allowed
    assert not policy.decide(STUDENT, Action.SUBMIT, ResourceContext.for_new_submission(a, STUDENT.id, False)).allowed
    # submitting for someone else
    assert not policy.decide(
        OTHER_STUDENT, Action.SUBMIT, ResourceContext.for_new_submission(a, STUDENT.id, True)
    ).allowed


@pytest.mark.parametrize(
    "status,allowed",
    [("submitted", True), ("late", True), ("returned", True), ("under_review", False), ("graded", False)],
)
def test_student_file_changes_depend_on_status(status, allowed):
    ctx = ResourceContext.for_submission(submission(status=status), assignment())
    assert policy.decide(STUDENT, Action.ADD_SUBMISSION_FILE, ctx).allowed is allowed
    assert policy.decide(STUDENT, Action.REMOVE_SUBMISSION_FILE, ctx).allowed is allowed


def test_students_cannot_grade_or_read_others():
    ctx = ResourceContext.for_submission(submission(), assignment())
    assert not policy.decide(STUDENT, Action.GRADE_SUBMISSION, ctx).allowed
    assert not policy.decide(OTHER_STUDENT, Action.READ_SUBMISSION, ctx).allowed
    assert policy.decide(OWNER, Action.GRADE_SUBMISSION, ctx).allowed
    assert not policy.decide(OTHER_FACULTY, Action.GRADE_SUBMISSION, ctx).allowed


def test_submission_work_belongs_to_assigned_faculty_not_creator():
    a = assignment(created_by=3)
    ctx = ResourceContext.for_assignment_submissions(a)
    assert policy.decide(OWNER, Action.LIST_SUBMISSIONS, ctx).allowed
    assert not policy.decide(OTHER_FACULTY, Action.LIST_SUBMISSIONS, ctx).allowed


def test_enforce_raises_forbidden():
    ctx = ResourceContext.for_assignment(assignment())
    with pytest.raises(Forbidden):
        policy.enforce(STUDENT, Action.DELETE_ASSIGNMENT, ctx)
