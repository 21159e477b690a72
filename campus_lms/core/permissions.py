"""Role x relationship x action decision table for assignments and submissions.

Every lifecycle operation asks :class:`PermissionPolicy` exactly once before it
mutates or returns anything. The policy is pure: the caller resolves the
resource context (owner ids, enrollment) up front.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from campus_lms.core.errors import Forbidden
from campus_lms.core.states import FILE_EDITABLE_STATUSES, AssignmentStatus


class Role(str, Enum):
    ADMIN = "admin"
    FACULTY = "faculty"
    STUDENT = "student"


class Relationship(str, Enum):
    OWNER = "owner"
    ENROLLED = "enrolled"
    NONE = "none"


class Action(str, Enum):
    CREATE_ASSIGNMENT = "assignment:create"
    READ_ASSIGNMENT = "assignment:read"
    UPDATE_ASSIGNMENT = "assignment:update"
    TRANSITION_ASSIGNMENT = "assignment:transition"
    DELETE_ASSIGNMENT = "assignment:delete"
    MANAGE_ASSIGNMENT_FILES = "assignment:files"
    VIEW_ASSIGNMENT_STATISTICS = "assignment:statistics"
    LIST_SUBMISSIONS = "submission:list"
    SUBMIT = "submission:create"
    READ_SUBMISSION = "submission:read"
    REVIEW_SUBMISSION = "submission:review"
    GRADE_SUBMISSION = "submission:grade"
    RETURN_SUBMISSION = "submission:return"
    REJECT_SUBMISSION = "submission:reject"
    MARK_LATE = "submission:mark_late"
    CHECK_PLAGIARISM = "submission:plagiarism"
    VERIFY_SUBMISSION = "submission:verify"
    ADD_SUBMISSION_FILE = "submission:add_file"
    REMOVE_SUBMISSION_FILE = "submission:remove_file"
    DELETE_SUBMISSION = "submission:delete"


@dataclass(frozen=True)
class Actor:
    id: int
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


@dataclass(frozen=True)
class ResourceContext:
    owner_ids: frozenset[int] = field(default_factory=frozenset)
    enrolled: bool = False
    assignment_status: str | None = None
    is_visible: bool = False
    submission_status: str | None = None

    @classmethod
    def for_course(cls, course) -> "ResourceContext":
        return cls(owner_ids=frozenset({course.faculty_id}))

    @classmethod
    def for_assignment(cls, assignment, enrolled: bool = False) -> "ResourceContext":
        owners = {assignment.faculty_id, assignment.created_by}
        return cls(
            owner_ids=frozenset(o for o in owners if o is not None),
            enrolled=enrolled,
            assignment_status=assignment.status,
            is_visible=bool(assignment.is_visible),
        )

    @classmethod
    def for_assignment_submissions(cls, assignment) -> "ResourceContext":
        # only the assigned faculty member works on submissions, not the creator
        return cls(
            owner_ids=frozenset({assignment.faculty_id}),
            assignment_status=assignment.status,
            is_visible=bool(assignment.is_visible),
        )

    @classmethod
    def for_submission(cls, submission, assignment) -> "ResourceContext":
        return cls(
            owner_ids=frozenset({assignment.faculty_id, submission.student_id}),
            assignment_status=assignment.status,
            is_visible=bool(assignment.is_visible),
            submission_status=submission.status,
        )

    @classmethod
    def for_new_submission(cls, assignment, student_id: int, enrolled: bool) -> "ResourceContext":
        return cls(
            owner_ids=frozenset({student_id}),
            enrolled=enrolled,
            assignment_status=assignment.status,
            is_visible=bool(assignment.is_visible),
        )


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str = ""


_FACULTY_OWNER_ACTIONS = frozenset(
    {
        Action.CREATE_ASSIGNMENT,
        Action.READ_ASSIGNMENT,
        Action.UPDATE_ASSIGNMENT,
        Action.TRANSITION_ASSIGNMENT,
        Action.DELETE_ASSIGNMENT,
        Action.MANAGE_ASSIGNMENT_FILES,
        Action.VIEW_ASSIGNMENT_STATISTICS,
        Action.LIST_SUBMISSIONS,
        Action.READ_SUBMISSION,
        Action.REVIEW_SUBMISSION,
        Action.GRADE_SUBMISSION,
        Action.RETURN_SUBMISSION,
        Action.REJECT_SUBMISSION,
        Action.MARK_LATE,
        Action.CHECK_PLAGIARISM,
        Action.VERIFY_SUBMISSION,
    }
)

_STUDENT_OWNER_ACTIONS = frozenset(
    {
        Action.SUBMIT,
        Action.READ_SUBMISSION,
        Action.ADD_SUBMISSION_FILE,
        Action.REMOVE_SUBMISSION_FILE,
        Action.DELETE_SUBMISSION,
    }
)

GRANTS: dict[tuple[Role, Relationship], frozenset[Action]] = {
    (Role.FACULTY, Relationship.OWNER): _FACULTY_OWNER_ACTIONS,
    (Role.FACULTY, Relationship.ENROLLED): frozenset({Action.READ_ASSIGNMENT}),
    (Role.FACULTY, Relationship.NONE): frozenset({Action.READ_ASSIGNMENT}),
    (Role.STUDENT, Relationship.OWNER): _STUDENT_OWNER_ACTIONS,
    (Role.STUDENT, Relationship.ENROLLED): frozenset({Action.READ_ASSIGNMENT}),
}


def _published_and_visible(ctx: ResourceContext) -> bool:
    return ctx.assignment_status == AssignmentStatus.PUBLISHED.value and ctx.is_visible


def _enrolled(ctx: ResourceContext) -> bool:
    return ctx.enrolled


def _files_editable(ctx: ResourceContext) -> bool:
    return ctx.submission_status in {s.value for s in FILE_EDITABLE_STATUSES}


CONDITIONS: dict[tuple[Role, Relationship, Action], tuple[Callable[[ResourceContext], bool], str]] = {
    (Role.FACULTY, Relationship.ENROLLED, Action.READ_ASSIGNMENT): (
        _published_and_visible,
        "Assignment is not published",
    ),
    (Role.FACULTY, Relationship.NONE, Action.READ_ASSIGNMENT): (
        _published_and_visible,
        "Assignment is not published",
    ),
    (Role.STUDENT, Relationship.ENROLLED, Action.READ_ASSIGNMENT): (
        _published_and_visible,
        "Assignment is not published",
    ),
    (Role.STUDENT, Relationship.OWNER, Action.SUBMIT): (_enrolled, "Not enrolled in this course"),
    (Role.STUDENT, Relationship.OWNER, Action.ADD_SUBMISSION_FILE): (
        _files_editable,
        "Files can no longer be changed on this submission",
    ),
    (Role.STUDENT, Relationship.OWNER, Action.REMOVE_SUBMISSION_FILE): (
        _files_editable,
        "Files can no longer be changed on this submission",
    ),
}


class PermissionPolicy:
    def __init__(
        self,
        grants: dict[tuple[Role, Relationship], frozenset[Action]] | None = None,
        conditions: dict | None = None,
    ):
        self.grants = GRANTS if grants is None else grants
        self.conditions = CONDITIONS if conditions is None else conditions

    @staticmethod
    def relationship(actor: Actor, ctx: ResourceContext) -> Relationship:
        if actor.id in ctx.owner_ids:
            return Relationship.OWNER
        if ctx.enrolled:
            return Relationship.ENROLLED
        return Relationship.NONE

    def decide(self, actor: Actor, action: Action, ctx: ResourceContext) -> Decision:
        if actor.is_admin:
            return Decision(True)

        relationship = self.relationship(actor, ctx)
        if action not in self.grants.get((actor.role, relationship), frozenset()):
            return Decision(False, f"{actor.role.value} ({relationship.value}) may not perform {action.value}")

        condition = self.conditions.get((actor.role, relationship, action))
        if condition is not None:
            check, reason = condition
            if not check(ctx):
                return Decision(False, reason)

        return Decision(True)

    def enforce(self, actor: Actor, action: Action, ctx: ResourceContext) -> None:
        decision = self.decide(actor, action, ctx)
        if not decision.allowed:
            raise Forbidden(decision.reason or "Access denied", action=action.value, actor_id=actor.id)
