from enum import Enum


class AssignmentStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    SUBMISSION_CLOSED = "submission_closed"
    GRADING = "grading"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class SubmissionStatus(str, Enum):
    SUBMITTED = "submitted"
    LATE = "late"
    UNDER_REVIEW = "under_review"
    GRADED = "graded"
    RETURNED = "returned"
    REJECTED = "rejected"


# archived is reachable from every state except itself
ASSIGNMENT_TRANSITIONS: dict[AssignmentStatus, frozenset[AssignmentStatus]] = {
    AssignmentStatus.DRAFT: frozenset({AssignmentStatus.PUBLISHED, AssignmentStatus.ARCHIVED}),
    AssignmentStatus.PUBLISHED: frozenset({AssignmentStatus.SUBMISSION_CLOSED, AssignmentStatus.ARCHIVED}),
    AssignmentStatus.SUBMISSION_CLOSED: frozenset({AssignmentStatus.GRADING, AssignmentStatus.ARCHIVED}),
    AssignmentStatus.GRADING: frozenset({AssignmentStatus.COMPLETED, AssignmentStatus.ARCHIVED}),
    AssignmentStatus.COMPLETED: frozenset({AssignmentStatus.ARCHIVED}),
    AssignmentStatus.ARCHIVED: frozenset(),
}

# due date, criteria and point total can only change while the assignment is in one of these
CONTENT_EDITABLE_STATUSES = frozenset({AssignmentStatus.DRAFT, AssignmentStatus.PUBLISHED})

SUBMISSION_TRANSITIONS: dict[SubmissionStatus, frozenset[SubmissionStatus]] = {
    SubmissionStatus.SUBMITTED: frozenset(
        {
            SubmissionStatus.UNDER_REVIEW,
            SubmissionStatus.GRADED,
            SubmissionStatus.RETURNED,
            SubmissionStatus.REJECTED,
        }
    ),
    SubmissionStatus.LATE: frozenset(
        {
            SubmissionStatus.UNDER_REVIEW,
            SubmissionStatus.GRADED,
            SubmissionStatus.RETURNED,
            SubmissionStatus.REJECTED,
        }
    ),
    SubmissionStatus.UNDER_REVIEW: frozenset({SubmissionStatus.GRADED, SubmissionStatus.RETURNED}),
    SubmissionStatus.GRADED: frozenset({SubmissionStatus.GRADED, SubmissionStatus.RETURNED}),
    SubmissionStatus.RETURNED: frozenset({SubmissionStatus.UNDER_REVIEW, SubmissionStatus.GRADED}),
    SubmissionStatus.REJECTED: frozenset(),
}

# students may change attached files only in these states
FILE_EDITABLE_STATUSES = frozenset(
    {SubmissionStatus.SUBMITTED, SubmissionStatus.LATE, SubmissionStatus.RETURNED}
)

UNGRADED_STATUSES = frozenset(
    {SubmissionStatus.SUBMITTED, SubmissionStatus.LATE, SubmissionStatus.UNDER_REVIEW}
)
