from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from campus_lms.schemas.common import HistoryEntryRead, UserSummary

GradeLetter = Literal[
    "A+", "A", "A-", "B+", "B", "B-", "C+", "C", "C-", "D+", "D", "D-", "F",
    "Incomplete", "Pass", "Fail",
]


class SubmissionFile(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    url: str = Field(min_length=1)
    size: int | None = Field(default=None, ge=0)
    type: str | None = None
    uploaded_at: datetime | None = None


# Score bounds are business rules checked by the lifecycle (400), not by the schema (422).
class CriterionScore(BaseModel):
    criterion: str = Field(min_length=1, max_length=100)
    max_points: float
    earned_points: float
    feedback: str | None = Field(default=None, max_length=1000)


class SubmissionFeedback(BaseModel):
    general: str | None = Field(default=None, max_length=2000)
    strengths: list[str] = []
    improvements: list[str] = []
    rubric: str | None = None


class SubmissionCreate(BaseModel):
    files: list[SubmissionFile] = []
    student_comments: str | None = Field(default=None, max_length=1000)
    # admins submit on a student's behalf
    student_id: int | None = None


class GradeSubmission(BaseModel):
    grade: GradeLetter | None = None
    numerical_score: float | None = None
    criteria_scores: list[CriterionScore] = []
    feedback: SubmissionFeedback | None = None
    instructor_notes: str | None = Field(default=None, max_length=2000)
    expected_version: int | None = None


class ReturnSubmission(BaseModel):
    feedback: SubmissionFeedback | None = None
    instructor_notes: str | None = Field(default=None, max_length=2000)


class RejectSubmission(BaseModel):
    reason: str = Field(min_length=1, max_length=1000)


class MarkLate(BaseModel):
    penalty_percent: float


class PlagiarismCheckIn(BaseModel):
    similarity_score: float
    report_url: str | None = None


class VerifyIn(BaseModel):
    notes: str | None = Field(default=None, max_length=1000)


class PlagiarismCheckRead(BaseModel):
    is_checked: bool = False
    similarity_score: float | None = None
    flagged: bool = False
    report_url: str | None = None
    checked_at: datetime | None = None


class VerificationRead(BaseModel):
    is_verified: bool = False
    verified_by: int | None = None
    verified_at: datetime | None = None
    notes: str | None = None


class AssignmentBrief(BaseModel):
    id: int
    title: str
    course_id: int
    total_points: float
    status: str

    class Config:
        from_attributes = True


class SubmissionRead(BaseModel):
    id: int
    assignment_id: int
    student_id: int
    submission_number: int

    files: list[SubmissionFile] = []
    student_comments: str | None = None
    instructor_notes: str | None = None

    submitted_at: datetime
    status: str
    is_late: bool
    late_penalty_percent: float

    grade: str | None = None
    grade_letter: str | None = None
    numerical_score: float | None = None
    calculated_score: float | None = None
    criteria_scores: list[CriterionScore] = []
    feedback: SubmissionFeedback = SubmissionFeedback()
    reviewed_by: int | None = None
    reviewed_at: datetime | None = None

    plagiarism_check: PlagiarismCheckRead = PlagiarismCheckRead()
    verification: VerificationRead = VerificationRead()

    history: list[HistoryEntryRead] = []
    version: int
    created_at: datetime
    updated_at: datetime

    assignment: AssignmentBrief | None = None
    student: UserSummary | None = None

    class Config:
        from_attributes = True


class SubmissionPage(BaseModel):
    items: list[SubmissionRead]
    total: int
    skip: int
    limit: int | None = None

    class Config:
        from_attributes = True


class SubmissionFilters(BaseModel):
    assignment_id: int | None = None
    status: str | None = None
    is_late: bool | None = None
    skip: int = Field(default=0, ge=0)
    limit: int = Field(default=20, ge=1, le=100)
