from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from campus_lms.core.states import AssignmentStatus
from campus_lms.schemas.common import CourseSummary, HistoryEntryRead, UserSummary
from campus_lms.services.file_rules import normalize_file_types

AssignmentType = Literal["Homework", "Project", "Quiz", "Exam", "Lab", "Presentation", "Essay", "Research"]
Difficulty = Literal["Easy", "Medium", "Hard", "Expert"]


def _normalize_tags(tags: list[str]) -> list[str]:
    result: list[str] = []
    for tag in tags:
        tag = tag.strip().lower()
        if not tag:
            continue
        if len(tag) > 50:
            raise ValueError("tags must be at most 50 characters")
        if tag not in result:
            result.append(tag)
    return result


class GradingCriterion(BaseModel):
    criterion: str = Field(min_length=1, max_length=100)
    max_points: float = Field(ge=0)
    description: str | None = Field(default=None, max_length=500)


class AssignmentRequirements(BaseModel):
    max_submissions: int = Field(default=1, ge=1)
    allow_late_submission: bool = False
    late_penalty_percent: float = Field(default=0, ge=0, le=100)
    max_file_size_mb: float = Field(default=10, ge=1)
    allowed_file_types: list[str] = Field(default_factory=list)

    @field_validator("allowed_file_types")
    @classmethod
    def lower_case_extensions(cls, v: list[str]) -> list[str]:
        return normalize_file_types(v)


class AssignmentFile(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    url: str = Field(min_length=1)
    size: int | None = Field(default=None, ge=0)
    type: str | None = None
    uploaded_at: datetime | None = None


class AssignmentCreate(BaseModel):
    course_id: int
    # defaults to the course's faculty member
    faculty_id: int | None = None

    title: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    assignment_type: AssignmentType = "Homework"
    difficulty: Difficulty = "Medium"
    estimated_time: float | None = Field(default=None, ge=0.5, le=100)
    tags: list[str] = Field(default_factory=list)

    total_points: float = Field(ge=1, le=1000)
    grading_criteria: list[GradingCriterion] = Field(default_factory=list)
    requirements: AssignmentRequirements = Field(default_factory=AssignmentRequirements)

    due_date: datetime
    extended_due_date: datetime | None = None

    files: list[AssignmentFile] = Field(default_factory=list)

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v: list[str]) -> list[str]:
        return _normalize_tags(v)


class AssignmentRequirementsPatch(BaseModel):
    max_submissions: int | None = Field(default=None, ge=1)
    allow_late_submission: bool | None = None
    late_penalty_percent: float | None = Field(default=None, ge=0, le=100)
    max_file_size_mb: float | None = Field(default=None, ge=1)
    allowed_file_types: list[str] | None = None

    @field_validator("allowed_file_types")
    @classmethod
    def lower_case_extensions(cls, v: list[str] | None) -> list[str] | None:
        return None if v is None else normalize_file_types(v)


class AssignmentUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    assignment_type: AssignmentType | None = None
    difficulty: Difficulty | None = None
    estimated_time: float | None = Field(default=None, ge=0.5, le=100)
    tags: list[str] | None = None
    is_visible: bool | None = None

    total_points: float | None = Field(default=None, ge=1, le=1000)
    grading_criteria: list[GradingCriterion] | None = None
    requirements: AssignmentRequirementsPatch | None = None

    due_date: datetime | None = None
    extended_due_date: datetime | None = None

    expected_version: int | None = None

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v: list[str] | None) -> list[str] | None:
        return None if v is None else _normalize_tags(v)


class AssignmentTransition(BaseModel):
    status: AssignmentStatus
    expected_version: int | None = None


class AssignmentRead(BaseModel):
    id: int
    course_id: int
    faculty_id: int
    created_by: int
    last_modified_by: int | None = None

    title: str
    description: str | None = None
    assignment_type: str
    difficulty: str
    estimated_time: float | None = None
    tags: list[str] = []

    total_points: float
    grading_criteria: list[GradingCriterion] = []
    requirements: AssignmentRequirements

    due_date: datetime
    extended_due_date: datetime | None = None
    effective_due_date: datetime
    is_overdue: bool

    status: str
    is_visible: bool
    files: list[AssignmentFile] = []
    history: list[HistoryEntryRead] = []
    version: int

    created_at: datetime
    updated_at: datetime

    course: CourseSummary | None = None
    faculty: UserSummary | None = None

    class Config:
        from_attributes = True


class StudentInfo(BaseModel):
    semester: str | None = None
    academic_year: str | None = None
    course_ids: list[int] = []

    class Config:
        from_attributes = True


class AssignmentPage(BaseModel):
    items: list[AssignmentRead]
    total: int
    skip: int
    limit: int | None = None
    student_info: StudentInfo | None = None

    class Config:
        from_attributes = True


class AssignmentFilters(BaseModel):
    course_id: int | None = None
    assignment_type: AssignmentType | None = None
    difficulty: Difficulty | None = None
    tags: list[str] = Field(default_factory=list)
    due_from: datetime | None = None
    due_to: datetime | None = None
    search: str | None = None
    overdue_only: bool = False
    skip: int = Field(default=0, ge=0)
    limit: int = Field(default=20, ge=1, le=100)


class AssignmentOverview(BaseModel):
    total: int
    by_status: dict[str, int]
    by_type: dict[str, int]
    by_difficulty: dict[str, int]
    overdue: int
