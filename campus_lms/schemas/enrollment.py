from datetime import datetime

from pydantic import BaseModel, Field


class EnrollmentCreate(BaseModel):
    course_id: int
    # only admins may enroll someone else
    student_id: int | None = None
    semester: str | None = Field(default=None, max_length=20)
    academic_year: str | None = Field(default=None, max_length=20)


class EnrollmentOut(BaseModel):
    id: int
    student_id: int
    course_id: int
    semester: str | None = None
    academic_year: str | None = None
    status: str
    created_at: datetime

    class Config:
        from_attributes = True
