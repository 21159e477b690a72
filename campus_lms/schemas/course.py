from pydantic import BaseModel, Field


class CourseCreate(BaseModel):
    code: str = Field(min_length=1, max_length=20)
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    # admins create courses for a faculty member; faculty always own what they create
    faculty_id: int | None = None


class CourseRead(BaseModel):
    id: int
    code: str
    name: str
    description: str | None = None
    faculty_id: int

    class Config:
        from_attributes = True
