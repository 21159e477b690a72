from datetime import datetime

from pydantic import BaseModel, EmailStr


class HistoryEntryRead(BaseModel):
    action: str
    at: datetime
    performed_by: int | None = None
    details: str | None = None


class UserSummary(BaseModel):
    id: int
    email: EmailStr
    first_name: str | None = None
    last_name: str | None = None
    role: str

    class Config:
        from_attributes = True


class CourseSummary(BaseModel):
    id: int
    code: str
    name: str

    class Config:
        from_attributes = True
