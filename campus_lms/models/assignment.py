from sqlalchemy import JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import relationship

from campus_lms.core.clock import as_utc, utcnow
from campus_lms.db.base_class import Base


class Assignment(Base):
    __tablename__ = "assignments"

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, index=True)
    faculty_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    last_modified_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    assignment_type = Column(String(32), nullable=False, default="Homework", index=True)
    difficulty = Column(String(16), nullable=False, default="Medium")
    estimated_time = Column(Float, nullable=True)  # hours
    tags = Column(JSON, nullable=False, default=list)

    total_points = Column(Float, nullable=False)
    grading_criteria = Column(JSON, nullable=False, default=list)  # [{criterion, max_points, description}]
    requirements = Column(JSON, nullable=False, default=dict)

    due_date = Column(DateTime(timezone=True), nullable=False, index=True)
    extended_due_date = Column(DateTime(timezone=True), nullable=True)

    status = Column(String(32), nullable=False, default="draft", index=True)
    is_visible = Column(Boolean, nullable=False, default=False)

    files = Column(JSON, nullable=False, default=list)  # [{name, url, size, type, uploaded_at}]
    history = Column(JSON, nullable=False, default=list)

    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __mapper_args__ = {"version_id_col": version}

    course = relationship("Course", back_populates="assignments")
    faculty = relationship("User", foreign_keys=[faculty_id])
    creator = relationship("User", foreign_keys=[created_by])

    submissions = relationship("Submission", back_populates="assignment")

    @property
    def effective_due_date(self):
        return as_utc(self.extended_due_date or self.due_date)

    @property
    def is_overdue(self) -> bool:
        due = self.effective_due_date
        return due is not None and utcnow() > due
