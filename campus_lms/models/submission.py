from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from campus_lms.db.base_class import Base
from campus_lms.services.grading_criteria import letter_for_score
from campus_lms.services.late_penalty import calculated_score


class Submission(Base):
    __tablename__ = "submissions"

    id = Column(Integer, primary_key=True, index=True)

    assignment_id = Column(Integer, ForeignKey("assignments.id"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    submission_number = Column(Integer, nullable=False, default=1)

    files = Column(JSON, nullable=False, default=list)  # [{name, url, size, type, uploaded_at}]
    student_comments = Column(Text, nullable=True)
    instructor_notes = Column(Text, nullable=True)

    submitted_at = Column(DateTime(timezone=True), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="submitted", index=True)

    is_late = Column(Boolean, nullable=False, default=False, index=True)
    late_penalty_percent = Column(Float, nullable=False, default=0)

    # Grading fields (nullable until graded)
    grade = Column(String(12), nullable=True)
    numerical_score = Column(Float, nullable=True)
    criteria_scores = Column(JSON, nullable=False, default=list)
    feedback = Column(JSON, nullable=False, default=dict)
    reviewed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)

    plagiarism_check = Column(JSON, nullable=False, default=dict)
    verification = Column(JSON, nullable=False, default=dict)

    history = Column(JSON, nullable=False, default=list)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "assignment_id",
            "student_id",
            "submission_number",
            name="uq_submission_assignment_student_number",
        ),
    )
    __mapper_args__ = {"version_id_col": version}

    assignment = relationship("Assignment", back_populates="submissions")
    student = relationship("User", foreign_keys=[student_id])
    reviewer = relationship("User", foreign_keys=[reviewed_by])

    @property
    def calculated_score(self) -> float | None:
        return calculated_score(
            self.numerical_score,
            self.criteria_scores or [],
            is_late=bool(self.is_late),
            penalty_percent=self.late_penalty_percent or 0,
        )

    @property
    def grade_letter(self) -> str | None:
        if self.grade:
            return self.grade
        if self.numerical_score is None:
            return None
        return letter_for_score(self.numerical_score)

    @property
    def is_flagged(self) -> bool:
        return bool((self.plagiarism_check or {}).get("flagged"))

    @property
    def is_verified(self) -> bool:
        return bool((self.verification or {}).get("is_verified"))
