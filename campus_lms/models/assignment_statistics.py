from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer

from campus_lms.db.base_class import Base


class AssignmentStatistics(Base):
    """Cached submission summary for one assignment.

    Lives outside the versioned ``assignments`` row so that recomputes are
    last-writer-wins and never collide with edits to the assignment itself.
    """

    __tablename__ = "assignment_statistics"

    assignment_id = Column(
        Integer, ForeignKey("assignments.id", ondelete="CASCADE"), primary_key=True
    )
    summary = Column(JSON, nullable=False, default=dict)
    computed_at = Column(DateTime(timezone=True), nullable=False)
