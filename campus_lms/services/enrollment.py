import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from campus_lms.core.errors import Conflict, NotFound
from campus_lms.models.course import Course
from campus_lms.models.enrollment import Enrollment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActiveEnrollment:
    course_ids: list[int] = field(default_factory=list)
    semester: str | None = None
    academic_year: str | None = None


class EnrollmentService:
    def __init__(self, db: Session):
        self.db = db

    def is_enrolled(self, student_id: int, course_id: int) -> bool:
        return (
            self.db.query(Enrollment)
            .filter(
                Enrollment.student_id == student_id,
                Enrollment.course_id == course_id,
                Enrollment.status == "active",
            )
            .first()
            is not None
        )

    def active_enrollment(self, student_id: int) -> ActiveEnrollment | None:
        rows = (
            self.db.query(Enrollment)
            .filter(Enrollment.student_id == student_id, Enrollment.status == "active")
            .order_by(Enrollment.created_at.desc(), Enrollment.id.desc())
            .all()
        )
        if not rows:
            return None

        # term info comes from the most recent enrollment
        latest = rows[0]
        return ActiveEnrollment(
            course_ids=[r.course_id for r in rows],
            semester=latest.semester,
            academic_year=latest.academic_year,
        )

    def enroll(
        self,
        student_id: int,
        course_id: int,
        semester: str | None = None,
        academic_year: str | None = None,
    ) -> Enrollment:
        if self.db.get(Course, course_id) is None:
            raise NotFound("Course not found", course_id=course_id)

        enrollment = Enrollment(
            student_id=student_id,
            course_id=course_id,
            semester=semester,
            academic_year=academic_year,
        )
        self.db.add(enrollment)

        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict("Already enrolled", student_id=student_id, course_id=course_id)

        self.db.refresh(enrollment)
        logger.info("Student %s enrolled in course %s", student_id, course_id)
        return enrollment

    def list_for_student(self, student_id: int) -> list[Enrollment]:
        return self.db.query(Enrollment).filter(Enrollment.student_id == student_id).all()
