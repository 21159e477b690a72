"""Thin persistence layer over a request-scoped SQLAlchemy session.

``filters`` accepted by :meth:`Repository.find` and :meth:`Repository.count`::

    {"status": "published"}                 equality
    {"status": ["submitted", "late"]}       IN
    {"due_date": ("gte", now)}              comparison (gt, gte, lt, lte, ne)
    {"grade": None}                         IS NULL

Anything the mapping cannot express goes through ``where`` as plain
SQLAlchemy expressions.
"""

import logging
import operator
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generic, Iterable, Sequence, TypeVar

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.exc import StaleDataError

from campus_lms.core.errors import Conflict, NotFound
from campus_lms.db.base_class import Base
from campus_lms.models.assignment import Assignment
from campus_lms.models.assignment_statistics import AssignmentStatistics
from campus_lms.models.course import Course
from campus_lms.models.enrollment import Enrollment
from campus_lms.models.submission import Submission
from campus_lms.models.user import User

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=Base)

_OPERATORS = {
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
    "ne": operator.ne,
}


@dataclass
class Page:
    items: list
    total: int
    skip: int = 0
    limit: int | None = None
    student_info: Any = None


class Repository(Generic[ModelT]):
    model: type[ModelT]
    label: str = "Record"

    def __init__(self, db: Session):
        self.db = db

    # -- reads -----------------------------------------------------------

    def _query(self, populate: Iterable[str] = ()):
        q = self.db.query(self.model)
        for name in populate:
            q = q.options(selectinload(getattr(self.model, name)))
        return q

    def _column(self, name: str):
        column = getattr(self.model, name, None)
        if column is None:
            raise ValueError(f"{self.model.__name__} has no field {name!r}")
        return column

    def _apply_filters(self, q, filters: dict[str, Any] | None, where: Sequence = ()):
        for name, value in (filters or {}).items():
            column = self._column(name)
            if value is None:
                q = q.filter(column.is_(None))
            elif isinstance(value, (list, set, frozenset)):
                q = q.filter(column.in_(list(value)))
            elif isinstance(value, tuple):
                op, operand = value
                if op not in _OPERATORS:
                    raise ValueError(f"Unsupported filter operator {op!r}")
                q = q.filter(_OPERATORS[op](column, operand))
            else:
                q = q.filter(column == value)
        for clause in where:
            q = q.filter(clause)
        return q

    def find_by_id(self, id: int, populate: Iterable[str] = ()) -> ModelT | None:
        return self._query(populate).filter(self.model.id == id).first()

    def require(self, id: int, populate: Iterable[str] = ()) -> ModelT:
        obj = self.find_by_id(id, populate)
        if obj is None:
            raise NotFound(f"{self.label} not found", id=id)
        return obj

    def find(
        self,
        filters: dict[str, Any] | None = None,
        sort: Sequence[str] = (),
        skip: int = 0,
        limit: int | None = None,
        populate: Iterable[str] = (),
        where: Sequence = (),
    ) -> list[ModelT]:
        """``sort`` entries are field names, prefixed with ``-`` for descending."""
        q = self._apply_filters(self._query(populate), filters, where)

        for key in sort:
            desc = key.startswith("-")
            column = self._column(key.lstrip("-"))
            q = q.order_by(column.desc() if desc else column.asc())

        if skip:
            q = q.offset(skip)
        if limit is not None:
            q = q.limit(limit)
        return q.all()

    def count(self, filters: dict[str, Any] | None = None, where: Sequence = ()) -> int:
        return self._apply_filters(self.db.query(self.model), filters, where).count()

    # -- writes ----------------------------------------------------------

    def save(self, obj: ModelT) -> ModelT:
        self.db.add(obj)
        try:
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            raise Conflict(f"{self.label} was modified concurrently, reload and retry")
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(obj)
        return obj

    def create(self, values: dict[str, Any] | ModelT) -> ModelT:
        obj = self.model(**values) if isinstance(values, dict) else values
        return self.save(obj)

    def update_by_id(
        self,
        id: int,
        values: dict[str, Any],
        expected_version: int | None = None,
    ) -> ModelT:
        obj = self.require(id)
        check_version(obj, expected_version, self.label)
        for key, value in values.items():
            self._column(key)
            setattr(obj, key, value)
        return self.save(obj)

    def delete(self, obj: ModelT) -> None:
        self.db.delete(obj)
        try:
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            raise Conflict(f"{self.label} was modified concurrently, reload and retry")
        except Exception:
            self.db.rollback()
            raise

    def delete_by_id(self, id: int) -> bool:
        obj = self.find_by_id(id)
        if obj is None:
            return False
        self.delete(obj)
        return True


def check_version(obj, expected_version: int | None, label: str = "Record") -> None:
    if expected_version is not None and obj.version != expected_version:
        raise Conflict(
            f"{label} version mismatch",
            expected_version=expected_version,
            current_version=obj.version,
        )


class UserRepository(Repository[User]):
    model = User
    label = "User"

    def find_by_email(self, email: str) -> User | None:
        return self.db.query(User).filter(User.email == email).first()


class CourseRepository(Repository[Course]):
    model = Course
    label = "Course"


class EnrollmentRepository(Repository[Enrollment]):
    model = Enrollment
    label = "Enrollment"


class AssignmentRepository(Repository[Assignment]):
    model = Assignment
    label = "Assignment"

    def ids_for_faculty(self, faculty_id: int) -> list[int]:
        rows = self.db.query(Assignment.id).filter(Assignment.faculty_id == faculty_id).all()
        return [r.id for r in rows]


class SubmissionRepository(Repository[Submission]):
    model = Submission
    label = "Submission"

    def count_for_student(self, assignment_id: int, student_id: int) -> int:
        return self.count({"assignment_id": assignment_id, "student_id": student_id})

    def last_number(self, assignment_id: int, student_id: int) -> int:
        """Highest submission number used so far, 0 when none."""
        value = (
            self.db.query(func.max(Submission.submission_number))
            .filter(Submission.assignment_id == assignment_id, Submission.student_id == student_id)
            .scalar()
        )
        return value or 0

    def has_any(self, assignment_id: int) -> bool:
        return (
            self.db.query(Submission.id)
            .filter(Submission.assignment_id == assignment_id)
            .first()
            is not None
        )


class StatisticsRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, assignment_id: int) -> AssignmentStatistics | None:
        return self.db.get(AssignmentStatistics, assignment_id)

    def upsert(self, assignment_id: int, summary: dict[str, Any], computed_at: datetime) -> AssignmentStatistics:
        # last writer wins; a racing first insert falls back to an update
        for _ in range(2):
            row = self.get(assignment_id)
            if row is None:
                row = AssignmentStatistics(assignment_id=assignment_id)
                self.db.add(row)
            row.summary = dict(summary)
            row.computed_at = computed_at
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                continue
            self.db.refresh(row)
            return row
        raise Conflict("Could not store statistics", assignment_id=assignment_id)

    def discard(self, assignment_id: int) -> None:
        """Stage removal of the cached row; committed with the caller's transaction."""
        self.db.query(AssignmentStatistics).filter(
            AssignmentStatistics.assignment_id == assignment_id
        ).delete(synchronize_session=False)
