"""FastAPI dependencies: identity, file storage, clock and the lifecycle services.

Identity is issued elsewhere; requests carry ``X-User-Id`` and ``X-User-Role``
and we only check them against the users table.
"""

from functools import lru_cache

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from campus_lms.core.clock import utcnow
from campus_lms.core.config import settings
from campus_lms.core.permissions import Actor, Role
from campus_lms.db.session import get_db
from campus_lms.models.user import User
from campus_lms.services.assignment_lifecycle import AssignmentLifecycle
from campus_lms.services.enrollment import EnrollmentService
from campus_lms.services.file_storage import FileStorage, build_file_storage
from campus_lms.services.statistics import StatisticsAggregator
from campus_lms.services.submission_lifecycle import SubmissionLifecycle


def get_current_actor(
    x_user_id: int | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> Actor:
    if x_user_id is None or not x_user_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing identity headers",
        )

    user = db.get(User, x_user_id)
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown user",
        )
    if user.role != x_user_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Role does not match user",
        )

    return Actor(id=user.id, role=Role(user.role))


def require_roles(*roles: Role):
    def checker(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {', '.join(r.value for r in roles)}",
            )
        return actor

    return checker


@lru_cache
def get_file_storage() -> FileStorage:
    return build_file_storage(settings)


def get_clock():
    return utcnow


def get_enrollment_service(db: Session = Depends(get_db)) -> EnrollmentService:
    return EnrollmentService(db)


def get_statistics(db: Session = Depends(get_db), clock=Depends(get_clock)) -> StatisticsAggregator:
    return StatisticsAggregator(db, settings=settings, clock=clock)


def get_assignment_lifecycle(
    db: Session = Depends(get_db),
    storage: FileStorage = Depends(get_file_storage),
    clock=Depends(get_clock),
) -> AssignmentLifecycle:
    return AssignmentLifecycle(db, storage=storage, settings=settings, clock=clock)


def get_submission_lifecycle(
    db: Session = Depends(get_db),
    storage: FileStorage = Depends(get_file_storage),
    clock=Depends(get_clock),
) -> SubmissionLifecycle:
    return SubmissionLifecycle(db, storage=storage, settings=settings, clock=clock)
