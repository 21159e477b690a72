import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from campus_lms.core.deps import get_current_actor, require_roles
from campus_lms.core.permissions import Actor, Role
from campus_lms.db.session import get_db
from campus_lms.models.user import User
from campus_lms.schemas.user import UserCreate, UserRead

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_roles(Role.ADMIN)),
):
    user = User(
        email=payload.email.lower(),
        first_name=payload.first_name,
        last_name=payload.last_name,
        role=payload.role,
    )
    db.add(user)

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Email already registered")

    db.refresh(user)
    logger.info("User %s (%s) created by admin %s", user.id, user.role, admin.id)
    return user


@router.get("/me", response_model=UserRead)
def read_me(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return db.get(User, actor.id)
