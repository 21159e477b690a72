import logging

from sqlalchemy.orm import Session

from campus_lms.core.config import settings
from campus_lms.db.base import Base, User
from campus_lms.db.session import SessionLocal, engine

logger = logging.getLogger(__name__)


def init_db() -> None:
    Base.metadata.create_all(bind=engine)

    if settings.BOOTSTRAP_ADMIN_EMAIL:
        db = SessionLocal()
        try:
            ensure_admin(db, settings.BOOTSTRAP_ADMIN_EMAIL)
        finally:
            db.close()


def ensure_admin(db: Session, email: str) -> User:
    user = db.query(User).filter(User.email == email).first()
    if user:
        return user

    user = User(email=email, first_name="Admin", role="admin")
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Bootstrap admin created: %s (id=%s)", email, user.id)
    return user
