import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from campus_lms.core.deps import get_current_actor, require_roles
from campus_lms.core.permissions import Actor, Role
from campus_lms.db.session import get_db
from campus_lms.models.course import Course
from campus_lms.models.enrollment import Enrollment
from campus_lms.models.user import User
from campus_lms.schemas.course import CourseCreate, CourseRead

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=list[CourseRead])
def list_courses(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return db.query(Course).order_by(Course.code.asc()).all()


@router.post("/", response_model=CourseRead, status_code=status.HTTP_201_CREATED)
def create_course(
    payload: CourseCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(Role.ADMIN, Role.FACULTY)),
):
    faculty_id = actor.id
    if payload.faculty_id is not None and payload.faculty_id != actor.id:
        if not actor.is_admin:
            raise HTTPException(status_code=403, detail="Faculty can only create their own courses")
        faculty = db.get(User, payload.faculty_id)
        if not faculty or faculty.role != Role.FACULTY.value:
            raise HTTPException(status_code=400, detail="faculty_id must reference a faculty member")
        faculty_id = faculty.id

    course = Course(
        code=payload.code,
        name=payload.name,
        description=payload.description,
        faculty_id=faculty_id,
    )
    db.add(course)

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Course code already exists")

    db.refresh(course)
    logger.info("Course %s (%s) created by user %s", course.id, course.code, actor.id)
    return course


@router.get("/me", response_model=list[CourseRead])
def my_courses(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    if actor.role == Role.STUDENT:
        return (
            db.query(Course)
            .join(Enrollment, Enrollment.course_id == Course.id)
            .filter(Enrollment.student_id == actor.id, Enrollment.status == "active")
            .all()
        )
    return db.query(Course).filter(Course.faculty_id == actor.id).all()


@router.get("/{course_id}", response_model=CourseRead)
def get_course(
    course_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    course = db.get(Course, course_id)
    if not course:
        raise HTTPException(status_code=404, detail="Course not found")
    return course
