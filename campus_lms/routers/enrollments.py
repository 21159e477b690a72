from fastapi import APIRouter, Depends, HTTPException, status

from campus_lms.core.deps import get_current_actor, get_enrollment_service
from campus_lms.core.permissions import Actor, Role
from campus_lms.schemas.enrollment import EnrollmentCreate, EnrollmentOut
from campus_lms.services.enrollment import EnrollmentService

router = APIRouter()


@router.post("", response_model=EnrollmentOut, status_code=status.HTTP_201_CREATED)
def enroll(
    payload: EnrollmentCreate,
    actor: Actor = Depends(get_current_actor),
    service: EnrollmentService = Depends(get_enrollment_service),
):
    student_id = payload.student_id if payload.student_id is not None else actor.id
    if student_id != actor.id and not actor.is_admin:
        raise HTTPException(status_code=403, detail="Only administrators can enroll other users")
    if student_id == actor.id and actor.role != Role.STUDENT:
        raise HTTPException(status_code=400, detail="Only students can be enrolled")

    return service.enroll(student_id, payload.course_id, payload.semester, payload.academic_year)


@router.get("/me", response_model=list[EnrollmentOut])
def my_enrollments(
    actor: Actor = Depends(get_current_actor),
    service: EnrollmentService = Depends(get_enrollment_service),
):
    return service.list_for_student(actor.id)
