from datetime import datetime

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile, status

from campus_lms.core.deps import get_assignment_lifecycle, get_current_actor
from campus_lms.core.permissions import Actor
from campus_lms.schemas.assignment import (
    AssignmentCreate,
    AssignmentFilters,
    AssignmentOverview,
    AssignmentPage,
    AssignmentRead,
    AssignmentTransition,
    AssignmentType,
    AssignmentUpdate,
    Difficulty,
)
from campus_lms.schemas.statistics import AssignmentStatisticsRead
from campus_lms.services.assignment_lifecycle import AssignmentLifecycle
from campus_lms.services.file_storage import Upload

router = APIRouter()


def assignment_filters(
    course_id: int | None = None,
    assignment_type: AssignmentType | None = None,
    difficulty: Difficulty | None = None,
    tags: list[str] = Query(default=[]),
    due_from: datetime | None = None,
    due_to: datetime | None = None,
    search: str | None = None,
    overdue_only: bool = False,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=20, ge=1, le=100),
) -> AssignmentFilters:
    return AssignmentFilters(
        course_id=course_id,
        assignment_type=assignment_type,
        difficulty=difficulty,
        tags=tags,
        due_from=due_from,
        due_to=due_to,
        search=search,
        overdue_only=overdue_only,
        skip=skip,
        limit=limit,
    )


@router.post("/assignments", response_model=AssignmentRead, status_code=status.HTTP_201_CREATED)
def create_assignment(
    payload: AssignmentCreate,
    actor: Actor = Depends(get_current_actor),
    lifecycle: AssignmentLifecycle = Depends(get_assignment_lifecycle),
):
    return lifecycle.create(payload, actor)


# declared before /assignments/{assignment_id} so "overview" is not taken for an id
@router.get("/assignments/overview", response_model=AssignmentOverview)
def assignment_overview(
    actor: Actor = Depends(get_current_actor),
    lifecycle: AssignmentLifecycle = Depends(get_assignment_lifecycle),
):
    return lifecycle.overview(actor)


@router.get("/courses/{course_id}/assignments", response_model=list[AssignmentRead])
def list_course_assignments(
    course_id: int,
    actor: Actor = Depends(get_current_actor),
    lifecycle: AssignmentLifecycle = Depends(get_assignment_lifecycle),
):
    return lifecycle.list_for_course(course_id, actor)


@router.get("/students/{student_id}/assignments", response_model=AssignmentPage)
def list_student_assignments(
    student_id: int,
    filters: AssignmentFilters = Depends(assignment_filters),
    actor: Actor = Depends(get_current_actor),
    lifecycle: AssignmentLifecycle = Depends(get_assignment_lifecycle),
):
    return lifecycle.list_for_student(student_id, actor, filters)


@router.get("/assignments/{assignment_id}", response_model=AssignmentRead)
def get_assignment(
    assignment_id: int,
    actor: Actor = Depends(get_current_actor),
    lifecycle: AssignmentLifecycle = Depends(get_assignment_lifecycle),
):
    return lifecycle.get(assignment_id, actor)


@router.patch("/assignments/{assignment_id}", response_model=AssignmentRead)
def update_assignment(
    assignment_id: int,
    payload: AssignmentUpdate,
    actor: Actor = Depends(get_current_actor),
    lifecycle: AssignmentLifecycle = Depends(get_assignment_lifecycle),
):
    return lifecycle.update(assignment_id, payload, actor)


@router.post("/assignments/{assignment_id}/transition", response_model=AssignmentRead)
def transition_assignment(
    assignment_id: int,
    payload: AssignmentTransition,
    actor: Actor = Depends(get_current_actor),
    lifecycle: AssignmentLifecycle = Depends(get_assignment_lifecycle),
):
    return lifecycle.transition(assignment_id, payload.status, actor, expected_version=payload.expected_version)


@router.delete("/assignments/{assignment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_assignment(
    assignment_id: int,
    actor: Actor = Depends(get_current_actor),
    lifecycle: AssignmentLifecycle = Depends(get_assignment_lifecycle),
):
    lifecycle.delete(assignment_id, actor)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/assignments/{assignment_id}/files",
    response_model=AssignmentRead,
    status_code=status.HTTP_201_CREATED,
)
def upload_assignment_file(
    assignment_id: int,
    file: UploadFile = File(...),
    actor: Actor = Depends(get_current_actor),
    lifecycle: AssignmentLifecycle = Depends(get_assignment_lifecycle),
):
    upload = Upload(filename=file.filename or "file", data=file.file.read(), content_type=file.content_type)
    return lifecycle.add_file(assignment_id, upload, actor)


@router.delete("/assignments/{assignment_id}/files", response_model=AssignmentRead)
def remove_assignment_file(
    assignment_id: int,
    url: str = Query(..., min_length=1),
    actor: Actor = Depends(get_current_actor),
    lifecycle: AssignmentLifecycle = Depends(get_assignment_lifecycle),
):
    return lifecycle.remove_file(assignment_id, url, actor)


@router.get("/assignments/{assignment_id}/statistics", response_model=AssignmentStatisticsRead)
def assignment_statistics(
    assignment_id: int,
    actor: Actor = Depends(get_current_actor),
    lifecycle: AssignmentLifecycle = Depends(get_assignment_lifecycle),
):
    return lifecycle.statistics_for(assignment_id, actor)
