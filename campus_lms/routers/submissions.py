from fastapi import APIRouter, Depends, File, Query, Response, UploadFile, status

from campus_lms.core.deps import get_current_actor, get_statistics, get_submission_lifecycle
from campus_lms.core.permissions import Actor
from campus_lms.schemas.statistics import StatisticsSummary
from campus_lms.schemas.submission import (
    GradeSubmission,
    MarkLate,
    PlagiarismCheckIn,
    RejectSubmission,
    ReturnSubmission,
    SubmissionCreate,
    SubmissionFilters,
    SubmissionPage,
    SubmissionRead,
    VerifyIn,
)
from campus_lms.services.file_storage import Upload
from campus_lms.services.statistics import StatisticsAggregator
from campus_lms.services.submission_lifecycle import SubmissionLifecycle

router = APIRouter()


@router.post(
    "/assignments/{assignment_id}/submissions",
    response_model=SubmissionRead,
    status_code=status.HTTP_201_CREATED,
)
def submit_assignment(
    assignment_id: int,
    payload: SubmissionCreate,
    actor: Actor = Depends(get_current_actor),
    lifecycle: SubmissionLifecycle = Depends(get_submission_lifecycle),
):
    student_id = payload.student_id if payload.student_id is not None else actor.id
    return lifecycle.submit(
        assignment_id,
        student_id,
        payload.files,
        payload.student_comments,
        actor=actor,
    )


@router.get("/assignments/{assignment_id}/submissions", response_model=list[SubmissionRead])
def list_submissions_for_assignment(
    assignment_id: int,
    actor: Actor = Depends(get_current_actor),
    lifecycle: SubmissionLifecycle = Depends(get_submission_lifecycle),
):
    return lifecycle.list_for_assignment(assignment_id, actor)


@router.get("/students/{student_id}/submissions", response_model=SubmissionPage)
def list_student_submissions(
    student_id: int,
    assignment_id: int | None = None,
    status_filter: str | None = Query(default=None, alias="status"),
    is_late: bool | None = None,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=20, ge=1, le=100),
    actor: Actor = Depends(get_current_actor),
    lifecycle: SubmissionLifecycle = Depends(get_submission_lifecycle),
):
    filters = SubmissionFilters(
        assignment_id=assignment_id,
        status=status_filter,
        is_late=is_late,
        skip=skip,
        limit=limit,
    )
    return lifecycle.list_for_student(student_id, actor, filters)


# fixed paths first so they are not parsed as a submission id
@router.get("/submissions/late", response_model=list[SubmissionRead])
def list_late_submissions(
    actor: Actor = Depends(get_current_actor),
    lifecycle: SubmissionLifecycle = Depends(get_submission_lifecycle),
):
    return lifecycle.list_late(actor)


@router.get("/submissions/ungraded", response_model=list[SubmissionRead])
def list_ungraded_submissions(
    actor: Actor = Depends(get_current_actor),
    lifecycle: SubmissionLifecycle = Depends(get_submission_lifecycle),
):
    return lifecycle.list_ungraded(actor)


@router.get("/submissions/flagged", response_model=list[SubmissionRead])
def list_flagged_submissions(
    actor: Actor = Depends(get_current_actor),
    lifecycle: SubmissionLifecycle = Depends(get_submission_lifecycle),
):
    return lifecycle.list_flagged(actor)


@router.get("/submissions/statistics", response_model=StatisticsSummary)
def submission_statistics(
    actor: Actor = Depends(get_current_actor),
    statistics: StatisticsAggregator = Depends(get_statistics),
):
    return statistics.summarize_scope(actor)


@router.get("/submissions/{submission_id}", response_model=SubmissionRead)
def get_submission(
    submission_id: int,
    actor: Actor = Depends(get_current_actor),
    lifecycle: SubmissionLifecycle = Depends(get_submission_lifecycle),
):
    return lifecycle.get(submission_id, actor)


@router.post("/submissions/{submission_id}/review", response_model=SubmissionRead)
def start_review(
    submission_id: int,
    actor: Actor = Depends(get_current_actor),
    lifecycle: SubmissionLifecycle = Depends(get_submission_lifecycle),
):
    return lifecycle.start_review(submission_id, actor)


@router.post("/submissions/{submission_id}/grade", response_model=SubmissionRead)
def grade_submission(
    submission_id: int,
    payload: GradeSubmission,
    actor: Actor = Depends(get_current_actor),
    lifecycle: SubmissionLifecycle = Depends(get_submission_lifecycle),
):
    return lifecycle.grade(submission_id, payload, actor)


@router.post("/submissions/{submission_id}/return", response_model=SubmissionRead)
def return_submission(
    submission_id: int,
    payload: ReturnSubmission,
    actor: Actor = Depends(get_current_actor),
    lifecycle: SubmissionLifecycle = Depends(get_submission_lifecycle),
):
    return lifecycle.return_for_revision(submission_id, payload.feedback, actor, payload.instructor_notes)


@router.post("/submissions/{submission_id}/reject", response_model=SubmissionRead)
def reject_submission(
    submission_id: int,
    payload: RejectSubmission,
    actor: Actor = Depends(get_current_actor),
    lifecycle: SubmissionLifecycle = Depends(get_submission_lifecycle),
):
    return lifecycle.reject(submission_id, payload.reason, actor)


@router.post("/submissions/{submission_id}/late", response_model=SubmissionRead)
def mark_submission_late(
    submission_id: int,
    payload: MarkLate,
    actor: Actor = Depends(get_current_actor),
    lifecycle: SubmissionLifecycle = Depends(get_submission_lifecycle),
):
    return lifecycle.mark_late(submission_id, payload.penalty_percent, actor)


@router.post("/submissions/{submission_id}/plagiarism", response_model=SubmissionRead)
def check_plagiarism(
    submission_id: int,
    payload: PlagiarismCheckIn,
    actor: Actor = Depends(get_current_actor),
    lifecycle: SubmissionLifecycle = Depends(get_submission_lifecycle),
):
    return lifecycle.check_plagiarism(submission_id, payload.similarity_score, payload.report_url, actor)


@router.post("/submissions/{submission_id}/verify", response_model=SubmissionRead)
def verify_submission(
    submission_id: int,
    payload: VerifyIn,
    actor: Actor = Depends(get_current_actor),
    lifecycle: SubmissionLifecycle = Depends(get_submission_lifecycle),
):
    return lifecycle.verify(submission_id, payload.notes, actor)


@router.post(
    "/submissions/{submission_id}/files",
    response_model=SubmissionRead,
    status_code=status.HTTP_201_CREATED,
)
def upload_submission_file(
    submission_id: int,
    file: UploadFile = File(...),
    actor: Actor = Depends(get_current_actor),
    lifecycle: SubmissionLifecycle = Depends(get_submission_lifecycle),
):
    upload = Upload(filename=file.filename or "file", data=file.file.read(), content_type=file.content_type)
    return lifecycle.add_file(submission_id, upload, actor)


@router.delete("/submissions/{submission_id}/files", response_model=SubmissionRead)
def remove_submission_file(
    submission_id: int,
    url: str = Query(..., min_length=1),
    actor: Actor = Depends(get_current_actor),
    lifecycle: SubmissionLifecycle = Depends(get_submission_lifecycle),
):
    return lifecycle.remove_file(submission_id, url, actor)


@router.delete("/submissions/{submission_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_submission(
    submission_id: int,
    actor: Actor = Depends(get_current_actor),
    lifecycle: SubmissionLifecycle = Depends(get_submission_lifecycle),
):
    lifecycle.delete(submission_id, actor)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
