import logging
from typing import Callable, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from campus_lms.core.clock import as_utc, utcnow
from campus_lms.core.config import Settings, settings as default_settings
from campus_lms.core.errors import Conflict, Forbidden, NotFound, ValidationError
from campus_lms.core.history import BoundedHistory
from campus_lms.core.permissions import Action, Actor, PermissionPolicy, ResourceContext, Role
from campus_lms.core.states import (
    SUBMISSION_TRANSITIONS,
    UNGRADED_STATUSES,
    AssignmentStatus,
    SubmissionStatus,
)
from campus_lms.models.assignment import Assignment
from campus_lms.models.submission import Submission
from campus_lms.repositories import AssignmentRepository, Page, SubmissionRepository, check_version
from campus_lms.schemas.assignment import AssignmentRequirements
from campus_lms.schemas.submission import GradeSubmission, SubmissionFeedback, SubmissionFile, SubmissionFilters
from campus_lms.services.enrollment import EnrollmentService
from campus_lms.services.file_rules import validate_files
from campus_lms.services.file_storage import FileStorage, Upload, release_files
from campus_lms.services.grading_criteria import criteria_percentage, letter_for_score, validate_criteria_scores
from campus_lms.services.late_penalty import assess
from campus_lms.services.statistics import StatisticsAggregator, scope_filters

logger = logging.getLogger(__name__)

SCORE_TOLERANCE = 0.01

_READ_POPULATE = ("assignment", "student")


class SubmissionLifecycle:
    def __init__(
        self,
        db: Session,
        *,
        storage: FileStorage,
        enrollment: EnrollmentService | None = None,
        statistics: StatisticsAggregator | None = None,
        policy: PermissionPolicy | None = None,
        settings: Settings = default_settings,
        clock: Callable = utcnow,
    ):
        self.db = db
        self.storage = storage
        self.enrollment = enrollment or EnrollmentService(db)
        self.statistics = statistics or StatisticsAggregator(db, settings=settings, clock=clock)
        self.policy = policy or PermissionPolicy()
        self.settings = settings
        self.clock = clock

        self.assignments = AssignmentRepository(db)
        self.submissions = SubmissionRepository(db)

    # -- helpers ---------------------------------------------------------

    def _load(
        self, submission_id: int, actor: Actor, action: Action, populate=()
    ) -> tuple[Submission, Assignment]:
        submission = self.submissions.require(submission_id, populate=populate)
        assignment = self.assignments.require(submission.assignment_id)
        self.policy.enforce(actor, action, ResourceContext.for_submission(submission, assignment))
        return submission, assignment

    def _load_for_update(
        self, submission_id: int, actor: Actor, action: Action
    ) -> tuple[Submission, Assignment]:
        submission, assignment = self._load(submission_id, actor, action)
        if assignment.status == AssignmentStatus.ARCHIVED.value:
            raise Conflict("The assignment is archived", assignment_id=assignment.id)
        return submission, assignment

    @staticmethod
    def _move(submission: Submission, target: SubmissionStatus) -> SubmissionStatus:
        current = SubmissionStatus(submission.status)
        if target not in SUBMISSION_TRANSITIONS[current]:
            raise ValidationError(
                f"Cannot move submission from {current.value} to {target.value}",
                current=current.value,
                target=target.value,
            )
        submission.status = target.value
        return current

    def _record(self, submission: Submission, action: str, actor: Actor, details: str | None = None) -> None:
        history = BoundedHistory(submission.history, capacity=self.settings.HISTORY_CAPACITY)
        history.record(action, performed_by=actor.id, details=details, at=self.clock())
        submission.history = history.to_list()

    @staticmethod
    def _requirements(assignment: Assignment) -> AssignmentRequirements:
        return AssignmentRequirements.model_validate(assignment.requirements or {})

    def _store(self, file: SubmissionFile | Upload, folder: str) -> tuple[dict, str | None]:
        """Return the JSON entry for a file and the url uploaded for it, if any."""
        now = self.clock().isoformat()
        if isinstance(file, Upload):
            stored = self.storage.upload(file.data, folder=folder, filename=file.filename)
            entry = {
                "name": file.filename,
                "url": stored.url,
                "size": stored.size,
                "type": file.content_type,
                "uploaded_at": now,
            }
            return entry, stored.url

        entry = file.model_dump(mode="json")
        entry["uploaded_at"] = entry.get("uploaded_at") or now
        return entry, None

    @staticmethod
    def _check_limit(count: int, requirements: AssignmentRequirements) -> None:
        if count >= requirements.max_submissions:
            raise ValidationError(
                f"Maximum number of submissions ({requirements.max_submissions}) reached",
                max_submissions=requirements.max_submissions,
            )

    # -- submit ----------------------------------------------------------

    def submit(
        self,
        assignment_id: int,
        student_id: int,
        files: Sequence[SubmissionFile | Upload],
        comments: str | None = None,
        now=None,
        *,
        actor: Actor,
    ) -> Submission:
        assignment = self.assignments.require(assignment_id)
        enrolled = self.enrollment.is_enrolled(student_id, assignment.course_id)
        self.policy.enforce(
            actor, Action.SUBMIT, ResourceContext.for_new_submission(assignment, student_id, enrolled)
        )
        if not enrolled:
            raise Forbidden("Student is not enrolled in this course", student_id=student_id)

        if assignment.status == AssignmentStatus.ARCHIVED.value:
            raise Conflict("The assignment is archived", assignment_id=assignment.id)
        if assignment.status != AssignmentStatus.PUBLISHED.value:
            raise ValidationError("Assignment is not open for submissions", status=assignment.status)

        requirements = self._requirements(assignment)
        count = self.submissions.count_for_student(assignment.id, student_id)
        self._check_limit(count, requirements)

        submitted_at = as_utc(now) or self.clock()
        late = assess(assignment.due_date, assignment.extended_due_date, requirements, submitted_at)
        if late.is_late and not requirements.allow_late_submission:
            raise ValidationError("The due date has passed and late submissions are not allowed")

        validate_files(files, requirements)

        folder = f"submissions/{assignment.id}/{student_id}"
        entries: list[dict] = []
        uploaded: list[str] = []
        try:
            for f in files:
                entry, url = self._store(f, folder)
                entries.append(entry)
                if url:
                    uploaded.append(url)
            submission = self._insert(
                assignment, student_id, count, entries, comments, submitted_at, late, requirements, actor
            )
        except Exception:
            release_files(self.storage, uploaded)
            raise

        logger.info(
            "Submission %s (#%s) created for assignment %s by student %s%s",
            submission.id,
            submission.submission_number,
            assignment.id,
            student_id,
            " [late]" if submission.is_late else "",
        )
        self.statistics.refresh(assignment.id)
        return submission

    def _insert(self, assignment, student_id, count, entries, comments, submitted_at, late, requirements, actor):
        # the unique constraint on (assignment, student, number) arbitrates concurrent submits;
        # count drives the limit, the highest existing number drives numbering
        assignment_id = assignment.id
        retries = self.settings.SUBMISSION_NUMBER_MAX_RETRIES
        for attempt in range(retries + 1):
            if attempt:
                count = self.submissions.count_for_student(assignment_id, student_id)
                self._check_limit(count, requirements)
            number = self.submissions.last_number(assignment_id, student_id) + 1

            submission = Submission(
                assignment_id=assignment_id,
                student_id=student_id,
                submission_number=number,
                files=list(entries),
                student_comments=comments,
                submitted_at=submitted_at,
                status=(SubmissionStatus.LATE if late.is_late else SubmissionStatus.SUBMITTED).value,
                is_late=late.is_late,
                late_penalty_percent=late.penalty_percent,
                created_by=actor.id,
                history=[],
            )
            self._record(submission, "submitted", actor, details=f"submission #{number}")
            try:
                return self.submissions.create(submission)
            except IntegrityError:
                logger.warning(
                    "Submission number %s already taken for assignment %s / student %s (attempt %s)",
                    number,
                    assignment_id,
                    student_id,
                    attempt + 1,
                )

        raise Conflict("Could not allocate a submission number, please retry")

    # -- review and grading ----------------------------------------------

    def start_review(self, submission_id: int, actor: Actor) -> Submission:
        submission, _ = self._load_for_update(submission_id, actor, Action.REVIEW_SUBMISSION)
        self._move(submission, SubmissionStatus.UNDER_REVIEW)
        self._record(submission, "review_started", actor)
        self.submissions.save(submission)

        logger.info("Submission %s under review by user %s", submission.id, actor.id)
        return submission

    def grade(
        self,
        submission_id: int,
        grading: GradeSubmission,
        actor: Actor,
        expected_version: int | None = None,
    ) -> Submission:
        submission, assignment = self._load_for_update(submission_id, actor, Action.GRADE_SUBMISSION)
        check_version(submission, expected_version or grading.expected_version, "Submission")

        numerical_score = grading.numerical_score
        if numerical_score is not None and not 0 <= numerical_score <= 100:
            raise ValidationError("Numerical score must be between 0 and 100")

        scores = [c.model_dump() for c in grading.criteria_scores]
        validate_criteria_scores(scores)

        percentage = criteria_percentage(scores)
        if percentage is not None:
            if numerical_score is not None and abs(numerical_score - percentage) > SCORE_TOLERANCE:
                raise ValidationError(
                    "Numerical score does not match the criteria scores",
                    numerical_score=numerical_score,
                    criteria_percentage=round(percentage, 2),
                )
            if numerical_score is None:
                numerical_score = round(percentage, 2)

        if numerical_score is None and grading.grade is None:
            raise ValidationError("Provide a grade, a numerical score or criteria scores")

        self._move(submission, SubmissionStatus.GRADED)

        submission.numerical_score = numerical_score
        submission.criteria_scores = scores
        submission.grade = grading.grade or (letter_for_score(numerical_score) if numerical_score is not None else None)
        if grading.feedback is not None:
            submission.feedback = grading.feedback.model_dump()
        if grading.instructor_notes is not None:
            submission.instructor_notes = grading.instructor_notes
        submission.reviewed_by = actor.id
        submission.reviewed_at = self.clock()

        self._record(submission, "graded", actor, details=f"score {numerical_score}, grade {submission.grade}")
        self.submissions.save(submission)

        logger.info(
            "Submission %s graded %s (%s) by user %s",
            submission.id,
            submission.grade,
            submission.calculated_score,
            actor.id,
        )
        self.statistics.refresh(assignment.id)
        return submission

    def return_for_revision(
        self,
        submission_id: int,
        feedback: SubmissionFeedback | None,
        actor: Actor,
        instructor_notes: str | None = None,
    ) -> Submission:
        submission, _ = self._load_for_update(submission_id, actor, Action.RETURN_SUBMISSION)
        self._move(submission, SubmissionStatus.RETURNED)

        if feedback is not None:
            submission.feedback = feedback.model_dump()
        if instructor_notes is not None:
            submission.instructor_notes = instructor_notes
        submission.reviewed_by = actor.id
        submission.reviewed_at = self.clock()

        self._record(submission, "returned", actor)
        self.submissions.save(submission)

        logger.info("Submission %s returned for revision by user %s", submission.id, actor.id)
        return submission

    def reject(self, submission_id: int, reason: str, actor: Actor) -> Submission:
        submission, _ = self._load_for_update(submission_id, actor, Action.REJECT_SUBMISSION)
        self._move(submission, SubmissionStatus.REJECTED)

        submission.feedback = {**(submission.feedback or {}), "general": reason}
        submission.reviewed_by = actor.id
        submission.reviewed_at = self.clock()

        self._record(submission, "rejected", actor, details=reason)
        self.submissions.save(submission)

        logger.info("Submission %s rejected by user %s", submission.id, actor.id)
        return submission

    def mark_late(self, submission_id: int, penalty_percent: float, actor: Actor) -> Submission:
        submission, assignment = self._load_for_update(submission_id, actor, Action.MARK_LATE)
        if not 0 <= penalty_percent <= 100:
            raise ValidationError("Late penalty must be between 0 and 100 percent")

        submission.is_late = True
        submission.late_penalty_percent = penalty_percent
        self._record(submission, "late_penalty_applied", actor, details=f"{penalty_percent}%")
        self.submissions.save(submission)

        logger.info("Late penalty %s%% applied to submission %s by user %s", penalty_percent, submission.id, actor.id)
        self.statistics.refresh(assignment.id)
        return submission

    def check_plagiarism(
        self,
        submission_id: int,
        similarity_score: float,
        report_url: str | None,
        actor: Actor,
    ) -> Submission:
        submission, _ = self._load_for_update(submission_id, actor, Action.CHECK_PLAGIARISM)
        if not 0 <= similarity_score <= 100:
            raise ValidationError("Similarity score must be between 0 and 100")

        flagged = similarity_score > self.settings.PLAGIARISM_FLAG_THRESHOLD
        submission.plagiarism_check = {
            "is_checked": True,
            "similarity_score": similarity_score,
            "flagged": flagged,
            "report_url": report_url,
            "checked_at": self.clock().isoformat(),
        }
        self._record(submission, "plagiarism_checked", actor, details=f"similarity {similarity_score}%")
        self.submissions.save(submission)

        if flagged:
            logger.warning("Submission %s flagged for plagiarism (%s%% similarity)", submission.id, similarity_score)
        else:
            logger.info("Submission %s passed plagiarism check (%s%%)", submission.id, similarity_score)
        return submission

    def verify(self, submission_id: int, notes: str | None, actor: Actor) -> Submission:
        submission, _ = self._load_for_update(submission_id, actor, Action.VERIFY_SUBMISSION)

        submission.verification = {
            "is_verified": True,
            "verified_by": actor.id,
            "verified_at": self.clock().isoformat(),
            "notes": notes,
        }
        self._record(submission, "verified", actor, details=notes)
        self.submissions.save(submission)

        logger.info("Submission %s verified by user %s", submission.id, actor.id)
        return submission

    # -- files and deletion ----------------------------------------------

    def add_file(self, submission_id: int, file: SubmissionFile | Upload, actor: Actor) -> Submission:
        submission, assignment = self._load_for_update(submission_id, actor, Action.ADD_SUBMISSION_FILE)
        validate_files([file], self._requirements(assignment))

        entry, uploaded = self._store(file, f"submissions/{assignment.id}/{submission.student_id}")
        try:
            if any(f["url"] == entry["url"] for f in submission.files or []):
                raise Conflict("File is already attached", url=entry["url"])

            submission.files = [*(submission.files or []), entry]
            if submission.status == SubmissionStatus.RETURNED.value:
                self._move(submission, SubmissionStatus.UNDER_REVIEW)
                self._record(submission, "resubmitted", actor)
            self._record(submission, "file_added", actor, details=entry["name"])
            self.submissions.save(submission)
        except Exception:
            if uploaded:
                release_files(self.storage, [uploaded])
            raise

        logger.info("File %s added to submission %s by user %s", entry["name"], submission.id, actor.id)
        return submission

    def remove_file(self, submission_id: int, url: str, actor: Actor) -> Submission:
        submission, _ = self._load_for_update(submission_id, actor, Action.REMOVE_SUBMISSION_FILE)

        files = list(submission.files or [])
        remaining = [f for f in files if f["url"] != url]
        if len(remaining) == len(files):
            raise NotFound("File not found on this submission", url=url)

        submission.files = remaining
        self._record(submission, "file_removed", actor, details=url)
        self.submissions.save(submission)

        release_files(self.storage, [url])
        logger.info("File %s removed from submission %s by user %s", url, submission.id, actor.id)
        return submission

    def delete(self, submission_id: int, actor: Actor) -> None:
        submission, assignment = self._load_for_update(submission_id, actor, Action.DELETE_SUBMISSION)
        urls = [f["url"] for f in submission.files or []]
        assignment_id = assignment.id

        self.submissions.delete(submission)
        logger.info("Submission %s deleted by user %s", submission_id, actor.id)

        release_files(self.storage, urls)
        self.statistics.refresh(assignment_id)

    # -- reads -----------------------------------------------------------

    def get(self, submission_id: int, actor: Actor) -> Submission:
        submission, _ = self._load(submission_id, actor, Action.READ_SUBMISSION, populate=_READ_POPULATE)
        return submission

    def list_for_assignment(self, assignment_id: int, actor: Actor) -> list[Submission]:
        assignment = self.assignments.require(assignment_id)
        self.policy.enforce(actor, Action.LIST_SUBMISSIONS, ResourceContext.for_assignment_submissions(assignment))
        return self.submissions.find(
            {"assignment_id": assignment.id},
            sort=("student_id", "submission_number"),
            populate=_READ_POPULATE,
        )

    def list_for_student(self, student_id: int, actor: Actor, filters: SubmissionFilters | None = None) -> Page:
        filters = filters or SubmissionFilters()
        query: dict = {"student_id": student_id}

        if actor.role == Role.STUDENT and actor.id != student_id:
            raise Forbidden("Students may only list their own submissions")
        if actor.role == Role.FACULTY:
            query["assignment_id"] = self.assignments.ids_for_faculty(actor.id)

        if filters.assignment_id is not None:
            if "assignment_id" in query and filters.assignment_id not in query["assignment_id"]:
                return Page(items=[], total=0, skip=filters.skip, limit=filters.limit)
            query["assignment_id"] = filters.assignment_id
        if filters.status:
            query["status"] = filters.status
        if filters.is_late is not None:
            query["is_late"] = filters.is_late

        total = self.submissions.count(query)
        items = self.submissions.find(
            query, sort=("-submitted_at", "-id"), skip=filters.skip, limit=filters.limit, populate=_READ_POPULATE
        )
        return Page(items=items, total=total, skip=filters.skip, limit=filters.limit)

    def _scoped(self, actor: Actor, extra: dict) -> list[Submission]:
        query = {**scope_filters(actor, self.assignments), **extra}
        return self.submissions.find(query, sort=("-submitted_at", "-id"), populate=_READ_POPULATE)

    def list_late(self, actor: Actor) -> list[Submission]:
        return self._scoped(actor, {"is_late": True})

    def list_ungraded(self, actor: Actor) -> list[Submission]:
        return self._scoped(actor, {"status": [s.value for s in UNGRADED_STATUSES], "grade": None})

    def list_flagged(self, actor: Actor) -> list[Submission]:
        # plagiarism results are JSON; filter after loading
        return [s for s in self._scoped(actor, {}) if s.is_flagged]
