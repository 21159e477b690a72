import logging
from collections import Counter
from typing import Callable

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from campus_lms.core.clock import as_utc, utcnow
from campus_lms.core.config import Settings, settings as default_settings
from campus_lms.core.errors import Conflict, Forbidden, NotFound, ValidationError
from campus_lms.core.history import BoundedHistory
from campus_lms.core.permissions import Action, Actor, PermissionPolicy, ResourceContext, Role
from campus_lms.core.states import ASSIGNMENT_TRANSITIONS, CONTENT_EDITABLE_STATUSES, AssignmentStatus
from campus_lms.models.assignment import Assignment
from campus_lms.models.assignment_statistics import AssignmentStatistics
from campus_lms.repositories import (
    AssignmentRepository,
    CourseRepository,
    Page,
    StatisticsRepository,
    SubmissionRepository,
    UserRepository,
    check_version,
)
from campus_lms.schemas.assignment import (
    AssignmentCreate,
    AssignmentFile,
    AssignmentFilters,
    AssignmentUpdate,
    StudentInfo,
)
from campus_lms.services.enrollment import EnrollmentService
from campus_lms.services.file_storage import FileStorage, Upload, release_files
from campus_lms.services.grading_criteria import validate_criteria
from campus_lms.services.statistics import StatisticsAggregator

logger = logging.getLogger(__name__)

# fields that shape grading; frozen once submissions are closed
CORE_CONTENT_FIELDS = frozenset({"due_date", "extended_due_date", "grading_criteria", "total_points"})

_READ_POPULATE = ("course", "faculty")


class AssignmentLifecycle:
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
        self.courses = CourseRepository(db)
        self.users = UserRepository(db)
        self.statistics_cache = StatisticsRepository(db)

    # -- helpers ---------------------------------------------------------

    def _context(self, assignment: Assignment, actor: Actor) -> ResourceContext:
        enrolled = actor.role == Role.STUDENT and self.enrollment.is_enrolled(actor.id, assignment.course_id)
        return ResourceContext.for_assignment(assignment, enrolled=enrolled)

    def _load(self, assignment_id: int, actor: Actor, action: Action, populate=()) -> Assignment:
        assignment = self.assignments.require(assignment_id, populate=populate)
        self.policy.enforce(actor, action, self._context(assignment, actor))
        return assignment

    def _record(self, assignment: Assignment, action: str, actor: Actor, details: str | None = None) -> None:
        history = BoundedHistory(assignment.history, capacity=self.settings.HISTORY_CAPACITY)
        history.record(action, performed_by=actor.id, details=details, at=self.clock())
        assignment.history = history.to_list()

    @staticmethod
    def _ensure_not_archived(assignment: Assignment) -> None:
        if assignment.status == AssignmentStatus.ARCHIVED.value:
            raise Conflict("Archived assignments cannot be modified", assignment_id=assignment.id)

    # -- mutations -------------------------------------------------------

    def create(self, data: AssignmentCreate, actor: Actor) -> Assignment:
        course = self.courses.require(data.course_id)
        self.policy.enforce(actor, Action.CREATE_ASSIGNMENT, ResourceContext.for_course(course))

        faculty_id = data.faculty_id or course.faculty_id
        if faculty_id != course.faculty_id and not actor.is_admin:
            raise Forbidden("Only administrators can assign another faculty member", faculty_id=faculty_id)
        faculty = self.users.find_by_id(faculty_id)
        if faculty is None:
            raise NotFound("Faculty member not found", faculty_id=faculty_id)
        if faculty.role != Role.FACULTY.value:
            raise ValidationError("Assignments must be owned by a faculty member", faculty_id=faculty_id)

        now = self.clock()
        due_date = as_utc(data.due_date)
        if due_date <= now:
            raise ValidationError("Due date must be in the future")
        extended = as_utc(data.extended_due_date)
        if extended is not None and extended <= due_date:
            raise ValidationError("Extended due date must be after the due date")

        validate_criteria(data.grading_criteria, data.total_points)

        status = AssignmentStatus(self.settings.ASSIGNMENT_INITIAL_STATUS)
        assignment = Assignment(
            course_id=course.id,
            faculty_id=faculty_id,
            created_by=actor.id,
            last_modified_by=actor.id,
            title=data.title,
            description=data.description,
            assignment_type=data.assignment_type,
            difficulty=data.difficulty,
            estimated_time=data.estimated_time,
            tags=list(data.tags),
            total_points=data.total_points,
            grading_criteria=[c.model_dump() for c in data.grading_criteria],
            requirements=data.requirements.model_dump(),
            due_date=due_date,
            extended_due_date=extended,
            status=status.value,
            is_visible=status == AssignmentStatus.PUBLISHED,
            files=[self._file_entry(f) for f in data.files],
            history=[],
        )
        self._record(assignment, "created", actor)
        self.assignments.create(assignment)

        logger.info("Assignment %s created in course %s by user %s", assignment.id, course.id, actor.id)
        return assignment

    def update(
        self,
        assignment_id: int,
        patch: AssignmentUpdate,
        actor: Actor,
        expected_version: int | None = None,
    ) -> Assignment:
        assignment = self._load(assignment_id, actor, Action.UPDATE_ASSIGNMENT)
        self._ensure_not_archived(assignment)
        check_version(assignment, expected_version or patch.expected_version, "Assignment")

        changes = patch.model_dump(exclude_unset=True, exclude={"expected_version"})
        if not changes:
            return assignment

        core = CORE_CONTENT_FIELDS & changes.keys()
        if core and AssignmentStatus(assignment.status) not in CONTENT_EDITABLE_STATUSES:
            raise Conflict(
                f"Cannot change {', '.join(sorted(core))} once the assignment is {assignment.status}",
                status=assignment.status,
            )

        if "due_date" in changes:
            if changes["due_date"] is None:
                raise ValidationError("Due date is required")
            if self.submissions.has_any(assignment.id):
                raise Conflict("Due date cannot change once submissions exist")

        due_date = as_utc(changes.get("due_date") or assignment.due_date)
        extended = as_utc(changes["extended_due_date"] if "extended_due_date" in changes else assignment.extended_due_date)
        if extended is not None and extended <= due_date:
            raise ValidationError("Extended due date must be after the due date")

        if "grading_criteria" in changes or "total_points" in changes:
            criteria = changes.get("grading_criteria", assignment.grading_criteria)
            total_points = changes.get("total_points", assignment.total_points)
            if total_points is None:
                raise ValidationError("Total points are required")
            validate_criteria(criteria, total_points)

        if "requirements" in changes:
            if changes["requirements"] is None:
                del changes["requirements"]
            else:
                merged = dict(assignment.requirements or {})
                merged.update({k: v for k, v in changes["requirements"].items() if v is not None})
                changes["requirements"] = merged

        for key in ("title", "assignment_type", "difficulty", "is_visible", "tags"):
            if key in changes and changes[key] is None:
                del changes[key]

        for key, value in changes.items():
            if key in ("due_date", "extended_due_date"):
                value = as_utc(value)
            setattr(assignment, key, value)

        assignment.last_modified_by = actor.id
        self._record(assignment, "updated", actor, details=", ".join(sorted(changes)))
        self.assignments.save(assignment)

        logger.info("Assignment %s updated by user %s (%s)", assignment.id, actor.id, ", ".join(sorted(changes)))
        return assignment

    def transition(
        self,
        assignment_id: int,
        target: AssignmentStatus | str,
        actor: Actor,
        expected_version: int | None = None,
    ) -> Assignment:
        assignment = self._load(assignment_id, actor, Action.TRANSITION_ASSIGNMENT)
        self._ensure_not_archived(assignment)
        check_version(assignment, expected_version, "Assignment")

        current = AssignmentStatus(assignment.status)
        target = AssignmentStatus(target)
        if target not in ASSIGNMENT_TRANSITIONS[current]:
            raise ValidationError(
                f"Cannot move assignment from {current.value} to {target.value}",
                current=current.value,
                target=target.value,
            )

        released: list[str] = []
        assignment.status = target.value
        if target == AssignmentStatus.PUBLISHED:
            assignment.is_visible = True
        elif target == AssignmentStatus.ARCHIVED:
            assignment.is_visible = False
            released = [f["url"] for f in assignment.files or []]
            assignment.files = []

        assignment.last_modified_by = actor.id
        self._record(assignment, "status_changed", actor, details=f"{current.value} -> {target.value}")
        self.assignments.save(assignment)

        if released:
            release_files(self.storage, released)

        logger.info(
            "Assignment %s moved %s -> %s by user %s", assignment.id, current.value, target.value, actor.id
        )
        return assignment

    def delete(self, assignment_id: int, actor: Actor) -> None:
        assignment = self._load(assignment_id, actor, Action.DELETE_ASSIGNMENT)

        if self.submissions.has_any(assignment.id):
            raise Conflict("Assignment has submissions; archive it instead", assignment_id=assignment.id)

        urls = [f["url"] for f in assignment.files or []]
        self.statistics_cache.discard(assignment.id)
        self.assignments.delete(assignment)
        logger.info("Assignment %s deleted by user %s", assignment_id, actor.id)

        release_files(self.storage, urls)

    def add_file(self, assignment_id: int, file: AssignmentFile | Upload, actor: Actor) -> Assignment:
        assignment = self._load(assignment_id, actor, Action.MANAGE_ASSIGNMENT_FILES)
        self._ensure_not_archived(assignment)

        uploaded: str | None = None
        if isinstance(file, Upload):
            stored = self.storage.upload(file.data, folder=f"assignments/{assignment.id}", filename=file.filename)
            uploaded = stored.url
            entry = {
                "name": file.filename,
                "url": stored.url,
                "size": stored.size,
                "type": file.content_type,
                "uploaded_at": self.clock().isoformat(),
            }
        else:
            entry = self._file_entry(file)

        try:
            if any(f["url"] == entry["url"] for f in assignment.files or []):
                raise Conflict("File is already attached", url=entry["url"])
            assignment.files = [*(assignment.files or []), entry]
            assignment.last_modified_by = actor.id
            self._record(assignment, "file_added", actor, details=entry["name"])
            self.assignments.save(assignment)
        except Exception:
            if uploaded:
                release_files(self.storage, [uploaded])
            raise

        logger.info("File %s attached to assignment %s by user %s", entry["name"], assignment.id, actor.id)
        return assignment

    def remove_file(self, assignment_id: int, url: str, actor: Actor) -> Assignment:
        assignment = self._load(assignment_id, actor, Action.MANAGE_ASSIGNMENT_FILES)
        self._ensure_not_archived(assignment)

        files = list(assignment.files or [])
        remaining = [f for f in files if f["url"] != url]
        if len(remaining) == len(files):
            raise NotFound("File not found on this assignment", url=url)

        assignment.files = remaining
        assignment.last_modified_by = actor.id
        self._record(assignment, "file_removed", actor, details=url)
        self.assignments.save(assignment)

        release_files(self.storage, [url])
        logger.info("File %s removed from assignment %s by user %s", url, assignment.id, actor.id)
        return assignment

    def _file_entry(self, file: AssignmentFile) -> dict:
        entry = file.model_dump(mode="json")
        entry["uploaded_at"] = entry.get("uploaded_at") or self.clock().isoformat()
        return entry

    # -- reads -----------------------------------------------------------

    def get(self, assignment_id: int, actor: Actor) -> Assignment:
        return self._load(assignment_id, actor, Action.READ_ASSIGNMENT, populate=_READ_POPULATE)

    def list_for_course(self, course_id: int, actor: Actor) -> list[Assignment]:
        course = self.courses.require(course_id)

        enrolled = actor.role == Role.STUDENT and self.enrollment.is_enrolled(actor.id, course.id)
        if actor.role == Role.STUDENT and not enrolled:
            raise Forbidden("Not enrolled in this course", course_id=course.id)

        assignments = self.assignments.find({"course_id": course.id}, sort=("due_date", "id"), populate=_READ_POPULATE)
        return [
            a
            for a in assignments
            if self.policy.decide(actor, Action.READ_ASSIGNMENT, ResourceContext.for_assignment(a, enrolled)).allowed
        ]

    def list_for_student(self, student_id: int, actor: Actor, filters: AssignmentFilters | None = None) -> Page:
        filters = filters or AssignmentFilters()
        if not actor.is_admin and actor.id != student_id:
            raise Forbidden("Students may only list their own assignments")

        enrollment = self.enrollment.active_enrollment(student_id)
        if enrollment is None:
            return Page(items=[], total=0, skip=filters.skip, limit=filters.limit)

        course_ids = enrollment.course_ids
        if filters.course_id is not None:
            course_ids = [c for c in course_ids if c == filters.course_id]

        query = {"course_id": course_ids, "status": AssignmentStatus.PUBLISHED.value, "is_visible": True}
        if filters.assignment_type:
            query["assignment_type"] = filters.assignment_type
        if filters.difficulty:
            query["difficulty"] = filters.difficulty

        where = []
        if filters.due_from:
            where.append(Assignment.due_date >= as_utc(filters.due_from))
        if filters.due_to:
            where.append(Assignment.due_date <= as_utc(filters.due_to))
        if filters.search:
            pattern = f"%{filters.search.strip()}%"
            where.append(or_(Assignment.title.ilike(pattern), Assignment.description.ilike(pattern)))
        if filters.overdue_only:
            where.append(func.coalesce(Assignment.extended_due_date, Assignment.due_date) < self.clock())

        sort = ("due_date", "id")
        tags = [t.strip().lower() for t in filters.tags if t.strip()]
        if tags:
            # tags live in a JSON column; match them after the query
            matched = [
                a
                for a in self.assignments.find(query, sort=sort, where=where, populate=_READ_POPULATE)
                if set(tags) & set(a.tags or [])
            ]
            total = len(matched)
            items = matched[filters.skip : filters.skip + filters.limit]
        else:
            total = self.assignments.count(query, where=where)
            items = self.assignments.find(
                query, sort=sort, skip=filters.skip, limit=filters.limit, where=where, populate=_READ_POPULATE
            )

        return Page(
            items=items,
            total=total,
            skip=filters.skip,
            limit=filters.limit,
            student_info=StudentInfo(
                semester=enrollment.semester,
                academic_year=enrollment.academic_year,
                course_ids=enrollment.course_ids,
            ),
        )

    def overview(self, actor: Actor) -> dict:
        if actor.role == Role.STUDENT:
            raise Forbidden("Only faculty and administrators can view the assignment overview")

        filters = {} if actor.is_admin else {"faculty_id": actor.id}
        assignments = self.assignments.find(filters)
        now = self.clock()
        closed = {AssignmentStatus.COMPLETED.value, AssignmentStatus.ARCHIVED.value}

        return {
            "total": len(assignments),
            "by_status": dict(Counter(a.status for a in assignments)),
            "by_type": dict(Counter(a.assignment_type for a in assignments)),
            "by_difficulty": dict(Counter(a.difficulty for a in assignments)),
            "overdue": sum(1 for a in assignments if a.status not in closed and a.effective_due_date < now),
        }

    def statistics_for(self, assignment_id: int, actor: Actor) -> AssignmentStatistics:
        assignment = self._load(assignment_id, actor, Action.VIEW_ASSIGNMENT_STATISTICS)
        return self.statistics.cached(assignment.id)
