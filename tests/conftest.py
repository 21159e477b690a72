import os
from datetime import datetime, timedelta, timezone

TEST_DB_FILE = "test_campus_lms.db"
TEST_DB_URL = f"sqlite:///./{TEST_DB_FILE}"

# startup init_db must target the test file, so set this before the app is imported
os.environ["DATABASE_URL"] = TEST_DB_URL

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from campus_lms.core.config import Settings
from campus_lms.core.deps import get_clock, get_file_storage
from campus_lms.core.errors import ServiceError
from campus_lms.core.permissions import Actor, Role
from campus_lms.db.base import Base
from campus_lms.db.session import get_db
from campus_lms.main import app
from campus_lms.models.assignment import Assignment
from campus_lms.models.assignment_statistics import AssignmentStatistics
from campus_lms.models.course import Course
from campus_lms.models.enrollment import Enrollment
from campus_lms.models.submission import Submission
from campus_lms.models.user import User
from campus_lms.schemas.assignment import AssignmentCreate, GradingCriterion
from campus_lms.services.assignment_lifecycle import AssignmentLifecycle
from campus_lms.services.file_storage import StoredFile
from campus_lms.services.statistics import StatisticsAggregator
from campus_lms.services.submission_lifecycle import SubmissionLifecycle

NOW = datetime(2030, 1, 15, 12, 0, tzinfo=timezone.utc)

engine = create_engine(
    TEST_DB_URL,
    connect_args={"check_same_thread": False},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


def fixed_clock():
    return NOW


class FakeFileStorage:
    """In-memory storage that records what was uploaded and deleted."""

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self.fail_uploads = False
        self.fail_deletes = False

    def upload(self, data: bytes, *, folder: str, filename: str) -> StoredFile:
        if self.fail_uploads:
            raise ServiceError("storage is down")
        url = f"/files/{folder}/{filename}"
        self.objects[url] = data
        return StoredFile(url=url, size=len(data))

    def delete(self, url: str) -> None:
        if self.fail_deletes:
            raise ServiceError("storage is down")
        self.objects.pop(url, None)
        self.deleted.append(url)


@pytest.fixture(scope="session", autouse=True)
def setup_test_db():
    """Create a fresh schema once for the whole test session."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    if os.path.exists(TEST_DB_FILE):
        os.remove(TEST_DB_FILE)


@pytest.fixture(autouse=True)
def seed():
    """Seed a clean minimal dataset for each test and return the ids."""
    db = TestingSessionLocal()
    try:
        # Clear tables (child -> parent)
        db.query(AssignmentStatistics).delete()
        db.query(Submission).delete()
        db.query(Assignment).delete()
        db.query(Enrollment).delete()
        db.query(Course).delete()
        db.query(User).delete()
        db.commit()

        admin = User(email="admin@example.com", first_name="Ada", last_name="Admin", role="admin")
        faculty1 = User(email="faculty1@example.com", first_name="Fran", last_name="One", role="faculty")
        faculty2 = User(email="faculty2@example.com", first_name="Fred", last_name="Two", role="faculty")
        student1 = User(email="student1@example.com", first_name="Sam", last_name="One", role="student")
        student2 = User(email="student2@example.com", first_name="Sue", last_name="Two", role="student")
        db.add_all([admin, faculty1, faculty2, student1, student2])
        db.commit()

        course = Course(code="CS101", name="Intro to Programming", faculty_id=faculty1.id)
        db.add(course)
        db.commit()

        db.add(
            Enrollment(
                student_id=student1.id,
                course_id=course.id,
                semester="Spring",
                academic_year="2029-2030",
            )
        )
        db.commit()

        yield {
            "admin": admin.id,
            "faculty1": faculty1.id,
            "faculty2": faculty2.id,
            "student1": student1.id,
            "student2": student2.id,
            "course": course.id,
        }
    finally:
        db.close()


@pytest.fixture()
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def actors(seed) -> dict[str, Actor]:
    return {
        "admin": Actor(seed["admin"], Role.ADMIN),
        "faculty1": Actor(seed["faculty1"], Role.FACULTY),
        "faculty2": Actor(seed["faculty2"], Role.FACULTY),
        "student1": Actor(seed["student1"], Role.STUDENT),
        "student2": Actor(seed["student2"], Role.STUDENT),
    }


@pytest.fixture()
def settings() -> Settings:
    return Settings(DATABASE_URL=TEST_DB_URL)


@pytest.fixture()
def storage() -> FakeFileStorage:
    return FakeFileStorage()


@pytest.fixture()
def statistics(db, settings) -> StatisticsAggregator:
    return StatisticsAggregator(db, settings=settings, clock=fixed_clock)


@pytest.fixture()
def assignments(db, storage, settings) -> AssignmentLifecycle:
    return AssignmentLifecycle(db, storage=storage, settings=settings, clock=fixed_clock)


@pytest.fixture()
def submissions(db, storage, settings) -> SubmissionLifecycle:
    return SubmissionLifecycle(db, storage=storage, settings=settings, clock=fixed_clock)


def assignment_payload(course_id: int, **overrides) -> AssignmentCreate:
    data = {
        "course_id": course_id,
        "title": "Project 1",
        "description": "Build a small CLI tool",
        "assignment_type": "Project",
        "total_points": 100,
        "grading_criteria": [
            GradingCriterion(criterion="Code", max_points=60),
            GradingCriterion(criterion="Docs", max_points=40),
        ],
        "due_date": NOW + timedelta(days=7),
        "requirements": {"max_submissions": 2, "allowed_file_types": ["py", "PDF"]},
    }
    data.update(overrides)
    return AssignmentCreate(**data)


@pytest.fixture()
def published_assignment(assignments, actors, seed) -> Assignment:
    assignment = assignments.create(assignment_payload(seed["course"]), actors["faculty1"])
    return assignments.transition(assignment.id, "published", actors["faculty1"])


def headers(user_id: int, role: str) -> dict:
    return {"X-User-Id": str(user_id), "X-User-Role": role}


@pytest.fixture()
def storage_override() -> FakeFileStorage:
    return FakeFileStorage()


@pytest.fixture()
def client(storage_override):
    """Test client that uses the test DB session, fake storage and a fixed clock."""
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_file_storage] = lambda: storage_override
    app.dependency_overrides[get_clock] = lambda: fixed_clock
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
