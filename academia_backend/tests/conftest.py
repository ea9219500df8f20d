from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.core.database import get_db
from app.main import app
from app.models.base import Base
from app.services.evaluator import CourseRecord, StudentProfile
from app.services.rules import ClassStanding


NOW = datetime(2025, 9, 1, 12, 0, 0)


@pytest.fixture
def db():
    """Fresh in-memory SQLite database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def make_profile(
    completed: dict[int, str] | None = None,
    standing: ClassStanding = ClassStanding.JUNIOR,
    credit_hours: int = 0,
    gpa: float | None = None,
    majors: tuple[str, ...] = (),
    schedule: tuple[int, ...] = (),
    permissions: tuple[str, ...] = (),
    student_id: int = 1,
) -> StudentProfile:
    return StudentProfile(
        student_id=student_id,
        class_standing=standing,
        completed={cid: CourseRecord(cid, grade, credits=3) for cid, grade in (completed or {}).items()},
        credit_hours=credit_hours,
        gpa=gpa,
        majors=frozenset(majors),
        current_schedule=frozenset(schedule),
        permissions=frozenset(permissions),
    )
