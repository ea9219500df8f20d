from datetime import datetime

from sqlalchemy.orm import Session

from app.core.errors import RecordNotFoundError
from app.models.course import Course
from app.models.student import CompletedCourse, PermissionGrant, ScheduledCourse, Student
from app.schemas.student import (
    CompletedCourseCreate,
    PermissionGrantCreate,
    ScheduleRequest,
    StudentCreateRequest,
    StudentUpdateRequest,
)
from app.services.evaluator import CourseRecord, StudentProfile, best_records
from app.services.grades import calculate_gpa as gpa_from_records
from app.services.grades import meets_minimum
from app.services.rules import ClassStanding


def create_student(db: Session, payload: StudentCreateRequest) -> Student:
    # Deduplicate by school-issued student number when provided.
    if payload.student_number:
        existing = (
            db.query(Student)
            .filter(Student.student_number == payload.student_number)
            .order_by(Student.id)
            .first()
        )
        if existing is not None:
            for field, value in payload.model_dump(exclude_unset=True).items():
                setattr(existing, field, value)
            db.commit()
            db.refresh(existing)
            return existing
    student = Student(**payload.model_dump())
    db.add(student)
    db.commit()
    db.refresh(student)
    return student


def get_student(db: Session, student_id: int) -> Student:
    student = db.get(Student, student_id)
    if student is None:
        raise RecordNotFoundError(f"Student {student_id} not found.")
    return student


def update_student(db: Session, student_id: int, payload: StudentUpdateRequest) -> Student:
    student = get_student(db, student_id)
    for field, value in payload.model_dump(exclude_none=True).items():
        setattr(student, field, value)
    student.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(student)
    return student


def add_completed_courses(
    db: Session, student_id: int, courses: list[CompletedCourseCreate]
) -> list[CompletedCourse]:
    get_student(db, student_id)
    _require_courses(db, [c.course_id for c in courses])
    items = [CompletedCourse(student_id=student_id, **c.model_dump()) for c in courses]
    db.add_all(items)
    db.commit()
    for item in items:
        db.refresh(item)
    return items


def set_schedule(db: Session, student_id: int, payload: ScheduleRequest) -> list[ScheduledCourse]:
    """Replace the student's current-term schedule."""
    student = get_student(db, student_id)
    _require_courses(db, payload.course_ids)
    student.schedule.clear()
    db.flush()
    items = [
        ScheduledCourse(student_id=student_id, course_id=course_id, term=payload.term)
        for course_id in dict.fromkeys(payload.course_ids)
    ]
    db.add_all(items)
    db.commit()
    for item in items:
        db.refresh(item)
    return items


def grant_permission(db: Session, student_id: int, payload: PermissionGrantCreate) -> PermissionGrant:
    get_student(db, student_id)
    if payload.course_id is not None:
        _require_courses(db, [payload.course_id])
    grant = PermissionGrant(student_id=student_id, **payload.model_dump())
    db.add(grant)
    db.commit()
    db.refresh(grant)
    return grant


def calculate_gpa(db: Session, student_id: int) -> tuple[float | None, int]:
    get_student(db, student_id)
    rows = (
        db.query(CompletedCourse, Course.credits)
        .join(Course, CompletedCourse.course_id == Course.id)
        .filter(CompletedCourse.student_id == student_id)
        .all()
    )
    return gpa_from_records([(row.grade, row.credits or credits) for row, credits in rows])


def build_profile(db: Session, student_id: int, course_id: int | None = None) -> StudentProfile:
    """
    Snapshot everything the evaluator needs about a student. Permissions are
    limited to grants for ``course_id`` plus course-independent ones.
    """
    student = get_student(db, student_id)
    rows = (
        db.query(CompletedCourse, Course.credits)
        .join(Course, CompletedCourse.course_id == Course.id)
        .filter(CompletedCourse.student_id == student_id)
        .order_by(CompletedCourse.id)
        .all()
    )
    records = [
        CourseRecord(
            course_id=row.course_id,
            grade=row.grade,
            credits=row.credits if row.credits is not None else credits,
            completed_on=row.completed_on,
        )
        for row, credits in rows
    ]
    completed = best_records(records)
    credit_hours = sum(
        r.credits or 0 for r in completed.values() if meets_minimum(r.grade, None)
    )
    gpa, _ = gpa_from_records([(r.grade, r.credits) for r in records])

    majors = frozenset(m for m in (student.major, student.secondary_major) if m)
    permissions = frozenset(
        grant.permission
        for grant in student.permissions
        if grant.course_id is None or grant.course_id == course_id
    )
    return StudentProfile(
        student_id=student.id,
        class_standing=ClassStanding.from_label(student.class_standing),
        completed=completed,
        credit_hours=credit_hours,
        gpa=gpa,
        majors=majors,
        current_schedule=frozenset(s.course_id for s in student.schedule),
        permissions=permissions,
    )


def _require_courses(db: Session, course_ids: list[int]) -> None:
    wanted = set(course_ids)
    if not wanted:
        return
    found = {cid for (cid,) in db.query(Course.id).filter(Course.id.in_(wanted)).all()}
    missing = sorted(wanted - found)
    if missing:
        raise RecordNotFoundError(f"Unknown course id(s): {', '.join(str(m) for m in missing)}.")
