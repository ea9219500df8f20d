from sqlalchemy.orm import Session

from app.core.errors import RecordNotFoundError
from app.models.course import Course
from app.schemas.course import CourseCreate


def bulk_create_courses(db: Session, courses: list[CourseCreate]) -> list[Course]:
    items = [Course(**course.model_dump()) for course in courses]
    db.add_all(items)
    db.commit()
    for item in items:
        db.refresh(item)
    return items


def get_course(db: Session, course_id: int) -> Course:
    course = db.get(Course, course_id)
    if course is None:
        raise RecordNotFoundError(f"Course {course_id} not found.")
    return course


def known_course_ids(db: Session) -> set[int]:
    return {course_id for (course_id,) in db.query(Course.id).all()}
