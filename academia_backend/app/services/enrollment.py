from datetime import datetime

from sqlalchemy.orm import Session

from app.core.config import settings
from app.schemas.validation import PrerequisiteValidationResult
from app.services.courses import get_course, known_course_ids
from app.services.evaluator import validate_enrollment
from app.services.overrides import active_exceptions
from app.services.prerequisites import load_corequisites, load_restrictions, load_rule_tree
from app.services.students import build_profile


def check_eligibility(
    db: Session, student_id: int, course_id: int, now: datetime | None = None
) -> PrerequisiteValidationResult:
    """Load the student, the course's rules and active exceptions, then evaluate."""
    now = now or datetime.utcnow()
    get_course(db, course_id)
    profile = build_profile(db, student_id, course_id)
    return validate_enrollment(
        profile,
        course_id,
        load_rule_tree(db, course_id),
        load_corequisites(db, course_id),
        load_restrictions(db, course_id),
        active_exceptions(db, student_id, course_id, now),
        now=now,
        known_courses=known_course_ids(db),
        soft_restriction_policy=settings.soft_restriction_policy,
    )
