from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.errors import RecordNotFoundError
from app.models.student import Student
from app.schemas.course import CourseCreateRequest, CourseResponse
from app.schemas.override import ExceptionCreateRequest, ExceptionResponse, ReviewRequest, RevokeRequest
from app.schemas.prerequisite import (
    CorequisiteRuleCreate,
    CorequisiteRuleResponse,
    PrerequisiteRulesRequest,
    RestrictionCreate,
    RestrictionResponse,
    RuleResponse,
)
from app.schemas.student import (
    CompletedCourseRequest,
    CompletedCourseResponse,
    GpaResponse,
    PermissionGrantCreate,
    PermissionGrantResponse,
    ScheduledCourseResponse,
    ScheduleRequest,
    StudentCreateRequest,
    StudentResponse,
    StudentUpdateRequest,
)
from app.schemas.validation import (
    ChainValidationRequest,
    ChainValidationResponse,
    PrerequisiteOrderResponse,
    PrerequisiteValidationResult,
)
from app.services.courses import bulk_create_courses, get_course
from app.services.enrollment import check_eligibility
from app.services.graph import validate_prerequisite_chain
from app.services.overrides import (
    OVERRIDE,
    WAIVER,
    create_exception,
    get_exception,
    list_exceptions,
    review_exception,
    revoke_exception,
    to_response,
)
from app.services.prerequisites import (
    add_corequisite_rule,
    add_restriction,
    get_prerequisite_rules,
    prerequisite_order,
    replace_prerequisite_rules,
)
from app.services.students import (
    add_completed_courses,
    calculate_gpa,
    create_student,
    get_student,
    grant_permission,
    set_schedule,
    update_student,
)

router = APIRouter(prefix="/api")


# ── Courses ───────────────────────────────────────────────────────────────────

@router.post("/courses", response_model=list[CourseResponse])
def bulk_create_courses_endpoint(
    payload: CourseCreateRequest,
    db: Session = Depends(get_db),
):
    return bulk_create_courses(db, payload.courses)


@router.get("/courses/{course_id}", response_model=CourseResponse)
def get_course_endpoint(course_id: int, db: Session = Depends(get_db)):
    return get_course(db, course_id)


@router.put("/courses/{course_id}/prerequisites", response_model=list[RuleResponse])
def replace_prerequisites_endpoint(
    course_id: int,
    payload: PrerequisiteRulesRequest,
    db: Session = Depends(get_db),
):
    return replace_prerequisite_rules(db, course_id, payload.rules)


@router.get("/courses/{course_id}/prerequisites", response_model=list[RuleResponse])
def get_prerequisites_endpoint(course_id: int, db: Session = Depends(get_db)):
    return get_prerequisite_rules(db, course_id)


@router.post("/courses/{course_id}/corequisites", response_model=CorequisiteRuleResponse, status_code=201)
def add_corequisite_endpoint(
    course_id: int,
    payload: CorequisiteRuleCreate,
    db: Session = Depends(get_db),
):
    return add_corequisite_rule(db, course_id, payload)


@router.post("/courses/{course_id}/restrictions", response_model=RestrictionResponse, status_code=201)
def add_restriction_endpoint(
    course_id: int,
    payload: RestrictionCreate,
    db: Session = Depends(get_db),
):
    return add_restriction(db, course_id, payload)


# ── Catalog ───────────────────────────────────────────────────────────────────

@router.post("/catalog/validate-chain", response_model=ChainValidationResponse)
def validate_chain_endpoint(payload: ChainValidationRequest):
    """Check a proposed set of (course, prerequisite) edges for cycles without saving anything."""
    return ChainValidationResponse.model_validate(validate_prerequisite_chain(payload.edges))


@router.get("/catalog/prerequisite-order", response_model=PrerequisiteOrderResponse)
def prerequisite_order_endpoint(db: Session = Depends(get_db)):
    order, levels = prerequisite_order(db)
    return PrerequisiteOrderResponse(order=order, levels=levels)


# ── Students ──────────────────────────────────────────────────────────────────

@router.post("/students", response_model=StudentResponse)
def create_student_endpoint(
    payload: StudentCreateRequest,
    db: Session = Depends(get_db),
):
    return create_student(db, payload)


# NOTE: /students/lookup MUST be registered BEFORE /students/{student_id}.
@router.get("/students/lookup", response_model=StudentResponse)
def lookup_student_endpoint(
    student_number: str = Query(..., description="School-issued student number"),
    db: Session = Depends(get_db),
):
    student = (
        db.query(Student)
        .filter(Student.student_number == student_number)
        .order_by(Student.id)
        .first()
    )
    if student is None:
        raise RecordNotFoundError("No student found with that student number.")
    return student


@router.get("/students/{student_id}", response_model=StudentResponse)
def get_student_endpoint(student_id: int, db: Session = Depends(get_db)):
    return get_student(db, student_id)


@router.put("/students/{student_id}", response_model=StudentResponse)
def update_student_endpoint(
    student_id: int,
    payload: StudentUpdateRequest,
    db: Session = Depends(get_db),
):
    return update_student(db, student_id, payload)


@router.post("/students/{student_id}/completed-courses", response_model=list[CompletedCourseResponse])
def add_completed_courses_endpoint(
    student_id: int,
    payload: CompletedCourseRequest,
    db: Session = Depends(get_db),
):
    return add_completed_courses(db, student_id, payload.courses)


@router.post("/students/{student_id}/schedule", response_model=list[ScheduledCourseResponse])
def set_schedule_endpoint(
    student_id: int,
    payload: ScheduleRequest,
    db: Session = Depends(get_db),
):
    return set_schedule(db, student_id, payload)


@router.post("/students/{student_id}/permissions", response_model=PermissionGrantResponse, status_code=201)
def grant_permission_endpoint(
    student_id: int,
    payload: PermissionGrantCreate,
    db: Session = Depends(get_db),
):
    return grant_permission(db, student_id, payload)


@router.get("/students/{student_id}/gpa", response_model=GpaResponse)
def get_student_gpa(student_id: int, db: Session = Depends(get_db)):
    gpa, credits = calculate_gpa(db, student_id)
    return GpaResponse(student_id=student_id, gpa=gpa, credits=credits)


# ── Eligibility ───────────────────────────────────────────────────────────────

@router.get(
    "/students/{student_id}/courses/{course_id}/eligibility",
    response_model=PrerequisiteValidationResult,
)
def eligibility_endpoint(student_id: int, course_id: int, db: Session = Depends(get_db)):
    return check_eligibility(db, student_id, course_id)


# ── Overrides ─────────────────────────────────────────────────────────────────

@router.post("/overrides", response_model=ExceptionResponse, status_code=201)
def request_override_endpoint(payload: ExceptionCreateRequest, db: Session = Depends(get_db)):
    return to_response(OVERRIDE, create_exception(db, OVERRIDE, payload))


@router.get("/overrides", response_model=list[ExceptionResponse])
def list_overrides_endpoint(
    student_id: int | None = None,
    course_id: int | None = None,
    db: Session = Depends(get_db),
):
    return [to_response(OVERRIDE, r) for r in list_exceptions(db, OVERRIDE, student_id, course_id)]


@router.get("/overrides/{override_id}", response_model=ExceptionResponse)
def get_override_endpoint(override_id: int, db: Session = Depends(get_db)):
    return to_response(OVERRIDE, get_exception(db, OVERRIDE, override_id))


@router.post("/overrides/{override_id}/review", response_model=ExceptionResponse)
def review_override_endpoint(override_id: int, payload: ReviewRequest, db: Session = Depends(get_db)):
    return to_response(OVERRIDE, review_exception(db, OVERRIDE, override_id, payload))


@router.post("/overrides/{override_id}/revoke", response_model=ExceptionResponse)
def revoke_override_endpoint(override_id: int, payload: RevokeRequest, db: Session = Depends(get_db)):
    return to_response(OVERRIDE, revoke_exception(db, OVERRIDE, override_id, payload))


# ── Waivers ───────────────────────────────────────────────────────────────────

@router.post("/waivers", response_model=ExceptionResponse, status_code=201)
def request_waiver_endpoint(payload: ExceptionCreateRequest, db: Session = Depends(get_db)):
    return to_response(WAIVER, create_exception(db, WAIVER, payload))


@router.get("/waivers", response_model=list[ExceptionResponse])
def list_waivers_endpoint(
    student_id: int | None = None,
    course_id: int | None = None,
    db: Session = Depends(get_db),
):
    return [to_response(WAIVER, r) for r in list_exceptions(db, WAIVER, student_id, course_id)]


@router.get("/waivers/{waiver_id}", response_model=ExceptionResponse)
def get_waiver_endpoint(waiver_id: int, db: Session = Depends(get_db)):
    return to_response(WAIVER, get_exception(db, WAIVER, waiver_id))


@router.post("/waivers/{waiver_id}/review", response_model=ExceptionResponse)
def review_waiver_endpoint(waiver_id: int, payload: ReviewRequest, db: Session = Depends(get_db)):
    return to_response(WAIVER, review_exception(db, WAIVER, waiver_id, payload))


@router.post("/waivers/{waiver_id}/revoke", response_model=ExceptionResponse)
def revoke_waiver_endpoint(waiver_id: int, payload: RevokeRequest, db: Session = Depends(get_db)):
    return to_response(WAIVER, revoke_exception(db, WAIVER, waiver_id, payload))
