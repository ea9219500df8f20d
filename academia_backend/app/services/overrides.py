"""
Persistence for prerequisite overrides and waivers.

Both kinds share one lifecycle (see ``app.services.approvals``); they differ
only in table, type column and how the evaluator treats them. Every state
change appends an audit entry in the same transaction.
"""

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import RecordNotFoundError, WorkflowError
from app.models.override import (
    ExceptionAuditEntry,
    OverriddenRequirement,
    PrerequisiteOverride,
    PrerequisiteWaiver,
    WaivedRequirement,
)
from app.models.prerequisite import CorequisiteRequirement, CorequisiteRule, PrerequisiteRequirement, PrerequisiteRule
from app.schemas.override import AuditEntryResponse, ExceptionCreateRequest, ExceptionResponse, ReviewRequest, RevokeRequest
from app.services import approvals
from app.services.approvals import ApprovalStatus, ExceptionGrant
from app.services.courses import get_course
from app.services.students import get_student

logger = logging.getLogger(__name__)

OVERRIDE = "override"
WAIVER = "waiver"

_KINDS = {
    OVERRIDE: (PrerequisiteOverride, OverriddenRequirement, "override_type", "AdministrativeOverride"),
    WAIVER: (PrerequisiteWaiver, WaivedRequirement, "waiver_type", "AcademicException"),
}


def _kind(kind: str):
    try:
        return _KINDS[kind]
    except KeyError:
        raise ValueError(f"Unknown exception kind: {kind!r}")


def create_exception(db: Session, kind: str, payload: ExceptionCreateRequest, now: datetime | None = None):
    model, item_model, type_column, default_type = _kind(kind)
    now = now or datetime.utcnow()
    get_student(db, payload.student_id)
    get_course(db, payload.course_id)

    requirement_ids = list(dict.fromkeys(payload.requirement_ids))
    coreq_ids = list(dict.fromkeys(payload.corequisite_course_ids))
    approvals.check_request(payload.justification, payload.requested_by, requirement_ids + coreq_ids)
    if payload.expires_on is not None and payload.expires_on <= now:
        raise WorkflowError("The expiration date must be in the future.")
    _check_targets(db, payload.course_id, requirement_ids, coreq_ids)

    record = model(
        student_id=payload.student_id,
        course_id=payload.course_id,
        status=ApprovalStatus.PENDING.value,
        justification=payload.justification.strip(),
        requested_by=payload.requested_by.strip(),
        requested_on=now,
        expires_on=payload.expires_on,
    )
    setattr(record, type_column, payload.exception_type or default_type)
    record.requirements = [item_model(requirement_id=rid) for rid in requirement_ids] + [
        item_model(corequisite_course_id=cid) for cid in coreq_ids
    ]
    record.audit_trail.append(
        ExceptionAuditEntry(action="requested", performed_by=record.requested_by, performed_on=now)
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    logger.info(
        "%s #%s requested by %s for student %s course %s",
        kind, record.id, record.requested_by, record.student_id, record.course_id,
    )
    return record


def get_exception(db: Session, kind: str, record_id: int):
    model = _kind(kind)[0]
    record = db.get(model, record_id)
    if record is None:
        raise RecordNotFoundError(f"{kind.capitalize()} {record_id} not found.")
    return record


def list_exceptions(db: Session, kind: str, student_id: int | None = None, course_id: int | None = None):
    model = _kind(kind)[0]
    query = db.query(model)
    if student_id is not None:
        query = query.filter(model.student_id == student_id)
    if course_id is not None:
        query = query.filter(model.course_id == course_id)
    return query.order_by(model.id).all()


def review_exception(db: Session, kind: str, record_id: int, payload: ReviewRequest, now: datetime | None = None):
    record = get_exception(db, kind, record_id)
    now = now or datetime.utcnow()
    action = approvals.review(
        record,
        payload.decision,
        payload.reviewer,
        payload.reviewer_role,
        now,
        settings.reviewer_roles,
        payload.comments,
    )
    record.audit_trail.append(
        ExceptionAuditEntry(action=action, performed_by=payload.reviewer, performed_on=now, details=payload.comments)
    )
    db.commit()
    db.refresh(record)
    return record


def revoke_exception(db: Session, kind: str, record_id: int, payload: RevokeRequest, now: datetime | None = None):
    record = get_exception(db, kind, record_id)
    now = now or datetime.utcnow()
    action = approvals.revoke(
        record, payload.reviewer, payload.reviewer_role, now, settings.reviewer_roles, payload.reason
    )
    record.audit_trail.append(
        ExceptionAuditEntry(action=action, performed_by=payload.reviewer, performed_on=now, details=payload.reason)
    )
    db.commit()
    db.refresh(record)
    return record


def active_exceptions(db: Session, student_id: int, course_id: int, now: datetime) -> list[ExceptionGrant]:
    """Approved, unexpired overrides and waivers for one student/course pair."""
    grants: list[ExceptionGrant] = []
    for kind, (model, _, _, _) in _KINDS.items():
        rows = (
            db.query(model)
            .filter(
                model.student_id == student_id,
                model.course_id == course_id,
                model.status == ApprovalStatus.APPROVED.value,
            )
            .order_by(model.id)
            .all()
        )
        grants.extend(_grant(kind, row) for row in rows if approvals.is_active(row, now))
    return grants


def to_response(kind: str, record, now: datetime | None = None) -> ExceptionResponse:
    now = now or datetime.utcnow()
    type_column = _kind(kind)[2]
    return ExceptionResponse(
        id=record.id,
        kind=kind,
        student_id=record.student_id,
        course_id=record.course_id,
        exception_type=getattr(record, type_column),
        status=record.status,
        effective_status=approvals.effective_status(record, now).value,
        justification=record.justification,
        requested_by=record.requested_by,
        requested_on=record.requested_on,
        reviewed_by=record.reviewed_by,
        reviewed_on=record.reviewed_on,
        approved_on=record.approved_on,
        review_comments=record.review_comments,
        expires_on=record.expires_on,
        requirement_ids=[i.requirement_id for i in record.requirements if i.requirement_id is not None],
        corequisite_course_ids=[
            i.corequisite_course_id for i in record.requirements if i.corequisite_course_id is not None
        ],
        audit_trail=[AuditEntryResponse.model_validate(entry) for entry in record.audit_trail],
    )


def _grant(kind: str, record) -> ExceptionGrant:
    keys = {str(i.requirement_id) for i in record.requirements if i.requirement_id is not None}
    keys |= {f"coreq:{i.corequisite_course_id}" for i in record.requirements if i.corequisite_course_id is not None}
    return ExceptionGrant(
        kind=kind,
        record_id=record.id,
        student_id=record.student_id,
        course_id=record.course_id,
        requirement_ids=frozenset(keys),
        status=ApprovalStatus(record.status),
        approved_on=record.approved_on,
        expires_on=record.expires_on,
    )


def _check_targets(db: Session, course_id: int, requirement_ids: list[int], coreq_ids: list[int]) -> None:
    """Every listed requirement must belong to the course's own rules."""
    if requirement_ids:
        found = {
            rid
            for (rid,) in db.query(PrerequisiteRequirement.id)
            .join(PrerequisiteRule, PrerequisiteRequirement.rule_id == PrerequisiteRule.id)
            .filter(PrerequisiteRule.course_id == course_id, PrerequisiteRequirement.id.in_(requirement_ids))
            .all()
        }
        missing = [rid for rid in requirement_ids if rid not in found]
        if missing:
            raise RecordNotFoundError(
                f"Requirement(s) {', '.join(map(str, missing))} do not belong to course {course_id}."
            )
    if coreq_ids:
        found = {
            cid
            for (cid,) in db.query(CorequisiteRequirement.required_course_id)
            .join(CorequisiteRule, CorequisiteRequirement.rule_id == CorequisiteRule.id)
            .filter(CorequisiteRule.course_id == course_id)
            .all()
        }
        missing = [cid for cid in coreq_ids if cid not in found]
        if missing:
            raise RecordNotFoundError(
                f"Course(s) {', '.join(map(str, missing))} are not corequisites of course {course_id}."
            )
