"""
Approval state machine shared by prerequisite overrides and waivers.

    Pending --approve--> Approved --revoke--> Revoked
    Pending --deny-----> Denied

Denied and Revoked are terminal, and so is an Approved record once its
expiration date has passed. The functions work on any object exposing the
status/review columns (ORM rows or ``ExceptionGrant``) and never read the
acting user from ambient state: reviewer identity and role are arguments.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable

from app.core.errors import ReviewerNotAuthorizedError, WorkflowError

logger = logging.getLogger(__name__)


class ApprovalStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    DENIED = "Denied"
    REVOKED = "Revoked"
    EXPIRED = "Expired"  # derived, never stored


class Decision(str, Enum):
    APPROVE = "Approve"
    DENY = "Deny"


@dataclass(frozen=True)
class ExceptionGrant:
    """Read-only view of an override or waiver handed to the evaluator."""

    kind: str  # "override" / "waiver"
    record_id: int
    student_id: int
    course_id: int
    requirement_ids: frozenset[str]
    status: ApprovalStatus
    approved_on: datetime | None = None
    expires_on: datetime | None = None

    def covers(self, requirement_id: str) -> bool:
        return requirement_id in self.requirement_ids


def is_active(record, now: datetime) -> bool:
    return (
        record.approved_on is not None
        and ApprovalStatus(record.status) == ApprovalStatus.APPROVED
        and (record.expires_on is None or record.expires_on > now)
    )


def effective_status(record, now: datetime) -> ApprovalStatus:
    status = ApprovalStatus(record.status)
    if status == ApprovalStatus.APPROVED and not is_active(record, now):
        return ApprovalStatus.EXPIRED
    return status


def check_request(justification: str | None, requested_by: str | None, requirement_ids: Iterable) -> None:
    if not justification or not justification.strip():
        raise WorkflowError("A justification is required.")
    if not requested_by or not requested_by.strip():
        raise WorkflowError("The requester must be identified.")
    if not list(requirement_ids):
        raise WorkflowError("At least one requirement must be listed.")


def ensure_reviewer(reviewer: str, reviewer_role: str, allowed_roles: Iterable[str]) -> None:
    if not reviewer or not reviewer.strip():
        raise WorkflowError("The reviewer must be identified.")
    if reviewer_role.strip().lower() not in {r.lower() for r in allowed_roles}:
        raise ReviewerNotAuthorizedError(f"Role '{reviewer_role}' may not review exceptions.")


def review(
    record,
    decision: Decision,
    reviewer: str,
    reviewer_role: str,
    now: datetime,
    allowed_roles: Iterable[str],
    comments: str | None = None,
) -> str:
    """Move a pending record to Approved or Denied. Returns the audit action name."""
    ensure_reviewer(reviewer, reviewer_role, allowed_roles)
    status = effective_status(record, now)
    if status != ApprovalStatus.PENDING:
        raise WorkflowError(f"Only pending requests can be reviewed (current status: {status.value}).")
    if record.expires_on is not None and record.expires_on <= now and decision == Decision.APPROVE:
        raise WorkflowError("Cannot approve a request whose expiration date has passed.")

    record.reviewed_by = reviewer
    record.reviewed_on = now
    record.review_comments = comments
    if decision == Decision.APPROVE:
        record.status = ApprovalStatus.APPROVED.value
        record.approved_on = now
    else:
        record.status = ApprovalStatus.DENIED.value
    logger.info("%s reviewed by %s (%s): %s", _describe(record), reviewer, reviewer_role, record.status)
    return "approved" if decision == Decision.APPROVE else "denied"


def revoke(
    record,
    reviewer: str,
    reviewer_role: str,
    now: datetime,
    allowed_roles: Iterable[str],
    reason: str | None = None,
) -> str:
    ensure_reviewer(reviewer, reviewer_role, allowed_roles)
    if not reason or not reason.strip():
        raise WorkflowError("A reason is required to revoke an approval.")
    status = effective_status(record, now)
    if status != ApprovalStatus.APPROVED:
        raise WorkflowError(f"Only active approvals can be revoked (current status: {status.value}).")

    record.status = ApprovalStatus.REVOKED.value
    record.reviewed_by = reviewer
    record.reviewed_on = now
    record.review_comments = reason
    logger.info("%s revoked by %s (%s)", _describe(record), reviewer, reviewer_role)
    return "revoked"


def _describe(record) -> str:
    return f"{type(record).__name__} #{getattr(record, 'id', getattr(record, 'record_id', '?'))}"
