from datetime import datetime, timezone
from typing import Annotated

from pydantic import AfterValidator, BaseModel

from app.services.approvals import Decision


def _naive_utc(value: datetime | None) -> datetime | None:
    # Stored and compared as naive UTC, like the utcnow() defaults on the models.
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


UtcDateTime = Annotated[datetime | None, AfterValidator(_naive_utc)]


class ExceptionCreateRequest(BaseModel):
    student_id: int
    course_id: int
    exception_type: str | None = None  # e.g. AdvisorOverride, TransferCredit
    justification: str
    requested_by: str
    requirement_ids: list[int] = []
    corequisite_course_ids: list[int] = []
    expires_on: UtcDateTime = None


class ReviewRequest(BaseModel):
    decision: Decision
    reviewer: str
    reviewer_role: str
    comments: str | None = None


class RevokeRequest(BaseModel):
    reviewer: str
    reviewer_role: str
    reason: str


class AuditEntryResponse(BaseModel):
    id: int
    action: str
    performed_by: str
    performed_on: datetime | None = None
    details: str | None = None

    model_config = {"from_attributes": True}


class ExceptionResponse(BaseModel):
    id: int
    kind: str  # override / waiver
    student_id: int
    course_id: int
    exception_type: str
    status: str
    effective_status: str
    justification: str
    requested_by: str
    requested_on: datetime | None = None
    reviewed_by: str | None = None
    reviewed_on: datetime | None = None
    approved_on: datetime | None = None
    review_comments: str | None = None
    expires_on: datetime | None = None
    requirement_ids: list[int] = []
    corequisite_course_ids: list[int] = []
    audit_trail: list[AuditEntryResponse] = []
