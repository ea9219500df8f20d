from datetime import date, datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel, Field

from app.services.rules import ClassStanding


def _standing(value: str | None) -> str | None:
    if value is None:
        return None
    return ClassStanding.from_label(value).label


Standing = Annotated[str, AfterValidator(_standing)]
OptionalStanding = Annotated[str | None, AfterValidator(_standing)]


class StudentCreateRequest(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    student_number: str | None = None
    major: str | None = None
    secondary_major: str | None = None
    class_standing: Standing = "Freshman"


class StudentUpdateRequest(BaseModel):
    """All fields optional — only provided fields are written."""

    first_name: str | None = Field(None, min_length=1)
    last_name: str | None = Field(None, min_length=1)
    student_number: str | None = None
    major: str | None = None
    secondary_major: str | None = None
    class_standing: OptionalStanding = None


class StudentResponse(StudentCreateRequest):
    id: int
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class CompletedCourseCreate(BaseModel):
    course_id: int
    grade: str = Field(..., min_length=1)
    credits: int | None = Field(None, ge=0)
    term: str | None = None
    completed_on: date | None = None


class CompletedCourseRequest(BaseModel):
    courses: list[CompletedCourseCreate]


class CompletedCourseResponse(CompletedCourseCreate):
    id: int
    student_id: int

    model_config = {"from_attributes": True}


class ScheduleRequest(BaseModel):
    course_ids: list[int]
    term: str | None = None


class ScheduledCourseResponse(BaseModel):
    id: int
    student_id: int
    course_id: int
    term: str | None = None

    model_config = {"from_attributes": True}


class PermissionGrantCreate(BaseModel):
    permission: str = Field(..., min_length=1)
    course_id: int | None = None
    granted_by: str | None = None


class PermissionGrantResponse(PermissionGrantCreate):
    id: int
    student_id: int
    granted_at: datetime | None = None

    model_config = {"from_attributes": True}


class GpaResponse(BaseModel):
    student_id: int
    gpa: float | None = None
    credits: int
