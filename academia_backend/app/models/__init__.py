from app.models.course import Course
from app.models.override import (
    ExceptionAuditEntry,
    OverriddenRequirement,
    PrerequisiteOverride,
    PrerequisiteWaiver,
    WaivedRequirement,
)
from app.models.prerequisite import (
    CorequisiteRequirement,
    CorequisiteRule,
    PrerequisiteRequirement,
    PrerequisiteRule,
)
from app.models.restriction import (
    ClassStandingRestriction,
    EnrollmentRestriction,
    MajorRestriction,
    PermissionRestriction,
)
from app.models.student import CompletedCourse, PermissionGrant, ScheduledCourse, Student

__all__ = [
    "ClassStandingRestriction",
    "CompletedCourse",
    "CorequisiteRequirement",
    "CorequisiteRule",
    "Course",
    "EnrollmentRestriction",
    "ExceptionAuditEntry",
    "MajorRestriction",
    "OverriddenRequirement",
    "PermissionGrant",
    "PermissionRestriction",
    "PrerequisiteOverride",
    "PrerequisiteRequirement",
    "PrerequisiteRule",
    "PrerequisiteWaiver",
    "ScheduledCourse",
    "Student",
    "WaivedRequirement",
]
