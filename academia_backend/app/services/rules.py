"""
Rule model for course prerequisites, corequisites and enrollment restrictions.

A prerequisite rule is a tree: ``Node`` combines children with AND/OR and a
``Leaf`` wraps exactly one requirement. Requirement kinds form a closed set of
frozen dataclasses, so the evaluator can dispatch on them with ``match``.
Whether a leaf is individually required follows from its parent operator
(every child of an AND, no single child of an OR); it is not stored on the
requirement.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Iterator, Union

from app.core.errors import RuleConfigurationError
from app.services.grades import is_known_grade


class LogicOperator(str, Enum):
    AND = "AND"
    OR = "OR"


class RequirementType(str, Enum):
    COURSE = "Course"
    CREDIT_HOURS = "CreditHours"
    CLASS_STANDING = "ClassStanding"
    GPA = "GPA"
    PERMISSION = "PermissionRequired"


class ClassStanding(IntEnum):
    FRESHMAN = 1
    SOPHOMORE = 2
    JUNIOR = 3
    SENIOR = 4
    GRADUATE = 5
    POST_BACCALAUREATE = 6
    DOCTORAL = 7

    @property
    def label(self) -> str:
        return _STANDING_LABELS[self]

    @classmethod
    def from_label(cls, value: "str | ClassStanding") -> "ClassStanding":
        if isinstance(value, ClassStanding):
            return value
        key = value.strip().replace(" ", "").replace("-", "").lower()
        for member, label in _STANDING_LABELS.items():
            if label.lower() == key:
                return member
        raise ValueError(f"Unknown class standing: {value!r}")


_STANDING_LABELS = {
    ClassStanding.FRESHMAN: "Freshman",
    ClassStanding.SOPHOMORE: "Sophomore",
    ClassStanding.JUNIOR: "Junior",
    ClassStanding.SENIOR: "Senior",
    ClassStanding.GRADUATE: "Graduate",
    ClassStanding.POST_BACCALAUREATE: "PostBaccalaureate",
    ClassStanding.DOCTORAL: "Doctoral",
}


class CorequisiteEnforcement(str, Enum):
    MUST_TAKE_SIMULTANEOUSLY = "MustTakeSimultaneously"
    MUST_TAKE_BEFORE_OR_WITH = "MustTakeBeforeOrWith"


class CorequisiteRelationship(str, Enum):
    MUST_ENROLL_SIMULTANEOUSLY = "MustEnrollSimultaneously"
    MUST_COMPLETE_BEFORE_OR_WITH = "MustCompleteBeforeOrWith"


class FailureAction(str, Enum):
    BLOCK_ENROLLMENT = "BlockEnrollment"
    REQUIRE_ADVISOR_APPROVAL = "RequireAdvisorApproval"


class EnforcementLevel(str, Enum):
    HARD = "Hard"
    SOFT = "Soft"


# ── Requirements (leaf payloads) ──────────────────────────────────────────────

@dataclass(frozen=True, kw_only=True)
class _RequirementBase:
    requirement_id: str
    can_be_waived: bool = True
    alternatives: tuple[str, ...] = ()


@dataclass(frozen=True, kw_only=True)
class CourseRequirement(_RequirementBase):
    course_id: int
    course_name: str | None = None
    minimum_grade: str | None = None


@dataclass(frozen=True, kw_only=True)
class CreditHoursRequirement(_RequirementBase):
    minimum_credit_hours: int


@dataclass(frozen=True, kw_only=True)
class ClassStandingRequirement(_RequirementBase):
    standing: ClassStanding
    exact: bool = False


@dataclass(frozen=True, kw_only=True)
class GpaRequirement(_RequirementBase):
    minimum_gpa: float


@dataclass(frozen=True, kw_only=True)
class PermissionRequirement(_RequirementBase):
    permission: str


Requirement = Union[
    CourseRequirement,
    CreditHoursRequirement,
    ClassStandingRequirement,
    GpaRequirement,
    PermissionRequirement,
]


def requirement_type(requirement: Requirement) -> RequirementType:
    match requirement:
        case CourseRequirement():
            return RequirementType.COURSE
        case CreditHoursRequirement():
            return RequirementType.CREDIT_HOURS
        case ClassStandingRequirement():
            return RequirementType.CLASS_STANDING
        case GpaRequirement():
            return RequirementType.GPA
        case PermissionRequirement():
            return RequirementType.PERMISSION
    raise TypeError(f"Unsupported requirement: {requirement!r}")


# ── Rule tree ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Leaf:
    requirement: Requirement


@dataclass(frozen=True)
class Node:
    rule_id: str | None
    name: str
    operator: LogicOperator
    children: tuple["RuleTree", ...] = ()

    @property
    def child_key(self) -> str:
        return f"rule:{self.rule_id}"


RuleTree = Union[Leaf, Node]


def iter_requirements(tree: RuleTree | None) -> Iterator[Requirement]:
    if tree is None:
        return
    stack: list[RuleTree] = [tree]
    while stack:
        item = stack.pop()
        if isinstance(item, Leaf):
            yield item.requirement
        else:
            stack.extend(reversed(item.children))


def required_course_ids(tree: RuleTree | None) -> set[int]:
    return {
        req.course_id
        for req in iter_requirements(tree)
        if isinstance(req, CourseRequirement)
    }


def validate_rule_tree(tree: RuleTree, known_courses: set[int] | None = None) -> list[str]:
    """Return every configuration problem in the tree; empty list means valid."""
    problems: list[str] = []
    seen_ids: set[str] = set()
    stack: list[RuleTree] = [tree]
    while stack:
        item = stack.pop()
        if isinstance(item, Node):
            if not item.children:
                problems.append(f"Rule '{item.name}' has no requirements or nested rules.")
            stack.extend(item.children)
            continue
        req = item.requirement
        if req.requirement_id in seen_ids:
            problems.append(f"Requirement id {req.requirement_id} appears more than once.")
        seen_ids.add(req.requirement_id)
        problems.extend(_requirement_problems(req, known_courses))
    return problems


def check_rule_tree(tree: RuleTree, known_courses: set[int] | None = None) -> None:
    problems = validate_rule_tree(tree, known_courses)
    if problems:
        raise RuleConfigurationError("Prerequisite rule configuration is invalid.", problems)


def _requirement_problems(req: Requirement, known_courses: set[int] | None) -> list[str]:
    label = f"Requirement {req.requirement_id}"
    match req:
        case CourseRequirement(course_id=course_id, minimum_grade=minimum_grade):
            problems = []
            if known_courses is not None and course_id not in known_courses:
                problems.append(f"{label} references unknown course {course_id}.")
            if minimum_grade and not is_known_grade(minimum_grade):
                problems.append(f"{label} has unknown minimum grade {minimum_grade!r}.")
            return problems
        case CreditHoursRequirement(minimum_credit_hours=hours):
            return [] if hours and hours > 0 else [f"{label} needs a positive credit-hour minimum."]
        case GpaRequirement(minimum_gpa=gpa):
            return [] if 0.0 < gpa <= 4.0 else [f"{label} has GPA minimum outside (0, 4.0]."]
        case PermissionRequirement(permission=permission):
            return [] if permission.strip() else [f"{label} has an empty permission."]
        case ClassStandingRequirement():
            return []
    return [f"{label} has an unsupported type."]


# ── Corequisites and restrictions ─────────────────────────────────────────────

@dataclass(frozen=True)
class CorequisiteCheck:
    course_id: int
    enforcement: CorequisiteEnforcement
    relationship: CorequisiteRelationship
    course_name: str | None = None
    is_waivable: bool = False
    failure_action: FailureAction = FailureAction.BLOCK_ENROLLMENT

    @property
    def key(self) -> str:
        return f"coreq:{self.course_id}"


@dataclass(frozen=True)
class RestrictionEntry:
    value: str
    is_included: bool = True


@dataclass(frozen=True)
class RestrictionCheck:
    restriction_id: str
    enforcement_level: EnforcementLevel = EnforcementLevel.HARD
    name: str | None = None
    majors: tuple[RestrictionEntry, ...] = ()
    standings: tuple[RestrictionEntry, ...] = ()
    permissions: tuple[str, ...] = ()
    violation_message: str | None = None
