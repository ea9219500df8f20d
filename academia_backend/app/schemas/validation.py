from enum import Enum

from pydantic import BaseModel


class RequirementStatus(str, Enum):
    SATISFIED = "Satisfied"
    NOT_SATISFIED = "NotSatisfied"
    WAIVED = "Waived"
    OVERRIDDEN = "Overridden"


class OverallStatus(str, Enum):
    SATISFIED = "Satisfied"
    FAILED = "Failed"
    PARTIALLY_SATISFIED = "PartiallySatisfied"


class RequirementPriority(str, Enum):
    CRITICAL = "Critical"  # needed on every route to eligibility
    HIGH = "High"          # one of several alternatives, none of which is met yet
    OPTIONAL = "Optional"  # an alternative to something already satisfied


class RequirementValidationResult(BaseModel):
    requirement_id: str
    requirement_type: str
    rule_id: str | None = None
    is_required: bool = True
    status: RequirementStatus
    is_satisfied: bool
    completed_grade: str | None = None
    actual_value: str | None = None
    required_value: str | None = None
    failure_reason: str | None = None
    suggested_actions: list[str] = []
    waived_by: str | None = None  # e.g. "override:4"


class MissingRequirement(BaseModel):
    requirement_id: str
    requirement_type: str
    course_id: int | None = None
    course_name: str | None = None
    minimum_grade: str | None = None
    priority: RequirementPriority
    description: str
    suggested_actions: list[str] = []


class LogicEvaluationResult(BaseModel):
    """Mirror of one AND/OR node; leaves are referenced by requirement id."""

    rule_id: str | None = None
    name: str
    operator: str
    is_satisfied: bool
    requirement_ids: list[str] = []
    satisfied_by_requirements: list[str] = []
    child_results: list["LogicEvaluationResult"] = []


class CorequisiteValidationResult(BaseModel):
    course_id: int
    course_name: str | None = None
    enforcement: str
    relationship: str
    is_satisfied: bool
    failure_action: str | None = None
    failure_reason: str | None = None
    suggested_actions: list[str] = []
    waived_by: str | None = None


class RestrictionValidationResult(BaseModel):
    restriction_id: str
    name: str | None = None
    enforcement_level: str
    is_violated: bool
    blocks_enrollment: bool
    violations: list[str] = []


class PrerequisiteValidationResult(BaseModel):
    course_id: int
    student_id: int
    is_valid: bool
    overall_status: OverallStatus
    requirement_results: list[RequirementValidationResult] = []
    missing_requirements: list[MissingRequirement] = []
    logic_evaluation: LogicEvaluationResult | None = None
    corequisite_results: list[CorequisiteValidationResult] = []
    restriction_results: list[RestrictionValidationResult] = []
    warnings: list[str] = []
    applied_exceptions: list[str] = []


class ChainValidationRequest(BaseModel):
    edges: list[tuple[int, int]]


class ChainValidationResponse(BaseModel):
    is_valid: bool
    error_message: str | None = None
    circular_path: list[int] = []

    model_config = {"from_attributes": True}


class PrerequisiteOrderResponse(BaseModel):
    order: list[int]
    levels: dict[int, int]
