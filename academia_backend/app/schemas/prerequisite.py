from pydantic import BaseModel, Field

from app.schemas.student import Standing
from app.services.rules import (
    CorequisiteEnforcement,
    CorequisiteRelationship,
    EnforcementLevel,
    FailureAction,
    LogicOperator,
    RequirementType,
)


class RequirementCreate(BaseModel):
    requirement_type: RequirementType
    required_course_id: int | None = None
    minimum_grade: str | None = None
    minimum_credit_hours: int | None = None
    required_class_standing: str | None = None
    exact_standing: bool = False
    minimum_gpa: float | None = None
    required_permission: str | None = None
    can_be_waived: bool = True
    alternative_options: list[str] = []
    notes: str | None = None


class RuleCreate(BaseModel):
    # Empty rules are accepted here and rejected by the rule validator with a
    # rule-configuration error, not a schema error.
    name: str = Field(..., min_length=1)
    description: str | None = None
    logic_operator: LogicOperator = LogicOperator.AND
    is_active: bool = True
    priority: int = 1
    requirements: list[RequirementCreate] = []
    nested_rules: list["RuleCreate"] = []


class PrerequisiteRulesRequest(BaseModel):
    rules: list[RuleCreate]


class RequirementResponse(BaseModel):
    id: int
    rule_id: int
    requirement_type: str
    sequence_order: int
    required_course_id: int | None = None
    minimum_grade: str | None = None
    minimum_credit_hours: int | None = None
    required_class_standing: str | None = None
    exact_standing: bool = False
    minimum_gpa: float | None = None
    required_permission: str | None = None
    can_be_waived: bool = True
    alternative_options: str | None = None
    notes: str | None = None

    model_config = {"from_attributes": True}


class RuleResponse(BaseModel):
    id: int
    course_id: int
    parent_rule_id: int | None = None
    name: str
    description: str | None = None
    logic_operator: str
    is_active: bool
    priority: int
    requirements: list[RequirementResponse] = []
    nested_rules: list["RuleResponse"] = []

    model_config = {"from_attributes": True}


class CorequisiteRequirementCreate(BaseModel):
    required_course_id: int
    relationship_type: CorequisiteRelationship = CorequisiteRelationship.MUST_ENROLL_SIMULTANEOUSLY
    is_waivable: bool = False
    failure_action: FailureAction = FailureAction.BLOCK_ENROLLMENT


class CorequisiteRuleCreate(BaseModel):
    name: str = Field(..., min_length=1)
    enforcement_type: CorequisiteEnforcement = CorequisiteEnforcement.MUST_TAKE_SIMULTANEOUSLY
    is_active: bool = True
    requirements: list[CorequisiteRequirementCreate] = Field(..., min_length=1)


class CorequisiteRequirementResponse(BaseModel):
    id: int
    required_course_id: int
    relationship_type: str
    is_waivable: bool
    failure_action: str

    model_config = {"from_attributes": True}


class CorequisiteRuleResponse(BaseModel):
    id: int
    course_id: int
    name: str
    enforcement_type: str
    is_active: bool
    requirements: list[CorequisiteRequirementResponse] = []

    model_config = {"from_attributes": True}


class MajorRestrictionCreate(BaseModel):
    major_code: str = Field(..., min_length=1)
    is_included: bool = True


class StandingRestrictionCreate(BaseModel):
    class_standing: Standing
    is_included: bool = True


class RestrictionCreate(BaseModel):
    name: str | None = None
    enforcement_level: EnforcementLevel = EnforcementLevel.HARD
    is_active: bool = True
    violation_message: str | None = None
    majors: list[MajorRestrictionCreate] = []
    class_standings: list[StandingRestrictionCreate] = []
    permissions: list[str] = []


class MajorRestrictionResponse(MajorRestrictionCreate):
    id: int

    model_config = {"from_attributes": True}


class StandingRestrictionResponse(StandingRestrictionCreate):
    id: int

    model_config = {"from_attributes": True}


class PermissionRestrictionResponse(BaseModel):
    id: int
    permission: str

    model_config = {"from_attributes": True}


class RestrictionResponse(BaseModel):
    id: int
    course_id: int
    name: str | None = None
    enforcement_level: str
    is_active: bool
    violation_message: str | None = None
    major_restrictions: list[MajorRestrictionResponse] = []
    standing_restrictions: list[StandingRestrictionResponse] = []
    permission_restrictions: list[PermissionRestrictionResponse] = []

    model_config = {"from_attributes": True}
