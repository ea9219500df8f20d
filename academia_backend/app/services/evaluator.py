"""
Enrollment eligibility evaluation.

``validate_enrollment`` walks a course's prerequisite tree against a student
snapshot, applies active overrides/waivers to failed leaves, checks
corequisites and enrollment restrictions, and returns a
``PrerequisiteValidationResult``. It is a pure function: no I/O, no clock
reads (``now`` is passed in), and no shared state, so repeated calls with the
same inputs give equal results.

A student who does not qualify is a normal outcome (``is_valid=False``).
Only malformed rule data raises, as ``RuleConfigurationError``.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Mapping

from app.schemas.validation import (
    CorequisiteValidationResult,
    LogicEvaluationResult,
    MissingRequirement,
    OverallStatus,
    PrerequisiteValidationResult,
    RequirementPriority,
    RequirementStatus,
    RequirementValidationResult,
    RestrictionValidationResult,
)
from app.services.approvals import ExceptionGrant, is_active
from app.services.grades import grade_rank, meets_minimum, normalize_grade
from app.services.rules import (
    ClassStanding,
    ClassStandingRequirement,
    CorequisiteCheck,
    CorequisiteRelationship,
    CourseRequirement,
    CreditHoursRequirement,
    EnforcementLevel,
    FailureAction,
    GpaRequirement,
    Leaf,
    LogicOperator,
    Node,
    PermissionRequirement,
    Requirement,
    RestrictionCheck,
    RuleTree,
    check_rule_tree,
    requirement_type,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CourseRecord:
    course_id: int
    grade: str
    credits: int | None = None
    completed_on: date | None = None


@dataclass(frozen=True)
class StudentProfile:
    student_id: int
    class_standing: ClassStanding
    completed: Mapping[int, CourseRecord] = field(default_factory=dict)
    credit_hours: int = 0
    gpa: float | None = None
    majors: frozenset[str] = frozenset()
    current_schedule: frozenset[int] = frozenset()
    permissions: frozenset[str] = frozenset()


def best_records(records: Iterable[CourseRecord]) -> dict[int, CourseRecord]:
    """Collapse repeated attempts of a course to the best-graded one."""
    best: dict[int, CourseRecord] = {}
    for record in records:
        current = best.get(record.course_id)
        if current is None or grade_rank(record.grade) > grade_rank(current.grade):
            best[record.course_id] = record
    return best


@dataclass
class _Outcome:
    satisfied: bool
    node: Node | None = None
    logic: LogicEvaluationResult | None = None
    leaf: RequirementValidationResult | None = None
    requirement: Requirement | None = None
    children: list["_Outcome"] = field(default_factory=list)


class _Evaluation:
    def __init__(
        self,
        profile: StudentProfile,
        course_id: int,
        exceptions: Iterable[ExceptionGrant],
        now: datetime,
    ):
        self.profile = profile
        self.course_id = course_id
        self.now = now
        # Only approved, unexpired records for this exact student/course pair count.
        self.grants = [
            grant
            for grant in exceptions
            if grant.student_id == profile.student_id
            and grant.course_id == course_id
            and is_active(grant, now)
        ]
        self.applied: list[str] = []
        self.leaf_results: list[RequirementValidationResult] = []

    # ── prerequisite tree ────────────────────────────────────────────────

    def evaluate(self, tree: RuleTree, rule_id: str | None = None, is_required: bool = True) -> _Outcome:
        if isinstance(tree, Leaf):
            result = self.check_leaf(tree.requirement, rule_id, is_required)
            self.leaf_results.append(result)
            return _Outcome(result.is_satisfied, leaf=result, requirement=tree.requirement)

        child_required = tree.operator == LogicOperator.AND or len(tree.children) == 1
        children = [self.evaluate(child, tree.rule_id, child_required) for child in tree.children]
        if tree.operator == LogicOperator.AND:
            satisfied = all(c.satisfied for c in children)
        else:
            satisfied = any(c.satisfied for c in children)

        logic = LogicEvaluationResult(
            rule_id=tree.rule_id,
            name=tree.name,
            operator=tree.operator.value,
            is_satisfied=satisfied,
            requirement_ids=[c.leaf.requirement_id for c in children if c.leaf is not None],
            satisfied_by_requirements=[_child_key(c) for c in children if c.satisfied],
            child_results=[c.logic for c in children if c.logic is not None],
        )
        return _Outcome(satisfied, node=tree, logic=logic, children=children)

    def check_leaf(self, req: Requirement, rule_id: str | None, is_required: bool) -> RequirementValidationResult:
        satisfied, details = self._check(req)
        result = RequirementValidationResult(
            requirement_id=req.requirement_id,
            requirement_type=requirement_type(req).value,
            rule_id=rule_id,
            is_required=is_required,
            status=RequirementStatus.SATISFIED if satisfied else RequirementStatus.NOT_SATISFIED,
            is_satisfied=satisfied,
            **details,
        )
        if satisfied:
            return result

        grant = self._find_grant(req.requirement_id, allow_waiver=req.can_be_waived)
        if grant is not None:
            status = RequirementStatus.OVERRIDDEN if grant.kind == "override" else RequirementStatus.WAIVED
            return result.model_copy(
                update={
                    "status": status,
                    "is_satisfied": True,
                    "waived_by": self._apply(grant),
                    "suggested_actions": [],
                }
            )

        actions = result.suggested_actions + [
            f"Alternative: {alternative}" for alternative in req.alternatives
        ]
        if req.can_be_waived:
            actions.append("Request a prerequisite waiver or override from your advisor")
        return result.model_copy(update={"suggested_actions": actions})

    def _check(self, req: Requirement) -> tuple[bool, dict]:
        profile = self.profile
        match req:
            case CourseRequirement(course_id=course_id, minimum_grade=minimum):
                name = req.course_name or f"course {course_id}"
                required_value = f"{name} (min grade {minimum})" if minimum else name
                record = profile.completed.get(course_id)
                if record is None:
                    action = f"Complete {name}" + (f" with a grade of {minimum} or better" if minimum else "")
                    return False, {
                        "required_value": required_value,
                        "failure_reason": "Course not completed",
                        "suggested_actions": [action],
                    }
                grade = normalize_grade(record.grade)
                if not meets_minimum(grade, minimum):
                    return False, {
                        "completed_grade": grade,
                        "actual_value": grade,
                        "required_value": required_value,
                        "failure_reason": f"Grade below minimum ({grade} earned, {minimum or 'passing'} required)",
                        "suggested_actions": [f"Retake {name} and earn {minimum or 'a passing grade'} or better"],
                    }
                return True, {"completed_grade": grade, "actual_value": grade, "required_value": required_value}

            case CreditHoursRequirement(minimum_credit_hours=minimum):
                ok = profile.credit_hours >= minimum
                return ok, {
                    "actual_value": str(profile.credit_hours),
                    "required_value": str(minimum),
                    "failure_reason": None if ok else (
                        f"Completed credit hours below minimum ({profile.credit_hours} of {minimum})"
                    ),
                    "suggested_actions": [] if ok else [
                        f"Complete {minimum - profile.credit_hours} more credit hours"
                    ],
                }

            case ClassStandingRequirement(standing=standing, exact=exact):
                current = profile.class_standing
                ok = current == standing if exact else current >= standing
                wording = "exactly" if exact else "at least"
                return ok, {
                    "actual_value": current.label,
                    "required_value": f"{wording} {standing.label}",
                    "failure_reason": None if ok else (
                        f"Class standing {current.label} does not meet requirement ({wording} {standing.label})"
                    ),
                    "suggested_actions": [] if ok else [f"Reach {standing.label} standing before enrolling"],
                }

            case GpaRequirement(minimum_gpa=minimum):
                gpa = profile.gpa
                ok = gpa is not None and gpa >= minimum
                return ok, {
                    "actual_value": None if gpa is None else f"{gpa:.2f}",
                    "required_value": f"{minimum:.2f}",
                    "failure_reason": None if ok else (
                        "No GPA on record" if gpa is None else f"GPA {gpa:.2f} below minimum {minimum:.2f}"
                    ),
                    "suggested_actions": [] if ok else [f"Raise cumulative GPA to {minimum:.2f}"],
                }

            case PermissionRequirement(permission=permission):
                ok = permission in profile.permissions
                return ok, {
                    "required_value": permission,
                    "failure_reason": None if ok else f"Permission not granted: {permission}",
                    "suggested_actions": [] if ok else [f"Request '{permission}' permission"],
                }

        raise TypeError(f"Unsupported requirement: {req!r}")

    def _find_grant(self, key: str, allow_waiver: bool) -> ExceptionGrant | None:
        matches = [g for g in self.grants if g.covers(key)]
        # Overrides are administrative and apply even to non-waivable requirements.
        for grant in matches:
            if grant.kind == "override":
                return grant
        if allow_waiver:
            for grant in matches:
                if grant.kind == "waiver":
                    return grant
        return None

    def _apply(self, grant: ExceptionGrant) -> str:
        label = f"{grant.kind}:{grant.record_id}"
        if label not in self.applied:
            self.applied.append(label)
        return label

    # ── missing requirements ─────────────────────────────────────────────

    def collect_missing(self, outcome: _Outcome, necessity: RequirementPriority) -> list[MissingRequirement]:
        if outcome.leaf is not None:
            if outcome.satisfied:
                return []
            return [_missing(outcome.requirement, outcome.leaf, necessity)]

        node = outcome.node
        single_route = node.operator == LogicOperator.AND or len(outcome.children) == 1
        if single_route:
            child_necessity = necessity
        elif outcome.satisfied or necessity == RequirementPriority.OPTIONAL:
            child_necessity = RequirementPriority.OPTIONAL
        else:
            child_necessity = RequirementPriority.HIGH

        missing: list[MissingRequirement] = []
        for child in outcome.children:
            missing.extend(self.collect_missing(child, child_necessity))
        return missing

    # ── corequisites ─────────────────────────────────────────────────────

    def check_corequisite(self, check: CorequisiteCheck) -> CorequisiteValidationResult:
        profile = self.profile
        name = check.course_name or f"course {check.course_id}"
        enrolled = check.course_id in profile.current_schedule
        if check.relationship == CorequisiteRelationship.MUST_ENROLL_SIMULTANEOUSLY:
            satisfied = enrolled
            reason = f"Must be enrolled in {name} in the same term"
            action = f"Enroll in {name} this term"
        else:
            record = profile.completed.get(check.course_id)
            satisfied = enrolled or (record is not None and meets_minimum(record.grade, None))
            reason = f"Must complete {name} before or alongside this course"
            action = f"Complete or enroll in {name}"

        result = CorequisiteValidationResult(
            course_id=check.course_id,
            course_name=check.course_name,
            enforcement=check.enforcement.value,
            relationship=check.relationship.value,
            is_satisfied=satisfied,
            failure_action=None if satisfied else check.failure_action.value,
        )
        if satisfied:
            return result

        if check.is_waivable:
            grant = self._find_grant(check.key, allow_waiver=True)
            if grant is not None:
                return result.model_copy(
                    update={"is_satisfied": True, "failure_action": None, "waived_by": self._apply(grant)}
                )

        actions = [action]
        if check.failure_action == FailureAction.REQUIRE_ADVISOR_APPROVAL:
            actions.append("Obtain advisor approval to enroll without the corequisite")
        return result.model_copy(update={"failure_reason": reason, "suggested_actions": actions})

    # ── restrictions ─────────────────────────────────────────────────────

    def check_restriction(self, check: RestrictionCheck, soft_policy: str) -> RestrictionValidationResult:
        profile = self.profile
        majors = {m.strip().upper() for m in profile.majors}
        violations: list[str] = []

        included = [e.value for e in check.majors if e.is_included]
        excluded = [e.value for e in check.majors if not e.is_included]
        if included and not majors & {m.upper() for m in included}:
            violations.append(f"Restricted to majors: {', '.join(included)}")
        blocked = sorted(majors & {m.upper() for m in excluded})
        if blocked:
            violations.append(f"Not open to majors: {', '.join(blocked)}")

        standing = profile.class_standing
        included = [ClassStanding.from_label(e.value) for e in check.standings if e.is_included]
        excluded = [ClassStanding.from_label(e.value) for e in check.standings if not e.is_included]
        if included and standing not in included:
            violations.append(f"Restricted to class standing: {', '.join(s.label for s in included)}")
        if standing in excluded:
            violations.append(f"Not open to {standing.label} students")

        for permission in check.permissions:
            if permission not in profile.permissions:
                violations.append(f"Requires permission: {permission}")

        is_violated = bool(violations)
        blocks = is_violated and (
            check.enforcement_level == EnforcementLevel.HARD or soft_policy == "block"
        )
        return RestrictionValidationResult(
            restriction_id=check.restriction_id,
            name=check.name,
            enforcement_level=check.enforcement_level.value,
            is_violated=is_violated,
            blocks_enrollment=blocks,
            violations=violations,
        )


def validate_enrollment(
    profile: StudentProfile,
    course_id: int,
    rule: RuleTree | None,
    corequisites: Iterable[CorequisiteCheck] = (),
    restrictions: Iterable[RestrictionCheck] = (),
    exceptions: Iterable[ExceptionGrant] = (),
    *,
    now: datetime,
    known_courses: set[int] | None = None,
    soft_restriction_policy: str = "warn",
) -> PrerequisiteValidationResult:
    if soft_restriction_policy not in ("warn", "block"):
        raise ValueError(f"Unknown soft restriction policy: {soft_restriction_policy!r}")
    if rule is not None:
        check_rule_tree(rule, known_courses)

    evaluation = _Evaluation(profile, course_id, exceptions, now)

    logic = None
    missing: list[MissingRequirement] = []
    prerequisites_met = True
    if rule is not None:
        outcome = evaluation.evaluate(rule)
        logic = outcome.logic
        prerequisites_met = outcome.satisfied
        if not prerequisites_met:
            missing = evaluation.collect_missing(outcome, RequirementPriority.CRITICAL)

    corequisite_results = [evaluation.check_corequisite(c) for c in corequisites]
    restriction_results = [
        evaluation.check_restriction(r, soft_restriction_policy) for r in restrictions
    ]
    warnings = [
        "; ".join(r.violations)
        for r in restriction_results
        if r.is_violated and not r.blocks_enrollment
    ]

    is_valid = (
        prerequisites_met
        and all(c.is_satisfied for c in corequisite_results)
        and not any(r.blocks_enrollment for r in restriction_results)
    )
    if is_valid:
        status = OverallStatus.SATISFIED
    elif any(r.is_satisfied for r in evaluation.leaf_results):
        status = OverallStatus.PARTIALLY_SATISFIED
    else:
        status = OverallStatus.FAILED

    logger.debug(
        "Eligibility student=%s course=%s valid=%s missing=%d",
        profile.student_id, course_id, is_valid, len(missing),
    )
    return PrerequisiteValidationResult(
        course_id=course_id,
        student_id=profile.student_id,
        is_valid=is_valid,
        overall_status=status,
        requirement_results=evaluation.leaf_results,
        missing_requirements=missing,
        logic_evaluation=logic,
        corequisite_results=corequisite_results,
        restriction_results=restriction_results,
        warnings=warnings,
        applied_exceptions=evaluation.applied,
    )


def _child_key(outcome: _Outcome) -> str:
    if outcome.leaf is not None:
        return outcome.leaf.requirement_id
    return outcome.node.child_key


def _missing(req: Requirement, result: RequirementValidationResult, priority: RequirementPriority) -> MissingRequirement:
    course_id = course_name = minimum_grade = None
    if isinstance(req, CourseRequirement):
        course_id, course_name, minimum_grade = req.course_id, req.course_name, req.minimum_grade
    return MissingRequirement(
        requirement_id=req.requirement_id,
        requirement_type=result.requirement_type,
        course_id=course_id,
        course_name=course_name,
        minimum_grade=minimum_grade,
        priority=priority,
        description=result.failure_reason or "Requirement not satisfied",
        suggested_actions=result.suggested_actions,
    )
