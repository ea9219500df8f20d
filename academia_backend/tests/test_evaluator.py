from datetime import timedelta

import pytest

from app.core.errors import RuleConfigurationError
from app.schemas.validation import OverallStatus, RequirementPriority, RequirementStatus
from app.services.approvals import ApprovalStatus, ExceptionGrant
from app.services.evaluator import CourseRecord, best_records, validate_enrollment
from app.services.rules import (
    ClassStanding,
    ClassStandingRequirement,
    CorequisiteCheck,
    CorequisiteEnforcement,
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
    RestrictionCheck,
    RestrictionEntry,
)

from conftest import NOW, make_profile

CS301, CS310, CS320, CS450, MATH210 = 301, 310, 320, 450, 210


def course(req_id, course_id, name=None, minimum=None, **kwargs):
    return Leaf(CourseRequirement(
        requirement_id=req_id, course_id=course_id, course_name=name, minimum_grade=minimum, **kwargs
    ))


def grant(kind="override", requirement_ids=("r210",), status=ApprovalStatus.APPROVED, expires_on=None,
          course_id=CS301, student_id=1, record_id=1):
    return ExceptionGrant(
        kind=kind,
        record_id=record_id,
        student_id=student_id,
        course_id=course_id,
        requirement_ids=frozenset(requirement_ids),
        status=status,
        approved_on=NOW - timedelta(days=1) if status == ApprovalStatus.APPROVED else None,
        expires_on=expires_on,
    )


@pytest.fixture
def cs301_rule():
    return Node("1", "CS301 prerequisites", LogicOperator.AND, (
        course("r210", MATH210, "MATH210", "C"),
        Leaf(ClassStandingRequirement(requirement_id="rstanding", standing=ClassStanding.SOPHOMORE)),
    ))


@pytest.fixture
def cs450_rule():
    return Node("2", "Systems background", LogicOperator.OR, (
        course("r310", CS310, "CS310"),
        course("r320", CS320, "CS320"),
    ))


class TestPrerequisiteTree:
    def test_missing_course_is_critical(self, cs301_rule):
        result = validate_enrollment(make_profile(), CS301, cs301_rule, now=NOW)
        assert not result.is_valid
        assert result.overall_status == OverallStatus.PARTIALLY_SATISFIED
        assert len(result.missing_requirements) == 1
        missing = result.missing_requirements[0]
        assert missing.course_id == MATH210
        assert missing.course_name == "MATH210"
        assert missing.minimum_grade == "C"
        assert missing.priority == RequirementPriority.CRITICAL
        assert any("MATH210" in action for action in missing.suggested_actions)

    def test_grade_below_minimum(self, cs301_rule):
        result = validate_enrollment(make_profile({MATH210: "D"}), CS301, cs301_rule, now=NOW)
        leaf = result.requirement_results[0]
        assert leaf.status == RequirementStatus.NOT_SATISFIED
        assert leaf.completed_grade == "D"
        assert "below minimum" in leaf.failure_reason

    def test_all_requirements_met(self, cs301_rule):
        result = validate_enrollment(make_profile({MATH210: "B+"}), CS301, cs301_rule, now=NOW)
        assert result.is_valid
        assert result.overall_status == OverallStatus.SATISFIED
        assert result.missing_requirements == []
        assert result.logic_evaluation.satisfied_by_requirements == ["r210", "rstanding"]

    def test_nothing_satisfied_is_failed(self, cs301_rule):
        profile = make_profile(standing=ClassStanding.FRESHMAN)
        result = validate_enrollment(profile, CS301, cs301_rule, now=NOW)
        assert result.overall_status == OverallStatus.FAILED

    def test_or_satisfied_by_one_branch(self, cs450_rule):
        result = validate_enrollment(make_profile({CS310: "B"}), CS450, cs450_rule, now=NOW)
        assert result.is_valid
        assert result.logic_evaluation.satisfied_by_requirements == ["r310"]
        assert result.logic_evaluation.requirement_ids == ["r310", "r320"]
        assert all(not r.is_required for r in result.requirement_results)

    def test_failing_or_alternatives_are_high_priority(self, cs450_rule):
        result = validate_enrollment(make_profile(), CS450, cs450_rule, now=NOW)
        assert [m.priority for m in result.missing_requirements] == [RequirementPriority.HIGH] * 2

    def test_alternatives_to_met_branch_are_optional(self):
        rule = Node("1", "root", LogicOperator.AND, (
            course("a", 1),
            Node("2", "either", LogicOperator.OR, (course("b", 2), course("c", 3))),
        ))
        result = validate_enrollment(make_profile({2: "A"}), 99, rule, now=NOW)
        priorities = {m.requirement_id: m.priority for m in result.missing_requirements}
        assert priorities == {"a": RequirementPriority.CRITICAL, "c": RequirementPriority.OPTIONAL}
        assert "rule:2" in result.logic_evaluation.satisfied_by_requirements

    def test_flipping_operator_changes_outcome(self):
        children = (course("a", 1), course("b", 2))
        profile = make_profile({1: "A"})
        as_and = validate_enrollment(profile, 99, Node("1", "r", LogicOperator.AND, children), now=NOW)
        as_or = validate_enrollment(profile, 99, Node("1", "r", LogicOperator.OR, children), now=NOW)
        assert not as_and.is_valid
        assert as_or.is_valid

    def test_credit_gpa_and_permission_leaves(self):
        rule = Node("1", "r", LogicOperator.AND, (
            Leaf(CreditHoursRequirement(requirement_id="credits", minimum_credit_hours=60)),
            Leaf(GpaRequirement(requirement_id="gpa", minimum_gpa=3.0)),
            Leaf(PermissionRequirement(requirement_id="perm", permission="Instructor")),
        ))
        ok = validate_enrollment(
            make_profile(credit_hours=64, gpa=3.2, permissions=("Instructor",)), 99, rule, now=NOW
        )
        assert ok.is_valid
        short = validate_enrollment(make_profile(credit_hours=45, gpa=None), 99, rule, now=NOW)
        reasons = {r.requirement_id: r.failure_reason for r in short.requirement_results}
        assert "45 of 60" in reasons["credits"]
        assert reasons["gpa"] == "No GPA on record"
        assert "Instructor" in reasons["perm"]

    def test_exact_standing(self):
        rule = Leaf(ClassStandingRequirement(requirement_id="s", standing=ClassStanding.JUNIOR, exact=True))
        assert validate_enrollment(make_profile(standing=ClassStanding.JUNIOR), 99, rule, now=NOW).is_valid
        assert not validate_enrollment(make_profile(standing=ClassStanding.SENIOR), 99, rule, now=NOW).is_valid

    def test_alternatives_suggested_on_failure(self):
        rule = course("a", 1, "CS101", alternatives=("AP Computer Science score of 4",))
        result = validate_enrollment(make_profile(), 99, rule, now=NOW)
        assert "Alternative: AP Computer Science score of 4" in result.requirement_results[0].suggested_actions

    def test_no_rules_means_satisfied(self):
        result = validate_enrollment(make_profile(), 99, None, now=NOW)
        assert result.is_valid
        assert result.logic_evaluation is None

    def test_repeated_evaluation_is_identical(self, cs301_rule):
        profile = make_profile({MATH210: "D"})
        first = validate_enrollment(profile, CS301, cs301_rule, now=NOW)
        second = validate_enrollment(profile, CS301, cs301_rule, now=NOW)
        assert first == second

    def test_misconfigured_rule_raises(self):
        with pytest.raises(RuleConfigurationError):
            validate_enrollment(make_profile(), 99, course("a", 404), now=NOW, known_courses={1, 2})

    def test_unknown_soft_policy(self, cs301_rule):
        with pytest.raises(ValueError):
            validate_enrollment(make_profile(), CS301, cs301_rule, now=NOW, soft_restriction_policy="ignore")


class TestExceptions:
    def test_approved_override_satisfies_requirement(self, cs301_rule):
        result = validate_enrollment(make_profile(), CS301, cs301_rule, exceptions=[grant()], now=NOW)
        assert result.is_valid
        leaf = result.requirement_results[0]
        assert leaf.status == RequirementStatus.OVERRIDDEN
        assert leaf.waived_by == "override:1"
        assert result.applied_exceptions == ["override:1"]

    def test_denied_override_has_no_effect(self, cs301_rule):
        denied = grant(status=ApprovalStatus.DENIED)
        with_denied = validate_enrollment(make_profile(), CS301, cs301_rule, exceptions=[denied], now=NOW)
        without = validate_enrollment(make_profile(), CS301, cs301_rule, now=NOW)
        assert with_denied == without

    def test_expired_override_has_no_effect(self, cs301_rule):
        expired = grant(expires_on=NOW - timedelta(minutes=1))
        result = validate_enrollment(make_profile(), CS301, cs301_rule, exceptions=[expired], now=NOW)
        assert not result.is_valid
        assert result.applied_exceptions == []

    def test_override_for_other_course_is_ignored(self, cs301_rule):
        other = grant(course_id=CS450)
        result = validate_enrollment(make_profile(), CS301, cs301_rule, exceptions=[other], now=NOW)
        assert not result.is_valid

    def test_waiver_respects_can_be_waived(self):
        rule = course("r1", 1, can_be_waived=False)
        waiver = grant(kind="waiver", requirement_ids=("r1",), course_id=99)
        result = validate_enrollment(make_profile(), 99, rule, exceptions=[waiver], now=NOW)
        assert not result.is_valid
        assert "Request a prerequisite waiver or override from your advisor" not in (
            result.requirement_results[0].suggested_actions
        )

    def test_override_applies_to_non_waivable(self):
        rule = course("r1", 1, can_be_waived=False)
        override = grant(requirement_ids=("r1",), course_id=99)
        assert validate_enrollment(make_profile(), 99, rule, exceptions=[override], now=NOW).is_valid

    def test_override_wins_over_waiver(self):
        rule = course("r1", 1)
        waiver = grant(kind="waiver", requirement_ids=("r1",), course_id=99, record_id=5)
        override = grant(requirement_ids=("r1",), course_id=99, record_id=6)
        result = validate_enrollment(make_profile(), 99, rule, exceptions=[waiver, override], now=NOW)
        assert result.requirement_results[0].status == RequirementStatus.OVERRIDDEN
        assert result.applied_exceptions == ["override:6"]

    def test_satisfied_requirement_does_not_consume_exception(self, cs301_rule):
        result = validate_enrollment(
            make_profile({MATH210: "A"}), CS301, cs301_rule, exceptions=[grant()], now=NOW
        )
        assert result.requirement_results[0].status == RequirementStatus.SATISFIED
        assert result.applied_exceptions == []


class TestCorequisites:
    def lab(self, relationship, **kwargs):
        return CorequisiteCheck(
            course_id=151,
            enforcement=CorequisiteEnforcement.MUST_TAKE_SIMULTANEOUSLY,
            relationship=relationship,
            course_name="CHEM151L",
            **kwargs,
        )

    def test_simultaneous_requires_schedule(self):
        check = self.lab(CorequisiteRelationship.MUST_ENROLL_SIMULTANEOUSLY)
        blocked = validate_enrollment(make_profile({151: "A"}), 150, None, [check], now=NOW)
        assert not blocked.is_valid
        assert blocked.corequisite_results[0].failure_action == FailureAction.BLOCK_ENROLLMENT.value
        enrolled = validate_enrollment(make_profile(schedule=(151,)), 150, None, [check], now=NOW)
        assert enrolled.is_valid

    def test_before_or_with_accepts_completion(self):
        check = self.lab(CorequisiteRelationship.MUST_COMPLETE_BEFORE_OR_WITH)
        assert validate_enrollment(make_profile({151: "C"}), 150, None, [check], now=NOW).is_valid
        assert not validate_enrollment(make_profile({151: "F"}), 150, None, [check], now=NOW).is_valid

    def test_advisor_approval_action(self):
        check = self.lab(
            CorequisiteRelationship.MUST_ENROLL_SIMULTANEOUSLY,
            failure_action=FailureAction.REQUIRE_ADVISOR_APPROVAL,
        )
        result = validate_enrollment(make_profile(), 150, None, [check], now=NOW)
        assert any("advisor approval" in a for a in result.corequisite_results[0].suggested_actions)

    def test_waivable_corequisite_with_waiver(self):
        check = self.lab(CorequisiteRelationship.MUST_ENROLL_SIMULTANEOUSLY, is_waivable=True)
        waiver = grant(kind="waiver", requirement_ids=("coreq:151",), course_id=150)
        result = validate_enrollment(make_profile(), 150, None, [check], exceptions=[waiver], now=NOW)
        assert result.is_valid
        assert result.corequisite_results[0].waived_by == "waiver:1"

    def test_non_waivable_corequisite_ignores_grants(self):
        check = self.lab(CorequisiteRelationship.MUST_ENROLL_SIMULTANEOUSLY)
        waiver = grant(kind="waiver", requirement_ids=("coreq:151",), course_id=150)
        result = validate_enrollment(make_profile(), 150, None, [check], exceptions=[waiver], now=NOW)
        assert not result.is_valid


class TestRestrictions:
    def test_major_inclusion_hard_blocks(self):
        check = RestrictionCheck("1", majors=(RestrictionEntry("CS"),))
        result = validate_enrollment(make_profile(majors=("Math",)), 99, None, restrictions=[check], now=NOW)
        assert not result.is_valid
        assert result.restriction_results[0].blocks_enrollment
        allowed = validate_enrollment(make_profile(majors=("cs",)), 99, None, restrictions=[check], now=NOW)
        assert allowed.is_valid

    def test_major_exclusion(self):
        check = RestrictionCheck("1", majors=(RestrictionEntry("BUS", is_included=False),))
        result = validate_enrollment(make_profile(majors=("BUS",)), 99, None, restrictions=[check], now=NOW)
        assert "Not open to majors: BUS" in result.restriction_results[0].violations

    def test_standing_exclusion(self):
        check = RestrictionCheck("1", standings=(RestrictionEntry("Freshman", is_included=False),))
        profile = make_profile(standing=ClassStanding.FRESHMAN)
        assert not validate_enrollment(profile, 99, None, restrictions=[check], now=NOW).is_valid

    def test_soft_restriction_warns_by_default(self):
        check = RestrictionCheck("1", EnforcementLevel.SOFT, permissions=("Dept",))
        result = validate_enrollment(make_profile(), 99, None, restrictions=[check], now=NOW)
        assert result.is_valid
        assert result.warnings == ["Requires permission: Dept"]

    def test_soft_restriction_can_block(self):
        check = RestrictionCheck("1", EnforcementLevel.SOFT, permissions=("Dept",))
        result = validate_enrollment(
            make_profile(), 99, None, restrictions=[check], now=NOW, soft_restriction_policy="block"
        )
        assert not result.is_valid
        assert result.warnings == []


def test_best_records_keeps_highest_attempt():
    records = [CourseRecord(1, "D"), CourseRecord(1, "B"), CourseRecord(1, "C"), CourseRecord(2, "A")]
    best = best_records(records)
    assert best[1].grade == "B"
    assert best[2].grade == "A"
