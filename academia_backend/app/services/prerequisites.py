import logging

from sqlalchemy.orm import Session

from app.core.errors import AcademiaError, CircularDependencyError, RuleConfigurationError
from app.models.course import Course
from app.models.override import OverriddenRequirement, WaivedRequirement
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
from app.schemas.prerequisite import CorequisiteRuleCreate, RestrictionCreate, RuleCreate
from app.services.courses import get_course, known_course_ids
from app.services.graph import (
    build_graph,
    edges_to_prereq_map,
    prerequisite_levels,
    topo_sort,
    validate_prerequisite_chain,
)
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
    Requirement,
    RequirementType,
    RestrictionCheck,
    RestrictionEntry,
    RuleTree,
    check_rule_tree,
)

logger = logging.getLogger(__name__)

_ALTERNATIVE_SEPARATOR = "; "


# ── Prerequisite rules ────────────────────────────────────────────────────────

def replace_prerequisite_rules(
    db: Session, course_id: int, rules: list[RuleCreate]
) -> list[PrerequisiteRule]:
    """
    Replace a course's prerequisite rules.

    The submitted tree is checked for configuration faults before anything is
    written. After the new rows are flushed, the whole catalog's prerequisite
    edges are re-read in the same transaction and checked for cycles; any
    fault rolls the transaction back.
    """
    course = get_course(db, course_id)
    known = known_course_ids(db)
    if rules:
        check_rule_tree(_tree_from_payload(rules), known)

    try:
        _detach_exception_links(db, course_id)
        course.prerequisite_rules.clear()
        db.flush()
        roots = [_build_rule(course, payload) for payload in rules]
        db.add_all(roots)
        db.flush()

        result = validate_prerequisite_chain(catalog_edges(db))
        if not result.is_valid:
            raise CircularDependencyError(result.error_message, result.circular_path)
    except AcademiaError as exc:
        db.rollback()
        logger.warning("Rejected prerequisite update for course %s: %s", course_id, exc.message)
        raise

    db.commit()
    for root in roots:
        db.refresh(root)
    logger.info("Replaced prerequisite rules for course %s (%d root rules)", course_id, len(roots))
    return roots


def get_prerequisite_rules(db: Session, course_id: int) -> list[PrerequisiteRule]:
    get_course(db, course_id)
    return (
        db.query(PrerequisiteRule)
        .filter(PrerequisiteRule.course_id == course_id, PrerequisiteRule.parent_rule_id.is_(None))
        .order_by(PrerequisiteRule.priority, PrerequisiteRule.id)
        .all()
    )


def load_rule_tree(db: Session, course_id: int) -> RuleTree | None:
    """Active rules of a course as one tree; several root rules are ANDed together."""
    roots = [r for r in get_prerequisite_rules(db, course_id) if r.is_active]
    nodes = [_node_from_row(rule) for rule in roots]
    if not nodes:
        return None
    if len(nodes) == 1:
        return nodes[0]
    return Node(None, "All prerequisite rules", LogicOperator.AND, tuple(nodes))


def catalog_edges(db: Session) -> list[tuple[int, int]]:
    """
    (course, prerequisite course) pairs from every rule that is evaluated:
    the rule and all of its ancestors must be active.
    """
    rules = {
        rule_id: (parent_id, is_active)
        for rule_id, parent_id, is_active in db.query(
            PrerequisiteRule.id, PrerequisiteRule.parent_rule_id, PrerequisiteRule.is_active
        ).all()
    }
    live: dict[int, bool] = {}

    def is_live(rule_id: int) -> bool:
        if rule_id not in live:
            parent_id, is_active = rules[rule_id]
            live[rule_id] = bool(is_active) and (parent_id is None or is_live(parent_id))
        return live[rule_id]

    rows = (
        db.query(PrerequisiteRule.id, PrerequisiteRule.course_id, PrerequisiteRequirement.required_course_id)
        .join(PrerequisiteRequirement, PrerequisiteRequirement.rule_id == PrerequisiteRule.id)
        .filter(
            PrerequisiteRequirement.requirement_type == RequirementType.COURSE.value,
            PrerequisiteRequirement.required_course_id.isnot(None),
        )
        .all()
    )
    return sorted({(course_id, prereq_id) for rule_id, course_id, prereq_id in rows if is_live(rule_id)})


def prerequisite_order(db: Session) -> tuple[list[int], dict[int, int]]:
    course_ids = known_course_ids(db)
    prereq_map = {course_id: set() for course_id in course_ids}
    prereq_map.update(edges_to_prereq_map(catalog_edges(db)))
    graph = build_graph(prereq_map)
    return topo_sort(graph), prerequisite_levels(graph)


def _detach_exception_links(db: Session, course_id: int) -> None:
    """Unlink overrides/waivers from requirements that are about to be deleted."""
    old_ids = [
        rid
        for (rid,) in db.query(PrerequisiteRequirement.id)
        .join(PrerequisiteRule, PrerequisiteRequirement.rule_id == PrerequisiteRule.id)
        .filter(PrerequisiteRule.course_id == course_id)
        .all()
    ]
    if not old_ids:
        return
    for link in (OverriddenRequirement, WaivedRequirement):
        db.query(link).filter(link.requirement_id.in_(old_ids)).update(
            {link.requirement_id: None}, synchronize_session="fetch"
        )


def _build_rule(course: Course, payload: RuleCreate) -> PrerequisiteRule:
    rule = PrerequisiteRule(
        course=course,
        name=payload.name,
        description=payload.description,
        logic_operator=payload.logic_operator.value,
        is_active=payload.is_active,
        priority=payload.priority,
    )
    for order, req in enumerate(payload.requirements, start=1):
        fields = req.model_dump(exclude={"requirement_type", "alternative_options"})
        rule.requirements.append(
            PrerequisiteRequirement(
                requirement_type=req.requirement_type.value,
                sequence_order=order,
                alternative_options=_ALTERNATIVE_SEPARATOR.join(req.alternative_options) or None,
                **fields,
            )
        )
    for nested in payload.nested_rules:
        rule.nested_rules.append(_build_rule(course, nested))
    return rule


def _tree_from_payload(rules: list[RuleCreate]) -> RuleTree:
    counter = iter(range(1, 1_000_000))

    def node(payload: RuleCreate, path: str) -> Node:
        leaves = [
            Leaf(_requirement(f"new-{next(counter)}", req.requirement_type, req, req.alternative_options))
            for req in payload.requirements
        ]
        nested = [node(child, f"{path}.{i}") for i, child in enumerate(payload.nested_rules, start=1)]
        return Node(path, payload.name, payload.logic_operator, tuple(leaves + nested))

    nodes = [node(rule, str(i)) for i, rule in enumerate(rules, start=1)]
    return nodes[0] if len(nodes) == 1 else Node(None, "All prerequisite rules", LogicOperator.AND, tuple(nodes))


def _node_from_row(rule: PrerequisiteRule) -> Node:
    leaves = [
        Leaf(
            _requirement(
                str(req.id),
                req.requirement_type,
                req,
                (req.alternative_options or "").split(_ALTERNATIVE_SEPARATOR),
                course_name=req.required_course.code if req.required_course is not None else None,
            )
        )
        for req in rule.requirements
    ]
    nested = [_node_from_row(child) for child in rule.nested_rules if child.is_active]
    return Node(str(rule.id), rule.name, LogicOperator(rule.logic_operator), tuple(leaves + nested))


def _requirement(
    requirement_id: str,
    kind: RequirementType | str,
    source,
    alternatives: list[str],
    course_name: str | None = None,
) -> Requirement:
    """Build an engine requirement from a payload or ORM row (same field names)."""
    try:
        kind = RequirementType(kind)
    except ValueError:
        raise RuleConfigurationError(f"Requirement {requirement_id} has unknown type {kind!r}.")

    common = {
        "requirement_id": requirement_id,
        "can_be_waived": bool(source.can_be_waived),
        "alternatives": tuple(a for a in alternatives if a),
    }
    missing = f"Requirement {requirement_id} ({kind.value}) is missing "
    if kind == RequirementType.COURSE:
        if source.required_course_id is None:
            raise RuleConfigurationError(missing + "required_course_id.")
        return CourseRequirement(
            course_id=source.required_course_id,
            course_name=course_name,
            minimum_grade=source.minimum_grade,
            **common,
        )
    if kind == RequirementType.CREDIT_HOURS:
        if source.minimum_credit_hours is None:
            raise RuleConfigurationError(missing + "minimum_credit_hours.")
        return CreditHoursRequirement(minimum_credit_hours=source.minimum_credit_hours, **common)
    if kind == RequirementType.CLASS_STANDING:
        if not source.required_class_standing:
            raise RuleConfigurationError(missing + "required_class_standing.")
        try:
            standing = ClassStanding.from_label(source.required_class_standing)
        except ValueError as exc:
            raise RuleConfigurationError(f"Requirement {requirement_id}: {exc}")
        return ClassStandingRequirement(standing=standing, exact=bool(source.exact_standing), **common)
    if kind == RequirementType.GPA:
        if source.minimum_gpa is None:
            raise RuleConfigurationError(missing + "minimum_gpa.")
        return GpaRequirement(minimum_gpa=source.minimum_gpa, **common)
    if not source.required_permission:
        raise RuleConfigurationError(missing + "required_permission.")
    return PermissionRequirement(permission=source.required_permission, **common)


# ── Corequisites ──────────────────────────────────────────────────────────────

def add_corequisite_rule(db: Session, course_id: int, payload: CorequisiteRuleCreate) -> CorequisiteRule:
    course = get_course(db, course_id)
    known = known_course_ids(db)
    problems = [
        f"Corequisite references unknown course {req.required_course_id}."
        for req in payload.requirements
        if req.required_course_id not in known
    ]
    problems += [
        "A course cannot be its own corequisite."
        for req in payload.requirements
        if req.required_course_id == course_id
    ]
    if problems:
        raise RuleConfigurationError("Corequisite rule configuration is invalid.", problems)

    rule = CorequisiteRule(
        course=course,
        name=payload.name,
        enforcement_type=payload.enforcement_type.value,
        is_active=payload.is_active,
    )
    for req in payload.requirements:
        rule.requirements.append(
            CorequisiteRequirement(
                required_course_id=req.required_course_id,
                relationship_type=req.relationship_type.value,
                is_waivable=req.is_waivable,
                failure_action=req.failure_action.value,
            )
        )
    db.add(rule)
    db.commit()
    db.refresh(rule)
    return rule


def load_corequisites(db: Session, course_id: int) -> list[CorequisiteCheck]:
    rules = (
        db.query(CorequisiteRule)
        .filter(CorequisiteRule.course_id == course_id, CorequisiteRule.is_active.is_(True))
        .order_by(CorequisiteRule.id)
        .all()
    )
    return [
        CorequisiteCheck(
            course_id=req.required_course_id,
            enforcement=CorequisiteEnforcement(rule.enforcement_type),
            relationship=CorequisiteRelationship(req.relationship_type),
            course_name=req.required_course.code if req.required_course is not None else None,
            is_waivable=bool(req.is_waivable),
            failure_action=FailureAction(req.failure_action),
        )
        for rule in rules
        for req in rule.requirements
    ]


# ── Enrollment restrictions ───────────────────────────────────────────────────

def add_restriction(db: Session, course_id: int, payload: RestrictionCreate) -> EnrollmentRestriction:
    course = get_course(db, course_id)
    if not (payload.majors or payload.class_standings or payload.permissions):
        raise RuleConfigurationError("An enrollment restriction needs at least one major, standing or permission entry.")

    restriction = EnrollmentRestriction(
        course=course,
        name=payload.name,
        enforcement_level=payload.enforcement_level.value,
        is_active=payload.is_active,
        violation_message=payload.violation_message,
    )
    for major in payload.majors:
        restriction.major_restrictions.append(
            MajorRestriction(major_code=major.major_code, is_included=major.is_included)
        )
    for standing in payload.class_standings:
        restriction.standing_restrictions.append(
            ClassStandingRestriction(class_standing=standing.class_standing, is_included=standing.is_included)
        )
    for permission in payload.permissions:
        restriction.permission_restrictions.append(PermissionRestriction(permission=permission))
    db.add(restriction)
    db.commit()
    db.refresh(restriction)
    return restriction


def load_restrictions(db: Session, course_id: int) -> list[RestrictionCheck]:
    rows = (
        db.query(EnrollmentRestriction)
        .filter(EnrollmentRestriction.course_id == course_id, EnrollmentRestriction.is_active.is_(True))
        .order_by(EnrollmentRestriction.id)
        .all()
    )
    return [
        RestrictionCheck(
            restriction_id=str(row.id),
            enforcement_level=EnforcementLevel(row.enforcement_level),
            name=row.name,
            majors=tuple(RestrictionEntry(m.major_code, m.is_included) for m in row.major_restrictions),
            standings=tuple(RestrictionEntry(s.class_standing, s.is_included) for s in row.standing_restrictions),
            permissions=tuple(p.permission for p in row.permission_restrictions),
            violation_message=row.violation_message,
        )
        for row in rows
    ]
