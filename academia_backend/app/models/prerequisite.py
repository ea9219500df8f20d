from sqlalchemy import Boolean, Column, Float, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from app.models.base import Base


class PrerequisiteRule(Base):
    __tablename__ = "prerequisite_rules"

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    parent_rule_id = Column(Integer, ForeignKey("prerequisite_rules.id", ondelete="CASCADE"), nullable=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    logic_operator = Column(String, nullable=False, default="AND")  # AND / OR
    is_active = Column(Boolean, default=True)
    priority = Column(Integer, default=1)

    course = relationship("Course", back_populates="prerequisite_rules", foreign_keys=[course_id])
    requirements = relationship(
        "PrerequisiteRequirement",
        back_populates="rule",
        cascade="all, delete-orphan",
        order_by="PrerequisiteRequirement.sequence_order",
    )
    nested_rules = relationship(
        "PrerequisiteRule",
        cascade="all, delete-orphan",
        order_by="PrerequisiteRule.priority",
    )


class PrerequisiteRequirement(Base):
    __tablename__ = "prerequisite_requirements"
    # Never reuse ids: overrides and waivers reference requirements by id.
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, index=True)
    rule_id = Column(Integer, ForeignKey("prerequisite_rules.id", ondelete="CASCADE"), nullable=False, index=True)
    requirement_type = Column(String, nullable=False)  # Course/CreditHours/ClassStanding/GPA/PermissionRequired
    sequence_order = Column(Integer, default=1)

    required_course_id = Column(Integer, ForeignKey("courses.id"), nullable=True, index=True)
    minimum_grade = Column(String, nullable=True)
    minimum_credit_hours = Column(Integer, nullable=True)
    required_class_standing = Column(String, nullable=True)
    exact_standing = Column(Boolean, default=False)
    minimum_gpa = Column(Float, nullable=True)
    required_permission = Column(String, nullable=True)

    can_be_waived = Column(Boolean, default=True)
    alternative_options = Column(String, nullable=True)  # "; "-separated
    notes = Column(String, nullable=True)

    rule = relationship("PrerequisiteRule", back_populates="requirements")
    required_course = relationship("Course", foreign_keys=[required_course_id])


class CorequisiteRule(Base):
    __tablename__ = "corequisite_rules"

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    enforcement_type = Column(String, nullable=False)  # MustTakeSimultaneously / MustTakeBeforeOrWith
    is_active = Column(Boolean, default=True)

    course = relationship("Course", back_populates="corequisite_rules", foreign_keys=[course_id])
    requirements = relationship(
        "CorequisiteRequirement", back_populates="rule", cascade="all, delete-orphan"
    )


class CorequisiteRequirement(Base):
    __tablename__ = "corequisite_requirements"

    id = Column(Integer, primary_key=True, index=True)
    rule_id = Column(Integer, ForeignKey("corequisite_rules.id", ondelete="CASCADE"), nullable=False)
    required_course_id = Column(Integer, ForeignKey("courses.id"), nullable=False)
    relationship_type = Column(String, nullable=False)  # MustEnrollSimultaneously / MustCompleteBeforeOrWith
    is_waivable = Column(Boolean, default=False)
    failure_action = Column(String, nullable=False, default="BlockEnrollment")

    rule = relationship("CorequisiteRule", back_populates="requirements")
    required_course = relationship("Course", foreign_keys=[required_course_id])
