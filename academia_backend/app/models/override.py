from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from app.models.base import Base


class PrerequisiteOverride(Base):
    __tablename__ = "prerequisite_overrides"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, index=True)
    override_type = Column(String, nullable=False, default="AdministrativeOverride")
    status = Column(String, nullable=False, default="Pending")
    justification = Column(Text, nullable=False)
    requested_by = Column(String, nullable=False)
    requested_on = Column(DateTime, default=datetime.utcnow)
    reviewed_by = Column(String, nullable=True)
    reviewed_on = Column(DateTime, nullable=True)
    approved_on = Column(DateTime, nullable=True)
    review_comments = Column(Text, nullable=True)
    expires_on = Column(DateTime, nullable=True)

    requirements = relationship(
        "OverriddenRequirement", back_populates="override", cascade="all, delete-orphan"
    )
    audit_trail = relationship(
        "ExceptionAuditEntry",
        back_populates="override",
        cascade="all, delete-orphan",
        order_by="ExceptionAuditEntry.id",
    )


class OverriddenRequirement(Base):
    __tablename__ = "overridden_requirements"

    id = Column(Integer, primary_key=True, index=True)
    override_id = Column(Integer, ForeignKey("prerequisite_overrides.id", ondelete="CASCADE"), nullable=False)
    # Exactly one of the two is set: a prerequisite leaf or a corequisite course.
    requirement_id = Column(Integer, ForeignKey("prerequisite_requirements.id", ondelete="SET NULL"), nullable=True)
    corequisite_course_id = Column(Integer, ForeignKey("courses.id"), nullable=True)

    override = relationship("PrerequisiteOverride", back_populates="requirements")


class PrerequisiteWaiver(Base):
    __tablename__ = "prerequisite_waivers"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, index=True)
    waiver_type = Column(String, nullable=False, default="AcademicException")
    status = Column(String, nullable=False, default="Pending")
    justification = Column(Text, nullable=False)
    requested_by = Column(String, nullable=False)
    requested_on = Column(DateTime, default=datetime.utcnow)
    reviewed_by = Column(String, nullable=True)
    reviewed_on = Column(DateTime, nullable=True)
    approved_on = Column(DateTime, nullable=True)
    review_comments = Column(Text, nullable=True)
    expires_on = Column(DateTime, nullable=True)

    requirements = relationship(
        "WaivedRequirement", back_populates="waiver", cascade="all, delete-orphan"
    )
    audit_trail = relationship(
        "ExceptionAuditEntry",
        back_populates="waiver",
        cascade="all, delete-orphan",
        order_by="ExceptionAuditEntry.id",
    )


class WaivedRequirement(Base):
    __tablename__ = "waived_requirements"

    id = Column(Integer, primary_key=True, index=True)
    waiver_id = Column(Integer, ForeignKey("prerequisite_waivers.id", ondelete="CASCADE"), nullable=False)
    requirement_id = Column(Integer, ForeignKey("prerequisite_requirements.id", ondelete="SET NULL"), nullable=True)
    corequisite_course_id = Column(Integer, ForeignKey("courses.id"), nullable=True)

    waiver = relationship("PrerequisiteWaiver", back_populates="requirements")


class ExceptionAuditEntry(Base):
    __tablename__ = "exception_audit_entries"

    id = Column(Integer, primary_key=True, index=True)
    override_id = Column(Integer, ForeignKey("prerequisite_overrides.id", ondelete="CASCADE"), nullable=True, index=True)
    waiver_id = Column(Integer, ForeignKey("prerequisite_waivers.id", ondelete="CASCADE"), nullable=True, index=True)
    action = Column(String, nullable=False)
    performed_by = Column(String, nullable=False)
    performed_on = Column(DateTime, default=datetime.utcnow)
    details = Column(Text, nullable=True)

    override = relationship("PrerequisiteOverride", back_populates="audit_trail")
    waiver = relationship("PrerequisiteWaiver", back_populates="audit_trail")
