from sqlalchemy import Boolean, Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from app.models.base import Base


class EnrollmentRestriction(Base):
    __tablename__ = "enrollment_restrictions"

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=True)
    enforcement_level = Column(String, nullable=False, default="Hard")  # Hard / Soft
    is_active = Column(Boolean, default=True)
    violation_message = Column(String, nullable=True)

    course = relationship("Course", back_populates="restrictions")
    major_restrictions = relationship(
        "MajorRestriction", back_populates="restriction", cascade="all, delete-orphan"
    )
    standing_restrictions = relationship(
        "ClassStandingRestriction", back_populates="restriction", cascade="all, delete-orphan"
    )
    permission_restrictions = relationship(
        "PermissionRestriction", back_populates="restriction", cascade="all, delete-orphan"
    )


class MajorRestriction(Base):
    __tablename__ = "major_restrictions"

    id = Column(Integer, primary_key=True, index=True)
    restriction_id = Column(Integer, ForeignKey("enrollment_restrictions.id", ondelete="CASCADE"), nullable=False)
    major_code = Column(String, nullable=False)
    is_included = Column(Boolean, default=True)

    restriction = relationship("EnrollmentRestriction", back_populates="major_restrictions")


class ClassStandingRestriction(Base):
    __tablename__ = "class_standing_restrictions"

    id = Column(Integer, primary_key=True, index=True)
    restriction_id = Column(Integer, ForeignKey("enrollment_restrictions.id", ondelete="CASCADE"), nullable=False)
    class_standing = Column(String, nullable=False)
    is_included = Column(Boolean, default=True)

    restriction = relationship("EnrollmentRestriction", back_populates="standing_restrictions")


class PermissionRestriction(Base):
    __tablename__ = "permission_restrictions"

    id = Column(Integer, primary_key=True, index=True)
    restriction_id = Column(Integer, ForeignKey("enrollment_restrictions.id", ondelete="CASCADE"), nullable=False)
    permission = Column(String, nullable=False)

    restriction = relationship("EnrollmentRestriction", back_populates="permission_restrictions")
