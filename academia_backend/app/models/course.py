from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship

from app.models.base import Base


class Course(Base):
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String, nullable=False, unique=True, index=True)
    title = Column(String, nullable=True)
    credits = Column(Integer, nullable=True)
    department = Column(String, nullable=True)

    # A course owns its rule trees; deleting the course removes them.
    prerequisite_rules = relationship(
        "PrerequisiteRule",
        back_populates="course",
        cascade="all, delete-orphan",
        foreign_keys="PrerequisiteRule.course_id",
    )
    corequisite_rules = relationship(
        "CorequisiteRule",
        back_populates="course",
        cascade="all, delete-orphan",
        foreign_keys="CorequisiteRule.course_id",
    )
    restrictions = relationship(
        "EnrollmentRestriction",
        back_populates="course",
        cascade="all, delete-orphan",
    )
