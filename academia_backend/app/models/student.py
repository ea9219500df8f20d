from datetime import datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from app.models.base import Base


class Student(Base):
    __tablename__ = "students"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    student_number = Column(String, nullable=True, index=True)
    major = Column(String, nullable=True)
    secondary_major = Column(String, nullable=True)
    class_standing = Column(String, nullable=False, default="Freshman")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    completed_courses = relationship(
        "CompletedCourse", back_populates="student", cascade="all, delete-orphan"
    )
    schedule = relationship(
        "ScheduledCourse", back_populates="student", cascade="all, delete-orphan"
    )
    permissions = relationship(
        "PermissionGrant", back_populates="student", cascade="all, delete-orphan"
    )


class CompletedCourse(Base):
    __tablename__ = "completed_courses"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, index=True)
    grade = Column(String, nullable=False)
    credits = Column(Integer, nullable=True)  # falls back to the course's credits
    term = Column(String, nullable=True)
    completed_on = Column(Date, nullable=True)

    student = relationship("Student", back_populates="completed_courses")
    course = relationship("Course")


class ScheduledCourse(Base):
    """A course the student is enrolled in (or registering for) this term."""

    __tablename__ = "scheduled_courses"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False)
    term = Column(String, nullable=True)

    student = relationship("Student", back_populates="schedule")


class PermissionGrant(Base):
    __tablename__ = "permission_grants"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=True)  # null = any course
    permission = Column(String, nullable=False)
    granted_by = Column(String, nullable=True)
    granted_at = Column(DateTime, default=datetime.utcnow)

    student = relationship("Student", back_populates="permissions")
