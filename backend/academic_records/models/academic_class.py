from sqlalchemy import Column, Integer, String, DateTime, Numeric, ForeignKey, Enum as SQLEnum, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from academic_records.core.database import Base


class EnrollmentStatus(str, enum.Enum):
    ENROLLED = "enrolled"
    CANCELLED = "cancelled"
    PASSED = "passed"
    FAILED = "failed"


class AcademicClass(Base):
    """A scheduled section of a course offering."""
    __tablename__ = "classes"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    section = Column(String(6), nullable=True)
    room = Column(String(20), nullable=True)
    professor_id = Column(String(8), nullable=True, index=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    sessions = relationship("ClassSession", back_populates="class_", cascade="all, delete-orphan")
    evaluations = relationship("Evaluation", back_populates="class_", cascade="all, delete-orphan")
    enrollments = relationship("Enrollment", back_populates="class_", cascade="all, delete-orphan")


class Enrollment(Base):
    """
    A student's registration in a class.

    grade_average and attendance_percentage are cached aggregates owned by the
    batch coordinator; they are never computed lazily on read.
    """
    __tablename__ = "class_enrollments"

    id = Column(Integer, primary_key=True, index=True)
    class_id = Column(Integer, ForeignKey("classes.id"), nullable=False)
    student_id = Column(String(8), nullable=False)

    # Cached aggregates
    grade_average = Column(Numeric(4, 1, asdecimal=False), nullable=True)
    attendance_percentage = Column(Numeric(5, 2, asdecimal=False), nullable=True)

    status = Column(SQLEnum(EnrollmentStatus), nullable=False, default=EnrollmentStatus.ENROLLED)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    class_ = relationship("AcademicClass", back_populates="enrollments")
    attendance_records = relationship("AttendanceRecord", back_populates="enrollment")

    __table_args__ = (
        Index('idx_enrollment_unique_class_student', 'class_id', 'student_id', unique=True),
        Index('idx_enrollment_student', 'student_id'),
    )
