from sqlalchemy import Column, Integer, Boolean, Text, ForeignKey, Index
from sqlalchemy.orm import relationship

from academic_records.core.database import Base


class AttendanceRecord(Base):
    """
    Presence of one enrollment at one class session.

    At most one row per (session_id, enrollment_id); the batch coordinator
    guarantees this by replacing rows by key instead of appending.
    """
    __tablename__ = "attendance_records"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("class_sessions.id"), nullable=False)
    enrollment_id = Column(Integer, ForeignKey("class_enrollments.id"), nullable=False)
    present = Column(Boolean, nullable=False)
    justification = Column(Text, nullable=True)

    # Relationships
    session = relationship("ClassSession", back_populates="attendance_records")
    enrollment = relationship("Enrollment", back_populates="attendance_records")

    __table_args__ = (
        Index('idx_attendance_session_enrollment', 'session_id', 'enrollment_id'),
        Index('idx_attendance_enrollment_present', 'enrollment_id', 'present'),
    )
