from sqlalchemy import Column, Integer, String, Date, Time, DateTime, Text, ForeignKey, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from academic_records.core.database import Base


class ClassSession(Base):
    """One dated meeting of a class. Never duplicated for the same (class, date)."""
    __tablename__ = "class_sessions"

    id = Column(Integer, primary_key=True, index=True)
    class_id = Column(Integer, ForeignKey("classes.id"), nullable=False)

    # Session timing
    session_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)

    # Content
    topic = Column(Text, nullable=True)
    material_url = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    class_ = relationship("AcademicClass", back_populates="sessions")
    attendance_records = relationship("AttendanceRecord", back_populates="session", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_class_session_class_date', 'class_id', 'session_date', unique=True),
    )


class HolidayPeriod(Base):
    """Closed date interval [start_date, end_date] during which no session is held."""
    __tablename__ = "calendar_events"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    notes = Column(Text, nullable=True)

    __table_args__ = (
        Index('idx_calendar_event_range', 'start_date', 'end_date'),
    )

    def contains(self, day) -> bool:
        return self.start_date <= day <= self.end_date
