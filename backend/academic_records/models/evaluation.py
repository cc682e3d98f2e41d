from sqlalchemy import Column, Integer, String, Date, SmallInteger, Numeric, Text, ForeignKey, Enum as SQLEnum, Index
from sqlalchemy.orm import relationship
import enum

from academic_records.core.database import Base


class EvaluationType(str, enum.Enum):
    EXAM = "exam"
    ASSIGNMENT = "assignment"
    PARTICIPATION = "participation"
    OTHER = "other"


class Evaluation(Base):
    """A gradable assessment of a class, weighted in integer percent."""
    __tablename__ = "evaluations"

    id = Column(Integer, primary_key=True, index=True)
    class_id = Column(Integer, ForeignKey("classes.id"), nullable=False)
    evaluation_date = Column(Date, nullable=False)
    evaluation_type = Column(SQLEnum(EvaluationType), nullable=False, default=EvaluationType.EXAM)
    code = Column(String(8), nullable=False)
    description = Column(String(50), nullable=False)
    weight = Column(SmallInteger, nullable=False)
    file_url = Column(Text, nullable=True)

    # Relationships
    class_ = relationship("AcademicClass", back_populates="evaluations")
    grades = relationship("EvaluationGrade", back_populates="evaluation", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_evaluation_class', 'class_id'),
    )


class EvaluationGrade(Base):
    """A student's grade for one evaluation, stored rounded to one decimal."""
    __tablename__ = "evaluation_grades"

    id = Column(Integer, primary_key=True, index=True)
    evaluation_id = Column(Integer, ForeignKey("evaluations.id"), nullable=False)
    student_id = Column(String(8), nullable=False)
    grade = Column(Numeric(4, 1, asdecimal=False), nullable=False)
    note = Column(Text, nullable=True)

    # Relationships
    evaluation = relationship("Evaluation", back_populates="grades")

    __table_args__ = (
        Index('idx_evaluation_grade_key', 'evaluation_id', 'student_id'),
    )
