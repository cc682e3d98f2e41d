from .academic_class import AcademicClass, Enrollment, EnrollmentStatus
from .class_session import ClassSession, HolidayPeriod
from .evaluation import Evaluation, EvaluationGrade, EvaluationType
from .attendance import AttendanceRecord
from .audit_log import AuditEntry, AuditAction

__all__ = [
    "AcademicClass",
    "Enrollment",
    "EnrollmentStatus",
    "ClassSession",
    "HolidayPeriod",
    "Evaluation",
    "EvaluationGrade",
    "EvaluationType",
    "AttendanceRecord",
    "AuditEntry",
    "AuditAction",
]
