"""
Attendance calculations and absence alert classification.

Percentages are computed with exact decimal arithmetic and rounded half up to
two decimal places. The absence percentage is derived as 100 minus the
attendance percentage so the two always add up to exactly 100.
"""
from dataclasses import dataclass, asdict
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional

from academic_records.core.exceptions import ValidationError

WARNING_ABSENCE_THRESHOLD = Decimal(20)
CRITICAL_ABSENCE_THRESHOLD = Decimal(25)

_TWO_DECIMALS = Decimal("0.01")
_HUNDRED = Decimal(100)


class AlertLevel(str, Enum):
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class AttendanceStatusSummary:
    total_sessions: int
    absences: int
    attended_sessions: int
    attendance_percentage: float
    absence_percentage: float
    alert_level: AlertLevel
    alert_message: Optional[str]
    needs_alert: bool

    def to_dict(self):
        return asdict(self)


def _check_counts(total: int, absences: int) -> None:
    if total < 0:
        raise ValidationError(
            f"Total sessions must not be negative (got {total})",
            details={"total": total},
        )
    if absences < 0 or absences > total:
        raise ValidationError(
            f"Absences must be between 0 and {total} (got {absences})",
            details={"total": total, "absences": absences},
        )


def _attendance_decimal(total: int, absences: int) -> Decimal:
    _check_counts(total, absences)
    if total == 0:
        return _HUNDRED
    ratio = Decimal(total - absences) * _HUNDRED / Decimal(total)
    return ratio.quantize(_TWO_DECIMALS, rounding=ROUND_HALF_UP)


def calculate_attendance_percentage(total: int, absences: int) -> float:
    """Attended share of sessions in percent (2 decimals); 100 when there were no sessions."""
    return float(_attendance_decimal(total, absences))


def calculate_absence_percentage(total: int, absences: int) -> float:
    """Absent share of sessions in percent; 0 when there were no sessions."""
    return float(_HUNDRED - _attendance_decimal(total, absences))


def get_alert_level(absence_percentage: float) -> AlertLevel:
    value = Decimal(str(absence_percentage))
    if value >= CRITICAL_ABSENCE_THRESHOLD:
        return AlertLevel.CRITICAL
    if value >= WARNING_ABSENCE_THRESHOLD:
        return AlertLevel.WARNING
    return AlertLevel.NORMAL


def get_alert_message(level: AlertLevel, absence_percentage: float) -> Optional[str]:
    if level == AlertLevel.CRITICAL:
        return (
            f"ATTENTION: student exceeded {CRITICAL_ABSENCE_THRESHOLD}% absences "
            f"({absence_percentage:.1f}%). Risk of failing for attendance."
        )
    if level == AlertLevel.WARNING:
        return (
            f"WARNING: student is approaching the absence limit "
            f"({absence_percentage:.1f}%). Maximum allowed: {CRITICAL_ABSENCE_THRESHOLD}%."
        )
    return None


def get_attendance_status(total: int, absences: int) -> AttendanceStatusSummary:
    attendance = calculate_attendance_percentage(total, absences)
    absence = calculate_absence_percentage(total, absences)
    level = get_alert_level(absence)

    return AttendanceStatusSummary(
        total_sessions=total,
        absences=absences,
        attended_sessions=total - absences,
        attendance_percentage=attendance,
        absence_percentage=absence,
        alert_level=level,
        alert_message=get_alert_message(level, absence),
        needs_alert=level in (AlertLevel.WARNING, AlertLevel.CRITICAL),
    )
