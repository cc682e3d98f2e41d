from pydantic import BaseModel, Field
from typing import Optional, List, Dict

from academic_records.services.attendance_engine import AlertLevel


class AttendanceItem(BaseModel):
    session_id: int = Field(..., gt=0)
    enrollment_id: int = Field(..., gt=0)
    present: bool
    justification: Optional[str] = Field(None, max_length=500)


class AttendanceBatchRequest(BaseModel):
    items: List[AttendanceItem] = Field(..., min_length=1)


class AttendanceStatusResponse(BaseModel):
    enrollment_id: int
    total_sessions: int
    absences: int
    attended_sessions: int
    attendance_percentage: float
    absence_percentage: float
    alert_level: AlertLevel
    alert_message: Optional[str] = None
    needs_alert: bool


class BatchResultResponse(BaseModel):
    success: bool = True
    message: str
    processed: int
    created: int
    updated: int
    unchanged: int
    aggregates: Dict[int, Optional[float]] = {}
    audit_entries_written: int = 0
