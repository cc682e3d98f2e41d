"""
API endpoints for bulk attendance upsert and enrollment attendance status.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
import logging

from academic_records.api.deps import get_actor_id, get_audit_trail
from academic_records.core.database import get_db
from academic_records.schemas.attendance import (
    AttendanceBatchRequest, AttendanceStatusResponse, BatchResultResponse
)
from academic_records.services.audit_trail import AuditTrail
from academic_records.services.batch_coordinator import BatchConsistencyCoordinator

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/attendance/bulk-upsert", response_model=BatchResultResponse)
def bulk_upsert_attendance(
    payload: AttendanceBatchRequest,
    db: Session = Depends(get_db),
    audit_trail: AuditTrail = Depends(get_audit_trail),
    actor_id: int = Depends(get_actor_id)
):
    """Record presence for (session, enrollment) pairs; resubmitting the same batch is harmless."""
    coordinator = BatchConsistencyCoordinator(db, audit_trail)
    result = coordinator.upsert_attendance(payload.items, actor_id)
    return BatchResultResponse(
        message="Attendance recorded and percentages updated",
        **result.to_dict()
    )


@router.get("/enrollments/{enrollment_id}/attendance-status", response_model=AttendanceStatusResponse)
def get_enrollment_attendance_status(enrollment_id: int, db: Session = Depends(get_db)):
    coordinator = BatchConsistencyCoordinator(db)
    summary = coordinator.attendance_status(enrollment_id)
    return AttendanceStatusResponse(enrollment_id=enrollment_id, **summary.to_dict())


@router.post("/enrollments/{enrollment_id}/recompute")
def recompute_enrollment_aggregates(
    enrollment_id: int,
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_actor_id)
):
    """Rebuild cached grade average and attendance percentage from current rows."""
    coordinator = BatchConsistencyCoordinator(db)
    enrollment = coordinator.recompute_enrollment(enrollment_id)
    logger.info(f"Enrollment {enrollment_id} aggregates recomputed by actor {actor_id}")
    return {
        "enrollment_id": enrollment.id,
        "grade_average": enrollment.grade_average,
        "attendance_percentage": enrollment.attendance_percentage,
    }
