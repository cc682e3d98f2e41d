"""
API endpoints for class session creation and recurring generation.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
import logging

from academic_records.api.deps import get_actor_id, get_audit_trail
from academic_records.core.database import get_db
from academic_records.schemas.class_session import (
    ClassSessionCreate, ClassSessionResponse, SessionGenerationBody,
    SessionGenerationRequest, SessionGenerationResponse
)
from academic_records.services.audit_trail import AuditTrail
from academic_records.services.session_scheduler import SessionScheduler

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/{class_id}/sessions", response_model=ClassSessionResponse, status_code=status.HTTP_201_CREATED)
def create_class_session(
    class_id: int,
    payload: ClassSessionCreate,
    db: Session = Depends(get_db),
    audit_trail: AuditTrail = Depends(get_audit_trail),
    actor_id: int = Depends(get_actor_id)
):
    """Create a single session; 409 if the class already meets on that date."""
    scheduler = SessionScheduler(db, audit_trail)
    return scheduler.create_session(class_id, actor_id=actor_id, **payload.model_dump())


@router.post("/{class_id}/sessions/generate", response_model=SessionGenerationResponse)
def generate_class_sessions(
    class_id: int,
    payload: SessionGenerationBody,
    db: Session = Depends(get_db),
    audit_trail: AuditTrail = Depends(get_audit_trail),
    actor_id: int = Depends(get_actor_id)
):
    """Generate weekly sessions between two dates, skipping holidays and existing dates."""
    request = SessionGenerationRequest(class_id=class_id, **payload.model_dump())
    scheduler = SessionScheduler(db, audit_trail)
    result = scheduler.generate_sessions(request, actor_id=actor_id)
    return SessionGenerationResponse(**result.to_dict())
