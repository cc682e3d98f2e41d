"""
API endpoint exposing the audit history to reporting collaborators.
"""
from fastapi import APIRouter, Depends, Query
from typing import List, Optional

from academic_records.api.deps import get_audit_trail
from academic_records.schemas.audit import AuditEntryResponse
from academic_records.services.audit_trail import AuditTrail

router = APIRouter()


@router.get("/{entity_type}", response_model=List[AuditEntryResponse])
def list_audit_entries(
    entity_type: str,
    entity_id: Optional[int] = None,
    limit: int = Query(100, ge=1, le=1000),
    audit_trail: AuditTrail = Depends(get_audit_trail)
):
    return audit_trail.history(entity_type, entity_id=entity_id, limit=limit)
