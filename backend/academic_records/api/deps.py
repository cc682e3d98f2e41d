"""
Request-scoped collaborators for the API routers.
"""
from fastapi import Header, HTTPException, status

from academic_records.services.audit_trail import AuditTrail


def get_actor_id(x_actor_id: int = Header(..., alias="X-Actor-Id")) -> int:
    """Identity of the authenticated caller, supplied by the upstream auth layer."""
    if x_actor_id <= 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Actor-Id must be a positive integer"
        )
    return x_actor_id


def get_audit_trail() -> AuditTrail:
    return AuditTrail()
