from pydantic import BaseModel
from datetime import datetime
from typing import Optional, Any, Dict


class AuditEntryResponse(BaseModel):
    id: int
    actor_id: int
    entity_type: str
    entity_id: int
    action: str
    old_value: Optional[Any] = None
    new_value: Optional[Any] = None
    audit_metadata: Optional[Dict[str, Any]] = None
    created_at: datetime

    class Config:
        from_attributes = True
