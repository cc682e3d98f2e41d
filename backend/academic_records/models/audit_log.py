"""
Audit Entry Model

Append-only record of grade and attendance value changes, consumed by
downstream historical reporting.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, JSON, Index
from sqlalchemy.orm import validates
import enum

from academic_records.core.database import Base


class AuditAction(str, enum.Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class AuditEntry(Base):
    """Immutable change record. Rows are inserted, never updated."""
    __tablename__ = "audit_entries"

    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(Integer, nullable=False, index=True)
    entity_type = Column(String(50), nullable=False)  # "evaluation_grade", "attendance_record", "class_session"
    entity_id = Column(Integer, nullable=False)
    action = Column(String(20), nullable=False)
    old_value = Column(JSON, nullable=True)
    new_value = Column(JSON, nullable=True)
    audit_metadata = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    __table_args__ = (
        Index('idx_audit_entity', 'entity_type', 'entity_id'),
    )

    @validates('action')
    def validate_action(self, key, value):
        if isinstance(value, AuditAction):
            return value.value
        if value not in {a.value for a in AuditAction}:
            raise ValueError(f"Invalid audit action: {value}")
        return value

    def to_dict(self):
        return {
            "id": self.id,
            "actor_id": self.actor_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "metadata": self.audit_metadata,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
