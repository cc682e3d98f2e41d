"""
Audit Trail Service

Append-only log of grade and attendance value changes.

Writes are best-effort: every entry is stored through its own session and
transaction, and any failure is logged and handed to the failure sink instead
of propagating. Business operations queue entries with ``record()`` while
their transaction is open and call ``flush()`` only after it has committed,
so an audit failure can never roll back or block the primary change.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
from sqlalchemy import select, desc
from sqlalchemy.orm import Session
import logging

from academic_records.core.config import settings
from academic_records.core.database import SessionLocal
from academic_records.models.audit_log import AuditEntry, AuditAction

logger = logging.getLogger(__name__)

GRADE_ENTITY = "evaluation_grade"
ATTENDANCE_ENTITY = "attendance_record"
SESSION_ENTITY = "class_session"


@dataclass
class AuditRecord:
    """An audit entry that has not been written yet."""
    actor_id: int
    entity_type: str
    entity_id: int
    action: AuditAction
    new_value: Any
    old_value: Any = None
    metadata: Dict[str, Any] = field(default_factory=dict)


FailureSink = Callable[[AuditRecord, Exception], None]


def grade_change(
    actor_id: int,
    student_id: str,
    evaluation_id: int,
    class_id: int,
    new_grade: float,
    old_grade: Optional[float] = None
) -> AuditRecord:
    return AuditRecord(
        actor_id=actor_id,
        entity_type=GRADE_ENTITY,
        entity_id=evaluation_id,
        action=AuditAction.UPDATE if old_grade is not None else AuditAction.CREATE,
        old_value={"grade": old_grade} if old_grade is not None else None,
        new_value={"grade": new_grade},
        metadata={
            "student_id": student_id,
            "class_id": class_id,
            "evaluation_id": evaluation_id,
        },
    )


def attendance_change(
    actor_id: int,
    student_id: str,
    session_id: int,
    class_id: int,
    enrollment_id: int,
    new_present: bool,
    old_present: Optional[bool] = None
) -> AuditRecord:
    return AuditRecord(
        actor_id=actor_id,
        entity_type=ATTENDANCE_ENTITY,
        entity_id=session_id,
        action=AuditAction.UPDATE if old_present is not None else AuditAction.CREATE,
        old_value={"present": old_present} if old_present is not None else None,
        new_value={"present": new_present},
        metadata={
            "student_id": student_id,
            "class_id": class_id,
            "session_id": session_id,
            "enrollment_id": enrollment_id,
        },
    )


class AuditTrail:
    """
    Best-effort audit writer.

    Args:
        session_factory: callable returning a new Session; defaults to SessionLocal
        failure_sink: called with (record, exception) whenever a write fails
        enabled: overrides settings.AUDIT_ENABLED
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        failure_sink: Optional[FailureSink] = None,
        enabled: Optional[bool] = None
    ):
        self.session_factory = session_factory or SessionLocal
        self.failure_sink = failure_sink
        self.enabled = settings.AUDIT_ENABLED if enabled is None else enabled
        self._pending: List[AuditRecord] = []

    # === IMMEDIATE WRITES ===

    def log(
        self,
        actor_id: int,
        entity_type: str,
        entity_id: int,
        action: AuditAction,
        new_value: Any,
        old_value: Any = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Optional[int]:
        """Write one entry now. Returns its id, or None if it could not be stored."""
        return self._write(AuditRecord(
            actor_id=actor_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            new_value=new_value,
            old_value=old_value,
            metadata=metadata or {},
        ))

    def log_grade_change(self, actor_id: int, student_id: str, evaluation_id: int,
                         class_id: int, new_grade: float, old_grade: Optional[float] = None) -> Optional[int]:
        return self._write(grade_change(actor_id, student_id, evaluation_id, class_id, new_grade, old_grade))

    def log_attendance_change(self, actor_id: int, student_id: str, session_id: int, class_id: int,
                              enrollment_id: int, new_present: bool,
                              old_present: Optional[bool] = None) -> Optional[int]:
        return self._write(attendance_change(
            actor_id, student_id, session_id, class_id, enrollment_id, new_present, old_present
        ))

    # === DEFERRED WRITES ===

    def record(self, audit_record: AuditRecord) -> None:
        """Queue an entry to be written by flush() after the business commit."""
        self._pending.append(audit_record)

    @property
    def pending(self) -> List[AuditRecord]:
        return list(self._pending)

    def flush(self) -> int:
        """Write all queued entries; returns how many were stored."""
        records, self._pending = self._pending, []
        written = 0
        for audit_record in records:
            if self._write(audit_record) is not None:
                written += 1
        if records:
            logger.info(f"Audit flush stored {written}/{len(records)} entries")
        return written

    def discard(self) -> None:
        """Drop queued entries, e.g. after the business transaction rolled back."""
        if self._pending:
            logger.debug(f"Discarding {len(self._pending)} queued audit entries")
        self._pending = []

    # === QUERIES ===

    def history(self, entity_type: str, entity_id: Optional[int] = None, limit: int = 100) -> List[AuditEntry]:
        """Newest-first entries for an entity type, optionally narrowed to one entity."""
        query = select(AuditEntry).where(AuditEntry.entity_type == entity_type)
        if entity_id is not None:
            query = query.where(AuditEntry.entity_id == entity_id)
        query = query.order_by(desc(AuditEntry.created_at), desc(AuditEntry.id)).limit(limit)

        with self.session_factory() as db:
            entries = list(db.execute(query).scalars().all())
            db.expunge_all()
        return entries

    # === INTERNALS ===

    def _write(self, audit_record: AuditRecord) -> Optional[int]:
        if not self.enabled:
            return None

        try:
            with self.session_factory() as db:
                entry = AuditEntry(
                    actor_id=audit_record.actor_id,
                    entity_type=audit_record.entity_type,
                    entity_id=audit_record.entity_id,
                    action=audit_record.action,
                    old_value=audit_record.old_value,
                    new_value=audit_record.new_value,
                    audit_metadata=audit_record.metadata,
                )
                db.add(entry)
                db.commit()
                return entry.id
        except Exception as e:
            logger.error(
                f"Failed to write audit entry {audit_record.entity_type}:{audit_record.entity_id}: {e}"
            )
            self._report_failure(audit_record, e)
            return None

    def _report_failure(self, audit_record: AuditRecord, error: Exception) -> None:
        if self.failure_sink is None:
            return
        try:
            self.failure_sink(audit_record, error)
        except Exception:
            logger.exception("Audit failure sink raised")
