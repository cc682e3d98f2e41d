"""Tests for the best-effort audit trail."""

import logging
import pytest
from sqlalchemy import select

from academic_records.models import AuditEntry, AuditAction
from academic_records.services.audit_trail import AuditTrail, attendance_change, grade_change


def broken_session_factory():
    raise RuntimeError("audit store unavailable")


class TestAuditTrail:

    def test_log_writes_entry(self, db_session, audit_trail):
        entry_id = audit_trail.log(
            actor_id=1,
            entity_type="evaluation_grade",
            entity_id=5,
            action=AuditAction.UPDATE,
            old_value={"grade": 6.0},
            new_value={"grade": 7.5},
            metadata={"student_id": "20240001"}
        )

        entry = db_session.get(AuditEntry, entry_id)
        assert entry.action == "UPDATE"
        assert entry.old_value == {"grade": 6.0}
        assert entry.new_value == {"grade": 7.5}
        assert entry.audit_metadata == {"student_id": "20240001"}
        assert entry.created_at is not None

    def test_grade_change_helper(self, db_session, audit_trail):
        audit_trail.log_grade_change(actor_id=2, student_id="20240001", evaluation_id=3, class_id=1, new_grade=8.0)

        entry = db_session.execute(select(AuditEntry)).scalar_one()
        assert entry.action == "CREATE"
        assert entry.old_value is None
        assert entry.audit_metadata == {"student_id": "20240001", "class_id": 1, "evaluation_id": 3}

    def test_attendance_change_record(self):
        record = attendance_change(
            actor_id=1, student_id="20240001", session_id=4, class_id=1,
            enrollment_id=2, new_present=False, old_present=True
        )

        assert record.action == AuditAction.UPDATE
        assert record.entity_type == "attendance_record"
        assert record.old_value == {"present": True}
        assert record.new_value == {"present": False}

    def test_failure_is_swallowed_and_reported(self, caplog):
        failures = []
        trail = AuditTrail(
            session_factory=broken_session_factory,
            failure_sink=lambda record, error: failures.append((record, error)),
            enabled=True
        )

        with caplog.at_level(logging.ERROR):
            result = trail.log_attendance_change(
                actor_id=1, student_id="20240001", session_id=1, class_id=1,
                enrollment_id=1, new_present=True
            )

        assert result is None
        assert len(failures) == 1
        assert isinstance(failures[0][1], RuntimeError)
        assert "Failed to write audit entry" in caplog.text

    def test_failing_sink_does_not_raise(self):
        def bad_sink(record, error):
            raise ValueError("sink down")

        trail = AuditTrail(session_factory=broken_session_factory, failure_sink=bad_sink, enabled=True)

        assert trail.log(1, "attendance_record", 1, AuditAction.CREATE, {"present": True}) is None

    def test_deferred_entries_written_on_flush(self, db_session, audit_trail):
        audit_trail.record(grade_change(1, "20240001", 3, 1, new_grade=7.0))
        audit_trail.record(grade_change(1, "20240002", 3, 1, new_grade=5.0, old_grade=4.0))

        assert db_session.execute(select(AuditEntry)).scalars().all() == []
        assert audit_trail.flush() == 2
        assert audit_trail.pending == []
        assert len(db_session.execute(select(AuditEntry)).scalars().all()) == 2

    def test_discard_drops_queue(self, db_session, audit_trail):
        audit_trail.record(grade_change(1, "20240001", 3, 1, new_grade=7.0))
        audit_trail.discard()

        assert audit_trail.flush() == 0
        assert db_session.execute(select(AuditEntry)).scalars().all() == []

    def test_disabled_trail_writes_nothing(self, db_session, session_factory):
        trail = AuditTrail(session_factory=session_factory, enabled=False)

        assert trail.log(1, "attendance_record", 1, AuditAction.CREATE, {"present": True}) is None
        assert db_session.execute(select(AuditEntry)).scalars().all() == []

    def test_history_newest_first(self, audit_trail):
        for grade in (5.0, 6.0, 7.0):
            audit_trail.log_grade_change(1, "20240001", 3, 1, new_grade=grade)
        audit_trail.log_grade_change(1, "20240001", 4, 1, new_grade=9.0)

        history = audit_trail.history("evaluation_grade", entity_id=3)

        assert [entry.new_value["grade"] for entry in history] == [7.0, 6.0, 5.0]
        assert len(audit_trail.history("evaluation_grade", limit=2)) == 2

    def test_invalid_action_rejected(self):
        with pytest.raises(ValueError):
            AuditEntry(actor_id=1, entity_type="x", entity_id=1, action="MERGE")
