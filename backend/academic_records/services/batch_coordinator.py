"""
Batch consistency coordinator.

Applies attendance and grade batches as single transactions and keeps the
cached aggregates on Enrollment (attendance_percentage, grade_average) in step
with the detail rows.

Every batch runs in two phases:

1. Read-only preconditions: item shape, referenced rows, the class-wide weight
   gate. Failures here raise ValidationError, NotFoundError or
   InvariantViolation and nothing has been written.
2. One transaction: before-state load, replace-by-key of the detail rows,
   aggregate recomputation, commit. Any failure rolls the whole batch back.

Audit entries are queued during phase 2 and written after the commit through
AuditTrail, which never lets an audit failure affect the batch.
"""
from collections import OrderedDict
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Type
from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy import select, and_, func, distinct
from sqlalchemy.orm import Session
import logging

from academic_records.core.config import settings
from academic_records.core.database import transaction_scope
from academic_records.core.exceptions import (
    AcademicRecordsError, InvariantViolation, NotFoundError, ValidationError
)
from academic_records.models.academic_class import AcademicClass, Enrollment
from academic_records.models.attendance import AttendanceRecord
from academic_records.models.class_session import ClassSession
from academic_records.models.evaluation import Evaluation, EvaluationGrade
from academic_records.schemas.attendance import AttendanceItem
from academic_records.schemas.grades import GradeItem
from academic_records.services import attendance_engine, grade_engine
from academic_records.services.audit_trail import AuditTrail, attendance_change, grade_change

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    """
    Outcome of one batch. created/updated/unchanged count items by whether the
    audited value (presence or grade) was new, different or identical.
    """
    processed: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    aggregates: Dict[int, Optional[float]] = field(default_factory=dict)
    audit_entries_written: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "created": self.created,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "aggregates": dict(self.aggregates),
            "audit_entries_written": self.audit_entries_written,
        }


def replace_by_key(db: Session, existing_rows: Iterable[Any], new_rows: Sequence[Any]) -> None:
    """
    Replace the rows stored under a set of composite keys with new rows.

    ``existing_rows`` must be exactly the rows currently stored under the keys
    of ``new_rows``. Deleting them and inserting ``new_rows`` makes applying the
    same batch twice produce the same rows, never duplicates.
    """
    for row in existing_rows:
        db.delete(row)
    db.flush()
    db.add_all(new_rows)
    db.flush()


class BatchConsistencyCoordinator:
    """Bulk attendance upsert and grade launch with consistent cached aggregates."""

    def __init__(
        self,
        db: Session,
        audit_trail: Optional[AuditTrail] = None,
        lock_enrollments: Optional[bool] = None
    ):
        self.db = db
        self.audit_trail = audit_trail or AuditTrail()
        self.lock_enrollments = settings.LOCK_ENROLLMENTS if lock_enrollments is None else lock_enrollments

    # === ATTENDANCE ===

    def upsert_attendance(self, items: Iterable[Any], actor_id: int) -> BatchResult:
        """Replace attendance for the posted (session, enrollment) pairs and refresh attendance_percentage."""
        with self._read_only_phase("attendance batch"):
            parsed = self._parse_items(items, AttendanceItem, "attendance")
            keys = [(item.session_id, item.enrollment_id) for item in parsed]
            self._reject_duplicates(keys, "session_id/enrollment_id")

            sessions = self._load_by_ids(ClassSession, {item.session_id for item in parsed}, "Class session")
            enrollments = self._load_by_ids(Enrollment, {item.enrollment_id for item in parsed}, "Enrollment")

            for item in parsed:
                session = sessions[item.session_id]
                enrollment = enrollments[item.enrollment_id]
                if enrollment.class_id != session.class_id:
                    raise ValidationError(
                        f"Enrollment {enrollment.id} does not belong to the class of session {session.id}",
                        details={
                            "session_id": session.id,
                            "enrollment_id": enrollment.id,
                            "session_class_id": session.class_id,
                            "enrollment_class_id": enrollment.class_id,
                        },
                    )

        result = BatchResult(processed=len(parsed))
        with self._transactional_phase("attendance batch"):
            existing = self._existing_attendance(keys)
            before = {key: rows[0].present for key, rows in existing.items()}

            new_rows = [
                AttendanceRecord(
                    session_id=item.session_id,
                    enrollment_id=item.enrollment_id,
                    present=item.present,
                    justification=item.justification,
                )
                for item in parsed
            ]
            replace_by_key(self.db, [row for rows in existing.values() for row in rows], new_rows)

            for item, key in zip(parsed, keys):
                prior = before.get(key)
                if prior is not None and prior == item.present:
                    result.unchanged += 1
                    continue
                if prior is None:
                    result.created += 1
                else:
                    result.updated += 1
                session = sessions[item.session_id]
                enrollment = enrollments[item.enrollment_id]
                self.audit_trail.record(attendance_change(
                    actor_id=actor_id,
                    student_id=enrollment.student_id,
                    session_id=session.id,
                    class_id=session.class_id,
                    enrollment_id=enrollment.id,
                    new_present=item.present,
                    old_present=prior,
                ))

            result.aggregates.update(self.refresh_attendance(list(enrollments)))

        result.audit_entries_written = self.audit_trail.flush()
        logger.info(
            f"Attendance batch by actor {actor_id}: {result.processed} items, {result.created} created, "
            f"{result.updated} updated, {result.unchanged} unchanged, "
            f"{len(result.aggregates)} enrollments recomputed"
        )
        return result

    # === GRADES ===

    def submit_grades(self, evaluation_id: int, items: Iterable[Any], actor_id: int) -> BatchResult:
        """Replace grades of one evaluation for the posted students and refresh grade_average."""
        with self._read_only_phase("grade batch"):
            parsed = self._parse_items(items, GradeItem, "grade")
            for index, item in enumerate(parsed):
                if not grade_engine.validate_grade(item.grade):
                    raise ValidationError(
                        f"Grade for student {item.student_id} must be between 0 and 10",
                        details={"index": index, "grade": item.grade},
                    )
            student_ids = [item.student_id for item in parsed]
            self._reject_duplicates(student_ids, "student_id")

            evaluation = self.db.get(Evaluation, evaluation_id)
            if evaluation is None:
                raise NotFoundError("Evaluation", evaluation_id)
            class_id = evaluation.class_id

            self.ensure_weights_valid(class_id)

            enrollments = self._enrollments_for_students(class_id, student_ids)
            missing = set(student_ids) - set(enrollments)
            if missing:
                raise NotFoundError("Enrollment", missing, class_id=class_id)

        result = BatchResult(processed=len(parsed))
        with self._transactional_phase("grade batch"):
            existing = self._existing_grades(evaluation_id, student_ids)
            before = {sid: rows[0].grade for sid, rows in existing.items()}

            new_rows = [
                EvaluationGrade(
                    evaluation_id=evaluation_id,
                    student_id=item.student_id,
                    grade=grade_engine.round_grade(item.grade),
                    note=item.note,
                )
                for item in parsed
            ]
            replace_by_key(self.db, [row for rows in existing.values() for row in rows], new_rows)

            for row in new_rows:
                prior = before.get(row.student_id)
                if prior is not None and grade_engine.round_grade(prior) == row.grade:
                    result.unchanged += 1
                    continue
                if prior is None:
                    result.created += 1
                else:
                    result.updated += 1
                self.audit_trail.record(grade_change(
                    actor_id=actor_id,
                    student_id=row.student_id,
                    evaluation_id=evaluation_id,
                    class_id=class_id,
                    new_grade=row.grade,
                    old_grade=grade_engine.round_grade(prior) if prior is not None else None,
                ))

            touched = [enrollments[sid] for sid in student_ids]
            for enrollment in self._lock_enrollments([e.id for e in touched]):
                enrollment.grade_average = self._compute_grade_average(enrollment)
                result.aggregates[enrollment.id] = enrollment.grade_average
            self.db.flush()

        result.audit_entries_written = self.audit_trail.flush()
        logger.info(
            f"Grade batch for evaluation {evaluation_id} by actor {actor_id}: {result.processed} items, "
            f"{result.created} created, {result.updated} updated, {result.unchanged} unchanged"
        )
        return result

    def ensure_weights_valid(self, class_id: int) -> grade_engine.WeightValidation:
        """Class-wide gate: evaluation weights must total exactly 100 before grades are accepted."""
        validation = self.class_weights(class_id)
        if not validation.is_valid:
            raise InvariantViolation(
                f"Evaluation weights of class {class_id} must total 100%: {validation.describe()}",
                total=validation.total,
                difference=validation.difference,
                class_id=class_id,
            )
        return validation

    def class_weights(self, class_id: int) -> grade_engine.WeightValidation:
        weights = self.db.execute(
            select(Evaluation.weight).where(Evaluation.class_id == class_id)
        ).scalars().all()
        return grade_engine.validate_weights(weights)

    def class_evaluations(self, class_id: int) -> List[Evaluation]:
        if self.db.get(AcademicClass, class_id) is None:
            raise NotFoundError("Class", class_id)
        result = self.db.execute(
            select(Evaluation).where(Evaluation.class_id == class_id).order_by(Evaluation.evaluation_date, Evaluation.id)
        )
        return list(result.scalars().all())

    # === AGGREGATES ===

    def recompute_enrollment(self, enrollment_id: int) -> Enrollment:
        """Rebuild both cached aggregates of one enrollment from its current detail rows."""
        with self._read_only_phase("enrollment recompute"):
            if self.db.get(Enrollment, enrollment_id) is None:
                raise NotFoundError("Enrollment", enrollment_id)

        with self._transactional_phase("enrollment recompute"):
            enrollment = self._lock_enrollments([enrollment_id])[0]
            enrollment.attendance_percentage = self._compute_attendance_percentage(enrollment)
            enrollment.grade_average = self._compute_grade_average(enrollment)
            self.db.flush()
        return enrollment

    def refresh_attendance(self, enrollment_ids: Sequence[int]) -> Dict[int, float]:
        """
        Recompute attendance_percentage for the given enrollments under row locks.

        Runs inside the caller's open transaction and only flushes; the caller
        commits or rolls back.
        """
        aggregates = {}
        for enrollment in self._lock_enrollments(enrollment_ids):
            enrollment.attendance_percentage = self._compute_attendance_percentage(enrollment)
            aggregates[enrollment.id] = enrollment.attendance_percentage
        self.db.flush()
        return aggregates

    def refresh_class_attendance(self, class_id: int) -> Dict[int, float]:
        """Recompute attendance_percentage for every enrollment of a class."""
        enrollment_ids = self.db.execute(
            select(Enrollment.id).where(Enrollment.class_id == class_id)
        ).scalars().all()
        if not enrollment_ids:
            return {}
        return self.refresh_attendance(enrollment_ids)

    def attendance_status(self, enrollment_id: int) -> attendance_engine.AttendanceStatusSummary:
        enrollment = self.db.get(Enrollment, enrollment_id)
        if enrollment is None:
            raise NotFoundError("Enrollment", enrollment_id)
        total, present = self._attendance_counts(enrollment)
        return attendance_engine.get_attendance_status(total, total - present)

    def _attendance_counts(self, enrollment: Enrollment) -> Tuple[int, int]:
        total = self.db.scalar(
            select(func.count(ClassSession.id)).where(ClassSession.class_id == enrollment.class_id)
        ) or 0
        present = self.db.scalar(
            select(func.count(distinct(AttendanceRecord.session_id)))
            .join(ClassSession, AttendanceRecord.session_id == ClassSession.id)
            .where(
                and_(
                    ClassSession.class_id == enrollment.class_id,
                    AttendanceRecord.enrollment_id == enrollment.id,
                    AttendanceRecord.present.is_(True)
                )
            )
        ) or 0
        return total, present

    def _compute_attendance_percentage(self, enrollment: Enrollment) -> float:
        # Sessions without a record count as absences
        total, present = self._attendance_counts(enrollment)
        return attendance_engine.calculate_attendance_percentage(total, total - present)

    def _compute_grade_average(self, enrollment: Enrollment) -> Optional[float]:
        rows = self.db.execute(
            select(EvaluationGrade.grade, Evaluation.weight)
            .join(Evaluation, EvaluationGrade.evaluation_id == Evaluation.id)
            .where(
                and_(
                    Evaluation.class_id == enrollment.class_id,
                    EvaluationGrade.student_id == enrollment.student_id
                )
            )
        ).all()
        if not rows:
            return None
        return grade_engine.calculate_weighted_average([(grade, weight) for grade, weight in rows])

    # === INTERNALS ===

    @contextmanager
    def _read_only_phase(self, operation: str):
        try:
            yield
        except AcademicRecordsError as e:
            self.db.rollback()
            logger.warning(f"{operation} rejected before any write: {e.message}")
            raise

    @contextmanager
    def _transactional_phase(self, operation: str):
        try:
            with transaction_scope(self.db, operation):
                yield
        except Exception:
            self.audit_trail.discard()
            raise

    @staticmethod
    def _parse_items(items: Iterable[Any], schema: Type[BaseModel], label: str) -> List[Any]:
        items = list(items or [])
        if not items:
            raise ValidationError(f"The {label} batch must contain at least one item")

        parsed = []
        for index, item in enumerate(items):
            if isinstance(item, schema):
                parsed.append(item)
                continue
            try:
                parsed.append(schema.model_validate(item))
            except PydanticValidationError as e:
                raise ValidationError(
                    f"Invalid {label} item at position {index}",
                    details={"index": index, "errors": e.errors(include_url=False, include_context=False)},
                )
        return parsed

    @staticmethod
    def _reject_duplicates(keys: Sequence[Any], label: str) -> None:
        seen = set()
        duplicates = []
        for key in keys:
            if key in seen:
                duplicates.append(key)
            seen.add(key)
        if duplicates:
            raise ValidationError(
                f"Duplicate {label} in batch: {', '.join(str(k) for k in duplicates)}",
                details={"duplicates": [list(k) if isinstance(k, tuple) else k for k in duplicates]},
            )

    def _load_by_ids(self, model, ids: set, entity: str) -> Dict[int, Any]:
        rows = self.db.execute(select(model).where(model.id.in_(ids))).scalars().all()
        found = {row.id: row for row in rows}
        missing = ids - set(found)
        if missing:
            raise NotFoundError(entity, missing)
        return found

    def _enrollments_for_students(self, class_id: int, student_ids: Sequence[str]) -> Dict[str, Enrollment]:
        rows = self.db.execute(
            select(Enrollment).where(
                and_(Enrollment.class_id == class_id, Enrollment.student_id.in_(student_ids))
            )
        ).scalars().all()
        return {row.student_id: row for row in rows}

    def _existing_attendance(self, keys: Sequence[Tuple[int, int]]) -> Dict[Tuple[int, int], List[AttendanceRecord]]:
        wanted = set(keys)
        rows = self.db.execute(
            select(AttendanceRecord)
            .where(
                and_(
                    AttendanceRecord.session_id.in_({k[0] for k in wanted}),
                    AttendanceRecord.enrollment_id.in_({k[1] for k in wanted})
                )
            )
            .order_by(AttendanceRecord.id)
        ).scalars().all()

        existing: Dict[Tuple[int, int], List[AttendanceRecord]] = OrderedDict()
        for row in rows:
            key = (row.session_id, row.enrollment_id)
            # The IN filters select a cross product; keep only the posted pairs
            if key in wanted:
                existing.setdefault(key, []).append(row)
        return existing

    def _existing_grades(self, evaluation_id: int, student_ids: Sequence[str]) -> Dict[str, List[EvaluationGrade]]:
        rows = self.db.execute(
            select(EvaluationGrade)
            .where(
                and_(
                    EvaluationGrade.evaluation_id == evaluation_id,
                    EvaluationGrade.student_id.in_(student_ids)
                )
            )
            .order_by(EvaluationGrade.id)
        ).scalars().all()

        existing: Dict[str, List[EvaluationGrade]] = OrderedDict()
        for row in rows:
            existing.setdefault(row.student_id, []).append(row)
        return existing

    def _lock_enrollments(self, enrollment_ids: Sequence[int]) -> List[Enrollment]:
        query = select(Enrollment).where(Enrollment.id.in_(enrollment_ids)).order_by(Enrollment.id)
        if self.lock_enrollments:
            # Serializes concurrent batches recomputing the same enrollment; no-op on SQLite
            query = query.with_for_update()
        return list(
            self.db.execute(query.execution_options(populate_existing=True)).scalars().all()
        )
