"""
Recurring class-session generation with holiday exclusion.

Weekdays follow the 0 = Sunday ... 6 = Saturday convention used by the
request payloads. Generation is idempotent: dates that already have a
session for the class are skipped, never duplicated.
"""
from dataclasses import dataclass, field
from datetime import date, time, timedelta
from enum import IntEnum
from typing import Iterable, List, Optional, Sequence
from sqlalchemy import select, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import logging

from academic_records.core.database import transaction_scope
from academic_records.core.exceptions import ConflictError, NotFoundError, ValidationError
from academic_records.models.academic_class import AcademicClass
from academic_records.models.class_session import ClassSession, HolidayPeriod
from academic_records.models.audit_log import AuditAction
from academic_records.schemas.class_session import SessionGenerationRequest
from academic_records.services.audit_trail import AuditTrail, AuditRecord, SESSION_ENTITY
from academic_records.services.batch_coordinator import BatchConsistencyCoordinator

logger = logging.getLogger(__name__)


class Weekday(IntEnum):
    SUNDAY = 0
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6

    def to_python(self) -> int:
        """Convert to date.weekday() numbering (Monday = 0)."""
        return (self.value - 1) % 7


@dataclass
class GenerationResult:
    dry_run: bool
    total_generated: int
    existing_skipped: int
    holidays_skipped: int
    dates: List[date]
    created_ids: List[int] = field(default_factory=list)

    def to_dict(self):
        return {
            "dry_run": self.dry_run,
            "total_generated": self.total_generated,
            "existing_skipped": self.existing_skipped,
            "holidays_skipped": self.holidays_skipped,
            "dates": self.dates,
            "created_ids": self.created_ids,
        }


def _check_range(start_date: date, end_date: date) -> None:
    if start_date > end_date:
        raise ValidationError(
            f"start_date {start_date.isoformat()} is after end_date {end_date.isoformat()}",
            details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        )


def weekly_dates(weekday: int, start_date: date, end_date: date) -> List[date]:
    """Every date in [start_date, end_date] that falls on the given weekday, in order."""
    _check_range(start_date, end_date)
    try:
        target = Weekday(weekday).to_python()
    except ValueError:
        raise ValidationError(
            f"weekday must be between 0 (Sunday) and 6 (Saturday), got {weekday}",
            details={"weekday": weekday},
        )

    current = start_date + timedelta(days=(target - start_date.weekday()) % 7)
    dates = []
    while current <= end_date:
        dates.append(current)
        current += timedelta(days=7)
    return dates


def exclude_holidays(dates: Iterable[date], holidays: Sequence[HolidayPeriod]) -> List[date]:
    """Drop dates inside any holiday period, both bounds inclusive."""
    return [d for d in dates if not any(h.start_date <= d <= h.end_date for h in holidays)]


class SessionScheduler:
    """Creates class sessions individually or from a weekly recurrence."""

    def __init__(self, db: Session, audit_trail: Optional[AuditTrail] = None):
        self.db = db
        self.audit_trail = audit_trail

    def generate_preview(
        self,
        class_id: int,
        weekday: int,
        start_date: date,
        end_date: date,
        skip_holidays: bool = True
    ) -> List[date]:
        """Candidate dates for the recurrence, before diffing against existing sessions."""
        self._get_class(class_id)
        candidates = weekly_dates(weekday, start_date, end_date)
        if skip_holidays:
            candidates = exclude_holidays(candidates, self._holidays_between(start_date, end_date))
        return candidates

    def generate_sessions(self, request: SessionGenerationRequest, actor_id: Optional[int] = None) -> GenerationResult:
        """
        Materialize the recurrence, creating only the missing dates.

        With ``dry_run`` the same counts are returned and nothing is written.
        If a concurrent writer inserts one of the dates first, the diff against
        existing sessions is taken again once before giving up.
        """
        if request.start_time and request.end_time and request.end_time <= request.start_time:
            raise ValidationError(
                "end_time must be after start_time",
                details={"start_time": request.start_time.isoformat(), "end_time": request.end_time.isoformat()},
            )

        for attempt in range(2):
            result = self._plan(request)
            if request.dry_run or not result.dates:
                self.db.rollback()
                logger.info(
                    f"Session generation for class {request.class_id}: {result.total_generated} new, "
                    f"{result.existing_skipped} existing (dry_run={request.dry_run})"
                )
                return result

            sessions = [
                ClassSession(
                    class_id=request.class_id,
                    session_date=d,
                    start_time=request.start_time,
                    end_time=request.end_time,
                )
                for d in result.dates
            ]
            try:
                self._insert_sessions(request.class_id, sessions, "session generation")
            except ConflictError:
                if attempt:
                    raise
                logger.warning(f"Sessions for class {request.class_id} were created concurrently, re-checking dates")
                continue
            break

        result.created_ids = [s.id for s in sessions]
        logger.info(f"Created {len(sessions)} sessions for class {request.class_id}")
        if self.audit_trail is not None and actor_id is not None:
            for s in sessions:
                self.audit_trail.record(self._creation_record(actor_id, s))
            self.audit_trail.flush()
        return result

    def create_session(
        self,
        class_id: int,
        session_date: date,
        start_time: Optional[time] = None,
        end_time: Optional[time] = None,
        topic: Optional[str] = None,
        material_url: Optional[str] = None,
        notes: Optional[str] = None,
        actor_id: Optional[int] = None
    ) -> ClassSession:
        """Create one session; a second session on the same date is a conflict."""
        self._get_class(class_id)
        if start_time and end_time and end_time <= start_time:
            raise ValidationError("end_time must be after start_time")

        if session_date in self._existing_dates(class_id, session_date, session_date):
            self.db.rollback()
            raise self._date_conflict(class_id, session_date)

        session = ClassSession(
            class_id=class_id,
            session_date=session_date,
            start_time=start_time,
            end_time=end_time,
            topic=topic,
            material_url=material_url,
            notes=notes,
        )
        try:
            self._insert_sessions(class_id, [session], "session creation")
        except ConflictError as e:
            raise self._date_conflict(class_id, session_date) from e

        if self.audit_trail is not None and actor_id is not None:
            self.audit_trail.record(self._creation_record(actor_id, session))
            self.audit_trail.flush()
        return session

    def _plan(self, request: SessionGenerationRequest) -> GenerationResult:
        all_dates = weekly_dates(request.weekday, request.start_date, request.end_date)
        candidates = self.generate_preview(
            request.class_id, request.weekday, request.start_date, request.end_date, request.skip_holidays
        )
        existing = self._existing_dates(request.class_id, request.start_date, request.end_date)
        new_dates = [d for d in candidates if d not in existing]
        return GenerationResult(
            dry_run=request.dry_run,
            total_generated=len(new_dates),
            existing_skipped=len(candidates) - len(new_dates),
            holidays_skipped=len(all_dates) - len(candidates),
            dates=new_dates,
        )

    def _insert_sessions(self, class_id: int, sessions: List[ClassSession], operation: str) -> None:
        """Insert sessions and refresh the class's attendance percentages in one transaction."""
        with transaction_scope(self.db, operation):
            self.db.add_all(sessions)
            try:
                self.db.flush()
            except IntegrityError as e:
                # idx_class_session_class_date: another writer took one of the dates
                raise ConflictError(
                    f"Class {class_id} already has a session on one of the requested dates",
                    details={"class_id": class_id},
                ) from e
            # New sessions change the denominator of every enrollment in the class
            BatchConsistencyCoordinator(self.db, self.audit_trail).refresh_class_attendance(class_id)

    @staticmethod
    def _date_conflict(class_id: int, session_date: date) -> ConflictError:
        return ConflictError(
            f"Class {class_id} already has a session on {session_date.isoformat()}",
            details={"class_id": class_id, "session_date": session_date.isoformat()},
        )

    def _get_class(self, class_id: int) -> AcademicClass:
        academic_class = self.db.get(AcademicClass, class_id)
        if academic_class is None:
            self.db.rollback()
            raise NotFoundError("Class", class_id)
        return academic_class

    def _holidays_between(self, start_date: date, end_date: date) -> List[HolidayPeriod]:
        result = self.db.execute(
            select(HolidayPeriod).where(
                and_(HolidayPeriod.start_date <= end_date, HolidayPeriod.end_date >= start_date)
            )
        )
        return list(result.scalars().all())

    def _existing_dates(self, class_id: int, start_date: date, end_date: date) -> set:
        result = self.db.execute(
            select(ClassSession.session_date).where(
                and_(
                    ClassSession.class_id == class_id,
                    ClassSession.session_date.between(start_date, end_date)
                )
            )
        )
        return set(result.scalars().all())

    @staticmethod
    def _creation_record(actor_id: int, session: ClassSession) -> AuditRecord:
        return AuditRecord(
            actor_id=actor_id,
            entity_type=SESSION_ENTITY,
            entity_id=session.id,
            action=AuditAction.CREATE,
            new_value={"session_date": session.session_date.isoformat()},
            metadata={"class_id": session.class_id},
        )
