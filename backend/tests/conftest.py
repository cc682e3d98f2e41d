"""Shared fixtures: in-memory database seeded with one class and its roster."""

import pytest
from datetime import date
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from academic_records.core.database import init_db
from academic_records.models import (
    AcademicClass, ClassSession, Enrollment, Evaluation, EvaluationType, HolidayPeriod
)
from academic_records.services.audit_trail import AuditTrail


STUDENT_IDS = ["20240001", "20240002", "20240003"]
MONDAYS = [date(2024, 3, 4), date(2024, 3, 11), date(2024, 3, 18), date(2024, 3, 25)]


@pytest.fixture
def engine():
    """Single shared in-memory SQLite connection so independent sessions see the same data."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    """Create test database session"""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def audit_trail(session_factory):
    return AuditTrail(session_factory=session_factory, enabled=True)


@pytest.fixture
def academic_class(db_session):
    academic_class = AcademicClass(id=1, name="Algorithms I", section="A1", room="B-204", professor_id="P0000001")
    other_class = AcademicClass(id=2, name="Databases", section="B1", room="C-101", professor_id="P0000002")
    db_session.add_all([academic_class, other_class])
    db_session.commit()
    return academic_class


@pytest.fixture
def enrollments(db_session, academic_class):
    rows = [
        Enrollment(id=index + 1, class_id=academic_class.id, student_id=student_id)
        for index, student_id in enumerate(STUDENT_IDS)
    ]
    # Same student also enrolled in the other class
    rows.append(Enrollment(id=10, class_id=2, student_id=STUDENT_IDS[0]))
    db_session.add_all(rows)
    db_session.commit()
    return rows


@pytest.fixture
def class_sessions(db_session, academic_class):
    rows = [
        ClassSession(id=index + 1, class_id=academic_class.id, session_date=day, topic=f"Week {index + 1}")
        for index, day in enumerate(MONDAYS)
    ]
    rows.append(ClassSession(id=10, class_id=2, session_date=date(2024, 3, 5), topic="Intro"))
    db_session.add_all(rows)
    db_session.commit()
    return rows


def make_evaluations(db_session, class_id, weights):
    rows = [
        Evaluation(
            class_id=class_id,
            evaluation_date=date(2024, 4, 1 + index),
            evaluation_type=EvaluationType.EXAM,
            code=f"P{index + 1}",
            description=f"Exam {index + 1}",
            weight=weight,
        )
        for index, weight in enumerate(weights)
    ]
    db_session.add_all(rows)
    db_session.commit()
    return rows


@pytest.fixture
def evaluations(db_session, academic_class):
    """Three evaluations weighted 40/30/30."""
    return make_evaluations(db_session, academic_class.id, [40, 30, 30])


@pytest.fixture
def holiday(db_session):
    period = HolidayPeriod(name="Spring break", start_date=date(2024, 3, 11), end_date=date(2024, 3, 11))
    db_session.add(period)
    db_session.commit()
    return period


@pytest.fixture
def evaluation_factory(db_session):
    def factory(class_id, weights):
        return make_evaluations(db_session, class_id, weights)
    return factory
