from sqlalchemy import create_engine, MetaData
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from contextlib import contextmanager
from typing import Generator, Iterator
import logging

from academic_records.core.config import settings
from academic_records.core.exceptions import AcademicRecordsError, TransactionError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    metadata = MetaData(
        naming_convention={
            "ix": "ix_%(column_0_label)s",
            "uq": "uq_%(table_name)s_%(column_0_name)s",
            "ck": "ck_%(table_name)s_%(constraint_name)s",
            "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
            "pk": "pk_%(table_name)s"
        }
    )


def build_engine(url: str, echo: bool = False, isolation_level=None):
    """Create a sync engine; SQLite connections are shared across worker threads."""
    kwargs = {"echo": echo, "future": True}
    if isolation_level:
        kwargs["isolation_level"] = isolation_level
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    return create_engine(url, **kwargs)


engine = build_engine(
    settings.DATABASE_URL,
    echo=settings.DATABASE_ECHO,
    isolation_level=settings.DATABASE_ISOLATION_LEVEL
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    # Import models so every table is registered on the metadata
    import academic_records.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


@contextmanager
def transaction_scope(db: Session, operation: str) -> Iterator[Session]:
    """
    Commit everything done inside the block as one unit, or nothing.

    Domain errors are re-raised unchanged after the rollback; driver errors
    are logged and surfaced as TransactionError.
    """
    try:
        yield db
        db.commit()
    except AcademicRecordsError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Transaction failed during {operation}, rolled back: {e}")
        raise TransactionError(operation) from e
    except Exception:
        db.rollback()
        logger.exception(f"Unexpected error during {operation}, rolled back")
        raise
