from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from .config import get_settings
from .errors import ConcurrentModificationError, StorageFailureError

logger = logging.getLogger(__name__)

settings = get_settings()

connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}

engine = create_engine(settings.database_url, echo=False, connect_args=connect_args)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    pass


def init_db() -> None:
    from . import models  # noqa: F401  registers tables on Base.metadata

    Base.metadata.create_all(bind=engine)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_version(record, expected_version: Optional[int]) -> None:
    """Refuse a write when the caller read an older version of the record."""
    if expected_version is None:
        return
    if record.version != expected_version:
        raise ConcurrentModificationError(
            f"{type(record).__name__} {record.id} was modified by someone else "
            f"(expected version {expected_version}, found {record.version}). Reload and try again."
        )


def _write(db: Session, operation: str) -> None:
    try:
        getattr(db, operation)()
    except StaleDataError as e:
        db.rollback()
        logger.warning(f"Concurrent modification detected on {operation}: {e}")
        raise ConcurrentModificationError(
            "This record was modified by someone else. Reload and try again."
        ) from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Storage failure on {operation}: {e}")
        raise StorageFailureError("Could not save changes. Please try again.") from e


def flush(db: Session) -> None:
    """Flush pending changes, translating store errors like commit() does."""
    _write(db, "flush")


def commit(db: Session) -> None:
    """Commit the unit of work, translating store errors into StorageFailureError."""
    _write(db, "commit")


@contextmanager
def session_scope() -> Iterator[Session]:
    session = SessionLocal()
    try:
        yield session
        commit(session)
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
