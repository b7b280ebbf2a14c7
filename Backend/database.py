"""
Engine, session factory and transaction helper.

Multi-step writes go through ``run_in_transaction`` which commits on success
and retries transient database failures with exponential backoff.
"""

import logging
import time
from typing import Callable, Optional, TypeVar

from sqlalchemy import create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from config import settings
from errors import GotchiError, PersistenceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _build_engine(url: str):
    if url.startswith("sqlite"):
        sqlite_engine = create_engine(url, connect_args={"check_same_thread": False})

        @event.listens_for(sqlite_engine, "connect")
        def _sqlite_pragmas(dbapi_connection, _record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return sqlite_engine

    return create_engine(
        url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
    )


engine = _build_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Yield a session for the duration of one request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def backoff_ms(attempt: int) -> int:
    """Delay before retrying after the given (1-based) failed attempt."""
    return min(settings.tx_backoff_base_ms * 2 ** (attempt - 1), settings.tx_backoff_cap_ms)


def run_in_transaction(db: Session, work: Callable[[Session], T], attempts: Optional[int] = None) -> T:
    """
    Run ``work(db)`` and commit.

    Database errors roll back and retry; domain errors roll back and
    propagate on the first occurrence. After the last attempt the database
    error surfaces as ``PersistenceError``.
    """
    max_attempts = attempts or settings.tx_max_attempts
    attempt = 0
    while True:
        attempt += 1
        try:
            result = work(db)
            db.commit()
            return result
        except GotchiError:
            db.rollback()
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            if attempt >= max_attempts:
                logger.error("Transaction failed after %d attempts: %s", attempt, exc)
                raise PersistenceError("Database error") from exc
            delay = backoff_ms(attempt)
            logger.warning("Transaction attempt %d failed (%s); retrying in %d ms", attempt, exc, delay)
            time.sleep(delay / 1000)
