"""Database session management and the unit-of-work helper"""

import logging
import time
from typing import Callable, Optional, TypeVar

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from savemate.config import settings
from savemate.domain.exceptions import ConcurrencyConflictError
from savemate.infrastructure.database.models import Base
from savemate.infrastructure.observability.metrics import concurrency_conflict_counter

T = TypeVar("T")


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """Build an engine; server databases get a connection pool, SQLite a thread-shareable connection"""
    if database_url.startswith("sqlite"):
        # Writers queue on SQLite's file lock instead of failing fast
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )

    # Connection pool: max 20 connections, recycle after 1 hour to avoid stale connections
    return create_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=10,
        max_overflow=10,
        pool_recycle=3600,
    )


def create_session_factory(database_url: Optional[str] = None, echo: Optional[bool] = None) -> sessionmaker:
    engine = create_db_engine(
        database_url or settings.database_url,
        echo=settings.database_echo if echo is None else echo,
    )
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(session_factory: sessionmaker) -> None:
    """Create all tables on the factory's engine"""
    Base.metadata.create_all(bind=session_factory.kw["bind"])


def transactional(
    session_factory: sessionmaker,
    operation: Callable[[Session], T],
    max_retries: Optional[int] = None,
    backoff_base: Optional[float] = None,
) -> T:
    """
    Run operation(session) as one database transaction.

    Commits on success and rolls back on any exception, so a failing operation
    never leaves partial writes. ConcurrencyConflictError is retried with a
    fresh session and exponential backoff (base, 2*base, 4*base, ...); other
    exceptions propagate immediately.
    """
    max_retries = settings.conflict_max_retries if max_retries is None else max_retries
    backoff_base = settings.conflict_backoff_seconds if backoff_base is None else backoff_base

    attempt = 0
    while True:
        db = session_factory()
        try:
            result = operation(db)
            db.commit()
            return result
        except ConcurrencyConflictError as e:
            db.rollback()
            attempt += 1
            concurrency_conflict_counter.inc()

            if attempt > max_retries:
                logging.error(f"Giving up after {attempt} conflicting attempts: {e}")
                raise

            backoff = backoff_base * (2 ** (attempt - 1))
            logging.warning(f"Concurrency conflict, retrying in {backoff}s: {e}", extra={"attempt": attempt})
            time.sleep(backoff)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
