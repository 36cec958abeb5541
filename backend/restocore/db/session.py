"""Database session management."""

import logging
import time
from collections.abc import Callable, Generator
from typing import Annotated, Optional, TypeVar

from fastapi import Depends
from sqlalchemy import create_engine, event
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from restocore.core.config import settings
from restocore.core.exceptions import ConcurrencyConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")

connect_args = {}
pool_config = {}

if settings.database_url.startswith("sqlite"):
    connect_args = {"check_same_thread": False}
    pool_config = {
        "pool_pre_ping": True,
        "pool_recycle": 1800,
    }
else:
    pool_config = {
        "pool_size": 20,
        "max_overflow": 40,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    }

engine = create_engine(
    settings.database_url,
    connect_args=connect_args,
    echo=settings.sql_echo,
    **pool_config,
)


def enable_sqlite_foreign_keys(target_engine) -> None:
    """Enable foreign key enforcement for SQLite connections."""

    @event.listens_for(target_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


if settings.database_url.startswith("sqlite"):
    enable_sqlite_foreign_keys(engine)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Get database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# Type alias for dependency injection
DbSession = Annotated[Session, Depends(get_db)]


def run_in_transaction(
    db: Session,
    operation: Callable[[], T],
    attempts: Optional[int] = None,
    label: str = "operation",
) -> T:
    """Run a read-modify-write ``operation`` and commit it, all or nothing.

    ``operation`` must re-read everything it depends on, since it is called
    again from scratch after a storage conflict. Only optimistic-lock
    conflicts and operational storage errors are retried; any other exception
    rolls back and propagates unchanged.
    """
    attempts = attempts or settings.storage_retry_attempts
    for attempt in range(1, attempts + 1):
        try:
            result = operation()
            db.commit()
            return result
        except (StaleDataError, OperationalError) as e:
            db.rollback()
            logger.warning(f"[{label}] storage conflict on attempt {attempt}/{attempts}: {e}")
            if attempt == attempts:
                raise ConcurrencyConflictError(
                    f"{label} could not be committed after {attempts} attempts",
                    attempts=attempts,
                ) from e
            time.sleep(settings.storage_retry_backoff_ms * attempt / 1000)
        except Exception:
            db.rollback()
            raise
    raise ConcurrencyConflictError(f"{label} was not attempted", attempts=attempts)
