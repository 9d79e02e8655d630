"""Database session management.

The engine and session factory are owned by the application; services never
reach for a global connection, they receive the ``Session`` they work with.
"""

import logging
from collections.abc import Generator, Iterator
from contextlib import contextmanager
from typing import Annotated, Optional

from fastapi import Depends
from sqlalchemy import create_engine, event
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from tippool.core.config import settings
from tippool.core.errors import ConflictError, InternalError, TipEngineError

logger = logging.getLogger(__name__)

# Create engine - handle SQLite specially for check_same_thread
connect_args = {}
pool_config = {}

if settings.database_url.startswith("sqlite"):
    connect_args = {"check_same_thread": False}
    pool_config = {
        "pool_pre_ping": True,
        "pool_recycle": 1800,  # Recycle connections every 30 minutes
    }
else:
    # PostgreSQL connection pooling configuration
    pool_config = {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    }

engine = create_engine(
    settings.database_url,
    connect_args=connect_args,
    echo=False,
    **pool_config,
)

# Enable foreign key enforcement for SQLite
if settings.database_url.startswith("sqlite"):
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

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


@contextmanager
def unit_of_work(db: Session, on_conflict: Optional[ConflictError] = None) -> Iterator[Session]:
    """Run a block as one transaction: commit on success, roll back on any error.

    Engine errors and any other exception propagate unchanged after the
    rollback. A unique/foreign key violation becomes ``on_conflict`` when
    given. Any other storage failure is logged with full
    context and surfaced as an opaque ``InternalError``.
    """
    try:
        yield db
        db.commit()
    except TipEngineError:
        db.rollback()
        raise
    except IntegrityError as e:
        db.rollback()
        if on_conflict is not None:
            logger.info(f"Integrity conflict mapped to {on_conflict.code}: {e.orig}")
            raise on_conflict from e
        logger.exception("Unexpected integrity error, transaction rolled back")
        raise InternalError() from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Database error, transaction rolled back")
        raise InternalError() from e
    except Exception:
        # Model validators and immutability listeners raise plain errors mid-flush
        db.rollback()
        raise
