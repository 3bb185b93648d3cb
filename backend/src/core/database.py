# pyright: reportMissingTypeStubs=false
"""
Database configuration and session management.

This module sets up SQLAlchemy database connection, session management,
and provides dependency injection for database sessions in FastAPI routes.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Generator

from fastapi import HTTPException
from sqlalchemy import create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from core.config import DATABASE_URL
from core.constants import DB_POOL_RECYCLE_SECONDS

logger = logging.getLogger(__name__)


def _engine_options(database_url: str) -> Dict[str, Any]:
    options: Dict[str, Any] = {
        "pool_pre_ping": True,  # Verify connections before use
        "echo": False,
        "future": True,
    }
    if database_url.startswith("sqlite"):
        # SQLite connections are shared with the TestClient worker thread
        options["connect_args"] = {"check_same_thread": False}
    else:
        options["pool_recycle"] = DB_POOL_RECYCLE_SECONDS
    return options


engine = create_engine(DATABASE_URL, **_engine_options(DATABASE_URL))

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False,  # Don't expire objects after commit
)


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


@event.listens_for(Base, "before_insert", propagate=True)  # type: ignore
def receive_before_insert(mapper, connection, target):  # type: ignore
    """Set created_at and updated_at on insert."""
    from utils.datetime_utils import utc_now
    now = utc_now()
    for column_name in ("created_at", "updated_at"):
        if hasattr(mapper, "columns") and column_name in mapper.columns:  # type: ignore
            if getattr(target, column_name, None) is None:
                setattr(target, column_name, now)


@event.listens_for(Base, "before_update", propagate=True)  # type: ignore
def receive_before_update(mapper, connection, target):  # type: ignore
    """Set updated_at on update."""
    from utils.datetime_utils import utc_now
    if hasattr(mapper, "columns") and "updated_at" in mapper.columns:  # type: ignore
        setattr(target, "updated_at", utc_now())


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency to provide database sessions.

    Yields a database session that is automatically closed after the request.
    Any exception raised while handling the request rolls the session back
    before it propagates.

    Yields:
        Session: SQLAlchemy database session
    """
    from services.template_exceptions import TemplateEngineError
    db = SessionLocal()
    try:
        yield db
    except SQLAlchemyError as e:
        logger.exception(f"Database error: {e}")
        db.rollback()
        raise
    except (HTTPException, TemplateEngineError, ValueError):
        # Expected business logic failures, not worth an error log
        db.rollback()
        raise
    except Exception as e:
        logger.exception(f"Unexpected error in database session: {e}")
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """
    Context manager for database sessions outside of FastAPI dependency injection.

    Useful for scripts such as seeding the default template library.

    Example:
        ```python
        with get_db_context() as db:
            MedicalRecordTemplateService.copy_default_templates_to_tenant(db, "tenant-a", 1)
        ```
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception as e:
        db.rollback()
        logger.exception(f"Database transaction failed: {e}")
        raise
    finally:
        db.close()


def create_tables() -> None:
    """
    Create all database tables defined in SQLAlchemy models.

    Note:
        In production, prefer using Alembic migrations instead of this function.
    """
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created successfully")
    except SQLAlchemyError as e:
        logger.exception(f"Failed to create database tables: {e}")
        raise
