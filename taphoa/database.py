"""
Database connection and session management.
Uses SQLAlchemy for Postgres (Supabase) connections; SQLite works for local runs.
"""

import logging

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from taphoa.config import DATABASE_URL

logger = logging.getLogger(__name__)

# Base class for all our database models (must be defined before engine)
Base = declarative_base()


def build_engine(url: str, **kwargs) -> Engine:
    """Create an engine; SQLite gets thread sharing and foreign keys switched on."""
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        eng = create_engine(url, **kwargs)
        event.listen(eng, "connect", _enable_sqlite_foreign_keys)
        return eng
    return create_engine(url, pool_pre_ping=True, **kwargs)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


engine = build_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind: Engine = None) -> None:
    """Create tables if they don't exist. In production the Supabase schema already has them."""
    # Register models on Base.metadata
    from taphoa import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def get_db():
    """
    Dependency function that provides a database session.
    Rolls back whatever the request left uncommitted when it raises.
    """
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
