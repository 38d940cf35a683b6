"""Database connection and session management for aikanban.

This module supports both:
- SQLite (local development, tests)
- PostgreSQL (production) via `DATABASE_URL`

The store URL is a required credential: the persistence-backed app refuses to
start without it, so the engine is built lazily on first use instead of at import.
"""

import os
from typing import Optional
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from dotenv import load_dotenv

from aikanban.errors import ConfigurationError

load_dotenv()

# Base class for declarative models
Base = declarative_base()

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def _is_sqlite_url(database_url: str) -> bool:
    return "sqlite" in (database_url or "")


def get_database_url() -> str:
    """Return DATABASE_URL, raising ConfigurationError when it is not set."""
    database_url = os.getenv("DATABASE_URL", "").strip()
    if not database_url:
        raise ConfigurationError("DATABASE_URL is not set. The task store cannot be reached.")
    return database_url


def get_engine_kwargs(database_url: str) -> dict:
    """Return deterministic create_engine kwargs for a DB URL.

    This is separated to allow deterministic unit testing without connecting.
    """
    engine_kwargs: dict = {
        "echo": os.getenv("DEBUG", "False").lower() == "true",
        # Helps avoid stale DB connections.
        "pool_pre_ping": True,
    }

    if _is_sqlite_url(database_url):
        # SQLite-specific setting required for FastAPI concurrency in a single process.
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        return engine_kwargs

    # Postgres / other DBs: keep pooling conservative.
    engine_kwargs["pool_size"] = int(os.getenv("DB_POOL_SIZE", "5"))
    engine_kwargs["max_overflow"] = int(os.getenv("DB_MAX_OVERFLOW", "5"))
    engine_kwargs["pool_timeout"] = int(os.getenv("DB_POOL_TIMEOUT_SEC", "30"))
    return engine_kwargs


def _set_sqlite_pragmas(dbapi_conn, connection_record):
    """Enable foreign keys so deleting a user cascades to their tasks."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_url: str) -> Engine:
    engine = create_engine(database_url, **get_engine_kwargs(database_url))
    if _is_sqlite_url(database_url):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    return engine


def get_engine() -> Engine:
    """Get or create the module-level engine."""
    global _engine
    if _engine is None:
        _engine = build_engine(get_database_url())
    return _engine


def get_session_factory() -> sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
    return _session_factory


def get_db() -> Session:
    """Get database session (dependency for FastAPI)."""
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create the schema.

    Raises:
        ConfigurationError: If DATABASE_URL is not set
    """
    # Import models so they are registered on Base.metadata
    from aikanban.database import models  # noqa: F401

    Base.metadata.create_all(bind=get_engine())
