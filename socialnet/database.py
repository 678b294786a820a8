"""
Database engine and session management.

SQLite is used for development and tests (foreign keys switched on per
connection, one shared connection for in-memory databases); PostgreSQL gets a
pre-pinged QueuePool sized from settings.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool, StaticPool

from .config import settings
from .db_models import Base

logger = logging.getLogger(__name__)


def display_url(url: str) -> str:
    """URL with the password masked, safe to log."""
    return make_url(url).render_as_string(hide_password=True)


def engine_options(url: str) -> Dict[str, Any]:
    """Keyword arguments for create_engine, by backend."""
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        options: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if parsed.database in (None, "", ":memory:"):
            # Every connection to :memory: is a new empty database
            options["poolclass"] = StaticPool
        return options

    return {
        "poolclass": QueuePool,
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_pre_ping": True,
        "pool_recycle": settings.db_pool_recycle_seconds,
    }


def create_db_engine(url: str) -> Engine:
    db_engine = create_engine(url, echo=False, **engine_options(url))

    if db_engine.dialect.name == "sqlite":
        @event.listens_for(db_engine, "connect")
        def enable_sqlite_foreign_keys(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return db_engine


DATABASE_URL = settings.database_url
logger.info(f"Database URL: {display_url(DATABASE_URL)}")

engine = create_db_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db():
    """Create all tables. Called on application startup."""
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created/verified")
    except SQLAlchemyError as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def get_db() -> Session:
    """FastAPI dependency yielding a request-scoped session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_context():
    """
    Session for code outside a request (Celery tasks, startup seeding).

    Commits on success, rolls back on exception.
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def check_database_health() -> dict:
    """Connectivity check for /health."""
    try:
        with get_db_context() as db:
            db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        return {
            "database_connected": False,
            "database_error": str(e),
        }

    return {
        "database_connected": True,
        "database_type": engine.dialect.name,
    }
