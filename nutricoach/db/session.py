from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager

from loguru import logger
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from nutricoach.config.settings import settings

# Every statement is bounded so one stuck query fails a single member, not the batch
STATEMENT_TIMEOUT_MS = 15_000
CONNECT_TIMEOUT_SECONDS = 10
POOL_TIMEOUT_SECONDS = 15

_engine: Engine | None = None
_SessionLocal: sessionmaker | None = None


def _is_postgresql(url: str) -> bool:
    lowered = url.lower()
    return "postgresql" in lowered or "postgres" in lowered


def _get_engine() -> Engine:
    """Get or create the database engine (lazy initialization).

    The engine is only created on first access so importing the package
    never opens a database connection.
    """
    global _engine
    if _engine is None:
        url = settings.database_url
        connect_args: dict = {}
        if url.lower().startswith("sqlite"):
            connect_args = {"check_same_thread": False, "timeout": POOL_TIMEOUT_SECONDS}
            logger.warning("Using SQLite database (local development only)")
        elif _is_postgresql(url):
            connect_args = {
                "connect_timeout": CONNECT_TIMEOUT_SECONDS,
                "application_name": "nutricoach",
                "options": f"-c statement_timeout={STATEMENT_TIMEOUT_MS}",
            }
            logger.info("Using PostgreSQL database")

        _engine = create_engine(
            url,
            connect_args=connect_args,
            echo=False,
            pool_pre_ping=True,
            pool_recycle=3600,
            pool_timeout=POOL_TIMEOUT_SECONDS,
        )
        logger.info("Database engine initialized")
    return _engine


def get_engine() -> Engine:
    """Get or create the database engine (public API)."""
    return _get_engine()


def _get_session_local() -> sessionmaker:
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_get_engine(), expire_on_commit=False)
        logger.info("Database session factory initialized")
    return _SessionLocal


def init_db() -> None:
    """Create tables that do not exist yet and check connectivity."""
    from nutricoach.db.models import Base

    engine = _get_engine()
    Base.metadata.create_all(bind=engine)
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    logger.info("Database tables verified")


def get_db() -> Generator[Session, None, None]:
    """Get database session for FastAPI dependencies.

    Plain generator (not a context manager) so FastAPI can use it with
    Depends() and handle cleanup itself. Non-FastAPI code uses get_session().
    """
    session = _get_session_local()()
    try:
        yield session
    finally:
        session.close()


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Get database session context manager.

    Commits on clean exit, rolls back and re-raises on error.
    """
    session = _get_session_local()()
    try:
        yield session
        if session.dirty or session.new or session.deleted:
            session.commit()
    except Exception as e:
        logger.error(f"Database session error, rolling back: {type(e).__name__}: {e}")
        session.rollback()
        raise
    finally:
        session.close()
