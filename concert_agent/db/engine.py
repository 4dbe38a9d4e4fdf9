"""Database engine and session management for the concert store.

Batches triggered by cron, the worker and the HTTP endpoint can overlap, so
SQLite connections run in WAL mode with a busy timeout instead of failing
immediately on a locked database.
"""

import logging
import os
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)

# Default database path (can be overridden via DATABASE_URL)
DEFAULT_DB_PATH = Path.home() / ".concert_agent" / "concerts.db"

SQLITE_BUSY_TIMEOUT_MS = 15_000


def get_database_url(db_path: Path | str | None = None) -> str:
    """
    Resolve the concert store URL.

    Args:
        db_path: Optional path to a SQLite database file. If None, uses
                 DATABASE_URL env var or the default path.

    Returns:
        SQLAlchemy connection URL.
    """
    if db_path is not None:
        path = Path(db_path)
    elif os.environ.get("DATABASE_URL"):
        # Full URL (sqlite or postgresql) or a bare file path
        url = os.environ["DATABASE_URL"]
        if "://" in url:
            return url
        path = Path(url)
    else:
        path = DEFAULT_DB_PATH

    path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{path}"


def _configure_sqlite(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
    cursor.close()


def create_db_engine(db_path: Path | str | None = None, echo: bool = False) -> Engine:
    """
    Create the engine for the concert store.

    SQLite engines get WAL journaling and a busy timeout on every new
    connection; other backends are used as configured.
    """
    url = get_database_url(db_path)
    if not url.startswith("sqlite"):
        return create_engine(url, echo=echo, pool_pre_ping=True)

    engine = create_engine(url, echo=echo, connect_args={"check_same_thread": False})
    event.listen(engine, "connect", _configure_sqlite)
    return engine


# Global engine and session factory (initialized lazily)
_engine = None
_SessionLocal = None


def get_engine(db_path: Path | str | None = None, echo: bool = False):
    """Get or create the global database engine."""
    global _engine
    if _engine is None:
        _engine = create_db_engine(db_path, echo)
    return _engine


def get_session_factory(db_path: Path | str | None = None):
    """Get or create the global session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        engine = get_engine(db_path)
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    return _SessionLocal


def reset_engine() -> None:
    """Reset the global engine and session factory (useful for testing)."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


@contextmanager
def get_session(db_path: Path | str | None = None) -> Generator[Session, None, None]:
    """Yield a session on the concert store; callers commit explicitly."""
    session_factory = get_session_factory(db_path)
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def init_db(db_path: Path | str | None = None) -> None:
    """Create the concerts, deletions and scrape log tables if missing."""
    from concert_agent.db.models import Base

    engine = get_engine(db_path)
    Base.metadata.create_all(bind=engine)
    logger.debug(f"Concert store ready at {engine.url.render_as_string(hide_password=True)}")
