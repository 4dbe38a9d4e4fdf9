"""Database initialization and persistence layer."""

from concert_agent.db.engine import (
    create_db_engine,
    get_database_url,
    get_engine,
    get_session,
    get_session_factory,
    init_db,
    reset_engine,
)
from concert_agent.db.models import Base, ConcertDB, DeletedConcertDB, ScrapeLogDB
from concert_agent.db.repositories import (
    ConcertRepository,
    DeletionRepository,
    ScrapeLogRepository,
)

__all__ = [
    # Engine
    "create_db_engine",
    "get_database_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_db",
    "reset_engine",
    # Models
    "Base",
    "ConcertDB",
    "DeletedConcertDB",
    "ScrapeLogDB",
    # Repositories
    "ConcertRepository",
    "DeletionRepository",
    "ScrapeLogRepository",
]
