"""
Persistence Gateway Module
==========================

The contract the ingestion engine needs from the store, plus the
SQLAlchemy-backed implementation. Every method opens and commits its own
session so a failed write never poisons the rest of the batch.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from contextlib import AbstractContextManager
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from concert_agent.core.errors import PersistenceError
from concert_agent.core.keys import NaturalKey
from concert_agent.db.engine import get_session
from concert_agent.db.repositories import (
    ConcertRepository,
    DeletionRepository,
    ScrapeLogRepository,
)

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractContextManager[Session]]


class PersistenceGateway(ABC):
    """What the batch scheduler reads from and writes to."""

    @abstractmethod
    def deletion_keys(self) -> set[NaturalKey]:
        """
        Natural keys of all deleted events.

        Raises:
            PersistenceError: If the set cannot be loaded.
        """

    @abstractmethod
    def upsert(self, record: dict[str, Any]) -> None:
        """
        Upsert one record on (artist, venue, date).

        Raises:
            PersistenceError: If the write fails.
        """

    @abstractmethod
    def known_artists(self, source: str) -> list[str]:
        """Artists already stored for a source (used to skip discovered pages)."""

    def log_task(
        self,
        batch: int,
        page: int,
        source: str,
        found: int,
        error: str | None,
        duration_ms: int,
    ) -> None:
        """Record the outcome of one scrape task."""

    def log_batch(
        self,
        batch: int,
        page: int,
        found: int,
        persisted: int,
        stop_reason: str,
        duration_ms: int,
    ) -> None:
        """Record the outcome of one batch."""


class SqlPersistenceGateway(PersistenceGateway):
    """PersistenceGateway over the SQLAlchemy repositories."""

    def __init__(self, session_factory: SessionFactory = get_session) -> None:
        self.session_factory = session_factory

    def deletion_keys(self) -> set[NaturalKey]:
        try:
            with self.session_factory() as session:
                return DeletionRepository(session).keys()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not load deletion keys: {e}") from e

    def upsert(self, record: dict[str, Any]) -> None:
        try:
            with self.session_factory() as session:
                ConcertRepository(session).upsert(record)
                session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Upsert failed for {record.get('artist')} @ {record.get('venue')}: {e}"
            ) from e

    def known_artists(self, source: str) -> list[str]:
        try:
            with self.session_factory() as session:
                return ConcertRepository(session).known_artists(source)
        except SQLAlchemyError as e:
            logger.warning(f"Could not load known artists for {source}: {e}")
            return []

    def log_task(
        self,
        batch: int,
        page: int,
        source: str,
        found: int,
        error: str | None,
        duration_ms: int,
    ) -> None:
        self._log(
            batch=batch,
            page=page,
            source=source,
            events_found=found,
            error=error,
            duration_ms=duration_ms,
        )

    def log_batch(
        self,
        batch: int,
        page: int,
        found: int,
        persisted: int,
        stop_reason: str,
        duration_ms: int,
    ) -> None:
        self._log(
            batch=batch,
            page=page,
            source="*",
            events_found=found,
            events_upserted=persisted,
            stop_reason=stop_reason,
            duration_ms=duration_ms,
        )

    def _log(self, **fields: Any) -> None:
        # The scrape log is diagnostics only; losing a row must not fail the batch.
        try:
            with self.session_factory() as session:
                ScrapeLogRepository(session).add(**fields)
                session.commit()
        except SQLAlchemyError as e:
            logger.warning(f"Could not write scrape log: {e}")
