"""Repository classes for database operations."""

from datetime import UTC, date, datetime, time, timedelta
from typing import Any
from uuid import uuid4

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from concert_agent.core.keys import NaturalKey, natural_key
from concert_agent.core.schema import DeletionRecord
from concert_agent.db.models import ConcertDB, DeletedConcertDB, ScrapeLogDB

# Fields that an upsert may fill but never clear
_ADDITIVE_FIELDS = ("ticket_url", "image_url", "ticket_sale_date")
# Fields that an upsert always overwrites
_OVERWRITE_FIELDS = ("tickets_available", "event_type", "source", "source_url")


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


def _day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min, tzinfo=UTC)
    return start, start + timedelta(days=1)


def _dialect_insert(session: Session):
    """The dialect's INSERT construct if it supports ON CONFLICT, else None."""
    dialect = session.get_bind().dialect.name
    if dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert

        return insert
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert

        return insert
    return None


class ConcertRepository:
    """Repository for published concerts."""

    def __init__(self, session: Session):
        self.session = session

    def upsert(self, record: dict[str, Any]) -> None:
        """
        Insert a concert or update the row with the same (artist, venue, date).

        Ticket URL, image URL and sale date are only ever filled in: an
        incoming null keeps whatever is stored.

        Args:
            record: Row payload as produced by ``EventCandidate.to_record()``.
        """
        now = _utc_now()
        insert = _dialect_insert(self.session)

        if insert is None:
            self._upsert_generic(record, now)
            return

        stmt = insert(ConcertDB).values(id=str(uuid4()), created_at=now, updated_at=now, **record)
        excluded = stmt.excluded
        update_set: dict[str, Any] = {
            name: func.coalesce(getattr(excluded, name), getattr(ConcertDB, name))
            for name in _ADDITIVE_FIELDS
        }
        update_set.update({name: getattr(excluded, name) for name in _OVERWRITE_FIELDS})
        update_set["updated_at"] = now

        stmt = stmt.on_conflict_do_update(
            index_elements=["artist", "venue", "date"],
            set_=update_set,
        )
        self.session.execute(stmt)

    def _upsert_generic(self, record: dict[str, Any], now: datetime) -> None:
        stmt = select(ConcertDB).where(
            ConcertDB.artist == record["artist"],
            ConcertDB.venue == record["venue"],
            ConcertDB.date == record["date"],
        )
        existing = self.session.execute(stmt).scalar_one_or_none()
        if existing is None:
            self.session.add(ConcertDB(created_at=now, updated_at=now, **record))
        else:
            for name in _ADDITIVE_FIELDS:
                if record.get(name) is not None:
                    setattr(existing, name, record[name])
            for name in _OVERWRITE_FIELDS:
                setattr(existing, name, record[name])
            existing.updated_at = now
        self.session.flush()

    def get_by_id(self, concert_id: str) -> ConcertDB | None:
        """Get a concert by ID."""
        return self.session.get(ConcertDB, concert_id)

    def count(self) -> int:
        """Total number of stored concerts."""
        return self.session.execute(select(func.count()).select_from(ConcertDB)).scalar_one()

    def find(
        self,
        artist: str | None = None,
        venue: str | None = None,
        day: date | None = None,
    ) -> list[ConcertDB]:
        """
        Find concerts by case-insensitive artist/venue substring and UTC day.

        Args:
            artist: Substring of the artist name.
            venue: Substring of the venue name.
            day: Calendar day (UTC) of the event.

        Returns:
            Matching concerts ordered by date.
        """
        stmt = select(ConcertDB)
        if artist:
            stmt = stmt.where(ConcertDB.artist.ilike(f"%{artist}%"))
        if venue:
            stmt = stmt.where(ConcertDB.venue.ilike(f"%{venue}%"))
        if day:
            start, end = _day_bounds(day)
            stmt = stmt.where(ConcertDB.date >= start, ConcertDB.date < end)
        return list(self.session.execute(stmt.order_by(ConcertDB.date)).scalars().all())

    def known_artists(self, source: str) -> list[str]:
        """Distinct artists already stored for a source."""
        stmt = select(ConcertDB.artist).where(ConcertDB.source == source).distinct()
        return list(self.session.execute(stmt).scalars().all())

    def upcoming_without_image(
        self,
        now: datetime | None = None,
        include_comedy: bool = False,
    ) -> list[ConcertDB]:
        """Future concerts that have no image yet, soonest first."""
        now = now or _utc_now()
        stmt = select(ConcertDB).where(ConcertDB.date >= now, ConcertDB.image_url.is_(None))
        if not include_comedy:
            stmt = stmt.where(ConcertDB.event_type != "comedy")
        return list(self.session.execute(stmt.order_by(ConcertDB.date)).scalars().all())

    def set_image(self, concert_id: str, image_url: str) -> bool:
        """Set the image of one concert. Returns False if it does not exist."""
        concert = self.get_by_id(concert_id)
        if concert is None:
            return False
        concert.image_url = image_url
        concert.updated_at = _utc_now()
        self.session.flush()
        return True

    def delete_with_tombstones(
        self,
        concerts: list[ConcertDB],
        deleted_by: str | None = None,
    ) -> int:
        """
        Delete concerts and record a DeletionRecord for each.

        Args:
            concerts: Rows to remove.
            deleted_by: Operator identifier stored on the tombstones.

        Returns:
            Number of concerts deleted.
        """
        deletions = DeletionRepository(self.session)
        for concert in concerts:
            deletions.add(
                DeletionRecord(
                    artist=concert.artist,
                    venue=concert.venue,
                    date=concert.date,
                    deleted_by=deleted_by,
                )
            )
            self.session.delete(concert)
        self.session.flush()
        return len(concerts)

    def delete_older_than(self, days: int = 7, now: datetime | None = None) -> int:
        """
        Delete events that took place more than ``days`` days ago.

        Past events are not tombstoned; they will not be listed again.
        """
        cutoff = (now or _utc_now()) - timedelta(days=days)
        result = self.session.execute(delete(ConcertDB).where(ConcertDB.date < cutoff))
        return result.rowcount or 0


class DeletionRepository:
    """Repository for deletion tombstones."""

    def __init__(self, session: Session):
        self.session = session

    def add(self, record: DeletionRecord) -> bool:
        """
        Store a tombstone unless one already exists for the same row.

        Returns:
            True if a new tombstone was written.
        """
        when = record.date.astimezone(UTC) if record.date.tzinfo else record.date
        stmt = select(DeletedConcertDB).where(
            DeletedConcertDB.artist == record.artist,
            DeletedConcertDB.venue == record.venue,
            DeletedConcertDB.date == when,
        )
        if self.session.execute(stmt).scalar_one_or_none() is not None:
            return False
        self.session.add(
            DeletedConcertDB(
                artist=record.artist,
                venue=record.venue,
                date=when,
                deleted_by=record.deleted_by,
                deleted_at=record.deleted_at,
            )
        )
        self.session.flush()
        return True

    def list_all(self) -> list[DeletionRecord]:
        """All tombstones, newest first."""
        stmt = select(DeletedConcertDB).order_by(DeletedConcertDB.deleted_at.desc())
        return [
            DeletionRecord(
                artist=row.artist,
                venue=row.venue,
                date=row.date if row.date.tzinfo else row.date.replace(tzinfo=UTC),
                deleted_by=row.deleted_by,
                deleted_at=row.deleted_at,
            )
            for row in self.session.execute(stmt).scalars().all()
        ]

    def keys(self) -> set[NaturalKey]:
        """Natural keys of every tombstone."""
        stmt = select(DeletedConcertDB.artist, DeletedConcertDB.venue, DeletedConcertDB.date)
        return {natural_key(a, v, d) for a, v, d in self.session.execute(stmt).all()}


class ScrapeLogRepository:
    """Repository for scrape log rows."""

    def __init__(self, session: Session):
        self.session = session

    def add(
        self,
        batch: int,
        source: str,
        events_found: int = 0,
        events_upserted: int = 0,
        page: int = 1,
        stop_reason: str | None = None,
        error: str | None = None,
        duration_ms: int = 0,
    ) -> ScrapeLogDB:
        """Append a log row."""
        row = ScrapeLogDB(
            batch=batch,
            page=page,
            source=source,
            events_found=events_found,
            events_upserted=events_upserted,
            stop_reason=stop_reason,
            error=error,
            duration_ms=duration_ms,
        )
        self.session.add(row)
        self.session.flush()
        return row

    def recent(self, limit: int = 50) -> list[ScrapeLogDB]:
        """Most recent log rows, newest first."""
        stmt = select(ScrapeLogDB).order_by(ScrapeLogDB.id.desc()).limit(limit)
        return list(self.session.execute(stmt).scalars().all())
