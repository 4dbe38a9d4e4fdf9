"""SQLAlchemy ORM models for the concert store."""

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


def _generate_uuid() -> str:
    """Generate a UUID string."""
    return str(uuid4())


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class ConcertDB(Base):
    """
    A published event listing.

    Unique on the raw (artist, venue, date) triple; the ingestion engine
    upserts against that constraint.
    """

    __tablename__ = "concerts"
    __table_args__ = (UniqueConstraint("artist", "venue", "date", name="uq_concerts_artist_venue_date"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    artist: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    venue: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    ticket_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    ticket_sale_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    tickets_available: Mapped[bool] = mapped_column(Boolean, default=False)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    event_type: Mapped[str] = mapped_column(String(20), default="concert", index=True)  # concert/comedy
    source: Mapped[str] = mapped_column(String(100), default="")
    source_url: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now, onupdate=_utc_now)

    def __repr__(self) -> str:
        return f"<ConcertDB(artist='{self.artist}', venue='{self.venue}', date={self.date})>"


class DeletedConcertDB(Base):
    """Tombstone for an operator-removed event. Rows are never updated or expired."""

    __tablename__ = "deleted_concerts"
    __table_args__ = (UniqueConstraint("artist", "venue", "date", name="uq_deleted_artist_venue_date"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    artist: Mapped[str] = mapped_column(String(255), nullable=False)
    venue: Mapped[str] = mapped_column(String(255), nullable=False)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    deleted_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    deleted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)

    def __repr__(self) -> str:
        return f"<DeletedConcertDB(artist='{self.artist}', venue='{self.venue}', date={self.date})>"


class ScrapeLogDB(Base):
    """One row per scrape task plus a summary row per batch (source='*')."""

    __tablename__ = "scrape_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    batch: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    page: Mapped[int] = mapped_column(Integer, default=1)
    source: Mapped[str] = mapped_column(String(255), nullable=False)
    events_found: Mapped[int] = mapped_column(Integer, default=0)
    events_upserted: Mapped[int] = mapped_column(Integer, default=0)
    stop_reason: Mapped[str | None] = mapped_column(String(30), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_ms: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now, index=True)

    def __repr__(self) -> str:
        return f"<ScrapeLogDB(batch={self.batch}, source='{self.source}', found={self.events_found})>"
