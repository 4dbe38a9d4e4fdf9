"""Pydantic v2 models for Concert Agent.

These models define the records flowing through the ingestion engine:
- EventCandidate (one scraped event, pre-persistence)
- DeletionRecord (an operator-removed event that must never come back)
- ScrapeTriggerRequest / ScrapeTriggerResponse (inbound trigger contract)
"""

import re
from datetime import UTC, date, datetime, time, tzinfo
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from concert_agent.core.enums import EventCategory
from concert_agent.core.errors import ParseError
from concert_agent.core.keys import NaturalKey, natural_key

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


def coerce_event_datetime(value: Any, tz: tzinfo, default_time: time) -> datetime:
    """
    Coerce a scraped date value into a concrete, timezone-aware instant.

    Date-only values get ``default_time`` in ``tz``; naive datetimes are
    interpreted in ``tz``.

    Args:
        value: ISO 8601 string, date or datetime.
        tz: Local timezone of the target city.
        default_time: Time of day used when the source omits one.

    Returns:
        Timezone-aware datetime.

    Raises:
        ParseError: If the value is missing or not a recognizable date.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime.combine(value, default_time, tzinfo=tz)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise ParseError("empty date")
        if _DATE_ONLY.match(text):
            return datetime.combine(date.fromisoformat(text), default_time, tzinfo=tz)
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as e:
            raise ParseError(f"unparseable date {text!r}") from e
    else:
        raise ParseError(f"unsupported date value {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed


class EventCandidate(BaseModel):
    """
    One event extracted from a source page.

    Created by the page extractor, cleaned by the quality filter, merged by
    the deduplicator and finally either persisted or dropped.
    """

    model_config = ConfigDict(frozen=True)

    artist: str = Field(min_length=1)
    venue: str = Field(min_length=1)
    date: datetime
    ticket_url: str | None = None
    ticket_sale_date: datetime | None = None
    tickets_available: bool = False
    image_url: str | None = None
    event_category: EventCategory = EventCategory.CONCERT
    source_key: str = ""
    source_name: str = ""
    source_url: str = ""

    @field_validator("artist", "venue", mode="before")
    @classmethod
    def strip_names(cls, v: Any) -> Any:
        """Collapse whitespace in free-text names."""
        if isinstance(v, str):
            return " ".join(v.split())
        return v

    @field_validator("ticket_url", "image_url", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        """Treat empty strings and the literal 'null' as missing."""
        if isinstance(v, str):
            v = v.strip()
            if not v or v.lower() in ("null", "none", "n/a"):
                return None
        return v

    @field_validator("date")
    @classmethod
    def require_aware(cls, v: datetime) -> datetime:
        """Event instants must carry a timezone."""
        if v.tzinfo is None:
            raise ValueError("event date must be timezone-aware")
        return v

    @property
    def key(self) -> NaturalKey:
        """Natural key used for dedup and deletion exclusion."""
        return natural_key(self.artist, self.venue, self.date)

    def to_record(self) -> dict[str, Any]:
        """Row payload for the persistence gateway."""
        return {
            "artist": self.artist,
            "venue": self.venue,
            "date": self.date.astimezone(UTC),
            "ticket_url": self.ticket_url,
            "ticket_sale_date": (
                self.ticket_sale_date.astimezone(UTC) if self.ticket_sale_date else None
            ),
            "tickets_available": self.tickets_available,
            "image_url": self.image_url,
            "event_type": self.event_category.value,
            "source": self.source_name,
            "source_url": self.source_url,
        }


class DeletionRecord(BaseModel):
    """An event an operator removed; immutable and never expires."""

    model_config = ConfigDict(frozen=True)

    artist: str
    venue: str
    date: datetime
    deleted_by: str | None = None
    deleted_at: datetime = Field(default_factory=_utc_now)

    @property
    def key(self) -> NaturalKey:
        """Natural key, computed exactly like EventCandidate.key."""
        return natural_key(self.artist, self.venue, self.date)


class ScrapeTriggerRequest(BaseModel):
    """Inbound scrape trigger payload."""

    model_config = ConfigDict(extra="ignore")

    batch: int | None = Field(default=None, ge=1)
    page: int | None = Field(default=None, ge=1)
    chain: bool | None = None


class ScrapeTriggerResponse(BaseModel):
    """Summary returned to whoever triggered a batch."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: str
    batch: int | None = None
    total_batches: int | None = Field(default=None, alias="totalBatches")
    chain: bool = False
    found: int = 0
    persisted: int = 0
    elapsed: float = 0.0
    stop_reason: str | None = Field(default=None, alias="stopReason")
