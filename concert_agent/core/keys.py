"""
Natural Key
===========

The (artist, venue, date) triple used as the uniqueness constraint for both
deduplication and deletion exclusion.

Normalization is lossy: artist and venue are cut at the first
separator (tour names, sub-venues, city suffixes), lowercased and reduced to
``[a-zåäö0-9]``. The date component is the UTC calendar date of the event.
Keys computed here must stay stable across runs, otherwise previously
deleted events come back.
"""

from __future__ import annotations

import re
from datetime import UTC, date, datetime
from typing import NamedTuple

_NON_KEY_CHARS = re.compile(r"[^a-zåäö0-9]")
_ARTIST_SEPARATORS = re.compile(r"[:\-–—|]")
_VENUE_SEPARATORS = re.compile(r"[,:\-–—|]")


class NaturalKey(NamedTuple):
    """Normalized (artist, venue, date) triple."""

    artist: str
    venue: str
    date: str  # ISO date, UTC

    def __str__(self) -> str:
        return f"{self.artist}|{self.venue}|{self.date}"


def normalize_text(value: str) -> str:
    """Lowercase and drop everything outside ``[a-zåäö0-9]``."""
    return _NON_KEY_CHARS.sub("", value.lower())


def normalize_artist_key(artist: str) -> str:
    """Artist key component: text before the first ``: - – — |``, normalized."""
    return normalize_text(_ARTIST_SEPARATORS.split(artist, maxsplit=1)[0].strip())


def normalize_venue_key(venue: str) -> str:
    """Venue key component: text before the first ``, : - – — |``, normalized."""
    return normalize_text(_VENUE_SEPARATORS.split(venue, maxsplit=1)[0].strip())


def date_key(when: datetime | date | str) -> str:
    """
    Date key component.

    Aware datetimes are converted to UTC first; naive datetimes are taken to
    already be UTC (that is how SQLite hands them back). Strings that are not
    ISO timestamps are passed through unchanged so a bad value still yields a
    deterministic key.
    """
    if isinstance(when, str):
        try:
            when = datetime.fromisoformat(when.strip())
        except ValueError:
            return when.strip()
    if isinstance(when, datetime):
        if when.tzinfo is not None:
            when = when.astimezone(UTC)
        return when.date().isoformat()
    return when.isoformat()


def natural_key(artist: str, venue: str, when: datetime | date | str) -> NaturalKey:
    """Build the natural key for an event."""
    return NaturalKey(
        artist=normalize_artist_key(artist),
        venue=normalize_venue_key(venue),
        date=date_key(when),
    )
