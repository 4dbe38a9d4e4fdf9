"""
Quality Filter Module
=====================

Cleans EventCandidates before deduplication:
- Venue normalization via the alias table, else trailing city suffix removal
- Ticket URL validation (invalid URLs are nulled, the candidate survives)
- Geographic admission (non-local venues are dropped unless the source is
  city-specific)

The filter is a pure function of its rules and input.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from urllib.parse import urlparse

from concert_agent.core.errors import ValidationDrop
from concert_agent.core.schema import EventCandidate
from concert_agent.ingestion.context import RunCounters
from concert_agent.ingestion.rules import QualityRules

logger = logging.getLogger(__name__)

_TRAILING_PUNCTUATION = " ,-–—|/"


class QualityFilter:
    """
    Applies the quality rules to candidates.

    Args:
        rules: Alias table, keyword allow-list, suffixes and host blacklist.
        city_specific_sources: Source keys whose listings are local by
            construction; their candidates skip the geographic check.
    """

    def __init__(self, rules: QualityRules, city_specific_sources: Iterable[str] = ()) -> None:
        self.rules = rules
        self.city_specific_sources = frozenset(city_specific_sources)
        self._suffix_patterns = [
            re.compile(rf"[\s,\-–—|/]+{re.escape(suffix)}\s*$", re.IGNORECASE)
            for suffix in rules.city_suffixes
        ]

    def normalize_venue(self, venue: str) -> str:
        """
        Canonical venue name.

        An alias match wins outright; otherwise trailing city/country words
        are stripped ("Nalen, Stockholm" -> "Nalen").
        """
        canonical = self.rules.venue_aliases.resolve(venue)
        if canonical:
            return canonical

        result = venue.strip()
        changed = True
        while changed:
            changed = False
            for pattern in self._suffix_patterns:
                stripped = pattern.sub("", result).rstrip(_TRAILING_PUNCTUATION)
                if stripped and stripped != result:
                    result = stripped
                    changed = True
        return result

    def is_valid_ticket_url(self, url: str | None) -> bool:
        """Check a ticket URL against length, scheme and placeholder hosts."""
        if not url or len(url) < self.rules.min_ticket_url_length:
            return False
        try:
            parsed = urlparse(url)
        except ValueError:
            return False
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return False
        host = parsed.hostname or ""
        if not host or self.rules.is_blocked_host(host):
            return False
        return True

    def is_local(self, raw_venue: str, normalized_venue: str) -> bool:
        """True if either venue form mentions an allow-listed keyword."""
        haystacks = (normalized_venue.lower(), raw_venue.lower())
        return any(kw in hay for kw in self.rules.city_keywords for hay in haystacks)

    def check(self, candidate: EventCandidate) -> EventCandidate:
        """
        Clean a candidate or reject it.

        Raises:
            ValidationDrop: If the candidate is outside the target geography.
        """
        venue = self.normalize_venue(candidate.venue)

        if candidate.source_key not in self.city_specific_sources:
            if not self.is_local(candidate.venue, venue):
                raise ValidationDrop("outside_city")

        updates: dict[str, object] = {}
        if venue != candidate.venue:
            updates["venue"] = venue
        if candidate.ticket_url is not None and not self.is_valid_ticket_url(candidate.ticket_url):
            updates["ticket_url"] = None
        return candidate.model_copy(update=updates) if updates else candidate

    def filter(self, candidate: EventCandidate) -> EventCandidate | None:
        """Cleaned candidate, or None if it was dropped."""
        try:
            return self.check(candidate)
        except ValidationDrop:
            return None

    def filter_all(
        self,
        candidates: Iterable[EventCandidate],
        counters: RunCounters | None = None,
    ) -> list[EventCandidate]:
        """
        Filter a batch of candidates, counting drops and nulled URLs.

        Returns:
            Surviving candidates in input order.
        """
        kept = []
        for candidate in candidates:
            try:
                cleaned = self.check(candidate)
            except ValidationDrop as e:
                logger.debug(f"Dropped {candidate.artist} @ {candidate.venue}: {e.reason}")
                if counters is not None:
                    counters.drop(e.reason)
                continue
            if counters is not None and candidate.ticket_url and cleaned.ticket_url is None:
                counters.invalid_ticket_urls += 1
            kept.append(cleaned)
        return kept
