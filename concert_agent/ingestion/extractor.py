"""
Page Extractor Module
=====================

Runs one scrape task through the extraction backend and turns the returned
JSON into EventCandidates.

Failure handling lives here: rate limits are retried with linear backoff,
quota exhaustion trips a run-wide breaker on the RunContext, and every
other task-level failure becomes an empty result plus a counter. Nothing
raised by a backend escapes ``extract``.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Awaitable, Callable, Iterable
from datetime import date
from typing import Any, TypeVar

from pydantic import ValidationError

from concert_agent.core.errors import (
    IngestionError,
    ParseError,
    QuotaExhausted,
    RateLimited,
    TransientSourceError,
)
from concert_agent.core.schema import EventCandidate, coerce_event_datetime
from concert_agent.ingestion.context import RunContext
from concert_agent.ingestion.registry import GlobalConfig, ScrapeTask
from concert_agent.services.ai.prompts import EVENTS_JSON_SCHEMA, build_extraction_prompt
from concert_agent.services.extraction.base import ExtractionBackend, ScrapeResponse

logger = logging.getLogger(__name__)

IMAGE_LINK_PATTERN = re.compile(r"\.(jpg|jpeg|png|webp|avif)", re.IGNORECASE)

T = TypeVar("T")


def first_image_link(links: Iterable[str]) -> str | None:
    """First outbound link that looks like an image file."""
    for link in links:
        if IMAGE_LINK_PATTERN.search(link):
            return link
    return None


def coerce_flag(value: Any) -> bool:
    """Read a model-supplied boolean; only true or "true" count as set."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


def slice_discovered_links(
    urls: list[str],
    page: int,
    page_size: int,
    known_artists: Iterable[str] = (),
) -> tuple[list[str], bool]:
    """
    Pick the ``page``-th slice of discovered detail URLs.

    URLs whose slug matches an already stored artist (either contains the
    other) are skipped before slicing.

    Returns:
        (urls for this page, whether further pages remain)
    """
    known = [a.lower() for a in known_artists if a]
    remaining = []
    for url in urls:
        slug = url.rstrip("/").rsplit("/", 1)[-1]
        guess = slug.replace("-", " ").lower().strip()
        if guess and any(a in guess or guess in a for a in known):
            continue
        remaining.append(url)

    start = (max(page, 1) - 1) * page_size
    chunk = remaining[start : start + page_size]
    return chunk, start + page_size < len(remaining)


class PageExtractor:
    """Extracts EventCandidates from one page per call."""

    def __init__(
        self,
        backend: ExtractionBackend,
        config: GlobalConfig,
        today: date | None = None,
    ) -> None:
        self.backend = backend
        self.config = config
        self.today = today

    async def _with_retry(
        self,
        call: Callable[[], Awaitable[T]],
        task: ScrapeTask,
        ctx: RunContext,
    ) -> T:
        """
        Invoke ``call``, retrying on RateLimited with linear backoff.

        Raises:
            QuotaExhausted: After setting ``ctx.quota_exhausted``.
            TransientSourceError: When retries are used up.
        """
        retries = self.config.rate_limit_retries
        for attempt in range(retries + 1):
            ctx.counters.extraction_calls += 1
            try:
                return await call()
            except QuotaExhausted:
                ctx.quota_exhausted = True
                raise
            except RateLimited as e:
                if attempt >= retries:
                    raise TransientSourceError(
                        f"{task.name}: still rate limited after {retries} retries"
                    ) from e
                backoff = self.config.rate_limit_backoff_seconds * (attempt + 1)
                ctx.counters.rate_limit_retries += 1
                logger.warning(
                    f"Rate limited on {task.name} (retry-after={e.retry_after}), "
                    f"retrying in {backoff:.0f}s ({attempt + 1}/{retries})"
                )
                await ctx.sleep(backoff)
        raise AssertionError("unreachable")

    async def extract(self, task: ScrapeTask, ctx: RunContext) -> list[EventCandidate]:
        """
        Scrape one page and return its candidates.

        Args:
            task: The page to scrape.
            ctx: Run context (quota breaker, counters, sleep).

        Returns:
            Candidates in page order; empty on any failure.
        """
        source = task.source
        if ctx.quota_exhausted:
            logger.info(f"Skipping {task.name}: extraction quota exhausted for this run")
            return []
        if source.key in ctx.exhausted_sources:
            logger.info(f"Skipping {task.name}: {source.name} reported no further results")
            return []

        instruction = build_extraction_prompt(
            source.category,
            source.name,
            today=self.today,
            default_time=self.config.default_event_time,
        )
        logger.info(f"Scraping {task.name}: {task.url}")

        try:
            response = await self._with_retry(
                lambda: self.backend.scrape(task.url, instruction, EVENTS_JSON_SCHEMA, task.fetch),
                task,
                ctx,
            )
        except QuotaExhausted as e:
            logger.error(f"Quota exhausted while scraping {task.name}: {e}")
            self._fail(task, ctx, e)
            return []
        except IngestionError as e:
            logger.warning(f"Extraction failed for {task.name}: {e}")
            self._fail(task, ctx, e)
            return []
        except Exception as e:
            logger.exception(f"Unexpected error scraping {task.name}: {e}")
            self._fail(task, ctx, e)
            return []

        return self._candidates_from(response, task, ctx)

    async def discover_links(self, task: ScrapeTask, ctx: RunContext) -> list[str]:
        """
        Fetch a listing page and return detail URLs under the discover prefix.

        Returns:
            Unique URLs in page order; empty on failure.
        """
        discover = task.source.discover
        if discover is None or ctx.quota_exhausted:
            return []

        try:
            links = await self._with_retry(
                lambda: self.backend.fetch_links(task.url, task.fetch), task, ctx
            )
        except IngestionError as e:
            logger.warning(f"Link discovery failed for {task.name}: {e}")
            self._fail(task, ctx, e)
            return []
        except Exception as e:
            logger.exception(f"Unexpected error discovering links for {task.name}: {e}")
            self._fail(task, ctx, e)
            return []

        prefix = discover.link_prefix
        found: dict[str, None] = {}
        for link in links:
            if link.startswith(prefix) and link.rstrip("/") != prefix.rstrip("/"):
                found.setdefault(link, None)
        logger.info(f"{task.source.name}: discovered {len(found)} detail URLs")
        return list(found)

    @staticmethod
    def _fail(task: ScrapeTask, ctx: RunContext, error: Exception) -> None:
        ctx.counters.tasks_failed += 1
        ctx.record_error(f"{task.name}: {error}")

    def _candidates_from(
        self,
        response: ScrapeResponse,
        task: ScrapeTask,
        ctx: RunContext,
    ) -> list[EventCandidate]:
        source = task.source
        if not response.has_content:
            logger.info(f"No content returned for {task.name}")
            return []

        sentinel = source.no_results_sentinel
        if sentinel and sentinel.lower() in response.text.lower():
            logger.info(f"{task.name}: no-results marker found, ending {source.name} pagination")
            ctx.exhausted_sources.add(source.key)
            return []

        raw_events = response.events
        if not raw_events:
            logger.info(f"No events extracted from {task.name}")
            return []

        page_image = first_image_link(response.links)
        candidates = []
        for raw in raw_events:
            candidate = self._build_candidate(raw, task, page_image, ctx)
            if candidate is not None:
                candidates.append(candidate)

        ctx.counters.found += len(candidates)
        logger.info(f"Extracted {len(candidates)} events from {task.name}")
        return candidates

    def _build_candidate(
        self,
        raw: dict[str, Any],
        task: ScrapeTask,
        page_image: str | None,
        ctx: RunContext,
    ) -> EventCandidate | None:
        source = task.source
        tz = self.config.tz
        default_time = self.config.default_time

        artist = raw.get("artist")
        if not isinstance(artist, str) or not artist.strip():
            ctx.counters.drop("missing_artist")
            return None

        try:
            when = coerce_event_datetime(raw.get("date"), tz, default_time)
        except ParseError as e:
            logger.warning(f"Dropping '{artist}' from {task.name}: {e}")
            ctx.counters.drop("unparseable_date")
            return None

        sale_date = None
        if raw.get("ticket_sale_date"):
            try:
                sale_date = coerce_event_datetime(raw["ticket_sale_date"], tz, default_time)
            except ParseError:
                sale_date = None

        image_url = raw.get("image_url")
        if not isinstance(image_url, str) or image_url.strip().lower() in ("", "null", "none"):
            image_url = page_image

        venue = raw.get("venue")
        if not isinstance(venue, str) or not venue.strip():
            venue = source.name

        ticket_url = raw.get("ticket_url")
        if not isinstance(ticket_url, str) or not ticket_url.strip():
            ticket_url = None

        try:
            return EventCandidate(
                artist=artist,
                venue=venue,
                date=when,
                ticket_url=ticket_url,
                ticket_sale_date=sale_date,
                tickets_available=coerce_flag(raw.get("tickets_available")),
                image_url=image_url,
                event_category=source.category,
                source_key=source.key,
                source_name=source.name,
                source_url=task.url,
            )
        except ValidationError as e:
            logger.warning(f"Dropping malformed event from {task.name}: {e.error_count()} errors")
            ctx.counters.drop("invalid_candidate")
            return None
