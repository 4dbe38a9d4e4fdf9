"""
Image Enricher Module
=====================

Fills missing artwork by walking a fallback chain of artwork providers.
Results, including misses, are cached per run on the RunContext keyed by
the cleaned artist name. Enrichment is best-effort and never fails a batch.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections.abc import Awaitable, Callable, Sequence

import httpx

from concert_agent.core.enums import EventCategory
from concert_agent.core.schema import EventCandidate
from concert_agent.ingestion.context import RunContext
from concert_agent.ingestion.throttle import TokenBucket
from concert_agent.services.artwork import (
    ArtworkProvider,
    ITunesProvider,
    MusicBrainzProvider,
    WikipediaProvider,
)

logger = logging.getLogger(__name__)

_ARTIST_CUT = re.compile(r"[:\-–—|(]")

ITUNES_INTERVAL_SECONDS = 0.3


def clean_artist_name(artist: str) -> str:
    """Artist name up to the first tour/feature separator."""
    return _ARTIST_CUT.split(artist, maxsplit=1)[0].strip()


class ImageEnricher:
    """Artwork lookup over an ordered provider chain."""

    def __init__(self, providers: Sequence[ArtworkProvider]) -> None:
        self.providers = list(providers)

    @classmethod
    def with_default_chain(
        cls,
        client: httpx.AsyncClient,
        user_agent: str,
        interval_seconds: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> ImageEnricher:
        """
        MusicBrainz/Wikidata, then Wikipedia, then iTunes album and track.

        The public metadata services share one throttle of one call per
        ``interval_seconds``; iTunes gets its own lighter throttle.
        """
        public = TokenBucket.min_interval(interval_seconds, clock=clock, sleep=sleep)
        itunes = TokenBucket.min_interval(ITUNES_INTERVAL_SECONDS, clock=clock, sleep=sleep)
        return cls([
            MusicBrainzProvider(client, user_agent, throttle=public),
            WikipediaProvider(client, user_agent, throttle=public),
            ITunesProvider(client, user_agent, throttle=itunes, entity="album"),
            ITunesProvider(client, user_agent, throttle=itunes, entity="musicTrack"),
        ])

    async def enrich(self, artist: str, ctx: RunContext) -> str | None:
        """
        Image URL for an artist, or None.

        Args:
            artist: Raw artist name (tour suffixes are cut off).
            ctx: Run context holding the per-run cache.
        """
        name = clean_artist_name(artist)
        cache_key = name.lower()
        if not cache_key:
            return None
        if cache_key in ctx.image_cache:
            return ctx.image_cache[cache_key]

        url = None
        for provider in self.providers:
            try:
                url = await provider.lookup(name)
            except Exception as e:
                logger.warning(f"Artwork provider {provider.name} raised for '{name}': {e}")
                url = None
            if url:
                logger.debug(f"Artwork for '{name}' from {provider.name}")
                break

        ctx.image_cache[cache_key] = url
        return url

    async def enrich_all(
        self,
        candidates: Sequence[EventCandidate],
        ctx: RunContext,
        cutoff_seconds: float | None = None,
    ) -> list[EventCandidate]:
        """
        Fill ``image_url`` on concert candidates that lack one.

        Comedy events are left alone. Once ``ctx.elapsed()`` passes
        ``cutoff_seconds`` only cached artists are still resolved.
        """
        result = []
        for candidate in candidates:
            if candidate.image_url or candidate.event_category == EventCategory.COMEDY:
                result.append(candidate)
                continue

            cache_key = clean_artist_name(candidate.artist).lower()
            past_cutoff = cutoff_seconds is not None and ctx.elapsed() >= cutoff_seconds
            if past_cutoff and cache_key not in ctx.image_cache:
                result.append(candidate)
                continue

            url = await self.enrich(candidate.artist, ctx)
            if url:
                ctx.counters.images_enriched += 1
                candidate = candidate.model_copy(update={"image_url": url})
            result.append(candidate)
        return result
