"""
Artist Artwork Providers
========================

Name-based artist image lookups used by the image enricher. Every provider
returns a URL or None and swallows its own transport and payload errors.

- MusicBrainzProvider: artist search -> url relations -> Wikidata P18
  portrait served through Wikimedia Commons
- WikipediaProvider: page summary image from the REST API
- ITunesProvider: album or track artwork, upscaled to 600x600
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any
from urllib.parse import quote

import httpx

from concert_agent.ingestion.throttle import TokenBucket

logger = logging.getLogger(__name__)

MUSICBRAINZ_API = "https://musicbrainz.org/ws/2"
WIKIDATA_ENTITY_URL = "https://www.wikidata.org/wiki/Special:EntityData/{qid}.json"
COMMONS_FILE_URL = "https://commons.wikimedia.org/wiki/Special:FilePath/{name}?width=600"
WIKIPEDIA_SUMMARY_URL = "https://{lang}.wikipedia.org/api/rest_v1/page/summary/{title}"
ITUNES_SEARCH_URL = "https://itunes.apple.com/search"

MIN_MUSICBRAINZ_SCORE = 90


class ArtworkProvider(ABC):
    """One stage of the artwork fallback chain."""

    name: str

    def __init__(
        self,
        client: httpx.AsyncClient,
        user_agent: str,
        throttle: TokenBucket | None = None,
    ) -> None:
        self.client = client
        self.user_agent = user_agent
        self.throttle = throttle

    async def _get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        """GET a JSON document, honoring the throttle. Returns None on 404."""
        if self.throttle is not None:
            await self.throttle.acquire()
        response = await self.client.get(
            url,
            params=params,
            headers={"User-Agent": self.user_agent, "Accept": "application/json"},
            follow_redirects=True,
        )
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()

    async def lookup(self, artist: str) -> str | None:
        """Image URL for ``artist``, or None. Never raises."""
        try:
            return await self._lookup(artist)
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as e:
            logger.warning(f"{self.name} lookup failed for '{artist}': {e}")
            return None

    @abstractmethod
    async def _lookup(self, artist: str) -> str | None:
        """Provider-specific lookup; may raise."""


class MusicBrainzProvider(ArtworkProvider):
    """MusicBrainz artist -> Wikidata entity -> Commons portrait."""

    name = "musicbrainz"

    async def _lookup(self, artist: str) -> str | None:
        search = await self._get_json(
            f"{MUSICBRAINZ_API}/artist/",
            params={"query": f'artist:"{artist}"', "fmt": "json", "limit": 1},
        )
        artists = (search or {}).get("artists") or []
        if not artists or int(artists[0].get("score", 0)) < MIN_MUSICBRAINZ_SCORE:
            return None

        mbid = artists[0]["id"]
        detail = await self._get_json(
            f"{MUSICBRAINZ_API}/artist/{mbid}", params={"inc": "url-rels", "fmt": "json"}
        )
        relations = (detail or {}).get("relations") or []

        wikidata_url = None
        for rel in relations:
            resource = (rel.get("url") or {}).get("resource", "")
            if rel.get("type") == "image" and "commons.wikimedia.org" in resource:
                filename = resource.rsplit("File:", 1)[-1]
                return COMMONS_FILE_URL.format(name=quote(filename))
            if rel.get("type") == "wikidata" and resource:
                wikidata_url = resource

        if wikidata_url is None:
            return None
        return await self._wikidata_image(wikidata_url.rstrip("/").rsplit("/", 1)[-1])

    async def _wikidata_image(self, qid: str) -> str | None:
        """P18 (image) of a Wikidata entity as a Commons URL."""
        entity_doc = await self._get_json(WIKIDATA_ENTITY_URL.format(qid=qid))
        entity = ((entity_doc or {}).get("entities") or {}).get(qid) or {}
        images = (entity.get("claims") or {}).get("P18") or []
        if not images:
            return None
        filename = images[0]["mainsnak"]["datavalue"]["value"]
        return COMMONS_FILE_URL.format(name=quote(filename.replace(" ", "_")))


class WikipediaProvider(ArtworkProvider):
    """Lead image of the artist's Wikipedia article."""

    name = "wikipedia"

    def __init__(self, *args: Any, lang: str = "en", **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.lang = lang

    async def _lookup(self, artist: str) -> str | None:
        title = quote(artist.strip().replace(" ", "_"), safe="")
        summary = await self._get_json(WIKIPEDIA_SUMMARY_URL.format(lang=self.lang, title=title))
        if not summary or summary.get("type") == "disambiguation":
            return None
        image = summary.get("originalimage") or summary.get("thumbnail") or {}
        return image.get("source")


class ITunesProvider(ArtworkProvider):
    """Commercial artwork from the iTunes Search API."""

    def __init__(self, *args: Any, entity: str = "album", **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.entity = entity
        self.name = f"itunes-{entity}"

    async def _lookup(self, artist: str) -> str | None:
        data = await self._get_json(
            ITUNES_SEARCH_URL, params={"term": artist, "entity": self.entity, "limit": 1}
        )
        results = (data or {}).get("results") or []
        artwork = results[0].get("artworkUrl100") if results else None
        if not artwork:
            return None
        return artwork.replace("100x100", "600x600")
