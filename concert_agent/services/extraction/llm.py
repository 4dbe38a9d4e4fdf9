"""Fetch-then-LLM extraction backend."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from concert_agent.core.enums import ExtractionBackendName
from concert_agent.core.errors import RateLimited, TransientSourceError
from concert_agent.services.ai.client import AIClient
from concert_agent.services.extraction.base import ExtractionBackend, ScrapeResponse

if TYPE_CHECKING:
    from concert_agent.ingestion.registry import FetchOptions

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def html_to_text(html: str) -> str:
    """Visible text of an HTML document, whitespace collapsed."""
    soup = BeautifulSoup(html or "", "html.parser")
    for tag in soup(["script", "style", "noscript", "svg"]):
        tag.decompose()
    return _WHITESPACE.sub(" ", soup.get_text(" ", strip=True)).strip()


def extract_links(html: str, base_url: str) -> list[str]:
    """Absolute href and img src URLs, in document order, without duplicates."""
    soup = BeautifulSoup(html or "", "html.parser")
    seen: dict[str, None] = {}
    for node in soup.find_all(["a", "img"]):
        target = node.get("href") if node.name == "a" else node.get("src")
        if not target or target.startswith(("#", "javascript:", "mailto:", "data:")):
            continue
        seen.setdefault(urljoin(base_url, target), None)
    return list(seen)


class LLMBackend(ExtractionBackend):
    """
    Fetches raw HTML with httpx and asks an LLM provider for the event JSON.

    No JavaScript rendering happens here, so render options other than the
    URL itself are ignored. Pages that need a browser should stay on the
    Firecrawl backend.
    """

    name = ExtractionBackendName.LLM

    def __init__(
        self,
        ai_client: AIClient,
        user_agent: str,
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.ai_client = ai_client
        self.user_agent = user_agent
        self._client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)
        self._owns_client = client is None

    async def _get(self, url: str) -> str:
        try:
            response = await self._client.get(url, headers={"User-Agent": self.user_agent})
        except httpx.HTTPError as e:
            raise TransientSourceError(f"Fetch failed for {url}: {e}") from e
        if response.status_code == 429:
            raise RateLimited(f"{url} returned 429")
        if response.status_code >= 400:
            raise TransientSourceError(f"{url} returned HTTP {response.status_code}")
        return response.text

    async def scrape(
        self,
        url: str,
        instruction: str,
        schema: dict[str, Any],
        options: FetchOptions,
    ) -> ScrapeResponse:
        html = await self._get(url)
        text = html_to_text(html)
        links = extract_links(html, url)
        if not text:
            return ScrapeResponse(url=url, links=links)

        data = await self.ai_client.extract_events(text, instruction)
        return ScrapeResponse(url=url, text=text, links=links, data=data)

    async def fetch_links(self, url: str, options: FetchOptions) -> list[str]:
        html = await self._get(url)
        return extract_links(html, url)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
        await self.ai_client.aclose()
