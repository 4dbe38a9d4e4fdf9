"""Firecrawl JSON-mode extraction backend."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from concert_agent.core.enums import ExtractionBackendName
from concert_agent.core.errors import (
    ParseError,
    QuotaExhausted,
    RateLimited,
    TransientSourceError,
)
from concert_agent.services.extraction.base import ExtractionBackend, ScrapeResponse

if TYPE_CHECKING:
    from concert_agent.ingestion.registry import FetchOptions

logger = logging.getLogger(__name__)

FIRECRAWL_API_URL = "https://api.firecrawl.dev"
SCROLL_WAIT_MS = 2000

_QUOTA_MARKERS = ("insufficient credits", "payment required", "credits")


def scroll_actions(steps: int, wait_ms: int = SCROLL_WAIT_MS) -> list[dict[str, Any]]:
    """Browser actions that scroll down ``steps`` times to load lazy lists."""
    actions: list[dict[str, Any]] = []
    for _ in range(steps):
        actions.append({"type": "scroll", "direction": "down"})
        actions.append({"type": "wait", "milliseconds": wait_ms})
    return actions


class FirecrawlBackend(ExtractionBackend):
    """
    Scrapes pages through Firecrawl's ``/v1/scrape`` endpoint.

    One call returns markdown, links and schema-shaped JSON. HTTP 429 maps
    to RateLimited, HTTP 402 (or a credits error body) to QuotaExhausted.
    """

    name = ExtractionBackendName.FIRECRAWL

    def __init__(
        self,
        api_key: str,
        base_url: str = FIRECRAWL_API_URL,
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    async def scrape(
        self,
        url: str,
        instruction: str,
        schema: dict[str, Any],
        options: FetchOptions,
    ) -> ScrapeResponse:
        body: dict[str, Any] = {
            "url": url,
            "formats": ["markdown", "links", "json"],
            "jsonOptions": {"schema": schema, "prompt": instruction},
            "onlyMainContent": options.only_main_content,
            "waitFor": options.wait_for_ms,
        }
        if options.scroll_steps:
            body["actions"] = scroll_actions(options.scroll_steps)

        data = await self._post_scrape(body)
        json_data = data.get("json")
        if json_data is not None and not isinstance(json_data, dict):
            raise ParseError(f"Firecrawl returned non-object json for {url}")

        return ScrapeResponse(
            url=url,
            text=data.get("markdown") or "",
            links=_as_links(data.get("links")),
            data=json_data,
        )

    async def fetch_links(self, url: str, options: FetchOptions) -> list[str]:
        body = {
            "url": url,
            "formats": ["links"],
            "onlyMainContent": options.only_main_content,
            "waitFor": options.wait_for_ms,
        }
        data = await self._post_scrape(body)
        return _as_links(data.get("links"))

    async def _post_scrape(self, body: dict[str, Any]) -> dict[str, Any]:
        """POST to /v1/scrape and return the ``data`` object."""
        try:
            response = await self._client.post(
                f"{self.base_url}/v1/scrape",
                json=body,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.HTTPError as e:
            raise TransientSourceError(f"Firecrawl request failed: {e}") from e

        if response.status_code == 429:
            retry_after = response.headers.get("retry-after")
            raise RateLimited(
                "Firecrawl rate limit",
                retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        if response.status_code == 402:
            raise QuotaExhausted("Firecrawl credits exhausted")

        try:
            payload = response.json()
        except ValueError as e:
            raise ParseError(f"Firecrawl returned invalid JSON (HTTP {response.status_code})") from e

        if response.status_code >= 400 or payload.get("success") is False:
            error = str(payload.get("error") or f"HTTP {response.status_code}")
            if any(marker in error.lower() for marker in _QUOTA_MARKERS):
                raise QuotaExhausted(f"Firecrawl: {error}")
            raise TransientSourceError(f"Firecrawl error: {error}")

        data = payload.get("data", payload)
        if not isinstance(data, dict):
            raise ParseError("Firecrawl response has no data object")
        return data

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _as_links(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [link for link in value if isinstance(link, str)]
