"""
Extraction Backend Interface
============================

A backend turns one URL plus an instruction and an output schema into
rendered page text, outbound links and structured JSON. Backends signal
failures with the ingestion error taxonomy and never retry themselves.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from concert_agent.core.enums import ExtractionBackendName

if TYPE_CHECKING:
    from concert_agent.ingestion.registry import FetchOptions


@dataclass
class ScrapeResponse:
    """What a backend returns for one page."""

    url: str
    text: str = ""
    links: list[str] = field(default_factory=list)
    data: dict[str, Any] | None = None

    @property
    def has_content(self) -> bool:
        """True if the backend returned any page text or structured data."""
        return bool(self.text.strip()) or bool(self.data)

    @property
    def events(self) -> list[dict[str, Any]]:
        """Raw event objects from the structured data, if any."""
        if not isinstance(self.data, dict):
            return []
        events = self.data.get("events")
        if not isinstance(events, list):
            return []
        return [e for e in events if isinstance(e, dict)]


class ExtractionBackend(ABC):
    """Abstract scraping + structured extraction backend."""

    name: ExtractionBackendName

    @abstractmethod
    async def scrape(
        self,
        url: str,
        instruction: str,
        schema: dict[str, Any],
        options: FetchOptions,
    ) -> ScrapeResponse:
        """
        Fetch a page and extract structured data from it.

        Raises:
            RateLimited: Retryable rate-limit signal.
            QuotaExhausted: Usage allowance spent for this run.
            TransientSourceError: Network or backend failure.
            ParseError: Malformed backend response.
        """

    @abstractmethod
    async def fetch_links(self, url: str, options: FetchOptions) -> list[str]:
        """Fetch a page and return only its outbound links."""

    async def aclose(self) -> None:
        """Release network resources."""
