"""Shared fixtures and fakes for the ingestion tests."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest
import yaml

from concert_agent.core.enums import EventCategory
from concert_agent.core.keys import NaturalKey
from concert_agent.core.schema import EventCandidate
from concert_agent.ingestion.persistence import PersistenceGateway
from concert_agent.ingestion.registry import SourceRegistry
from concert_agent.ingestion.rules import QualityRules
from concert_agent.services.extraction.base import ExtractionBackend, ScrapeResponse


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeBackend(ExtractionBackend):
    """
    Extraction backend serving canned responses per URL.

    A value may be a ScrapeResponse, an exception instance (raised), or a
    list of those consumed one call at a time.
    """

    name = "fake"

    def __init__(
        self,
        responses: dict[str, Any] | None = None,
        links: dict[str, list[str]] | None = None,
        clock: FakeClock | None = None,
        seconds_per_call: float = 0.0,
    ) -> None:
        self.responses = dict(responses or {})
        self.links = dict(links or {})
        self.clock = clock
        self.seconds_per_call = seconds_per_call
        self.calls: list[str] = []
        self.closed = False

    def _next(self, url: str) -> Any:
        value = self.responses.get(url)
        if isinstance(value, list):
            value = value.pop(0) if value else None
        return value

    async def scrape(self, url, instruction, schema, options) -> ScrapeResponse:
        self.calls.append(url)
        if self.clock is not None:
            self.clock.advance(self.seconds_per_call)
        value = self._next(url)
        if isinstance(value, Exception):
            raise value
        if value is None:
            return ScrapeResponse(url=url)
        return value

    async def fetch_links(self, url, options) -> list[str]:
        self.calls.append(url)
        value = self.links.get(url, [])
        if isinstance(value, Exception):
            raise value
        return value

    async def aclose(self) -> None:
        self.closed = True


class FakeGateway(PersistenceGateway):
    """In-memory persistence gateway."""

    def __init__(
        self,
        deleted: set[NaturalKey] | None = None,
        artists: list[str] | None = None,
        fail_deletion_keys: Exception | None = None,
        fail_upsert_for: set[str] | None = None,
    ) -> None:
        self.deleted = set(deleted or set())
        self.artists = list(artists or [])
        self.fail_deletion_keys = fail_deletion_keys
        self.fail_upsert_for = set(fail_upsert_for or set())
        self.records: list[dict[str, Any]] = []
        self.task_log: list[dict[str, Any]] = []
        self.batch_log: list[dict[str, Any]] = []
        self.deletion_key_loads = 0

    def deletion_keys(self) -> set[NaturalKey]:
        self.deletion_key_loads += 1
        if self.fail_deletion_keys is not None:
            raise self.fail_deletion_keys
        return set(self.deleted)

    def upsert(self, record: dict[str, Any]) -> None:
        from concert_agent.core.errors import PersistenceError

        if record["artist"] in self.fail_upsert_for:
            raise PersistenceError(f"upsert failed for {record['artist']}")
        self.records.append(record)

    def known_artists(self, source: str) -> list[str]:
        return list(self.artists)

    def log_task(self, **fields: Any) -> None:
        self.task_log.append(fields)

    def log_batch(self, **fields: Any) -> None:
        self.batch_log.append(fields)


def make_candidate(
    artist: str = "Robyn",
    venue: str = "Avicii Arena",
    date: datetime | None = None,
    **kwargs: Any,
) -> EventCandidate:
    """EventCandidate with sensible defaults."""
    kwargs.setdefault("event_category", EventCategory.CONCERT)
    kwargs.setdefault("source_name", "Live Nation")
    kwargs.setdefault("source_url", "https://www.livenation.se/en?Page=1")
    return EventCandidate(
        artist=artist,
        venue=venue,
        date=date or datetime(2026, 11, 20, 18, 0, tzinfo=UTC),
        **kwargs,
    )


def events_response(url: str, events: list[dict[str, Any]], text: str = "listing", links=None) -> ScrapeResponse:
    """ScrapeResponse holding extracted events."""
    return ScrapeResponse(url=url, text=text, links=list(links or []), data={"events": events})


TEST_SOURCES_CONFIG: dict[str, Any] = {
    "global": {
        "user_agent": "TestAgent/1.0",
        "execution_ceiling_seconds": 300,
        "time_budget_seconds": 240,
        "task_delay_seconds": 1.5,
        "rate_limit_retries": 2,
        "rate_limit_backoff_seconds": 10,
        "timezone": "Europe/Stockholm",
        "default_event_time": "19:00",
        "enrichment_cutoff_seconds": 270,
    },
    "chaining": {"enabled": True, "trigger": "webhook", "webhook_url": "http://localhost/scrape"},
    "sources": [
        {
            "key": "paged",
            "name": "Paged Source",
            "url_template": "https://paged.example.se/events?page={page}",
            "pages": {"start": 1, "end": 6},
            "city_specific": True,
            "no_results_sentinel": "No events found",
        },
        {
            "key": "venue-a",
            "name": "Venue A",
            "url": "https://venue-a.example.se/",
            "city_specific": True,
        },
        {
            "key": "national",
            "name": "National Listings",
            "url": "https://national.example.se/",
        },
        {
            "key": "monthly",
            "name": "Monthly",
            "url_template": "https://monthly.example.se/?m={value}",
            "values": ["2026-01", "2026-02"],
        },
        {
            "key": "comedy",
            "name": "Comedy Club",
            "category": "comedy",
            "url": "https://comedy.example.se/",
            "city_specific": True,
        },
        {
            "key": "discovered",
            "name": "Discovered",
            "url": "https://discover.example.se/program",
            "city_specific": True,
            "discover": {
                "link_prefix": "https://discover.example.se/event/",
                "page_size": 2,
                "skip_known": True,
            },
        },
    ],
    "batches": [
        {"source": "paged", "pages_per_batch": 3},
        {"tasks": ["venue-a", "national"]},
        {"tasks": ["monthly", "comedy"]},
        {"tasks": ["discovered"]},
    ],
}


def write_config(path: Path, config: dict[str, Any]) -> Path:
    """Dump a sources config to YAML."""
    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(config, f, allow_unicode=True)
    return path


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sources_config() -> dict[str, Any]:
    """Deep copy of the test sources config, safe to mutate."""
    return yaml.safe_load(yaml.dump(TEST_SOURCES_CONFIG))


@pytest.fixture
def registry(tmp_path: Path, sources_config: dict[str, Any], monkeypatch: pytest.MonkeyPatch) -> SourceRegistry:
    """Registry loaded from the test config, isolated from the environment."""
    monkeypatch.delenv("CONCERT_AGENT_CHAIN_DISABLED", raising=False)
    monkeypatch.delenv("SCRAPE_TRIGGER_URL", raising=False)
    registry = SourceRegistry()
    registry.load_config(write_config(tmp_path / "sources.yaml", sources_config))
    return registry


@pytest.fixture
def rules() -> QualityRules:
    return QualityRules.from_dict(
        {
            "version": 1,
            "venue_aliases": {
                "friends arena": "Strawberry Arena",
                "globen": "Avicii Arena",
                "avicii arena": "Avicii Arena",
                "stora scen": "Gröna Lund",
                "gröna lund": "Gröna Lund",
            },
            "city_keywords": ["stockholm", "solna", "strawberry arena", "avicii arena", "gröna lund", "nalen"],
            "city_suffixes": ["stockholm", "sweden"],
            "blocked_ticket_hosts": ["example.com", "*.local", "staging.*"],
            "min_ticket_url_length": 10,
        }
    )
