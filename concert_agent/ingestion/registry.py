"""
Source Registry Module
======================

Loads source definitions and the batch plan from YAML. Every batch number
maps deterministically to the same ordered task list, so any batch can be
re-run on its own and regenerates identically.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import time
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo

import yaml

from concert_agent.core.enums import ChainTriggerKind, EventCategory

DEFAULT_SOURCES_PATH = Path(__file__).parent.parent / "config" / "sources.yaml"


@dataclass
class FetchOptions:
    """Render options passed to the scraping backend for one page."""

    wait_for_ms: int = 5000
    only_main_content: bool = True
    scroll_steps: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> FetchOptions:
        """Create from dictionary, using defaults for missing values."""
        if data is None:
            return cls()
        return cls(
            wait_for_ms=int(data.get("wait_for_ms", 5000)),
            only_main_content=bool(data.get("only_main_content", True)),
            scroll_steps=int(data.get("scroll_steps", 0)),
        )


@dataclass
class DiscoverConfig:
    """Link discovery settings for sources without a scrapeable listing."""

    link_prefix: str
    page_size: int = 4
    skip_known: bool = False
    wait_for_ms: int = 6000

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> DiscoverConfig | None:
        """Create from dictionary; ``None`` means the source is not discovered."""
        if not data:
            return None
        return cls(
            link_prefix=data["link_prefix"],
            page_size=int(data.get("page_size", 4)),
            skip_known=bool(data.get("skip_known", False)),
            wait_for_ms=int(data.get("wait_for_ms", 6000)),
        )


@dataclass
class SourceConfig:
    """Configuration for a single listing source."""

    key: str
    name: str
    category: EventCategory = EventCategory.CONCERT
    url: str | None = None
    url_template: str | None = None
    pages: tuple[int, int] | None = None
    values: list[str] = field(default_factory=list)
    city_specific: bool = False
    no_results_sentinel: str | None = None
    enabled: bool = True
    fetch: FetchOptions = field(default_factory=FetchOptions)
    discover: DiscoverConfig | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SourceConfig:
        """Create from dictionary."""
        pages = data.get("pages")
        page_range = None
        if pages:
            page_range = (int(pages.get("start", 1)), int(pages["end"]))

        source = cls(
            key=data["key"],
            name=data.get("name", data["key"]),
            category=EventCategory(data.get("category", "concert")),
            url=data.get("url"),
            url_template=data.get("url_template"),
            pages=page_range,
            values=[str(v) for v in data.get("values", [])],
            city_specific=bool(data.get("city_specific", False)),
            no_results_sentinel=data.get("no_results_sentinel"),
            enabled=data.get("enabled", True),
            fetch=FetchOptions.from_dict(data.get("fetch")),
            discover=DiscoverConfig.from_dict(data.get("discover")),
        )
        if source.url is None and source.url_template is None:
            raise ValueError(f"Source '{source.key}' needs either 'url' or 'url_template'")
        if source.url_template and not (source.pages or source.values):
            raise ValueError(f"Source '{source.key}' has a url_template but no pages/values")
        return source

    def page_urls(self) -> list[tuple[str, str]]:
        """
        Expand the source into (label, url) pairs, in page order.

        Returns:
            One pair per fetchable page.
        """
        if self.url_template and self.pages:
            start, end = self.pages
            return [
                (f"p{p}", self.url_template.format(page=p))
                for p in range(start, end + 1)
            ]
        if self.url_template and self.values:
            return [(v, self.url_template.format(value=v)) for v in self.values]
        return [("", self.url or "")]


@dataclass
class ScrapeTask:
    """One fetchable page plus its extraction parameters."""

    name: str
    source: SourceConfig
    url: str
    discover: bool = False

    @property
    def fetch(self) -> FetchOptions:
        """Fetch options for this page."""
        if self.discover and self.source.discover:
            return FetchOptions(
                wait_for_ms=self.source.discover.wait_for_ms,
                only_main_content=False,
            )
        return self.source.fetch


@dataclass
class BatchDescriptor:
    """A numbered batch and its ordered tasks."""

    number: int
    tasks: list[ScrapeTask]
    total_batches: int
    page: int = 1

    @property
    def is_last(self) -> bool:
        """True if no batch follows this one."""
        return self.number >= self.total_batches


@dataclass
class GlobalConfig:
    """Global runtime settings."""

    user_agent: str = "ConcertAgent/0.1"
    request_timeout: int = 60
    execution_ceiling_seconds: float = 300.0
    time_budget_seconds: float = 240.0
    task_delay_seconds: float = 1.5
    rate_limit_retries: int = 2
    rate_limit_backoff_seconds: float = 10.0
    timezone: str = "Europe/Stockholm"
    default_event_time: str = "19:00"
    image_lookup_interval_seconds: float = 1.0
    enrichment_cutoff_seconds: float = 270.0

    def __post_init__(self) -> None:
        if self.time_budget_seconds >= self.execution_ceiling_seconds:
            raise ValueError(
                f"time_budget_seconds ({self.time_budget_seconds}) must be below "
                f"execution_ceiling_seconds ({self.execution_ceiling_seconds})"
            )
        if self.enrichment_cutoff_seconds > self.execution_ceiling_seconds:
            raise ValueError("enrichment_cutoff_seconds must not exceed execution_ceiling_seconds")

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> GlobalConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        return cls(
            user_agent=data.get("user_agent", "ConcertAgent/0.1"),
            request_timeout=int(data.get("request_timeout", 60)),
            execution_ceiling_seconds=float(data.get("execution_ceiling_seconds", 300)),
            time_budget_seconds=float(data.get("time_budget_seconds", 240)),
            task_delay_seconds=float(data.get("task_delay_seconds", 1.5)),
            rate_limit_retries=int(data.get("rate_limit_retries", 2)),
            rate_limit_backoff_seconds=float(data.get("rate_limit_backoff_seconds", 10)),
            timezone=data.get("timezone", "Europe/Stockholm"),
            default_event_time=str(data.get("default_event_time", "19:00")),
            image_lookup_interval_seconds=float(data.get("image_lookup_interval_seconds", 1.0)),
            enrichment_cutoff_seconds=float(data.get("enrichment_cutoff_seconds", 270)),
        )

    @property
    def tz(self) -> ZoneInfo:
        """Local timezone of the target city."""
        return ZoneInfo(self.timezone)

    @property
    def default_time(self) -> time:
        """Time of day used when a source gives only a date."""
        return time.fromisoformat(self.default_event_time)


@dataclass
class ChainConfig:
    """Settings for triggering the next batch."""

    enabled: bool = True
    trigger: ChainTriggerKind = ChainTriggerKind.WEBHOOK
    webhook_url: str | None = None
    max_attempts: int = 3
    backoff_seconds: float = 1.0

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ChainConfig:
        """Create from dictionary, letting the environment override."""
        data = data or {}
        enabled = bool(data.get("enabled", True))
        if os.environ.get("CONCERT_AGENT_CHAIN_DISABLED", "").lower() in ("true", "1", "yes"):
            enabled = False
        return cls(
            enabled=enabled,
            trigger=ChainTriggerKind(data.get("trigger", "webhook")),
            webhook_url=os.environ.get("SCRAPE_TRIGGER_URL") or data.get("webhook_url"),
            max_attempts=int(data.get("max_attempts", 3)),
            backoff_seconds=float(data.get("backoff_seconds", 1.0)),
        )


class SourceRegistry:
    """
    Registry for listing sources and the numbered batch plan.

    Loads source definitions from a YAML file and expands the ``batches``
    section into an ordered list of task lists.
    """

    def __init__(self) -> None:
        self._sources: dict[str, SourceConfig] = {}
        self._plan: list[list[ScrapeTask]] = []
        self._global_config: GlobalConfig = GlobalConfig()
        self._chain_config: ChainConfig = ChainConfig()
        self._config_path: Path | None = None

    @property
    def global_config(self) -> GlobalConfig:
        """Get global configuration."""
        return self._global_config

    @property
    def chain_config(self) -> ChainConfig:
        """Get chaining configuration."""
        return self._chain_config

    @property
    def total_batches(self) -> int:
        """Number of batches in the plan."""
        return len(self._plan)

    def load_config(self, config_path: Path | str) -> None:
        """
        Load configuration from a YAML file.

        Args:
            config_path: Path to the sources.yaml file
        """
        config_path = Path(config_path).expanduser().resolve()
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        self._config_path = config_path
        self._global_config = GlobalConfig.from_dict(data.get("global"))
        self._chain_config = ChainConfig.from_dict(data.get("chaining"))

        self._sources.clear()
        for source_data in data.get("sources", []):
            source = SourceConfig.from_dict(source_data)
            if source.key in self._sources:
                raise ValueError(f"Duplicate source key: {source.key}")
            self._sources[source.key] = source

        self._plan = self._build_plan(data.get("batches", []))

    def _build_plan(self, batches: list[dict[str, Any]]) -> list[list[ScrapeTask]]:
        """Expand the batches section into numbered task lists."""
        plan: list[list[ScrapeTask]] = []
        for entry in batches:
            if "source" in entry:
                source = self._require(entry["source"])
                per_batch = int(entry.get("pages_per_batch", 1))
                if per_batch < 1:
                    raise ValueError(f"pages_per_batch must be >= 1 for '{source.key}'")
                tasks = self._tasks_for(source)
                for i in range(0, len(tasks), per_batch):
                    plan.append(tasks[i : i + per_batch])
            elif "tasks" in entry:
                batch: list[ScrapeTask] = []
                for key in entry["tasks"]:
                    batch.extend(self._tasks_for(self._require(key)))
                plan.append(batch)
            else:
                raise ValueError(f"Batch entry needs 'source' or 'tasks': {entry}")
        return plan

    def _require(self, key: str) -> SourceConfig:
        source = self._sources.get(key)
        if source is None:
            raise ValueError(f"Batch plan references unknown source '{key}'")
        return source

    @staticmethod
    def _tasks_for(source: SourceConfig) -> list[ScrapeTask]:
        if source.discover:
            return [ScrapeTask(name=f"{source.name} (discover)", source=source, url=source.url or "", discover=True)]
        tasks = []
        for label, url in source.page_urls():
            name = f"{source.name} {label}" if label else source.name
            tasks.append(ScrapeTask(name=name, source=source, url=url))
        return tasks

    def batch(self, number: int, page: int = 1) -> BatchDescriptor:
        """
        Get the descriptor for a batch number.

        Disabled sources are left out of the task list, but batch numbering
        never shifts.

        Args:
            number: 1-based batch number
            page: Pagination cursor for discovery sources

        Returns:
            BatchDescriptor with the batch's tasks in execution order

        Raises:
            ValueError: If the number is outside the plan
        """
        if not 1 <= number <= self.total_batches:
            raise ValueError(f"Batch {number} out of range 1..{self.total_batches}")
        tasks = [t for t in self._plan[number - 1] if t.source.enabled]
        return BatchDescriptor(
            number=number,
            tasks=tasks,
            total_batches=self.total_batches,
            page=max(page, 1),
        )

    def next_batch(self, number: int) -> int | None:
        """Batch number that follows ``number``, or None after the last one."""
        return number + 1 if number < self.total_batches else None

    def plan(self) -> list[BatchDescriptor]:
        """All batch descriptors in order."""
        return [self.batch(n) for n in range(1, self.total_batches + 1)]

    def get_source(self, key: str) -> SourceConfig | None:
        """Get a source configuration by key."""
        return self._sources.get(key)

    def list_sources(self) -> list[SourceConfig]:
        """Get all registered sources."""
        return list(self._sources.values())

    def list_enabled_sources(self) -> list[SourceConfig]:
        """Get all enabled sources."""
        return [s for s in self._sources.values() if s.enabled]

    def city_specific_sources(self) -> set[str]:
        """Keys of sources whose listings are local by construction."""
        return {s.key for s in self._sources.values() if s.city_specific}

    def enable_source(self, key: str) -> bool:
        """Enable a source. Returns False if the key is unknown."""
        source = self._sources.get(key)
        if source is None:
            return False
        source.enabled = True
        return True

    def disable_source(self, key: str) -> bool:
        """Disable a source. Returns False if the key is unknown."""
        source = self._sources.get(key)
        if source is None:
            return False
        source.enabled = False
        return True


# Global registry instance
_default_registry: SourceRegistry | None = None


def get_default_registry() -> SourceRegistry:
    """
    Get the default source registry instance.

    Loads configuration from the path in the SOURCES_CONFIG_PATH environment
    variable, or falls back to the packaged config/sources.yaml.

    Returns:
        The global SourceRegistry instance
    """
    global _default_registry

    if _default_registry is None:
        registry = SourceRegistry()
        config_path = os.environ.get("SOURCES_CONFIG_PATH")
        registry.load_config(Path(config_path) if config_path else DEFAULT_SOURCES_PATH)
        _default_registry = registry

    return _default_registry


def reset_default_registry() -> None:
    """Reset the default registry (useful for testing)."""
    global _default_registry
    _default_registry = None
