"""
Run Context Module
==================

Per-invocation state passed through every pipeline call. Nothing here is
shared between runs: each invocation builds a fresh context, so the quota
flag and the artist image cache start cold every time.
"""

from __future__ import annotations

import asyncio
import time
from collections import Counter
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[None]]


@dataclass
class RunCounters:
    """Aggregated task- and record-level outcomes for one run."""

    tasks_run: int = 0
    tasks_failed: int = 0
    extraction_calls: int = 0
    rate_limit_retries: int = 0
    found: int = 0
    invalid_ticket_urls: int = 0
    merged_duplicates: int = 0
    deleted_excluded: int = 0
    images_enriched: int = 0
    persisted: int = 0
    persist_errors: int = 0
    dropped: Counter = field(default_factory=Counter)

    def drop(self, reason: str) -> None:
        """Count a candidate dropped for ``reason``."""
        self.dropped[reason] += 1

    @property
    def total_dropped(self) -> int:
        return sum(self.dropped.values())

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "tasks_run": self.tasks_run,
            "tasks_failed": self.tasks_failed,
            "extraction_calls": self.extraction_calls,
            "rate_limit_retries": self.rate_limit_retries,
            "found": self.found,
            "invalid_ticket_urls": self.invalid_ticket_urls,
            "merged_duplicates": self.merged_duplicates,
            "deleted_excluded": self.deleted_excluded,
            "images_enriched": self.images_enriched,
            "persisted": self.persisted,
            "persist_errors": self.persist_errors,
            "dropped": dict(self.dropped),
        }


@dataclass
class RunContext:
    """
    Explicit state for a single batch invocation.

    The clock and sleep functions are injectable so the time budget and
    backoff logic can be driven by a fake clock in tests.
    """

    clock: Clock = time.monotonic
    sleep: Sleeper = asyncio.sleep
    quota_exhausted: bool = False
    image_cache: dict[str, str | None] = field(default_factory=dict)
    exhausted_sources: set[str] = field(default_factory=set)
    counters: RunCounters = field(default_factory=RunCounters)
    errors: list[str] = field(default_factory=list)
    started_at: float = field(init=False)

    def __post_init__(self) -> None:
        self.started_at = self.clock()

    def restart(self) -> None:
        """Reset the start timestamp (entry to Running)."""
        self.started_at = self.clock()

    def elapsed(self) -> float:
        """Seconds since the run started."""
        return self.clock() - self.started_at

    def record_error(self, message: str) -> None:
        self.errors.append(message)
