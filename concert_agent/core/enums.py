"""Enums shared across the ingestion engine."""

from enum import Enum


class EventCategory(str, Enum):
    """Kind of event a source lists."""

    CONCERT = "concert"
    COMEDY = "comedy"


class BatchState(str, Enum):
    """Lifecycle state of a single batch run.

    ``IDLE`` and ``RUNNING`` are transient; the other four are terminal and
    double as the stop reason reported back to the caller.
    """

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    TIME_EXHAUSTED = "time_exhausted"
    QUOTA_EXHAUSTED = "quota_exhausted"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self not in (BatchState.IDLE, BatchState.RUNNING)


class ExtractionBackendName(str, Enum):
    """Supported extraction backends."""

    FIRECRAWL = "firecrawl"
    LLM = "llm"


class ChainTriggerKind(str, Enum):
    """Mechanism used to start the next batch."""

    WEBHOOK = "webhook"
    ARQ = "arq"
