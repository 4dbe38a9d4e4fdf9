"""
Ingestion Error Taxonomy
========================

Task-level and record-level errors are recovered where they happen and
aggregated into counters; only run-level failures reach the caller.
"""


class IngestionError(Exception):
    """Base class for all ingestion errors."""


class TransientSourceError(IngestionError):
    """A single fetch/extraction failed; the batch continues."""


class RateLimited(TransientSourceError):
    """The extraction backend asked us to slow down (retryable)."""

    def __init__(self, message: str = "rate limited", retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class QuotaExhausted(IngestionError):
    """The extraction backend's usage allowance is spent for this run."""


class ParseError(IngestionError):
    """The extraction backend answered with something we cannot use."""


class TimeExhausted(IngestionError):
    """The run's time budget is spent; no further tasks may start."""


class ValidationDrop(IngestionError):
    """A candidate failed quality checks and is filtered out."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class PersistenceError(IngestionError):
    """A single upsert (or a store read) failed."""


class TriggerError(IngestionError):
    """Dispatching the next batch failed after all retries."""
