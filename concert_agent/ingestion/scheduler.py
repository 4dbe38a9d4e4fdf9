"""
Batch Scheduler Module
======================

Runs one numbered batch end to end:

1. Execute the batch's tasks strictly in order, with a fixed delay between
   them, until the list is done, the time budget is spent or the
   extraction quota runs out
2. Dispatch the chain trigger for the next batch (fire-and-forget)
3. Quality filter, deduplicate, drop deleted keys, enrich images
4. Upsert and report ``{found, persisted, elapsed, stop_reason}``

States: IDLE -> RUNNING -> COMPLETED | TIME_EXHAUSTED | QUOTA_EXHAUSTED | FAILED
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from concert_agent.core.enums import BatchState
from concert_agent.core.errors import PersistenceError
from concert_agent.core.schema import EventCandidate
from concert_agent.ingestion.chaining import ChainDispatcher, ChainIntent
from concert_agent.ingestion.context import RunContext
from concert_agent.ingestion.dedup import deduplicate
from concert_agent.ingestion.enricher import ImageEnricher
from concert_agent.ingestion.extractor import PageExtractor, slice_discovered_links
from concert_agent.ingestion.guard import exclude_deleted
from concert_agent.ingestion.normalizer import QualityFilter
from concert_agent.ingestion.persistence import PersistenceGateway
from concert_agent.ingestion.registry import BatchDescriptor, ScrapeTask, SourceRegistry

logger = logging.getLogger(__name__)


@dataclass
class BatchReport:
    """Result of one batch run."""

    batch: int
    total_batches: int
    page: int = 1
    state: BatchState = BatchState.IDLE
    found: int = 0
    persisted: int = 0
    elapsed: float = 0.0
    tasks_total: int = 0
    tasks_run: int = 0
    chain: ChainIntent = field(default_factory=lambda: ChainIntent(batch=None))
    counters: dict[str, Any] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    @property
    def stop_reason(self) -> str:
        return self.state.value

    @property
    def success(self) -> bool:
        """False only for run-level failures."""
        return self.state != BatchState.FAILED

    @property
    def message(self) -> str:
        return (
            f"Batch {self.batch}/{self.total_batches}: {self.found} events, "
            f"{self.persisted} upserted in {self.elapsed:.0f}s ({self.stop_reason})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "batch": self.batch,
            "page": self.page,
            "total_batches": self.total_batches,
            "state": self.state.value,
            "stop_reason": self.stop_reason,
            "found": self.found,
            "persisted": self.persisted,
            "elapsed": round(self.elapsed, 2),
            "tasks_total": self.tasks_total,
            "tasks_run": self.tasks_run,
            "chain": self.chain.to_dict(),
            "counters": self.counters,
            "errors": self.errors,
        }


class BatchScheduler:
    """
    Executes numbered batches from a SourceRegistry.

    Args:
        registry: Source registry providing batch descriptors and settings.
        extractor: Page extractor bound to an extraction backend.
        quality_filter: Quality filter built from the quality rules.
        gateway: Persistence gateway (deletion keys, upsert, scrape log).
        enricher: Optional image enricher; None disables enrichment.
        dispatcher: Optional chain dispatcher; None disables chaining.
        clock: Monotonic clock used for the time budget.
        sleep: Async sleep used for inter-task delay and backoff.
    """

    def __init__(
        self,
        registry: SourceRegistry,
        extractor: PageExtractor,
        quality_filter: QualityFilter,
        gateway: PersistenceGateway,
        enricher: ImageEnricher | None = None,
        dispatcher: ChainDispatcher | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.registry = registry
        self.extractor = extractor
        self.quality_filter = quality_filter
        self.gateway = gateway
        self.enricher = enricher
        self.dispatcher = dispatcher
        self.clock = clock
        self.sleep = sleep

    def new_context(self) -> RunContext:
        """Fresh per-run context; nothing carries over between runs."""
        return RunContext(clock=self.clock, sleep=self.sleep)

    async def run(
        self,
        batch: int,
        page: int = 1,
        chain: bool = False,
        ctx: RunContext | None = None,
    ) -> BatchReport:
        """
        Run one batch.

        Args:
            batch: 1-based batch number.
            page: Page cursor for discovery sources.
            chain: Whether to trigger the next batch.
            ctx: Run context (a fresh one is created if omitted).

        Returns:
            BatchReport with counts, elapsed time and stop reason.

        Raises:
            ValueError: If the batch number is outside the plan.
        """
        descriptor = self.registry.batch(batch, page)
        ctx = ctx or self.new_context()
        ctx.restart()

        report = BatchReport(
            batch=descriptor.number,
            total_batches=descriptor.total_batches,
            page=descriptor.page,
            state=BatchState.RUNNING,
        )
        logger.info(
            f"=== Running batch {descriptor.number}/{descriptor.total_batches} "
            f"page {descriptor.page} (chain={chain}) ==="
        )

        results, more_pages = await self._execute(descriptor, ctx, report)
        report.state = self._execution_state(ctx, report, results)
        report.chain = self._chain(descriptor, chain, report.state, more_pages)

        if results:
            await self._process(results, ctx, report)

        report.elapsed = ctx.elapsed()
        report.counters = ctx.counters.to_dict()
        report.errors = list(ctx.errors)
        self.gateway.log_batch(
            batch=report.batch,
            page=report.page,
            found=report.found,
            persisted=report.persisted,
            stop_reason=report.stop_reason,
            duration_ms=int(report.elapsed * 1000),
        )
        logger.info(report.message)
        return report

    async def _execute(
        self,
        descriptor: BatchDescriptor,
        ctx: RunContext,
        report: BatchReport,
    ) -> tuple[list[EventCandidate], bool]:
        """
        Run tasks sequentially until done or a budget is spent.

        Returns:
            (collected candidates in task order, whether discovery has more pages)
        """
        budget = self.registry.global_config.time_budget_seconds
        delay = self.registry.global_config.task_delay_seconds
        queue: list[ScrapeTask] = list(descriptor.tasks)
        results: list[EventCandidate] = []
        more_pages = False

        i = 0
        while i < len(queue):
            task = queue[i]
            if ctx.quota_exhausted:
                logger.warning(f"Quota exhausted, skipping remaining {len(queue) - i} task(s)")
                break
            if i > 0 and delay > 0:
                await ctx.sleep(delay)
            if ctx.elapsed() >= budget:
                logger.warning(
                    f"Time budget exceeded, stopping batch at task {i}/{len(queue)}"
                )
                report.tasks_total = len(queue)
                return results, more_pages

            started = ctx.clock()
            failed_before = ctx.counters.tasks_failed
            found: list[EventCandidate] = []
            try:
                if task.discover:
                    discovered, more_pages = await self._discover(task, descriptor, ctx)
                    queue[i + 1 : i + 1] = discovered
                else:
                    found = await self.extractor.extract(task, ctx)
                    results.extend(found)
                    logger.info(f"✓ {task.name}: {len(found)} events")
            except Exception as e:
                logger.exception(f"✗ {task.name}: {e}")
                ctx.counters.tasks_failed += 1
                ctx.record_error(f"{task.name}: {e}")

            ctx.counters.tasks_run += 1
            report.tasks_run += 1
            error = ctx.errors[-1] if ctx.counters.tasks_failed > failed_before else None
            self.gateway.log_task(
                batch=descriptor.number,
                page=descriptor.page,
                source=task.name,
                found=len(found),
                error=error,
                duration_ms=int((ctx.clock() - started) * 1000),
            )
            i += 1

        report.tasks_total = len(queue)
        return results, more_pages

    async def _discover(
        self,
        task: ScrapeTask,
        descriptor: BatchDescriptor,
        ctx: RunContext,
    ) -> tuple[list[ScrapeTask], bool]:
        """Expand a discovery task into detail-page tasks for this page."""
        source = task.source
        discover = source.discover
        urls = await self.extractor.discover_links(task, ctx)
        known = self.gateway.known_artists(source.name) if discover and discover.skip_known else []
        page_urls, more = slice_discovered_links(
            urls, descriptor.page, discover.page_size if discover else len(urls), known
        )
        logger.info(
            f"{source.name}: {len(urls)} discovered, scraping {len(page_urls)} "
            f"on page {descriptor.page}{' (more pages remain)' if more else ''}"
        )
        tasks = [
            ScrapeTask(name=f"{source.name}: {url.rstrip('/').rsplit('/', 1)[-1]}", source=source, url=url)
            for url in page_urls
        ]
        return tasks, more

    def _execution_state(
        self,
        ctx: RunContext,
        report: BatchReport,
        results: list[EventCandidate],
    ) -> BatchState:
        if ctx.quota_exhausted:
            return BatchState.QUOTA_EXHAUSTED
        if report.tasks_run < report.tasks_total:
            return BatchState.TIME_EXHAUSTED
        if report.tasks_run > 0 and not results and ctx.counters.tasks_failed >= report.tasks_run:
            logger.error(f"All {report.tasks_run} task(s) of batch {report.batch} failed")
            return BatchState.FAILED
        return BatchState.COMPLETED

    def _chain(
        self,
        descriptor: BatchDescriptor,
        requested: bool,
        state: BatchState,
        more_pages: bool,
    ) -> ChainIntent:
        """Decide on and dispatch the trigger for the next unit of work."""
        if more_pages:
            target, page = descriptor.number, descriptor.page + 1
        else:
            target, page = self.registry.next_batch(descriptor.number), 1

        if not requested:
            return ChainIntent(batch=target, page=page, reason="not_requested")
        if not self.registry.chain_config.enabled:
            logger.info("Chaining disabled by configuration")
            return ChainIntent(batch=target, page=page, reason="disabled")
        if state == BatchState.QUOTA_EXHAUSTED:
            logger.warning("Not chaining: extraction quota exhausted")
            return ChainIntent(batch=target, page=page, reason="quota_exhausted")
        if target is None:
            logger.info("All batches complete, no more to chain.")
            return ChainIntent(batch=None, reason="last_batch")
        if self.dispatcher is None:
            logger.warning("Chaining requested but no dispatcher is configured")
            return ChainIntent(batch=target, page=page, reason="no_dispatcher")
        return self.dispatcher.dispatch(target, page)

    async def _process(
        self,
        results: list[EventCandidate],
        ctx: RunContext,
        report: BatchReport,
    ) -> None:
        """Filter, dedup, guard, enrich and persist the batch's candidates."""
        counters = ctx.counters
        report.found = len(results)

        try:
            deletion_keys = self.gateway.deletion_keys()
        except PersistenceError as e:
            logger.error(f"Cannot load deletion keys, persisting nothing: {e}")
            ctx.record_error(str(e))
            report.state = BatchState.FAILED
            return

        filtered = self.quality_filter.filter_all(results, counters)
        deduped = deduplicate(filtered)
        counters.merged_duplicates = len(filtered) - len(deduped)
        kept = exclude_deleted(deduped, deletion_keys)
        counters.deleted_excluded = len(deduped) - len(kept)
        logger.info(
            f"{len(results)} found, {len(filtered)} passed quality, "
            f"{len(deduped)} unique, {len(kept)} after deletion guard"
        )

        if self.enricher is not None:
            kept = await self.enricher.enrich_all(
                kept, ctx, cutoff_seconds=self.registry.global_config.enrichment_cutoff_seconds
            )

        for candidate in kept:
            try:
                self.gateway.upsert(candidate.to_record())
            except PersistenceError as e:
                logger.error(f"Upsert error: {e}")
                counters.persist_errors += 1
                continue
            counters.persisted += 1

        report.persisted = counters.persisted
        logger.info(f"Upserted {report.persisted} from batch of {len(results)}")
