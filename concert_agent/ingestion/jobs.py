"""
Background Jobs Module
======================

Defines the arq task that runs one batch on a worker. Used when chaining
is configured with ``trigger: arq``: each batch enqueues the next one.
"""

from __future__ import annotations

import logging
import os
from typing import Any

from arq.connections import RedisSettings

from concert_agent.ingestion.chaining import ArqChainTrigger, ChainDispatcher
from concert_agent.ingestion.registry import get_default_registry
from concert_agent.ingestion.runner import open_scheduler

logger = logging.getLogger(__name__)

# Deliveries are tiny Redis writes; give them a moment before the job returns.
CHAIN_DRAIN_SECONDS = 10.0


def get_redis_settings() -> RedisSettings:
    """Get Redis connection settings from environment."""
    return RedisSettings(
        host=os.environ.get("REDIS_HOST", "localhost"),
        port=int(os.environ.get("REDIS_PORT", "6379")),
        database=int(os.environ.get("REDIS_DB", "0")),
    )


async def scrape_batch(
    ctx: dict[str, Any],
    batch: int,
    page: int = 1,
    chain: bool = False,
) -> dict[str, Any]:
    """
    Run one batch as an arq job.

    Args:
        ctx: arq context (contains the Redis connection)
        batch: Batch number to run
        page: Discovery page cursor
        chain: Whether to enqueue the next batch

    Returns:
        BatchReport as dictionary
    """
    registry = get_default_registry()
    dispatcher = None
    if chain and registry.chain_config.enabled:
        chain_config = registry.chain_config
        dispatcher = ChainDispatcher(
            ArqChainTrigger(pool=ctx.get("redis")),
            max_attempts=chain_config.max_attempts,
            backoff_seconds=chain_config.backoff_seconds,
        )

    async with open_scheduler(registry=registry, dispatcher=dispatcher) as scheduler:
        report = await scheduler.run(batch, page=page, chain=chain)

    if dispatcher is not None:
        await dispatcher.drain(timeout=CHAIN_DRAIN_SECONDS)
    return report.to_dict()


class WorkerSettings:
    """arq worker settings."""

    functions = [scrape_batch]
    redis_settings = get_redis_settings()
    max_jobs = 1  # one batch at a time
    job_timeout = 300  # same ceiling as the hosted runtime
    keep_result = 86400  # 24 hours
