"""
Batch Chaining Module
=====================

Fire-and-forget triggering of the next batch. ``ChainDispatcher.dispatch``
records the intent and returns at once; delivery happens in a background
asyncio task with its own exponential retry, independent of whether the
current batch succeeds.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx
from arq import create_pool
from arq.connections import ArqRedis, RedisSettings

from concert_agent.core.errors import TriggerError

logger = logging.getLogger(__name__)


@dataclass
class ChainIntent:
    """Outcome of the chaining decision for one batch run."""

    batch: int | None
    page: int = 1
    dispatched: bool = False
    reason: str = "not_requested"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "batch": self.batch,
            "page": self.page,
            "dispatched": self.dispatched,
            "reason": self.reason,
        }


class ChainTrigger(ABC):
    """Mechanism that starts a batch somewhere else."""

    name: str

    @abstractmethod
    async def fire(self, batch: int, page: int) -> None:
        """
        Start ``batch`` at ``page`` with chaining enabled.

        Raises:
            TriggerError: If the trigger was not delivered.
        """

    async def aclose(self) -> None:
        """Release resources."""


class WebhookChainTrigger(ChainTrigger):
    """
    POSTs ``{batch, page, chain: true}`` to the scrape endpoint.

    The receiving invocation only answers after running its whole batch, so
    any HTTP response means the next batch already ran. Only failures where
    the request never reached the endpoint are raised for retry, plus 429
    and 503 which are sent before any work starts.
    """

    name = "webhook"

    RETRYABLE_STATUS = frozenset({429, 503})

    def __init__(
        self,
        url: str,
        token: str | None = None,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self.token = token
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    async def fire(self, batch: int, page: int) -> None:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        try:
            response = await self._client.post(
                self.url,
                json={"batch": batch, "page": page, "chain": True},
                headers=headers,
            )
        except (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout, httpx.UnsupportedProtocol) as e:
            raise TriggerError(f"Webhook request failed: {e}") from e
        except httpx.TimeoutException:
            logger.debug(f"Webhook for batch {batch} accepted (no response before timeout)")
            return
        except httpx.HTTPError as e:
            # Sent but the answer was lost; a resend would run the batch twice
            logger.warning(f"Webhook for batch {batch} sent, response lost: {e}")
            return

        if response.status_code in self.RETRYABLE_STATUS:
            raise TriggerError(f"Webhook returned HTTP {response.status_code}")
        if response.status_code >= 400:
            logger.warning(f"Batch {batch} was triggered but answered HTTP {response.status_code}")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class ArqChainTrigger(ChainTrigger):
    """Enqueues the ``scrape_batch`` arq job on Redis."""

    name = "arq"

    def __init__(
        self,
        redis_settings: RedisSettings | None = None,
        pool: ArqRedis | None = None,
    ) -> None:
        self.redis_settings = redis_settings
        self._pool = pool

    async def fire(self, batch: int, page: int) -> None:
        pool = self._pool
        owned = pool is None
        try:
            if pool is None:
                from concert_agent.ingestion.jobs import get_redis_settings

                pool = await create_pool(self.redis_settings or get_redis_settings())
            job = await pool.enqueue_job("scrape_batch", batch, page, True)
        finally:
            if owned and pool is not None:
                await pool.close()

        if job is None:
            logger.info(f"Batch {batch} page {page} is already queued")


class ChainDispatcher:
    """
    Dispatches chain triggers in the background.

    Keep one dispatcher alive for as long as the hosting process runs so
    in-flight deliveries are not garbage collected; short-lived entry
    points call ``drain`` before exiting.
    """

    def __init__(
        self,
        trigger: ChainTrigger,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.trigger = trigger
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep
        self._tasks: set[asyncio.Task[bool]] = set()

    @property
    def pending(self) -> int:
        """Number of deliveries still in flight."""
        return len(self._tasks)

    def dispatch(self, batch: int, page: int = 1) -> ChainIntent:
        """
        Schedule delivery of one trigger and return immediately.

        Must be called from inside a running event loop.
        """
        task = asyncio.get_running_loop().create_task(self._deliver(batch, page))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info(f"Chaining -> batch {batch} (page {page}) via {self.trigger.name}")
        return ChainIntent(batch=batch, page=page, dispatched=True, reason="dispatched")

    async def _deliver(self, batch: int, page: int) -> bool:
        for attempt in range(1, self.max_attempts + 1):
            try:
                await self.trigger.fire(batch, page)
                logger.info(f"Chain trigger for batch {batch} delivered (attempt {attempt})")
                return True
            except Exception as e:
                logger.warning(
                    f"Chain trigger for batch {batch} failed "
                    f"(attempt {attempt}/{self.max_attempts}): {e}"
                )
                if attempt < self.max_attempts:
                    await self._sleep(self.backoff_seconds * 2 ** (attempt - 1))

        logger.error(f"Giving up on chain trigger for batch {batch} after {self.max_attempts} attempts")
        return False

    async def drain(self, timeout: float | None = None) -> bool:
        """
        Wait for in-flight deliveries.

        Returns:
            True if nothing is left pending.
        """
        if not self._tasks:
            return True
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if pending:
            logger.warning(f"{len(pending)} chain trigger(s) still pending after {timeout}s")
        return not pending

    async def aclose(self) -> None:
        await self.trigger.aclose()
