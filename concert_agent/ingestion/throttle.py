"""
Throttle Module
===============

Token bucket used to serialize calls to shared public metadata services.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable


class TokenBucket:
    """
    Token bucket rate limiter.

    Allows bursting up to burst_limit requests, then enforces the
    steady-state rate of requests_per_second. With ``burst_limit=1`` this is
    a minimum inter-call interval of ``1 / requests_per_second``.
    """

    def __init__(
        self,
        requests_per_second: float,
        burst_limit: int = 1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive")
        self.requests_per_second = requests_per_second
        self.burst_limit = burst_limit
        self.tokens = float(burst_limit)
        self._clock = clock
        self._sleep = sleep
        self.last_update = clock()
        self._lock = asyncio.Lock()

    @classmethod
    def min_interval(
        cls,
        seconds: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> TokenBucket:
        """Bucket that allows one call every ``seconds``."""
        return cls(1.0 / seconds, 1, clock=clock, sleep=sleep)

    async def acquire(self) -> None:
        """
        Acquire a token, waiting if necessary.

        This method blocks until a token is available.
        """
        async with self._lock:
            now = self._clock()
            elapsed = now - self.last_update
            self.last_update = now

            # Add tokens based on elapsed time
            self.tokens = min(
                self.burst_limit, self.tokens + elapsed * self.requests_per_second
            )

            if self.tokens < 1.0:
                wait_time = (1.0 - self.tokens) / self.requests_per_second
                await self._sleep(wait_time)
                self.tokens = 0.0
                self.last_update = self._clock()
            else:
                self.tokens -= 1.0
