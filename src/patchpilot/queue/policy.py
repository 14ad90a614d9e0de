"""
Retry and rate limiting policies for the worker pool.
"""

import asyncio
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol


@dataclass
class RetryPolicy:
    """Exponential backoff between attempts."""

    max_attempts: int = 3
    base_delay_s: float = 1.0
    max_delay_s: float | None = None

    def delay_for(self, attempt: int) -> float:
        """Delay before the retry that follows the given (1-based) failed attempt."""
        delay = self.base_delay_s * 2 ** max(attempt - 1, 0)
        if self.max_delay_s is not None:
            delay = min(delay, self.max_delay_s)
        return delay

    def should_retry(self, attempts_made: int, max_attempts: int | None = None) -> bool:
        """Whether another attempt follows. A job's own limit overrides the policy's."""
        limit = self.max_attempts if max_attempts is None else max_attempts
        return attempts_made < limit


class RateLimiter(Protocol):
    """Gate on how often the worker pool may start a job."""

    async def wait_for_slot(self) -> None:
        """Sleep until a start would not exceed the limit."""
        ...

    async def record(self) -> None:
        """Count one start at the current time."""
        ...


class SlidingWindowRateLimiter:
    """Allow at most `max_events` starts in any `window_s` second window.

    The window is kept in process memory, so the limit applies per worker
    process. Workers sharing a Redis queue use `RedisRateLimiter` instead.
    """

    def __init__(
        self,
        max_events: int = 10,
        window_s: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_events < 1:
            raise ValueError("max_events must be at least 1")
        self.max_events = max_events
        self.window_s = window_s
        self._clock = clock
        self._sleep = sleep
        self._events: deque[float] = deque()

    def _evict(self, now: float) -> None:
        while self._events and now - self._events[0] >= self.window_s:
            self._events.popleft()

    def available(self) -> bool:
        self._evict(self._clock())
        return len(self._events) < self.max_events

    async def wait_for_slot(self) -> None:
        """Sleep until a start would not exceed the limit."""
        while True:
            now = self._clock()
            self._evict(now)
            if len(self._events) < self.max_events:
                return
            await self._sleep(self._events[0] + self.window_s - now)

    async def record(self) -> None:
        """Count one start at the current time."""
        self._events.append(self._clock())
