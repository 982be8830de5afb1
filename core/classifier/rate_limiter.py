"""Minimum-interval gate for outgoing classifier requests."""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Awaitable, Callable

Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[None]]


class IntervalRateLimiter:
    """Serialize request dispatch so consecutive sends are ``min_interval`` apart.

    Each caller reserves the next free slot under a thread lock and then sleeps
    outside of it, so the lock is never held across a suspension point.
    """

    def __init__(
        self,
        min_interval: float,
        *,
        clock: Clock = time.monotonic,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        if min_interval < 0:
            raise ValueError(f"min_interval must be >= 0, got {min_interval}")
        self._min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._next_slot: float | None = None

    @property
    def min_interval(self) -> float:
        return self._min_interval

    def reserve(self) -> float:
        """Reserve the next dispatch slot and return the seconds to wait for it."""

        with self._lock:
            now = self._clock()
            slot = now if self._next_slot is None else max(now, self._next_slot)
            self._next_slot = slot + self._min_interval
            return slot - now

    async def acquire(self) -> float:
        """Wait for this caller's turn; returns the time waited in seconds."""

        delay = self.reserve()
        if delay > 0:
            await self._sleep(delay)
        return delay
