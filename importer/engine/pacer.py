"""Minimum-interval pacing for outbound enrichment and CRM calls."""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable

from ..config import settings


class CallPacer:
    """Keeps consecutive calls at least ``interval`` seconds apart.

    The clock and sleep function are injectable so tests can observe the
    requested waits without sleeping.
    """

    def __init__(
        self,
        interval: float,
        floor: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if floor is None:
            floor = settings.min_call_delay_seconds
        if floor <= 0:
            raise ValueError("Pacer floor must be positive")
        self.interval = max(interval, floor)
        self._clock = clock
        self._sleep = sleep
        self._last_call: float | None = None
        self._lock = asyncio.Lock()

    async def wait(self) -> float:
        """Block until the next call may start; return the seconds waited."""
        async with self._lock:
            waited = 0.0
            now = self._clock()
            if self._last_call is not None:
                remaining = self._last_call + self.interval - now
                if remaining > 0:
                    await self._sleep(remaining)
                    waited = remaining
                    now = self._clock()
            self._last_call = now
            return waited
