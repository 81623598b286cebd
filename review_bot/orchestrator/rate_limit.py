"""Rate limiting for external calls made by batch jobs."""

import asyncio
import time
from typing import Awaitable, Callable, Optional


class RateLimiter:
    """
    Enforces a minimum interval between acquisitions.

    Acquisitions are serialized, so concurrent callers are spaced out
    rather than released together.
    """

    def __init__(
        self,
        requests_per_second: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            requests_per_second: Allowed rate; <= 0 disables limiting
            clock: Monotonic time source
            sleep: Awaitable sleep function
        """
        self.interval = 1.0 / requests_per_second if requests_per_second > 0 else 0.0
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last: Optional[float] = None

    @property
    def enabled(self) -> bool:
        return self.interval > 0

    async def acquire(self):
        """Wait until the next call is allowed."""
        if not self.enabled:
            return

        async with self._lock:
            now = self._clock()
            if self._last is not None:
                wait = self._last + self.interval - now
                if wait > 0:
                    await self._sleep(wait)
                    now = self._clock()
            self._last = now

    async def __aenter__(self) -> "RateLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, *exc_info):
        return None
