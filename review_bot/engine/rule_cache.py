"""Versioned RuleSet snapshot with periodic refresh."""

import asyncio
import time
from typing import Awaitable, Callable, Optional

from ..models import RuleSet
from ..utils import get_logger
from .default_rules import default_rule_set

RuleSetLoader = Callable[[], Awaitable[Optional[RuleSet]]]


class RuleSetCache:
    """
    Holds the current RuleSet and refreshes it once per cache window.

    A refresh loads a new RuleSet and swaps the reference; analyses that
    already hold the previous snapshot keep using it unchanged.
    """

    def __init__(
        self,
        loader: RuleSetLoader,
        ttl_seconds: float = 3600,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._loader = loader
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._current: Optional[RuleSet] = None
        self._loaded_at: Optional[float] = None
        self._version = 0
        self._lock = asyncio.Lock()
        self.logger = get_logger()

    @property
    def current(self) -> Optional[RuleSet]:
        return self._current

    def _expired(self) -> bool:
        if self._current is None or self._loaded_at is None:
            return True
        return self._clock() - self._loaded_at >= self.ttl_seconds

    def invalidate(self):
        """Force a reload on the next ``get``."""
        self._loaded_at = None

    async def get(self) -> RuleSet:
        """Return the current snapshot, reloading when the window has passed."""
        if not self._expired():
            return self._current

        async with self._lock:
            if not self._expired():
                return self._current
            self._current = await self._reload()
            self._loaded_at = self._clock()
            return self._current

    async def _reload(self) -> RuleSet:
        try:
            loaded = await self._loader()
        except Exception as e:
            if self._current is not None:
                self.logger.error(f"Rule refresh failed, keeping version {self._current.version}: {e}")
                return self._current
            self.logger.error(f"Rule load failed, using built-in rules: {e}")
            loaded = None

        if loaded is None:
            self.logger.info("No coding standards configured; using built-in rules")
            loaded = default_rule_set()

        for reason in loaded.rejected:
            self.logger.warning(f"Rejected rule: {reason}")

        self._version += 1
        snapshot = loaded.with_version(self._version)
        self.logger.info(f"Loaded {len(snapshot)} rules (version {snapshot.version})")
        return snapshot
