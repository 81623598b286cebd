"""Per-rule effectiveness records and analysis run history."""

import asyncio
from contextlib import AsyncExitStack
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

from ..models import AnalysisRun, EffectivenessRecord, FeedbackOutcome
from ..tools import Store
from ..utils import get_logger


class EffectivenessStore:
    """
    Owns the effectiveness records and the analysis run history.

    Records are published as an immutable mapping that is replaced on every
    update, so readers take a snapshot without locking. Writers to the same
    rule are serialized by that rule's lock; different rules proceed
    concurrently. A mapping is published only after the store has saved it.
    """

    def __init__(self, store: Store):
        self._store = store
        self._records: Mapping[str, EffectivenessRecord] = MappingProxyType({})
        self._runs: Tuple[AnalysisRun, ...] = ()
        self._locks: Dict[str, asyncio.Lock] = {}
        self._save_lock = asyncio.Lock()
        self.logger = get_logger()

    async def load(self):
        """Hydrate records and run history from the store."""
        records = await self._store.load_effectiveness()
        runs = await self._store.load_analysis_runs()
        self._records = MappingProxyType(dict(records))
        self._runs = tuple(runs)
        self.logger.info(f"Loaded {len(records)} effectiveness records and {len(runs)} analysis runs")

    def snapshot(self) -> Mapping[str, EffectivenessRecord]:
        return self._records

    def get(self, rule_id: str) -> Optional[EffectivenessRecord]:
        return self._records.get(rule_id)

    def runs(self) -> Tuple[AnalysisRun, ...]:
        return self._runs

    def _lock_for(self, rule_id: str) -> asyncio.Lock:
        return self._locks.setdefault(rule_id, asyncio.Lock())

    async def _commit(self, changed: Mapping[str, EffectivenessRecord]):
        """Save the records with ``changed`` applied, then publish them."""
        async with self._save_lock:
            candidate = dict(self._records)
            candidate.update(changed)
            await self._store.save_effectiveness(candidate)
            self._records = MappingProxyType(candidate)

    async def record_outcome(self, rule_id: str, outcome: FeedbackOutcome) -> EffectivenessRecord:
        """
        Count one feedback outcome for a rule and persist the records.

        Nothing is published if the store rejects the write, so a caller may
        retry a failed update without it being counted twice.

        Args:
            rule_id: Rule the feedback is about
            outcome: Developer reaction

        Returns:
            The updated record
        """
        async with self._lock_for(rule_id):
            current = self._records.get(rule_id) or EffectivenessRecord(rule_id=rule_id)
            updated = current.with_outcome(outcome)
            await self._commit({rule_id: updated})
            self.logger.debug(
                f"{rule_id}: {outcome.value} -> score {updated.score:.2f} "
                f"({updated.issues_accepted}/{updated.issues_rejected}/{updated.issues_ignored})"
            )
        return updated

    async def record_run(self, run: AnalysisRun):
        """Add a finalized run's rule usage to ``issues_found`` and store the run."""
        usage = {rule_id: count for rule_id, count in run.metrics.rule_usage_counts.items() if count > 0}
        if usage:
            async with AsyncExitStack() as stack:
                for rule_id in sorted(usage):
                    await stack.enter_async_context(self._lock_for(rule_id))
                changed = {
                    rule_id: (self._records.get(rule_id) or EffectivenessRecord(rule_id=rule_id)).with_found(count)
                    for rule_id, count in usage.items()
                }
                await self._commit(changed)

        await self._store.append_analysis_run(run)
        self._runs = self._runs + (run,)
