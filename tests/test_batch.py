"""Tests for the batch engine and rate limiter.

- Given-When-Then structure
- Processors are plain coroutines; checkpoints go to a MemoryStore
"""

import asyncio

import pytest

from review_bot.config import BatchConfig
from review_bot.errors import InputValidationError, InvalidTransitionError
from review_bot.models import BatchItem, BatchStatus, ItemResult
from review_bot.orchestrator import BatchEngine, RateLimiter
from review_bot.tools import MemoryStore
from review_bot.utils import PerformanceMonitor

from conftest import RecordingSleep


def items(count):
    return [BatchItem(id=str(n), subject_id=f"octo/app#{n}") for n in range(1, count + 1)]


def config(**overrides):
    values = dict(max_concurrency=4, requests_per_second=0, checkpoint_interval=3, result_batch_size=4)
    values.update(overrides)
    return BatchConfig(**values)


async def succeed(item):
    return ItemResult(item_id=item.id, success=True)


async def wait_for(predicate):
    while not predicate():
        await asyncio.sleep(0)


class CheckpointLog(MemoryStore):
    """MemoryStore that keeps every checkpoint it was given."""

    def __init__(self):
        super().__init__()
        self.saved = []

    async def save_checkpoint(self, job_id, progress):
        self.saved.append(dict(progress))
        await super().save_checkpoint(job_id, progress)


class TestItemIsolation:
    """Tests for per-item failure handling."""

    def test_one_failing_item_does_not_fail_the_job(self):
        """Given 10 items where #4 throws, should complete with 9 succeeded and 1 failed."""
        # Given
        store = MemoryStore()
        flushed = []

        async def processor(item):
            if item.id == "4":
                raise RuntimeError("boom")
            return ItemResult(item_id=item.id, success=True)

        async def sink(results):
            flushed.append(len(results))

        # When
        async def run():
            engine = BatchEngine(processor, store, config(), on_results=sink)
            await engine.start()
            job_id = await engine.submit(items(10))
            job = await engine.join(job_id)
            await engine.stop()
            return job

        job = asyncio.run(run())

        # Then
        assert job.status == BatchStatus.COMPLETED
        assert job.processed == 10
        assert job.succeeded == 9
        assert job.failed == 1
        assert job.item_errors == {"4": "boom"}
        assert "4" not in job.completed_item_ids
        assert sum(flushed) == 10
        assert max(flushed) <= 4

    def test_progress_is_checkpointed(self):
        """A finished job's final checkpoint should record its completion."""
        store = MemoryStore()

        async def run():
            engine = BatchEngine(succeed, store, config())
            await engine.start()
            job = await engine.join(await engine.submit(items(7)))
            await engine.stop()
            return job

        job = asyncio.run(run())

        checkpoint = store.checkpoints[job.id]
        assert checkpoint["status"] == "completed"
        assert checkpoint["processed"] == 7
        assert sorted(checkpoint["completed_item_ids"]) == [str(n) for n in range(1, 8)]

    def test_interval_checkpoints_survive_concurrent_completions(self):
        """Given six items finishing together, should checkpoint once per interval."""
        # Given
        store = CheckpointLog()
        release = asyncio.Event()
        started = []

        async def processor(item):
            started.append(item.id)
            await release.wait()
            return ItemResult(item_id=item.id, success=True)

        async def slow_sink(results):
            await asyncio.sleep(0)

        # When
        async def run():
            engine = BatchEngine(
                processor, store, config(max_concurrency=6, result_batch_size=1), on_results=slow_sink,
            )
            await engine.start()
            job_id = await engine.submit(items(6))
            await wait_for(lambda: len(started) == 6)
            release.set()
            job = await engine.join(job_id)
            await engine.stop()
            return job

        job = asyncio.run(run())

        # Then - one checkpoint at 3 processed and one at 6, none skipped or repeated
        interval = [c for c in store.saved if c["status"] == "running" and c["processed"] > 0]
        assert job.processed == 6
        assert len(interval) == 2

    def test_empty_job_completes(self):
        """Given no items, the job should complete immediately."""
        async def run():
            engine = BatchEngine(succeed, MemoryStore(), config())
            await engine.start()
            job = await engine.join(await engine.submit([]))
            await engine.stop()
            return job

        job = asyncio.run(run())

        assert job.status == BatchStatus.COMPLETED
        assert job.progress == 1.0

    def test_item_timings_and_failures_are_monitored(self):
        """Given one failing item out of five, the monitor should count one error."""
        monitor = PerformanceMonitor()

        async def processor(item):
            if item.id == "2":
                raise RuntimeError("timeout")
            return ItemResult(item_id=item.id, success=True)

        async def run():
            engine = BatchEngine(processor, MemoryStore(), config(), monitor=monitor)
            await engine.start()
            await engine.join(await engine.submit(items(5)))
            await engine.stop()

        asyncio.run(run())

        stats = monitor.report().get("batch_item")
        assert stats.executions == 5
        assert stats.errors == 1
        assert stats.items_processed == 4


class TestLifecycle:
    """Tests for job state transitions."""

    def test_pause_stops_dispatch_until_resumed(self):
        """Given a paused job, should not dispatch new items until resumed."""
        # Given
        release = asyncio.Event()
        seen = []

        async def processor(item):
            seen.append(item.id)
            if item.id == "1":
                await release.wait()
            return ItemResult(item_id=item.id, success=True)

        async def run():
            engine = BatchEngine(processor, MemoryStore(), config(max_concurrency=1))
            await engine.start()
            job_id = await engine.submit(items(3))
            await wait_for(lambda: seen == ["1"])

            # When
            engine.pause(job_id)
            release.set()
            await wait_for(lambda: engine.status(job_id).processed == 1)
            for _ in range(10):
                await asyncio.sleep(0)
            paused = engine.status(job_id)

            engine.resume(job_id)
            finished = await engine.join(job_id)
            await engine.stop()
            return paused, finished

        paused, finished = asyncio.run(run())

        # Then
        assert paused.status == BatchStatus.PAUSED
        assert paused.processed == 1
        assert finished.status == BatchStatus.COMPLETED
        assert finished.processed == 3
        assert seen == ["1", "2", "3"]

    def test_invalid_transitions_raise(self):
        """Pausing or resuming a completed job should be rejected."""
        async def run():
            engine = BatchEngine(succeed, MemoryStore(), config())
            await engine.start()
            job_id = await engine.submit(items(2))
            await engine.join(job_id)
            try:
                with pytest.raises(InvalidTransitionError):
                    engine.pause(job_id)
                with pytest.raises(InvalidTransitionError):
                    engine.resume(job_id)
            finally:
                await engine.stop()

        asyncio.run(run())

    def test_unknown_job_raises_key_error(self):
        engine = BatchEngine(succeed, MemoryStore(), config())

        with pytest.raises(KeyError):
            engine.status("missing")

    def test_submit_requires_running_engine(self):
        """Submitting before start should be rejected."""
        async def run():
            engine = BatchEngine(succeed, MemoryStore(), config())
            with pytest.raises(InvalidTransitionError):
                await engine.submit(items(1))

        asyncio.run(run())

    def test_status_returns_a_copy(self):
        """Mutating a returned status should not affect the job."""
        async def run():
            engine = BatchEngine(succeed, MemoryStore(), config())
            await engine.start()
            job_id = await engine.submit(items(2))
            await engine.join(job_id)
            copy = engine.status(job_id)
            copy.completed_item_ids.clear()
            copy.processed = 0
            result = engine.status(job_id)
            await engine.stop()
            return result

        job = asyncio.run(run())

        assert job.processed == 2
        assert len(job.completed_item_ids) == 2


class TestRecovery:
    """Tests for interruption, recovery and resumption."""

    def test_stop_marks_in_flight_job_interrupted(self):
        """Given a running job, stop should mark it Failed and checkpoint it."""
        # Given
        store = MemoryStore()
        never = asyncio.Event()

        async def processor(item):
            await never.wait()
            return ItemResult(item_id=item.id, success=True)

        # When
        async def run():
            engine = BatchEngine(processor, store, config(max_concurrency=2))
            await engine.start()
            job_id = await engine.submit(items(5))
            await wait_for(lambda: engine.status(job_id).status == BatchStatus.RUNNING)
            await engine.stop()
            return engine.status(job_id)

        job = asyncio.run(run())

        # Then
        assert job.status == BatchStatus.FAILED
        assert job.error_message == "interrupted"
        assert store.checkpoints[job.id]["status"] == "failed"

    def test_recover_surfaces_unfinished_jobs_as_failed(self):
        """Given a checkpoint left Running, recover should mark it Failed."""
        # Given
        store = MemoryStore()
        store.checkpoints = {
            "old": {"job_id": "old", "status": "running", "total": 5, "processed": 2,
                    "succeeded": 2, "failed": 0, "completed_item_ids": ["1", "2"]},
            "done": {"job_id": "done", "status": "completed", "total": 1, "processed": 1,
                     "succeeded": 1, "failed": 0, "completed_item_ids": ["1"]},
        }
        engine = BatchEngine(succeed, store, config())

        # When
        recovered = asyncio.run(engine.recover())

        # Then
        assert [job.id for job in recovered] == ["old"]
        assert engine.status("old").status == BatchStatus.FAILED
        assert "interrupted" in engine.status("old").error_message
        assert engine.status("old").total == 5
        assert engine.status("done").status == BatchStatus.COMPLETED
        assert store.checkpoints["old"]["status"] == "failed"

    def test_resume_from_skips_completed_items(self):
        """Given an earlier checkpoint, should only process the remaining items."""
        # Given
        store = MemoryStore()
        store.checkpoints = {
            "old": {"job_id": "old", "status": "failed", "total": 4, "processed": 2,
                    "succeeded": 2, "failed": 0, "completed_item_ids": ["1", "2"]},
        }
        processed = []

        async def processor(item):
            processed.append(item.id)
            return ItemResult(item_id=item.id, success=True)

        # When
        async def run():
            engine = BatchEngine(processor, store, config())
            await engine.start()
            job = await engine.join(await engine.submit(items(4), resume_from="old"))
            await engine.stop()
            return job

        job = asyncio.run(run())

        # Then
        assert job.total == 2
        assert sorted(processed) == ["3", "4"]

    def test_resume_from_unknown_job_is_rejected(self):
        async def run():
            engine = BatchEngine(succeed, MemoryStore(), config())
            await engine.start()
            try:
                with pytest.raises(InputValidationError):
                    await engine.submit(items(1), resume_from="missing")
            finally:
                await engine.stop()

        asyncio.run(run())


class TestRateLimiter:
    """Tests for minimum-interval rate limiting."""

    def test_acquisitions_are_spaced(self):
        """Given 10 requests per second, consecutive calls should wait 0.1s."""
        # Given
        sleep = RecordingSleep()
        limiter = RateLimiter(10, clock=lambda: 0.0, sleep=sleep)

        # When
        async def run():
            for _ in range(4):
                await limiter.acquire()

        asyncio.run(run())

        # Then
        assert sleep.delays == pytest.approx([0.1, 0.1, 0.1])

    def test_disabled_limiter_never_waits(self):
        sleep = RecordingSleep()
        limiter = RateLimiter(0, sleep=sleep)

        asyncio.run(limiter.acquire())

        assert not limiter.enabled
        assert sleep.delays == []

    def test_batch_items_wait_on_the_limiter(self):
        """Every batch item should acquire the engine's limiter."""
        # Given
        sleep = RecordingSleep()
        limiter = RateLimiter(5, clock=lambda: 0.0, sleep=sleep)

        # When
        async def run():
            engine = BatchEngine(succeed, MemoryStore(), config(), rate_limiter=limiter)
            await engine.start()
            await engine.join(await engine.submit(items(6)))
            await engine.stop()

        asyncio.run(run())

        # Then
        assert sleep.delays == pytest.approx([0.2] * 5)
