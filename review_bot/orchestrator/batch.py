"""Batch engine: replays the analysis pipeline over many submissions."""

import asyncio
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

from ..config import BatchConfig
from ..errors import InputValidationError, InvalidTransitionError, ReviewBotError
from ..models import BatchItem, BatchJob, BatchStatus, ItemResult
from ..tools import Store
from ..utils import PerformanceMonitor, get_logger
from .rate_limit import RateLimiter

ItemProcessor = Callable[[BatchItem], Awaitable[ItemResult]]
ResultSink = Callable[[List[ItemResult]], Awaitable[None]]

INTERRUPTED = "interrupted"
BATCH_ITEM = "batch_item"


class BatchEngine:
    """
    Runs batch jobs on one dispatcher task owned by the engine.

    Jobs are taken from a bounded queue one at a time; a job's items fan
    out under a semaphore and each item waits on the rate limiter before
    it is processed. A failing item is recorded and never stops the job.
    """

    def __init__(
        self,
        processor: ItemProcessor,
        store: Store,
        config: Optional[BatchConfig] = None,
        on_results: Optional[ResultSink] = None,
        rate_limiter: Optional[RateLimiter] = None,
        monitor: Optional[PerformanceMonitor] = None,
    ):
        """
        Initialize the batch engine.

        Args:
            processor: Coroutine processing one item
            store: Checkpoint persistence
            config: Batch configuration
            on_results: Receives processed results in sub-batches
            rate_limiter: Shared limiter for external calls
            monitor: Receives per-item timings and errors
        """
        self.config = config or BatchConfig()
        self._processor = processor
        self._store = store
        self._on_results = on_results
        self._rate_limiter = rate_limiter or RateLimiter(self.config.requests_per_second)
        self._monitor = monitor or PerformanceMonitor()
        self.logger = get_logger()

        self._jobs: Dict[str, BatchJob] = {}
        self._done: Dict[str, asyncio.Event] = {}
        self._gates: Dict[str, asyncio.Event] = {}
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._in_flight: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def start(self):
        """Start the dispatcher task."""
        if self.running:
            return
        self._queue = asyncio.Queue(maxsize=self.config.queue_size)
        self._worker = asyncio.create_task(self._dispatch_loop(), name="batch-dispatcher")
        self.logger.info(f"Batch engine started (max concurrency {self.config.max_concurrency})")

    async def stop(self):
        """Stop the dispatcher; unfinished jobs are marked Failed."""
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)
            self._in_flight = []
        self._worker = None
        self._queue = None

        for job in self._jobs.values():
            if job.status.is_terminal:
                continue
            self.logger.warning(f"Batch job {job.id} interrupted at {job.processed}/{job.total}")
            self._finish(job, BatchStatus.FAILED, INTERRUPTED)
            await self._checkpoint(job)

    async def submit(self, items: Iterable[BatchItem], resume_from: Optional[str] = None) -> str:
        """
        Queue a new job.

        Args:
            items: Items to process
            resume_from: Earlier job id; items it completed are skipped

        Returns:
            The new job id
        """
        if not self.running:
            raise InvalidTransitionError("Batch engine is not running")

        items = list(items)
        if resume_from:
            checkpoints = await self._store.load_checkpoints()
            if resume_from not in checkpoints:
                raise InputValidationError(f"No checkpoint for batch job {resume_from}")
            completed = set(checkpoints[resume_from].get("completed_item_ids", []))
            items = [item for item in items if item.id not in completed]
            self.logger.info(f"Resuming from {resume_from}: {len(completed)} items already completed")

        job = BatchJob(id=str(uuid.uuid4()), items=tuple(items))
        self._jobs[job.id] = job
        self._done[job.id] = asyncio.Event()
        gate = asyncio.Event()
        gate.set()
        self._gates[job.id] = gate

        await self._queue.put(job.id)
        self.logger.info(f"Queued batch job {job.id} with {job.total} items")
        return job.id

    def status(self, job_id: str) -> BatchJob:
        """Copy of the job's current state; unknown ids raise KeyError."""
        job = self._jobs[job_id]
        return replace(
            job,
            item_errors=dict(job.item_errors),
            completed_item_ids=list(job.completed_item_ids),
        )

    def pause(self, job_id: str):
        """Stop dispatching new items of a running job."""
        job = self._jobs[job_id]
        if job.status != BatchStatus.RUNNING:
            raise InvalidTransitionError(f"Cannot pause job {job_id} in state {job.status.value}")
        job.status = BatchStatus.PAUSED
        self._gates[job_id].clear()
        self.logger.info(f"Paused batch job {job_id} at {job.processed}/{job.total}")

    def resume(self, job_id: str):
        """Continue dispatching a paused job."""
        job = self._jobs[job_id]
        if job.status != BatchStatus.PAUSED:
            raise InvalidTransitionError(f"Cannot resume job {job_id} in state {job.status.value}")
        job.status = BatchStatus.RUNNING
        self._gates[job_id].set()
        self.logger.info(f"Resumed batch job {job_id}")

    async def join(self, job_id: str) -> BatchJob:
        """Wait until the job reaches a terminal state."""
        await self._done[job_id].wait()
        return self.status(job_id)

    async def recover(self) -> List[BatchJob]:
        """
        Surface jobs a previous process left unfinished.

        Returns:
            Recovered jobs, each marked Failed with an interruption message
        """
        recovered = []
        checkpoints = await self._store.load_checkpoints()
        for job_id in sorted(checkpoints):
            if job_id in self._jobs:
                continue
            job = BatchJob.from_checkpoint(checkpoints[job_id])
            if not job.status.is_terminal:
                self._finish(job, BatchStatus.FAILED, f"{INTERRUPTED}: resubmit with resume_from={job_id}")
                await self._checkpoint(job)
                recovered.append(job)
            self._jobs[job_id] = job
            self._done[job_id] = asyncio.Event()
            self._done[job_id].set()

        if recovered:
            self.logger.warning(f"Recovered {len(recovered)} interrupted batch jobs")
        return recovered

    def _finish(self, job: BatchJob, status: BatchStatus, error_message: Optional[str] = None):
        job.status = status
        job.completed_at = datetime.now()
        if error_message:
            job.error_message = error_message
        if job.id in self._done:
            self._done[job.id].set()

    async def _checkpoint(self, job: BatchJob):
        try:
            await self._store.save_checkpoint(job.id, job.checkpoint())
        except ReviewBotError as e:
            self.logger.error(f"Failed to checkpoint batch job {job.id}: {e}")

    async def _dispatch_loop(self):
        while True:
            job_id = await self._queue.get()
            job = self._jobs[job_id]
            try:
                if not job.status.is_terminal:
                    await self._run_job(job)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.logger.exception(f"Batch job {job.id} failed")
                self._finish(job, BatchStatus.FAILED, str(e) or type(e).__name__)
                await self._checkpoint(job)
            finally:
                self._queue.task_done()

    async def _run_job(self, job: BatchJob):
        job.status = BatchStatus.RUNNING
        job.started_at = datetime.now()
        await self._checkpoint(job)
        self.logger.info(f"Running batch job {job.id} ({job.total} items)")

        semaphore = asyncio.Semaphore(max(1, self.config.max_concurrency))
        gate = self._gates[job.id]
        pending: List[ItemResult] = []
        self._in_flight = []

        try:
            for item in job.items:
                await semaphore.acquire()
                await gate.wait()
                task = asyncio.create_task(self._process_item(job, item, semaphore, pending))
                self._in_flight.append(task)
            await asyncio.gather(*self._in_flight)
        except asyncio.CancelledError:
            for task in self._in_flight:
                task.cancel()
            raise

        # A job drained while paused stays Paused until resumed
        await gate.wait()
        await self._flush(pending, final=True)

        self._finish(job, BatchStatus.COMPLETED)
        await self._checkpoint(job)
        self.logger.info(
            f"Batch job {job.id} completed: {job.succeeded} succeeded, {job.failed} failed"
        )

    async def _process_item(
        self,
        job: BatchJob,
        item: BatchItem,
        semaphore: asyncio.Semaphore,
        pending: List[ItemResult],
    ):
        try:
            await self._rate_limiter.acquire()
            try:
                with self._monitor.track(BATCH_ITEM):
                    result = await self._processor(item)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.logger.error(f"Batch item {item.id} ({item.subject_id}) failed: {e}")
                result = ItemResult(item_id=item.id, success=False, error_message=str(e) or type(e).__name__)

            processed = self._record(job, item, result)
            pending.append(result)
            await self._flush(pending)
            if processed % max(1, self.config.checkpoint_interval) == 0:
                await self._checkpoint(job)
        finally:
            semaphore.release()

    def _record(self, job: BatchJob, item: BatchItem, result: ItemResult) -> int:
        """Count the result; returns the job's processed count including it."""
        job.processed += 1
        if result.success:
            job.succeeded += 1
            job.completed_item_ids.append(item.id)
        else:
            job.failed += 1
            job.item_errors[item.id] = result.error_message or "failed"
        return job.processed

    async def _flush(self, pending: List[ItemResult], final: bool = False):
        size = max(1, self.config.result_batch_size)
        while len(pending) >= size or (final and pending):
            chunk = pending[:size]
            del pending[:size]
            if self._on_results is None:
                continue
            try:
                await self._on_results(chunk)
            except Exception:
                self.logger.exception(f"Result sink failed for {len(chunk)} batch results")
