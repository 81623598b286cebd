"""Review service: the operations exposed to callers."""

import asyncio
import re
from typing import Awaitable, Callable, Iterable, List, Optional, Tuple, Union

from ..config import BatchConfig, LearningConfig, ReviewConfig
from ..engine import RuleEngine, RuleSetCache
from ..errors import ErrorKind, InputValidationError, ReviewBotError
from ..learning import EffectivenessStore, LearningFilter
from ..models import (
    AnalysisOutcome,
    AnalysisRun,
    BatchItem,
    BatchJob,
    EffectivenessRecord,
    FeedbackOutcome,
    FileUnit,
    FindingRef,
    ItemResult,
    LearningInsights,
    Result,
    RuleSet,
    RunMetrics,
)
from ..tools import ChangeSource, Store
from ..utils import PerformanceMonitor, PerformanceReport, get_logger
from .batch import BatchEngine
from .coordinator import AnalysisCoordinator, AnalysisReport
from .rate_limit import RateLimiter

SUBJECT_ID_PATTERN = re.compile(r'^[A-Za-z0-9_.:/#-]+$')
MAX_SUBJECT_ID_LENGTH = 200

SUBMISSION = "submission"


def validate_subject_id(subject_id: str) -> str:
    """
    Check a submission id before it enters the pipeline.

    Raises:
        InputValidationError: if the id is empty, too long or has invalid characters
    """
    if not subject_id or not subject_id.strip():
        raise InputValidationError("Submission id is required")
    if len(subject_id) > MAX_SUBJECT_ID_LENGTH:
        raise InputValidationError(f"Submission id exceeds {MAX_SUBJECT_ID_LENGTH} characters")
    if not SUBJECT_ID_PATTERN.match(subject_id):
        raise InputValidationError(f"Submission id contains invalid characters: {subject_id!r}")
    return subject_id


class ReviewService:
    """
    Entry point for analyzing submissions, recording feedback and running
    batch replays.

    Usage:
        async with ReviewService(change_source, store) as service:
            outcome = await service.analyze_submission("owner/repo#42")
    """

    def __init__(
        self,
        change_source: ChangeSource,
        store: Store,
        config: Optional[ReviewConfig] = None,
        learning_config: Optional[LearningConfig] = None,
        batch_config: Optional[BatchConfig] = None,
        engine: Optional[RuleEngine] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config or ReviewConfig()
        self.batch_config = batch_config or BatchConfig()
        self.change_source = change_source
        self.store = store
        self.logger = get_logger()
        self.performance = PerformanceMonitor()

        self.engine = engine or RuleEngine(analyze_only_changed=self.config.analyze_only_changed)
        self.effectiveness = EffectivenessStore(store)
        self.learning = LearningFilter(self.effectiveness, learning_config)
        self.rules = RuleSetCache(store.load_rule_set, ttl_seconds=self.config.rule_cache_minutes * 60)
        self.coordinator = AnalysisCoordinator(
            self.engine,
            self.learning,
            change_source=change_source,
            config=self.config,
            sleep=sleep,
            monitor=self.performance,
        )
        self.batch = BatchEngine(
            self._process_item,
            store,
            config=self.batch_config,
            on_results=self._on_batch_results,
            rate_limiter=RateLimiter(self.batch_config.requests_per_second),
            monitor=self.performance,
        )

    async def start(self):
        """Load learning state and rules, recover batch jobs, start the dispatcher."""
        await self.effectiveness.load()
        await self.rules.get()
        await self.batch.recover()
        await self.batch.start()

    async def close(self):
        await self.batch.stop()
        self.engine.close()

    async def __aenter__(self) -> "ReviewService":
        await self.start()
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def refresh_rules(self) -> RuleSet:
        """Reload the coding standards now instead of at the end of the cache window."""
        self.rules.invalidate()
        return await self.rules.get()

    async def _record_run(self, run: AnalysisRun):
        try:
            await self.effectiveness.record_run(run)
        except ReviewBotError as e:
            self.logger.error(f"Failed to record analysis run {run.id}: {e}")

    async def _run_analysis(
        self,
        run: AnalysisRun,
        files: List[FileUnit],
        post: bool,
    ) -> Tuple[AnalysisRun, AnalysisReport]:
        rules = self.learning.adapt_rules(await self.rules.get())
        report = await self.coordinator.analyze(
            files,
            rules,
            budget=self.config.comment_budget,
            subject_id=run.subject_id if post else None,
        )
        for error in report.errors:
            self.logger.warning(f"{run.subject_id}: {error}")

        metrics = RunMetrics(
            files_analyzed=report.files_analyzed,
            issues_found=report.relevant_count,
            comments_posted=report.comments_posted,
            rule_usage_counts=dict(report.rule_usage_counts),
        )
        run = run.finalize(metrics, success=True)
        await self._record_run(run)
        return run, report

    async def analyze_submission(self, subject_id: str) -> AnalysisOutcome:
        """
        Analyze one submission end to end.

        Every validated submission gets a recorded run and a summary, even
        when it has no changed files.

        Args:
            subject_id: Submission id (``owner/repo#number`` for GitHub)

        Returns:
            AnalysisOutcome; failures are reported, never raised
        """
        try:
            validate_subject_id(subject_id)
        except InputValidationError as e:
            return AnalysisOutcome.failed(str(e), e.kind)

        self.logger.info(f"Starting analysis for {subject_id}")
        run = AnalysisRun.start(subject_id)
        started = self.performance.start_timer()

        try:
            files = await self.change_source.get_changed_files(subject_id)
        except Exception as e:
            kind = e.kind if isinstance(e, ReviewBotError) else ErrorKind.TRANSIENT_EXTERNAL
            message = f"Failed to fetch changes for {subject_id}: {e}"
            self.logger.error(message)
            self._time_submission(started, items=0, error=e)
            await self._record_run(run.finalize(success=False, error_message=message))
            return AnalysisOutcome.failed(message, kind, run_id=run.id)

        if not files:
            self.logger.info(f"No changes found in {subject_id}")

        try:
            run, report = await self._run_analysis(run, files, post=True)
        except Exception as e:
            self.logger.exception(f"Analysis failed for {subject_id}")
            kind = e.kind if isinstance(e, ReviewBotError) else ErrorKind.INTERNAL
            message = f"Analysis failed for {subject_id}: {e}"
            self._time_submission(started, items=0, error=e)
            await self._record_run(run.finalize(success=False, error_message=message))
            return AnalysisOutcome.failed(message, kind, run_id=run.id)

        self._time_submission(started, items=len(files))
        self.logger.info(
            f"Analysis complete for {subject_id}: {report.relevant_count} issues, "
            f"{report.comments_posted} comments posted"
        )
        return AnalysisOutcome(
            success=True,
            issues_found=report.relevant_count,
            comments_posted=report.comments_posted,
            run_id=run.id,
        )

    def _time_submission(self, started: float, items: int, error: Optional[BaseException] = None):
        if error is not None:
            self.performance.record_error(SUBMISSION, error)
        self.performance.record_time(SUBMISSION, self.performance.elapsed(started), items)

    async def submit_feedback(
        self,
        ref: FindingRef,
        outcome: Union[FeedbackOutcome, str],
    ) -> Result[EffectivenessRecord]:
        """
        Record a developer's reaction to a surfaced finding.

        Returns:
            Result holding the rule's updated record
        """
        if not ref.rule_id or not ref.rule_id.strip():
            return Result.failure(ErrorKind.INPUT_VALIDATION, "Rule id is required")
        if isinstance(outcome, str):
            try:
                outcome = FeedbackOutcome.parse(outcome)
            except ValueError:
                return Result.failure(ErrorKind.INPUT_VALIDATION, f"Unknown feedback outcome: {outcome!r}")

        try:
            record = await self.learning.update_effectiveness(ref.rule_id, outcome)
        except ReviewBotError as e:
            self.logger.error(f"Failed to record feedback for {ref.rule_id}: {e}")
            return Result.from_exception(e)

        self.logger.info(f"Feedback for {ref.rule_id}: {outcome.value} (score {record.score:.2f})")
        return Result.success(record)

    def get_insights(self) -> LearningInsights:
        return self.learning.get_insights()

    def get_performance_report(self) -> PerformanceReport:
        """Timings and error counts for submissions, file evaluations and batch items."""
        return self.performance.report()

    async def start_batch(
        self,
        items: Iterable[BatchItem],
        resume_from: Optional[str] = None,
    ) -> Result[str]:
        """
        Queue a batch replay.

        Returns:
            Result holding the new job id
        """
        items = list(items)
        try:
            for item in items:
                validate_subject_id(item.subject_id)
            job_id = await self.batch.submit(items, resume_from=resume_from)
        except ReviewBotError as e:
            self.logger.error(f"Batch rejected: {e}")
            return Result.from_exception(e)
        return Result.success(job_id)

    def get_batch_status(self, job_id: str) -> Result[BatchJob]:
        try:
            return Result.success(self.batch.status(job_id))
        except KeyError:
            return self._unknown_job(job_id)

    async def wait_for_batch(self, job_id: str) -> Result[BatchJob]:
        """Wait until the job is Completed or Failed."""
        try:
            return Result.success(await self.batch.join(job_id))
        except KeyError:
            return self._unknown_job(job_id)

    def pause_batch(self, job_id: str) -> Result[BatchJob]:
        try:
            self.batch.pause(job_id)
        except KeyError:
            return self._unknown_job(job_id)
        except ReviewBotError as e:
            return Result.from_exception(e)
        return self.get_batch_status(job_id)

    def resume_batch(self, job_id: str) -> Result[BatchJob]:
        try:
            self.batch.resume(job_id)
        except KeyError:
            return self._unknown_job(job_id)
        except ReviewBotError as e:
            return Result.from_exception(e)
        return self.get_batch_status(job_id)

    @staticmethod
    def _unknown_job(job_id: str) -> Result[BatchJob]:
        return Result.failure(ErrorKind.INPUT_VALIDATION, f"Unknown batch job: {job_id}")

    async def _process_item(self, item: BatchItem) -> ItemResult:
        if item.files is not None:
            files = list(item.files)
        else:
            files = await self.change_source.get_changed_files(item.subject_id)

        run = AnalysisRun.start(item.subject_id)
        run, _ = await self._run_analysis(run, files, post=False)
        return ItemResult(item_id=item.id, success=True, run=run)

    async def _on_batch_results(self, results: List[ItemResult]):
        failed = sum(1 for r in results if not r.success)
        self.logger.info(f"Batch results: {len(results) - failed} succeeded, {failed} failed")
