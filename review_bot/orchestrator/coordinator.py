"""Analysis coordinator: evaluate, filter, budget, post and summarize."""

import asyncio
from collections import Counter
from dataclasses import dataclass, field, replace
from typing import Awaitable, Callable, Dict, List, Optional

from ..config import ReviewConfig
from ..engine import RuleEngine
from ..learning import LearningFilter
from ..models import FileUnit, Finding, RuleSet, severity_weight
from ..tools import ChangeSource
from ..utils import PerformanceMonitor, get_logger, build_summary, format_summary

FILE_EVALUATION = "file_evaluation"


@dataclass
class AnalysisReport:
    """Everything one analysis produced."""
    findings: List[Finding] = field(default_factory=list)   # Surfaced, in posting order
    files_analyzed: int = 0
    raw_count: int = 0          # Findings before relevance filtering
    relevant_count: int = 0     # Findings after filtering, before the budget
    comments_posted: int = 0
    rule_usage_counts: Dict[str, int] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    summary: str = ""

    @property
    def surfaced_count(self) -> int:
        return len(self.findings)


def select_within_budget(findings: List[Finding], budget: int) -> List[Finding]:
    """
    Pick at most ``budget`` findings, spread across files.

    Findings are grouped by file (groups ordered by first appearance), each
    group is ranked by severity weight x confidence, and the groups are
    interleaved round-robin so one noisy file cannot use the whole budget.
    """
    if budget <= 0 or not findings:
        return []

    groups: Dict[str, List[Finding]] = {}
    for finding in findings:
        groups.setdefault(finding.file_path, []).append(finding)

    def weight(finding: Finding) -> float:
        confidence = finding.confidence if finding.confidence is not None else 0.5
        return severity_weight(finding.severity) * confidence

    ranked = [sorted(group, key=weight, reverse=True) for group in groups.values()]

    selected: List[Finding] = []
    depth = 0
    while len(selected) < budget:
        row = [group[depth] for group in ranked if depth < len(group)]
        if not row:
            break
        selected.extend(row[:budget - len(selected)])
        depth += 1
    return selected


class AnalysisCoordinator:
    """
    Runs one submission through the pipeline.

    Files are evaluated concurrently under a per-submission semaphore;
    every later step works on the merged findings in file order, so the
    outcome does not depend on which file finished first.
    """

    def __init__(
        self,
        engine: RuleEngine,
        learning: LearningFilter,
        change_source: Optional[ChangeSource] = None,
        config: Optional[ReviewConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        monitor: Optional[PerformanceMonitor] = None,
    ):
        self.engine = engine
        self.learning = learning
        self.change_source = change_source
        self.config = config or ReviewConfig()
        self._sleep = sleep
        self.monitor = monitor or PerformanceMonitor()
        self.logger = get_logger()

    async def _evaluate_files(self, files: List[FileUnit], rules: RuleSet, report: AnalysisReport) -> List[Finding]:
        semaphore = asyncio.Semaphore(max(1, self.config.max_concurrent_files))

        async def evaluate_with_limit(file: FileUnit):
            async with semaphore:
                with self.monitor.track(FILE_EVALUATION):
                    return await self.engine.evaluate_results_async(file, rules)

        tasks = [evaluate_with_limit(f) for f in files]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        findings: List[Finding] = []
        for file, result in zip(files, results):
            if isinstance(result, BaseException):
                self.logger.error(f"Failed to analyze {file.path}: {result}")
                report.errors.append(f"{file.path}: {result}")
                continue
            report.files_analyzed += 1
            for rule_result in result:
                if rule_result.ok:
                    findings.extend(rule_result.value)
                else:
                    report.errors.append(rule_result.message)
        return findings

    def _audit(self, findings: List[Finding], rules: RuleSet) -> List[Finding]:
        audited = []
        for finding in findings:
            if finding.rule_id not in rules:
                self.logger.error(
                    f"Finding at {finding.file_path}:{finding.line_number} references "
                    f"unknown rule {finding.rule_id} (rule set version {rules.version})"
                )
                finding = replace(finding, audit=True)
            audited.append(finding)
        return audited

    async def _post_findings(self, subject_id: str, findings: List[Finding]) -> int:
        posted = 0
        for index, finding in enumerate(findings):
            try:
                if await self.change_source.post_finding(subject_id, finding):
                    posted += 1
                else:
                    self.logger.warning(f"Comment not posted for {finding.file_path}:{finding.line_number}")
            except Exception as e:
                self.logger.error(f"Failed to post comment for {finding.file_path}:{finding.line_number}: {e}")

            if index < len(findings) - 1:
                await self._sleep(self.learning.adaptive_pacing(finding.rule_id))
        return posted

    async def analyze(
        self,
        files: List[FileUnit],
        rules: RuleSet,
        budget: Optional[int] = None,
        subject_id: Optional[str] = None,
    ) -> AnalysisReport:
        """
        Analyze a set of changed files.

        An empty change set still produces (and posts) a summary.

        Args:
            files: Changed files of the submission
            rules: RuleSet snapshot used for the whole analysis
            budget: Maximum findings surfaced (defaults to the configured budget)
            subject_id: Submission to post to; None analyzes without posting

        Returns:
            AnalysisReport with surfaced findings, counts and summary
        """
        report = AnalysisReport()
        if not files:
            self.logger.info("No changed files to analyze")

        budget = self.config.comment_budget if budget is None else budget

        raw = self._audit(await self._evaluate_files(files, rules, report), rules)
        report.raw_count = len(raw)

        relevant = self.learning.filter_by_relevance(raw, subject_scope=subject_id)
        report.relevant_count = len(relevant)

        report.findings = select_within_budget(relevant, budget)
        report.rule_usage_counts = dict(Counter(f.rule_id for f in report.findings))

        self.logger.info(
            f"Analyzed {report.files_analyzed} files: {report.raw_count} raw, "
            f"{report.relevant_count} relevant, {report.surfaced_count} surfaced"
        )

        can_post = subject_id is not None and self.change_source is not None
        if can_post and self.config.post_comments and report.findings:
            report.comments_posted = await self._post_findings(subject_id, report.findings)

        summary = build_summary(
            report.findings,
            files_analyzed=report.files_analyzed,
            issues_found=report.relevant_count,
            comments_posted=report.comments_posted,
        )
        report.summary = format_summary(summary, report.findings)

        if can_post and self.config.post_summary:
            try:
                if not await self.change_source.post_summary(subject_id, report.summary):
                    self.logger.warning(f"Summary not posted for {subject_id}")
            except Exception as e:
                self.logger.error(f"Failed to post summary for {subject_id}: {e}")

        return report
