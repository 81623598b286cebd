"""Rule engine: scans files against a RuleSet."""

import asyncio
import os
import re
from concurrent.futures import ThreadPoolExecutor
from functools import lru_cache
from typing import Iterable, List, Optional, Pattern

from ..errors import ConfigurationError, ErrorKind
from ..models import FileUnit, Finding, Result, Rule
from ..utils import get_logger
from .heuristics import HEURISTICS

# Comment markers that veto any finding on the same line
SUPPRESSION_PATTERN = re.compile(
    r"(?://|#|/\*|--).*\b(?:intentionally|by design|TODO|HACK|workaround)\b",
    re.IGNORECASE,
)

# test/tests/spec/specs as whole words, *.test.*, *.spec.*, test_*, *_test.*
TEST_PATH_PATTERN = re.compile(
    r"\b(?:test|tests|spec|specs)\b"
    r"|\.(?:test|spec)\."
    r"|(?:^|/)test_[^/]*$"
    r"|_test\.[^/]*$",
    re.IGNORECASE,
)


@lru_cache(maxsize=512)
def compile_pattern(pattern: str) -> Pattern:
    """Compile a rule pattern once; matching is case-insensitive."""
    return re.compile(pattern, re.IGNORECASE)


def is_test_file(path: str) -> bool:
    return bool(TEST_PATH_PATTERN.search(path.replace("\\", "/")))


def is_suppressed(line: str) -> bool:
    return bool(SUPPRESSION_PATTERN.search(line))


class RuleEngine:
    """
    Evaluates rules against files.

    Every (file, rule) pair is one unit of work on a thread pool owned by
    the engine and shared by all files, so concurrent submissions never
    oversubscribe the CPU.
    """

    def __init__(self, max_workers: Optional[int] = None, analyze_only_changed: bool = True):
        """
        Initialize the engine.

        Args:
            max_workers: Pool size (defaults to CPU count)
            analyze_only_changed: Only scan the changed lines of each file
        """
        self.max_workers = max_workers or os.cpu_count() or 1
        self.analyze_only_changed = analyze_only_changed
        self.logger = get_logger()
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers,
            thread_name_prefix="rule-engine",
        )

    def close(self):
        """Shut down the worker pool, dropping queued pairs."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> "RuleEngine":
        return self

    def __exit__(self, *exc_info):
        self.close()

    def target_lines(self, file: FileUnit) -> List[int]:
        """1-based line numbers to scan in a file."""
        line_count = len(file.lines)
        if not self.analyze_only_changed:
            return list(range(1, line_count + 1))
        return sorted(n for n in file.changed_lines if 1 <= n <= line_count)

    def applicable_rules(self, file: FileUnit, rules: Iterable[Rule]) -> List[Rule]:
        """Rules whose applicability admits this file."""
        test_file = is_test_file(file.path)
        selected = []
        for rule in rules:
            if rule.excluded_from_tests and test_file:
                self.logger.debug(f"Skipping {rule.id} for test file {file.path}")
                continue
            if not rule.applies_to_path(file.path):
                continue
            selected.append(rule)
        return selected

    def evaluate_rule(self, file: FileUnit, rule: Rule) -> Result[List[Finding]]:
        """
        Evaluate one rule against one file.

        Returns:
            Result holding the findings, or the failure kind and message
        """
        try:
            return Result.success(self._match(file, rule))
        except ConfigurationError as e:
            self.logger.error(f"Rule {rule.id} skipped for {file.path}: {e}")
            return Result.from_exception(e)
        except Exception as e:
            self.logger.exception(f"Rule {rule.id} failed on {file.path}")
            return Result.failure(ErrorKind.INTERNAL, f"Rule {rule.id} failed on {file.path}: {e}")

    def _match(self, file: FileUnit, rule: Rule) -> List[Finding]:
        lines = file.lines
        targets = self.target_lines(file)

        if rule.pattern:
            try:
                regex = compile_pattern(rule.pattern)
            except re.error as e:
                raise ConfigurationError(f"Invalid pattern for rule {rule.id}: {e}") from e

            findings = []
            for number in targets:
                line = lines[number - 1]
                if is_suppressed(line):
                    continue
                for _ in regex.finditer(line):
                    findings.append(self._finding(file, rule, number))
            return findings

        heuristic = HEURISTICS.get(rule.id)
        if heuristic is None:
            self.logger.debug(f"Rule {rule.id} has no pattern and no heuristic; skipped")
            return []

        wanted = set(targets)
        return [
            self._finding(file, rule, number)
            for number in heuristic(lines)
            if number in wanted and not is_suppressed(lines[number - 1])
        ]

    @staticmethod
    def _finding(file: FileUnit, rule: Rule, line_number: int) -> Finding:
        return Finding(
            rule_id=rule.id,
            file_path=file.path,
            line_number=line_number,
            severity=rule.severity,
            message=rule.message,
            suggestion=rule.suggestion,
        )

    def _skip_file(self, file: FileUnit) -> bool:
        if self.analyze_only_changed and not file.changed_lines:
            self.logger.debug(f"No changed lines in {file.path}; skipped")
            return True
        return False

    def evaluate_results(self, file: FileUnit, rules: Iterable[Rule]) -> List[Result[List[Finding]]]:
        """Blocking evaluation returning one Result per applicable rule."""
        if self._skip_file(file):
            return []
        selected = self.applicable_rules(file, rules)
        return list(self._executor.map(lambda rule: self.evaluate_rule(file, rule), selected))

    async def evaluate_results_async(
        self,
        file: FileUnit,
        rules: Iterable[Rule],
    ) -> List[Result[List[Finding]]]:
        """Awaitable evaluation; cancelling the caller cancels pending pairs."""
        if self._skip_file(file):
            return []
        loop = asyncio.get_running_loop()
        futures = [
            loop.run_in_executor(self._executor, self.evaluate_rule, file, rule)
            for rule in self.applicable_rules(file, rules)
        ]
        return list(await asyncio.gather(*futures))

    def evaluate(self, file: FileUnit, rules: Iterable[Rule]) -> List[Finding]:
        """Blocking evaluation; failed rules contribute no findings."""
        return _collect(self.evaluate_results(file, rules))

    async def evaluate_async(self, file: FileUnit, rules: Iterable[Rule]) -> List[Finding]:
        """Awaitable evaluation; failed rules contribute no findings."""
        return _collect(await self.evaluate_results_async(file, rules))


def _collect(results: List[Result[List[Finding]]]) -> List[Finding]:
    findings: List[Finding] = []
    for result in results:
        if result.ok:
            findings.extend(result.value)
    return findings
