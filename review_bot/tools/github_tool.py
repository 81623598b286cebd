"""GitHub change source for pull request reviews."""

import asyncio
import os
import re
from typing import Dict, List, Optional, Tuple

from github import Github, GithubException
from github.PullRequest import PullRequest

from ..errors import ConfigurationError, InputValidationError, TransientExternalFailure
from ..models import FileUnit, Finding
from ..utils import get_logger
from .change_source import ChangeSource
from .diff_parser import added_line_numbers

SUBJECT_PATTERN = re.compile(r'^([\w.-]+/[\w.-]+)#(\d+)$')


def parse_subject_id(subject_id: str) -> Tuple[str, int]:
    """
    Split an ``owner/repo#number`` subject id.

    Raises:
        InputValidationError: if the id does not name a pull request
    """
    match = SUBJECT_PATTERN.match(subject_id or "")
    if not match:
        raise InputValidationError(f"Expected 'owner/repo#number', got '{subject_id}'")
    return match.group(1), int(match.group(2))


def confidence_indicator(confidence: float) -> str:
    if confidence >= 0.8:
        return "High Confidence"
    if confidence >= 0.5:
        return "Medium Confidence"
    return "Low Confidence"


def format_finding_comment(finding: Finding) -> str:
    """Format a finding as a review comment body."""
    confidence = finding.confidence if finding.confidence is not None else 0.5
    parts = [
        f"**{finding.severity.upper()}** {confidence_indicator(confidence)}\n",
        f"\n**Issue**: {finding.message}\n",
    ]

    if finding.suggestion:
        parts.append(f"\n**Suggestion**: {finding.suggestion}\n")

    parts.append(f"\n**Rule**: {finding.rule_id}\n")
    parts.append(f"*Confidence: {int(confidence * 100)}%*")

    return ''.join(parts)


class GitHubChangeSource(ChangeSource):
    """
    Pull requests as submissions.

    Handles:
    - Fetching changed files at the head commit
    - Posting inline review comments
    - Posting the summary comment

    PyGithub is blocking, so every call runs in a worker thread.
    """

    def __init__(
        self,
        token: Optional[str] = None,
        include_extensions: Optional[List[str]] = None,
        max_file_size_kb: int = 1024,
        client: Optional[Github] = None,
    ):
        """
        Initialize the GitHub change source.

        Args:
            token: GitHub token (defaults to GITHUB_TOKEN env var)
            include_extensions: Only fetch files with these extensions (empty = all)
            max_file_size_kb: Skip files larger than this
            client: Preconfigured PyGithub client
        """
        self.token = token or os.environ.get("GITHUB_TOKEN")
        if client is None and not self.token:
            raise ConfigurationError("GitHub token required. Set GITHUB_TOKEN env var or pass token parameter.")

        self.gh = client or Github(self.token)
        self.include_extensions = [e.lower().lstrip(".") for e in include_extensions or []]
        self.max_file_size = max_file_size_kb * 1024
        self.logger = get_logger()
        self._pulls: Dict[str, PullRequest] = {}

    def _pull(self, subject_id: str) -> PullRequest:
        """Get the pull request object (cached)."""
        if subject_id not in self._pulls:
            repo_name, number = parse_subject_id(subject_id)
            self._pulls[subject_id] = self.gh.get_repo(repo_name).get_pull(number)
        return self._pulls[subject_id]

    def _included(self, filename: str) -> bool:
        if not self.include_extensions:
            return True
        ext = filename.rsplit('.', 1)[-1].lower() if '.' in filename else ''
        return ext in self.include_extensions

    def _fetch_files(self, subject_id: str) -> List[FileUnit]:
        pr = self._pull(subject_id)
        head_repo = pr.head.repo or pr.base.repo

        files = []
        for changed in pr.get_files():
            if changed.status == "removed" or not self._included(changed.filename):
                continue

            contents = head_repo.get_contents(changed.filename, ref=pr.head.sha)
            if isinstance(contents, list):
                continue
            if contents.size > self.max_file_size:
                self.logger.info(f"Skipping {changed.filename}: {contents.size} bytes exceeds size cap")
                continue

            files.append(FileUnit(
                path=changed.filename,
                content=contents.decoded_content.decode("utf-8", errors="replace"),
                changed_lines=frozenset(added_line_numbers(changed.patch)),
            ))
        return files

    async def get_changed_files(self, subject_id: str) -> List[FileUnit]:
        try:
            return await asyncio.to_thread(self._fetch_files, subject_id)
        except GithubException as e:
            raise TransientExternalFailure(f"Failed to fetch files for {subject_id}: {e}") from e

    def _create_review_comment(self, subject_id: str, finding: Finding):
        pr = self._pull(subject_id)
        commit = pr.base.repo.get_commit(pr.head.sha)
        pr.create_review_comment(
            body=format_finding_comment(finding),
            commit=commit,
            path=finding.file_path,
            line=finding.line_number,
            side="RIGHT"
        )

    async def post_finding(self, subject_id: str, finding: Finding) -> bool:
        try:
            await asyncio.to_thread(self._create_review_comment, subject_id, finding)
            return True
        except GithubException as e:
            self.logger.warning(f"Failed to post comment on {finding.file_path}:{finding.line_number}: {e}")
            return False

    async def post_summary(self, subject_id: str, text: str) -> bool:
        try:
            await asyncio.to_thread(lambda: self._pull(subject_id).create_issue_comment(text))
            return True
        except GithubException as e:
            self.logger.warning(f"Failed to post summary on {subject_id}: {e}")
            return False
