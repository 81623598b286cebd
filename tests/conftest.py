"""Shared fixtures and fakes for review bot tests."""

from typing import List

import pytest

from review_bot.config import LearningConfig
from review_bot.engine import RuleEngine
from review_bot.errors import TransientExternalFailure
from review_bot.models import EffectivenessRecord, FileUnit, Finding, Rule, RuleSet
from review_bot.tools import MemoryStore, StaticChangeSource


def make_file(path: str, lines: List[str], changed=None) -> FileUnit:
    """File whose changed lines default to every line."""
    if changed is None:
        changed = range(1, len(lines) + 1)
    return FileUnit(path=path, content="\n".join(lines), changed_lines=frozenset(changed))


def make_record(rule_id: str, found=0, accepted=0, rejected=0, ignored=0) -> EffectivenessRecord:
    """Record with its score computed from the counters."""
    return EffectivenessRecord.from_dict({
        "rule_id": rule_id,
        "issues_found": found,
        "issues_accepted": accepted,
        "issues_rejected": rejected,
        "issues_ignored": ignored,
    })


MAGIC_NUMBERS = Rule(
    id="magic-numbers",
    severity="warning",
    message="Magic number detected",
    pattern=r"\d{3,}",
)


class RecordingSleep:
    """Stands in for asyncio.sleep and records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float):
        self.delays.append(seconds)


class FailingChangeSource(StaticChangeSource):
    """Change source whose fetches always fail."""

    async def get_changed_files(self, subject_id: str):
        raise TransientExternalFailure(f"GitHub unavailable for {subject_id}")


class FlakyPostChangeSource(StaticChangeSource):
    """Change source that rejects the first post and raises on the second."""

    def __init__(self, changes=None):
        super().__init__(changes)
        self.attempts = 0

    async def post_finding(self, subject_id: str, finding: Finding) -> bool:
        self.attempts += 1
        if self.attempts == 1:
            return False
        if self.attempts == 2:
            raise TransientExternalFailure("secondary rate limit")
        return await super().post_finding(subject_id, finding)


class FlakySaveStore(MemoryStore):
    """MemoryStore whose first effectiveness save fails."""

    def __init__(self, rule_set=None):
        super().__init__(rule_set)
        self.save_attempts = 0

    async def save_effectiveness(self, records):
        self.save_attempts += 1
        if self.save_attempts == 1:
            raise TransientExternalFailure("disk busy")
        await super().save_effectiveness(records)


@pytest.fixture
def engine():
    rule_engine = RuleEngine(max_workers=4)
    yield rule_engine
    rule_engine.close()


@pytest.fixture
def magic_rules():
    return RuleSet([MAGIC_NUMBERS])


@pytest.fixture
def fast_learning():
    """Learning config without pacing delays."""
    return LearningConfig(base_delay=0.0, min_delay=0.0, max_delay=0.0)
