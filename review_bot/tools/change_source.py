"""Change source capability and the in-memory replay implementation."""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from ..errors import ConfigurationError, InputValidationError
from ..models import BatchItem, FileUnit, Finding
from .diff_parser import added_line_numbers


class ChangeSource(ABC):
    """Where changed files come from and where findings are posted."""

    @abstractmethod
    async def get_changed_files(self, subject_id: str) -> List[FileUnit]:
        """Fetch the changed files of a submission."""

    @abstractmethod
    async def post_finding(self, subject_id: str, finding: Finding) -> bool:
        """Post one finding; returns False when the post was not accepted."""

    @abstractmethod
    async def post_summary(self, subject_id: str, text: str) -> bool:
        """Post the submission summary."""


class StaticChangeSource(ChangeSource):
    """
    Change source over a fixed set of submissions.

    Used for historical replay datasets and tests; posted findings and
    summaries are recorded instead of being sent anywhere.
    """

    def __init__(self, changes: Optional[Dict[str, List[FileUnit]]] = None):
        self.changes: Dict[str, List[FileUnit]] = {k: list(v) for k, v in (changes or {}).items()}
        self.posted: List[Tuple[str, Finding]] = []
        self.summaries: List[Tuple[str, str]] = []

    @classmethod
    def from_items(cls, items: Iterable[BatchItem]) -> "StaticChangeSource":
        return cls({item.subject_id: list(item.files or ()) for item in items})

    def add(self, subject_id: str, files: List[FileUnit]):
        self.changes[subject_id] = list(files)

    async def get_changed_files(self, subject_id: str) -> List[FileUnit]:
        if subject_id not in self.changes:
            raise InputValidationError(f"Unknown submission: {subject_id}")
        return list(self.changes[subject_id])

    async def post_finding(self, subject_id: str, finding: Finding) -> bool:
        self.posted.append((subject_id, finding))
        return True

    async def post_summary(self, subject_id: str, text: str) -> bool:
        self.summaries.append((subject_id, text))
        return True


def _file_from_entry(entry: dict) -> FileUnit:
    if "changed_lines" not in entry and entry.get("patch"):
        return FileUnit(
            path=entry["path"],
            content=entry.get("content", ""),
            changed_lines=frozenset(added_line_numbers(entry["patch"])),
        )
    return FileUnit.from_dict(entry)


def load_replay_dataset(path: str) -> List[BatchItem]:
    """
    Load historical submissions from a JSON file.

    The file holds a list of ``{"id", "subject_id", "files": [...]}``
    objects. Each file entry has ``path`` and ``content`` plus either
    ``changed_lines`` or a ``patch`` from which the added lines are taken.

    Raises:
        ConfigurationError: if the file is missing or malformed
    """
    dataset = Path(path)
    try:
        data = json.loads(dataset.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigurationError(f"Dataset not found: {dataset}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Malformed dataset {dataset}: {e}") from e

    if not isinstance(data, list):
        raise ConfigurationError(f"Dataset {dataset} must contain a list of submissions")

    items = []
    for index, entry in enumerate(data):
        try:
            files = entry.get("files")
            items.append(BatchItem(
                id=str(entry.get("id") or entry["subject_id"]),
                subject_id=entry["subject_id"],
                files=tuple(_file_from_entry(f) for f in files) if files is not None else None,
            ))
        except (KeyError, TypeError, AttributeError) as e:
            raise ConfigurationError(f"Invalid submission #{index} in {dataset}: {e!r}") from e
    return items
