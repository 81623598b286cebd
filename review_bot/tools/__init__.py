"""External collaborators: change sources, persistence and patch parsing."""

from .change_source import ChangeSource, StaticChangeSource, load_replay_dataset
from .diff_parser import Hunk, parse_patch, added_line_numbers
from .github_tool import GitHubChangeSource, format_finding_comment, parse_subject_id
from .storage_tool import Store, MemoryStore, JsonFileStore

__all__ = [
    "ChangeSource",
    "StaticChangeSource",
    "load_replay_dataset",
    "Hunk",
    "parse_patch",
    "added_line_numbers",
    "GitHubChangeSource",
    "format_finding_comment",
    "parse_subject_id",
    "Store",
    "MemoryStore",
    "JsonFileStore",
]
