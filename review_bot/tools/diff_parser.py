"""Patch parsing utilities."""

from dataclasses import dataclass, field
from typing import List, Optional, Set
import re

HUNK_HEADER_PATTERN = re.compile(r'^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@(.*)$')


@dataclass
class Hunk:
    """Represents a single hunk from a file patch."""
    file_path: str
    old_start: int
    old_lines: int
    new_start: int
    new_lines: int
    header: str
    lines: List[str] = field(default_factory=list)

    @property
    def added_lines(self) -> List[int]:
        """New-file line numbers of the lines this hunk adds."""
        added = []
        new_line = self.new_start
        for line in self.lines:
            if line.startswith('+'):
                added.append(new_line)
                new_line += 1
            elif line.startswith(' '):
                new_line += 1
            # '-' lines and '\ No newline' markers do not exist in the new file
        return added


def parse_patch(patch: Optional[str], file_path: str = "") -> List[Hunk]:
    """
    Parse the hunks of a single-file patch.

    Accepts either the bare hunks GitHub returns per file or a full
    unified diff for one file (header lines are ignored).

    Args:
        patch: Patch text
        file_path: Path recorded on each hunk

    Returns:
        List of Hunk objects in patch order
    """
    if not patch or not patch.strip():
        return []

    hunks: List[Hunk] = []
    current: Optional[Hunk] = None

    for line in patch.split('\n'):
        match = HUNK_HEADER_PATTERN.match(line)
        if match:
            current = Hunk(
                file_path=file_path,
                old_start=int(match.group(1)),
                old_lines=int(match.group(2) or 1),
                new_start=int(match.group(3)),
                new_lines=int(match.group(4) or 1),
                header=line,
            )
            hunks.append(current)
            continue

        # File headers precede the first hunk
        if current is None:
            continue
        if line.startswith(('+', '-', ' ', '\\')):
            current.lines.append(line)

    return hunks


def added_line_numbers(patch: Optional[str]) -> Set[int]:
    """1-based new-file line numbers added by a patch."""
    numbers: Set[int] = set()
    for hunk in parse_patch(patch):
        numbers.update(hunk.added_lines)
    return numbers
