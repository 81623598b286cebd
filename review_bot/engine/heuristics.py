"""Named checks for rules that carry no pattern.

The set is closed: a patternless rule is evaluated only if its id is one of
the keys in ``HEURISTICS``.
"""

import re
from typing import Callable, Dict, List

MAX_PARAMETERS = 5
MAX_NESTING_DEPTH = 4
MAX_LINE_LENGTH = 120
INDENT_WIDTH = 4

# def f(...), function f(...), func f(...), fn f(...)
KEYWORD_SIGNATURE = re.compile(r"\b(?:def|function|func|fn)\s+\w+\s*\(([^)]*)\)")
# C-family: <type> <name>(...) followed by '{', ':' or end of line
TYPED_SIGNATURE = re.compile(
    r"^\s*(?:[\w<>\[\],?]+\s+)+(\w+)\s*\(([^)]*)\)\s*(?:\{|:|=>|$)"
)
CONTROL_KEYWORDS = {"if", "for", "while", "switch", "catch", "return", "new", "else", "using"}
RECEIVER_PARAMS = {"self", "cls", "this"}


def _parameter_count(params: str) -> int:
    names = [p.strip() for p in params.split(",") if p.strip()]
    return len([n for n in names if n.split(":")[0].strip() not in RECEIVER_PARAMS])


def check_parameter_count(lines: List[str]) -> List[int]:
    """Single-line signatures declaring more than MAX_PARAMETERS parameters."""
    flagged = []
    for number, line in enumerate(lines, 1):
        match = KEYWORD_SIGNATURE.search(line)
        if match:
            params = match.group(1)
        else:
            typed = TYPED_SIGNATURE.match(line)
            if not typed or typed.group(1) in CONTROL_KEYWORDS:
                continue
            params = typed.group(2)
        if _parameter_count(params) > MAX_PARAMETERS:
            flagged.append(number)
    return flagged


def _brace_depths(lines: List[str]) -> List[int]:
    depths = []
    depth = 0
    for line in lines:
        depths.append(depth)
        depth = max(0, depth + line.count("{") - line.count("}"))
    return depths


def _indent_depths(lines: List[str]) -> List[int]:
    depths = []
    for line in lines:
        if not line.strip():
            depths.append(depths[-1] if depths else 0)
            continue
        expanded = line.expandtabs(INDENT_WIDTH)
        depths.append((len(expanded) - len(expanded.lstrip())) // INDENT_WIDTH)
    return depths


def check_nesting_depth(lines: List[str]) -> List[int]:
    """Lines where block nesting first goes deeper than MAX_NESTING_DEPTH."""
    uses_braces = any("{" in line for line in lines)
    depths = _brace_depths(lines) if uses_braces else _indent_depths(lines)

    flagged = []
    previous = 0
    for number, (line, depth) in enumerate(zip(lines, depths), 1):
        if line.strip() and depth > MAX_NESTING_DEPTH >= previous:
            flagged.append(number)
        if line.strip():
            previous = depth
    return flagged


def check_line_length(lines: List[str]) -> List[int]:
    """Lines longer than MAX_LINE_LENGTH characters."""
    return [n for n, line in enumerate(lines, 1) if len(line.rstrip()) > MAX_LINE_LENGTH]


HEURISTICS: Dict[str, Callable[[List[str]], List[int]]] = {
    "parameter-count": check_parameter_count,
    "nesting-depth": check_nesting_depth,
    "line-length": check_line_length,
}
