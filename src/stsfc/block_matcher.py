"""
Block matcher: line classification and bounded depth-balanced scanning.

Given the line that opens a multi-line "IF ... THEN", scan forward,
tracking nested IF depth, until the matching END_IF. The scan never looks
further than `limit` lines past the opener; a block that does not close in
time is reported as not closed rather than guessed at.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, List, Optional

from stsfc import config

# Leading comments that are not action qualifier markers, e.g. "(* PRI: 2 *) IF ..."
_LEADING_COMMENTS_RE = re.compile(r"^(?:\(\*(?!\s*Q\s*:).*?\*\)\s*)+")
_COMMENT_RE = re.compile(r"\(\*.*?\*\)")
_TRAILING = r"\s*(?:\(\*.*?\*\)\s*)*$"

OPENER_RE = re.compile(r"^IF\b.*\bTHEN" + _TRAILING, re.IGNORECASE)
CLOSER_RE = re.compile(r"^END_IF\s*;?" + _TRAILING, re.IGNORECASE)
BRANCH_RE = re.compile(r"^(?:ELSIF\b|ELSE\b)", re.IGNORECASE)
BOILERPLATE_RE = re.compile(
    r"^(?:IF\b|ELSIF\b|ELSE\b|END_IF\b|WHILE\b|END_WHILE\b|FOR\b|END_FOR\b|"
    r"REPEAT\b|UNTIL\b|END_REPEAT\b|CASE\b|END_CASE\b|VAR\b|END_VAR\b)",
    re.IGNORECASE,
)


def code_of(trimmed: str) -> str:
    """Strip leading non-qualifier comments from an already trimmed line."""
    return _LEADING_COMMENTS_RE.sub("", trimmed)


def strip_comments(text: str) -> str:
    return _COMMENT_RE.sub("", text).strip()


def is_opener(code: str) -> bool:
    """A multi-line conditional opener: the line ends right after THEN."""
    return bool(OPENER_RE.match(code))


def is_closer(code: str) -> bool:
    return bool(CLOSER_RE.match(code))


@dataclass
class BlockScan:
    """
    Result of scanning forward from a multi-line IF opener.

    Properties:
        start: Opener line index
        end: Last line scanned (the matching END_IF when closed)
        target: Last known step assigned to the state variable at depth >= 1
        closed: True when depth returned to zero within the bound
    """

    start: int
    end: int
    target: Optional[str]
    closed: bool

    @property
    def is_transition(self) -> bool:
        return self.closed and self.target is not None

    @property
    def overflowed(self) -> bool:
        """An assignment was seen but the block never closed."""
        return not self.closed and self.target is not None


def scan_block(lines: List[str], start: int, find_target: Callable[[str], Optional[str]],
               limit: int = config.BLOCK_SCAN_LIMIT) -> BlockScan:
    """
    Scan from the opener at `start` to its matching END_IF.

    Args:
        lines: All lines of the snapshot
        start: Index of a line for which is_opener() holds
        find_target: Returns the known step a line assigns, or None
        limit: Maximum number of lines examined after the opener

    Returns:
        BlockScan; `closed` is False when the bound or end-of-file was hit
    """
    depth = 1
    target: Optional[str] = None
    j = start
    last = min(len(lines) - 1, start + max(0, limit))
    while j < last:
        j += 1
        code = code_of(lines[j].strip())
        if is_opener(code):
            depth += 1
        elif is_closer(code):
            depth -= 1
        if depth >= 1:
            found = find_target(strip_comments(code))
            if found:
                target = found
        if depth == 0:
            return BlockScan(start, j, target, True)
    return BlockScan(start, j, target, False)


def max_nesting(lines: List[str]) -> int:
    """Deepest multi-line IF nesting reached across `lines`."""
    depth = 0
    deepest = 0
    for line in lines:
        code = code_of(line.strip())
        if is_opener(code):
            depth += 1
            deepest = max(deepest, depth)
        elif is_closer(code):
            depth = max(0, depth - 1)
    return deepest
