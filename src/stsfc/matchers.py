"""
Transition matchers.

Each matcher looks at one line of an open step and either recognises a
transition starting there or returns None. They share one signature,

    matcher(context, line_index) -> Optional[TransitionMatch]

so the graph builder can try them in a fixed order without knowing how any
of them works. A grammar-based recognizer can replace this module as long
as it keeps that contract.

Order matters:
    1. inline   IF guard THEN var := STATE_X; END_IF;
    2. block    IF guard THEN ... var := STATE_X; ... END_IF;
    3. direct   var := STATE_X;
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

from stsfc import config
from stsfc.block_matcher import code_of, is_opener, scan_block, strip_comments
from stsfc.model import ConstantTable, TransitionKind

PRIORITY_RE = re.compile(r"\(\*\s*PRI(?:ORITY)?\s*:\s*(\d+)\s*\*\)", re.IGNORECASE)
PRIORITY_LINE_RE = re.compile(r"^\(\*\s*PRI(?:ORITY)?\s*:\s*\d+\s*\*\)$", re.IGNORECASE)
GUARD_RE = re.compile(r"^IF\s+(.+?)\s+THEN\b", re.IGNORECASE)


@dataclass
class TransitionMatch:
    """A recognised transition; `start`/`end` are inclusive line indices."""
    target: str
    condition: str
    start: int
    end: int
    kind: TransitionKind
    priority: Optional[int] = None


@dataclass
class MatchContext:
    """
    Everything a matcher may look at for one parse.

    `overflows` collects (line, target, reason) for multi-line blocks that
    assigned a known step but did not close within `scan_limit`.
    """

    lines: List[str]
    state_var: str
    constants: ConstantTable
    scan_limit: int = config.BLOCK_SCAN_LIMIT
    prefix: str = config.STEP_PREFIX
    overflows: List[Tuple[int, str, str]] = field(default_factory=list)

    def __post_init__(self) -> None:
        var = re.escape(self.state_var)
        step = re.escape(self.prefix) + r"\w+"
        self.header_re = re.compile(
            r"^(IF|ELSIF)\s+" + var + r"\s*=\s*(" + step + r")\s+THEN\s*(?:\(\*.*?\*\)\s*)*$",
            re.IGNORECASE,
        )
        self.inline_re = re.compile(
            r"^IF\s+(.+?)\s+THEN\s+" + var + r"\s*:=\s*(" + step + r")\s*;\s*END_IF\s*;",
            re.IGNORECASE,
        )
        self.direct_re = re.compile(r"^" + var + r"\s*:=\s*(" + step + r")\b", re.IGNORECASE)
        self.assign_re = re.compile(r"\b" + var + r"\s*:=\s*(" + step + r")\b", re.IGNORECASE)

    def assigned_step(self, code: str) -> Optional[str]:
        """The known step a line assigns to the state variable, if any."""
        m = self.assign_re.search(code)
        return self.constants.resolve(m.group(1)) if m else None

    def code_at(self, index: int) -> str:
        return code_of(self.lines[index].strip())


TransitionMatcher = Callable[[MatchContext, int], Optional[TransitionMatch]]


def _extend_to_marker_line(ctx: MatchContext, start: int) -> int:
    """Include a stand-alone (* PRI: n *) line directly above the transition."""
    if start > 0 and PRIORITY_LINE_RE.match(ctx.lines[start - 1].strip()):
        return start - 1
    return start


def _priority_in(ctx: MatchContext, start: int, end: int) -> Optional[int]:
    m = PRIORITY_RE.search("\n".join(ctx.lines[start:end + 1]))
    return int(m.group(1)) if m else None


def _build(ctx: MatchContext, target: str, condition: str, start: int, end: int,
           kind: TransitionKind) -> TransitionMatch:
    start = _extend_to_marker_line(ctx, start)
    return TransitionMatch(
        target=target,
        condition=strip_comments(condition),
        start=start,
        end=end,
        kind=kind,
        priority=_priority_in(ctx, start, end),
    )


def match_inline(ctx: MatchContext, index: int) -> Optional[TransitionMatch]:
    m = ctx.inline_re.match(ctx.code_at(index))
    if not m:
        return None
    target = ctx.constants.resolve(m.group(2))
    if target is None:
        return None
    return _build(ctx, target, m.group(1), index, index, TransitionKind.INLINE)


def match_block(ctx: MatchContext, index: int) -> Optional[TransitionMatch]:
    code = ctx.code_at(index)
    if not is_opener(code):
        return None
    guard = GUARD_RE.match(code)
    if not guard:
        return None
    scan = scan_block(ctx.lines, index, ctx.assigned_step, ctx.scan_limit)
    if scan.overflowed:
        reason = "end of file" if scan.end >= len(ctx.lines) - 1 else f"{ctx.scan_limit}-line scan limit"
        ctx.overflows.append((index, scan.target or "", reason))
        return None
    if not scan.is_transition:
        return None
    return _build(ctx, scan.target or "", guard.group(1), index, scan.end, TransitionKind.BLOCK)


def match_direct(ctx: MatchContext, index: int) -> Optional[TransitionMatch]:
    m = ctx.direct_re.match(ctx.code_at(index))
    if not m:
        return None
    target = ctx.constants.resolve(m.group(1))
    if target is None:
        return None
    return _build(ctx, target, "TRUE", index, index, TransitionKind.DIRECT)


TRANSITION_MATCHERS: Sequence[TransitionMatcher] = (match_inline, match_block, match_direct)


def match_transition(ctx: MatchContext, index: int,
                     matchers: Sequence[TransitionMatcher] = TRANSITION_MATCHERS) -> Optional[TransitionMatch]:
    """Try each matcher in order; the first hit wins."""
    for matcher in matchers:
        found = matcher(ctx, index)
        if found is not None:
            return found
    return None
