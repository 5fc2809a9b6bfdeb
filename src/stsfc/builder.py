"""
Graph builder (raw Structured Text -> SfcGraph).

Composes the detector, the constant table and the transition matchers into
the full step / transition / action graph. Every element keeps the line
span it was recognised from, tied to the snapshot of the parsed text.

Walk:
    - A step header "(IF|ELSIF) var = STATE_X THEN" closes the previous step
      at the prior line and opens STATE_X.
    - Nesting depth is tracked so a step closes only when an END_IF drops
      below its own chain's depth, or at a chain-level ELSE/ELSIF.
    - Inside a step each code line is offered to the transition matchers,
      then classified as action text.

parse_sfc never raises on arbitrary input: text without step declarations
yields an empty graph.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from stsfc import config
from stsfc.block_matcher import BOILERPLATE_RE, BRANCH_RE, code_of, is_closer, is_opener
from stsfc.matchers import MatchContext, TransitionMatch, match_transition
from stsfc.model import (
    Action,
    ScanOverflow,
    SfcGraph,
    Step,
    StepKind,
    TextSnapshot,
    Transition,
)
from stsfc.scanner import (
    assignment_targets,
    build_constant_table,
    detect_initial_steps,
    detect_state_variable,
)

logger = logging.getLogger(__name__)

QUALIFIER_RE = re.compile(r"^\(\*\s*Q\s*:\s*([A-Za-z0-9]+)(?:\s+T\s*:\s*([^\s*]+))?\s*\*\)\s*", re.IGNORECASE)


def step_label(step_id: str, prefix: str = config.STEP_PREFIX) -> str:
    """Display label: the identifier without its step prefix."""
    if step_id.upper().startswith(prefix.upper()) and len(step_id) > len(prefix):
        return step_id[len(prefix):]
    return step_id


@dataclass
class _OpenAction:
    qualifier_code: str
    duration: Optional[str]
    start: int
    last: int
    body: List[str] = field(default_factory=list)


class _GraphWalker:
    """Single pass over the snapshot, filling in the graph's steps."""

    def __init__(self, snapshot: TextSnapshot, graph: SfcGraph, ctx: MatchContext) -> None:
        self.snapshot = snapshot
        self.graph = graph
        self.ctx = ctx
        self.by_id: Dict[str, Step] = {s.id: s for s in graph.steps}
        self.current: Optional[Step] = None
        self.current_start = 0
        self.chain_depth = 0
        self.if_depth = 0
        self.priority_counter = 1
        self.action: Optional[_OpenAction] = None
        self.in_comment = False

    def run(self) -> None:
        lines = self.snapshot.lines
        i = 0
        while i < len(lines):
            i = self._visit(i) + 1
        if self.current is not None:
            self._close_step(len(lines))

    # ---------- step lifecycle ----------

    def _open_step(self, step: Step, index: int) -> None:
        self.current = step
        self.current_start = index
        self.chain_depth = self.if_depth
        self.priority_counter = 1

    def _close_step(self, stop: int) -> None:
        step = self.current
        if step is None:
            return
        self._close_action()
        start = self.current_start
        step.span = self.snapshot.span(start, max(start + 1, stop))
        self.current = None

    # ---------- actions ----------

    def _close_action(self) -> None:
        act = self.action
        if act is None or self.current is None:
            self.action = None
            return
        self.current.actions.append(Action(
            qualifier_code=act.qualifier_code,
            duration=act.duration,
            body="\n".join(act.body),
            line_index=act.start,
            span=self.snapshot.span(act.start, act.last + 1),
        ))
        self.action = None

    def _classify_action(self, index: int, trimmed: str, code: str) -> None:
        qualifier = QUALIFIER_RE.match(trimmed)
        if qualifier:
            self._close_action()
            self.action = _OpenAction(
                qualifier_code=qualifier.group(1).upper(),
                duration=qualifier.group(2),
                start=index,
                last=index,
            )
            remainder = trimmed[qualifier.end():].strip()
            if remainder:
                self.action.body.append(remainder)
            return
        if BOILERPLATE_RE.match(code):
            if self.action is not None:
                self.action.last = index
            return
        if self.action is None:
            self.action = _OpenAction(qualifier_code="N", duration=None, start=index, last=index)
        self.action.body.append(code)
        self.action.last = index

    # ---------- transitions ----------

    def _add_transition(self, found: TransitionMatch) -> None:
        step = self.current
        if step is None:
            return
        self._close_action()
        if found.priority is not None:
            priority, explicit = found.priority, True
        else:
            priority, explicit = self.priority_counter, False
            self.priority_counter += 1
        step.transitions.append(Transition(
            target=found.target,
            condition=found.condition,
            priority=priority,
            explicit_priority=explicit,
            span=self.snapshot.span(found.start, found.end + 1),
            kind=found.kind,
        ))

    def _drain_overflows(self) -> None:
        step_id = self.current.id if self.current is not None else ""
        for line, target, reason in self.ctx.overflows:
            self.graph.scan_overflows.append(ScanOverflow(step_id, line, target, reason))
        self.ctx.overflows.clear()

    # ---------- main dispatch ----------

    def _visit(self, i: int) -> int:
        """Process line i and return the last line consumed."""
        trimmed = self.snapshot.lines[i].strip()
        if self.in_comment:
            self.in_comment = "*)" not in trimmed
            return i
        if trimmed.startswith("(*") and "*)" not in trimmed:
            self.in_comment = True
            return i
        code = code_of(trimmed)
        if not code:
            return i

        header = self.ctx.header_re.match(code)
        if header:
            step = self.by_id.get(self.graph.constants.resolve(header.group(2)) or "")
            if step is not None and step.span is None and step is not self.current:
                if self.current is not None:
                    self._close_step(i)
                if header.group(1).upper() == "IF":
                    self.if_depth += 1
                self._open_step(step, i)
                return i
            logger.debug("Ignoring repeated or unknown step header on line %d", i)

        if self.current is not None:
            chain_level = self.if_depth <= self.chain_depth
            if chain_level and (is_closer(code) or (BRANCH_RE.match(code) and self.if_depth == self.chain_depth)):
                self._close_step(i)
            else:
                found = match_transition(self.ctx, i)
                self._drain_overflows()
                if found is not None:
                    self._add_transition(found)
                    return found.end
                self._classify_action(i, trimmed, code)

        if is_opener(code):
            self.if_depth += 1
        elif is_closer(code):
            self.if_depth = max(0, self.if_depth - 1)
        return i


def parse_sfc(text: Optional[str], *, scan_limit: int = config.BLOCK_SCAN_LIMIT,
              prefix: str = config.STEP_PREFIX) -> SfcGraph:
    """
    Parse Structured Text into an SfcGraph.

    Args:
        text: Full source text
        scan_limit: Line budget for multi-line transition blocks
        prefix: Step naming prefix (default "STATE_")

    Returns:
        SfcGraph; empty (no steps) when no step declaration is found
    """
    snapshot = TextSnapshot(text)
    state_var = detect_state_variable(snapshot.text, prefix=prefix)
    constants = build_constant_table(snapshot.lines, prefix=prefix)
    graph = SfcGraph(state_variable=state_var, fingerprint=snapshot.fingerprint, constants=constants)
    if not len(constants):
        return graph

    initials = detect_initial_steps(snapshot.text, state_var, constants, prefix=prefix)
    graph.initial_step = initials[0] if initials else None
    for name, entry in constants.entries.items():
        graph.steps.append(Step(
            id=name,
            label=step_label(name, prefix),
            value=entry.value,
            kind=StepKind.INITIAL if name in initials else StepKind.ORDINARY,
            declaration_line=entry.line_index,
        ))

    for written in assignment_targets(snapshot.text, state_var, prefix=prefix):
        resolved = constants.resolve(written)
        if resolved:
            graph.referenced_targets.add(resolved)

    ctx = MatchContext(
        lines=snapshot.lines,
        state_var=state_var,
        constants=constants,
        scan_limit=scan_limit,
        prefix=prefix,
    )
    _GraphWalker(snapshot, graph, ctx).run()
    logger.debug(
        "Parsed %d steps, %d transitions (state variable %r)",
        len(graph.steps), len(graph.edges()), state_var,
    )
    return graph
