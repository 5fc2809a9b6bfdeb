"""
SFC Analyzer: well-formedness diagnostics for a recovered graph.

This module runs independent checks over an SfcGraph and the text it was
parsed from:
    - Initial-step cardinality
    - Reachability from the initial step(s) and deadlocks
    - Conditional nesting depth per step
    - Transition priority conflicts
    - Action qualifier sanity
    - Declaration hygiene (VAR-block initialisation, duplicates, dangling references)
    - Transition blocks the matcher gave up on

IMPORTANT: Analysis is read-only. It never modifies the graph or the text,
and checks do not suppress one another, except that an unreachable step
assigned anywhere in the text is not reported.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Set

from stsfc import config
from stsfc.block_matcher import max_nesting
from stsfc.builder import parse_sfc
from stsfc.model import Diagnostic, Severity, SfcGraph, TextSnapshot
from stsfc.scanner import misplaced_initializations, step_references, variables_from_code

logger = logging.getLogger(__name__)


class DiagnosticCode(Enum):
    """Stable diagnostic identifiers. Never renumber."""

    NO_INITIAL_STEP = "IEC-SFC-001"
    MULTIPLE_INITIAL_STEPS = "IEC-SFC-002"
    UNREACHABLE_STEP = "IEC-SFC-003"
    DEADLOCK = "IEC-SFC-004"
    NESTING_DEPTH = "IEC-SFC-005"
    DUPLICATE_PRIORITY = "IEC-SFC-006"
    IMPLICIT_BRANCHING = "IEC-SFC-007"
    VAR_BLOCK_INITIALIZATION = "IEC-SFC-010"
    SCAN_LIMIT_EXCEEDED = "IEC-SFC-011"
    MISSING_DURATION = "IEC-SFC-012"
    UNKNOWN_QUALIFIER = "IEC-SFC-013"
    DUPLICATE_DECLARATION = "IEC-SFC-014"
    UNDECLARED_STEP_REFERENCE = "IEC-SFC-015"
    STALE_GRAPH = "IEC-SFC-016"


def _diag(severity: Severity, code: DiagnosticCode, message: str,
          nodes: Optional[Sequence[str]] = None) -> Diagnostic:
    return Diagnostic(severity=severity, code=code.value, message=message, nodes=list(nodes or []))


def reachable_steps(graph: SfcGraph) -> Set[str]:
    """Breadth-first closure over transition targets, starting at every initial step."""
    outgoing: Dict[str, List[str]] = {s.id: [t.target for t in s.transitions] for s in graph.steps}
    visited: Set[str] = set()
    queue = deque(s.id for s in graph.initial_steps)
    while queue:
        node = queue.popleft()
        if node in visited:
            continue
        visited.add(node)
        for target in outgoing.get(node, []):
            if target not in visited:
                queue.append(target)
    return visited


def analyze_sfc(graph: SfcGraph, text: str, *,
                max_depth: int = config.MAX_NESTING_DEPTH,
                terminal_hints: Sequence[str] = config.TERMINAL_LABEL_HINTS) -> List[Diagnostic]:
    """
    Run every check over `graph`.

    Args:
        graph: Result of parse_sfc(text)
        text: The exact text the graph was parsed from
        max_depth: Nesting depth above which a step is an error
        terminal_hints: Label fragments marking deliberate terminal steps

    Returns:
        Diagnostics in check order; empty when the graph has no steps, and a
        single STALE_GRAPH error when `text` is not the text `graph` was built from
    """
    diagnostics: List[Diagnostic] = []
    if graph.is_empty():
        return diagnostics

    snapshot = TextSnapshot(text)
    if snapshot.fingerprint != graph.fingerprint:
        logger.warning("Graph fingerprint %s does not match the text (%s)", graph.fingerprint, snapshot.fingerprint)
        return [_diag(
            Severity.ERROR, DiagnosticCode.STALE_GRAPH,
            "Graph was built from a different text; re-parse before analyzing.",
        )]

    # =========================================================================
    # 1. INITIAL STEP CARDINALITY
    # =========================================================================

    initials = graph.initial_steps
    if not initials:
        diagnostics.append(_diag(
            Severity.ERROR, DiagnosticCode.NO_INITIAL_STEP,
            "No initial step detected; exactly one required.",
        ))
    elif len(initials) > 1:
        diagnostics.append(_diag(
            Severity.ERROR, DiagnosticCode.MULTIPLE_INITIAL_STEPS,
            f"Multiple initial steps detected ({len(initials)}); exactly one required.",
            [s.id for s in initials],
        ))

    # =========================================================================
    # 2. VAR BLOCK INITIALISATION
    # =========================================================================

    if misplaced_initializations(snapshot.lines, graph.state_variable):
        diagnostics.append(_diag(
            Severity.WARNING, DiagnosticCode.VAR_BLOCK_INITIALIZATION,
            "Move non-state variable initialization from the VAR block into the initial step's actions.",
        ))

    # =========================================================================
    # 3. REACHABILITY AND DEADLOCK
    # =========================================================================

    if initials:
        visited = reachable_steps(graph)
        for step in graph.steps:
            if step.id in visited or step.id in graph.referenced_targets:
                continue
            diagnostics.append(_diag(
                Severity.WARNING, DiagnosticCode.UNREACHABLE_STEP,
                f"Unreachable step: {step.label}", [step.id],
            ))

        hints = [h.lower() for h in terminal_hints]
        for step in graph.steps:
            if step.id not in visited or step.transitions:
                continue
            label = step.label.lower()
            if any(h in label for h in hints):
                continue
            diagnostics.append(_diag(
                Severity.WARNING, DiagnosticCode.DEADLOCK,
                f"Possible deadlock: step '{step.label}' has no outgoing transitions.", [step.id],
            ))

    # =========================================================================
    # 4. NESTING DEPTH
    # =========================================================================

    for step in graph.steps:
        if step.body is None:
            continue
        depth = max_nesting(snapshot.slice(step.body))
        if depth > max_depth:
            diagnostics.append(_diag(
                Severity.ERROR, DiagnosticCode.NESTING_DEPTH,
                f"Nesting depth {depth} in step '{step.label}' exceeds recommended maximum ({max_depth}).",
                [step.id],
            ))

    # =========================================================================
    # 5. PRIORITIES
    # =========================================================================

    for step in graph.steps:
        if len(step.transitions) < 2:
            continue
        priorities = [t.priority for t in step.transitions]
        if len(set(priorities)) != len(priorities):
            diagnostics.append(_diag(
                Severity.WARNING, DiagnosticCode.DUPLICATE_PRIORITY,
                f"Duplicate transition priorities in step '{step.label}'.", [step.id],
            ))
        elif not any(t.explicit_priority for t in step.transitions):
            diagnostics.append(_diag(
                Severity.INFO, DiagnosticCode.IMPLICIT_BRANCHING,
                f"Branching detected in step '{step.label}'; verify OR/AND semantics and explicit priorities.",
                [step.id],
            ))

    # =========================================================================
    # 6. ACTION QUALIFIERS
    # =========================================================================

    for step in graph.steps:
        for action in step.actions:
            if action.qualifier is None:
                diagnostics.append(_diag(
                    Severity.WARNING, DiagnosticCode.UNKNOWN_QUALIFIER,
                    f"Unknown action qualifier '{action.qualifier_code}' in step '{step.label}' "
                    f"(line {action.line_index + 1}).",
                    [step.id],
                ))
            elif action.missing_duration:
                diagnostics.append(_diag(
                    Severity.WARNING, DiagnosticCode.MISSING_DURATION,
                    f"Qualifier {action.qualifier_code} in step '{step.label}' requires a duration "
                    f"(line {action.line_index + 1}).",
                    [step.id],
                ))

    # =========================================================================
    # 7. DECLARATIONS AND REFERENCES
    # =========================================================================

    for dup in graph.constants.duplicates:
        canonical = graph.constants.resolve(dup.name) or dup.name
        diagnostics.append(_diag(
            Severity.WARNING, DiagnosticCode.DUPLICATE_DECLARATION,
            f"Step {dup.name} declared more than once (line {dup.line_index + 1}); first declaration wins.",
            [canonical],
        ))

    declared = {name.upper() for name in variables_from_code(snapshot.text)}
    declared.update(name.upper() for name in graph.constants)
    dangling = sorted(
        ref for ref in step_references(snapshot.text) if ref.upper() not in declared
    )
    if dangling:
        diagnostics.append(_diag(
            Severity.WARNING, DiagnosticCode.UNDECLARED_STEP_REFERENCE,
            f"References to undeclared steps: {', '.join(dangling)}",
        ))

    # =========================================================================
    # 8. UNRESOLVED TRANSITION BLOCKS
    # =========================================================================

    for overflow in graph.scan_overflows:
        owner = graph.get_step(overflow.step_id)
        label = owner.label if owner else overflow.step_id
        diagnostics.append(_diag(
            Severity.INFO, DiagnosticCode.SCAN_LIMIT_EXCEEDED,
            f"Block at line {overflow.line_index + 1} in step '{label}' assigns {overflow.target} "
            f"but was not closed before the {overflow.reason}; not treated as a transition.",
            [overflow.step_id] if overflow.step_id else [],
        ))

    return diagnostics


@dataclass
class SfcReport:
    """Parse + analysis summary for one text."""

    graph: SfcGraph
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def errors(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity is Severity.ERROR]

    @property
    def warnings(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity is Severity.WARNING]

    @property
    def total_steps(self) -> int:
        return len(self.graph.steps)

    @property
    def total_transitions(self) -> int:
        return len(self.graph.edges())

    @property
    def total_actions(self) -> int:
        return sum(len(s.actions) for s in self.graph.steps)


def check_source(text: str, **kwargs) -> SfcReport:
    """Parse `text` and analyze the result in one call."""
    graph = parse_sfc(text)
    return SfcReport(graph=graph, diagnostics=analyze_sfc(graph, text, **kwargs))
