"""
Serialization helpers for recovered SFC graphs and diagnostics.

Provides lossless JSON/YAML round-trip via intermediate dict representation.
Spans are written as [start, stop] pairs; the snapshot fingerprint is stored
once on the graph and restored onto every span.
"""
from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import yaml

from stsfc.model import (
    Action,
    ConstantTable,
    Diagnostic,
    LineSpan,
    ScanOverflow,
    SfcGraph,
    Step,
    StepKind,
    Transition,
    TransitionKind,
)


def span_to_list(span: Optional[LineSpan]) -> Optional[List[int]]:
    if span is None:
        return None
    return [span.start, span.stop]


def span_from_list(d: Optional[List[int]], fingerprint: str) -> Optional[LineSpan]:
    if d is None:
        return None
    return LineSpan(int(d[0]), int(d[1]), fingerprint)


def action_to_dict(a: Action) -> Dict[str, Any]:
    return {
        "qualifier": a.qualifier_code,
        "duration": a.duration,
        "body": a.body,
        "line": a.line_index,
        "span": span_to_list(a.span),
    }


def action_from_dict(d: Dict[str, Any], fingerprint: str) -> Action:
    return Action(
        qualifier_code=d.get("qualifier", "N"),
        duration=d.get("duration"),
        body=d.get("body", ""),
        line_index=d.get("line", 0),
        span=span_from_list(d["span"], fingerprint),
    )


def transition_to_dict(t: Transition) -> Dict[str, Any]:
    return {
        "target": t.target,
        "condition": t.condition,
        "priority": t.priority,
        "explicit_priority": t.explicit_priority,
        "kind": t.kind.value,
        "span": span_to_list(t.span),
    }


def transition_from_dict(d: Dict[str, Any], fingerprint: str) -> Transition:
    return Transition(
        target=d["target"],
        condition=d.get("condition", "TRUE"),
        priority=d["priority"],
        explicit_priority=d.get("explicit_priority", False),
        kind=TransitionKind(d.get("kind", TransitionKind.BLOCK.value)),
        span=span_from_list(d["span"], fingerprint),
    )


def step_to_dict(s: Step) -> Dict[str, Any]:
    return {
        "id": s.id,
        "label": s.label,
        "value": s.value,
        "kind": s.kind.value,
        "declaration_line": s.declaration_line,
        "span": span_to_list(s.span),
        "actions": [action_to_dict(a) for a in s.actions],
        "transitions": [transition_to_dict(t) for t in s.transitions],
    }


def step_from_dict(d: Dict[str, Any], fingerprint: str) -> Step:
    return Step(
        id=d["id"],
        label=d.get("label", d["id"]),
        value=d["value"],
        kind=StepKind(d.get("kind", StepKind.ORDINARY.value)),
        declaration_line=d.get("declaration_line"),
        span=span_from_list(d.get("span"), fingerprint),
        actions=[action_from_dict(a, fingerprint) for a in d.get("actions", [])],
        transitions=[transition_from_dict(t, fingerprint) for t in d.get("transitions", [])],
    )


def constants_to_dict(table: ConstantTable) -> Dict[str, Any]:
    return {
        "entries": [{"name": e.name, "value": e.value, "line": e.line_index} for e in table.entries.values()],
        "duplicates": [{"name": e.name, "value": e.value, "line": e.line_index} for e in table.duplicates],
    }


def constants_from_dict(d: Dict[str, Any]) -> ConstantTable:
    table = ConstantTable()
    for e in d.get("entries", []) + d.get("duplicates", []):
        table.add(e["name"], e["value"], e.get("line", 0))
    return table


def overflow_to_dict(o: ScanOverflow) -> Dict[str, Any]:
    return {"step": o.step_id, "line": o.line_index, "target": o.target, "reason": o.reason}


def overflow_from_dict(d: Dict[str, Any]) -> ScanOverflow:
    return ScanOverflow(step_id=d.get("step", ""), line_index=d["line"], target=d.get("target", ""),
                        reason=d.get("reason", ""))


def graph_to_dict(g: SfcGraph) -> Dict[str, Any]:
    return {
        "state_variable": g.state_variable,
        "fingerprint": g.fingerprint,
        "initial_step": g.initial_step,
        "constants": constants_to_dict(g.constants),
        "steps": [step_to_dict(s) for s in g.steps],
        "referenced_targets": sorted(g.referenced_targets),
        "scan_overflows": [overflow_to_dict(o) for o in g.scan_overflows],
    }


def graph_from_dict(d: Dict[str, Any]) -> SfcGraph:
    fingerprint = d["fingerprint"]
    g = SfcGraph(state_variable=d.get("state_variable", ""), fingerprint=fingerprint)
    g.constants = constants_from_dict(d.get("constants", {}))
    g.steps = [step_from_dict(s, fingerprint) for s in d.get("steps", [])]
    g.initial_step = d.get("initial_step")
    g.referenced_targets = set(d.get("referenced_targets", []))
    g.scan_overflows = [overflow_from_dict(o) for o in d.get("scan_overflows", [])]
    return g


def diagnostic_to_dict(diag: Diagnostic) -> Dict[str, Any]:
    return {
        "severity": diag.severity.value,
        "code": diag.code,
        "message": diag.message,
        "nodes": list(diag.nodes),
    }


def diagnostics_to_dict(diagnostics: List[Diagnostic]) -> Dict[str, Any]:
    counts: Dict[str, int] = {}
    for diag in diagnostics:
        counts[diag.severity.value] = counts.get(diag.severity.value, 0) + 1
    return {"counts": counts, "diagnostics": [diagnostic_to_dict(d) for d in diagnostics]}


def graph_to_json(g: SfcGraph) -> str:
    return json.dumps(graph_to_dict(g), sort_keys=True)


def graph_from_json(s: str) -> SfcGraph:
    d = json.loads(s)
    return graph_from_dict(d)


def graph_to_yaml(g: SfcGraph) -> str:
    return yaml.safe_dump(graph_to_dict(g), sort_keys=False)


def graph_from_yaml(s: str) -> SfcGraph:
    d = yaml.safe_load(s)
    return graph_from_dict(d)
