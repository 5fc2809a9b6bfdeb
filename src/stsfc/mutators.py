"""
Source mutators: structural edits expressed as text -> text functions.

Every mutator re-parses the text it is given, takes positions only from that
fresh snapshot, splices the change in and returns the new text. Nothing is
cached between calls, so a caller can chain mutators freely:

    text = rename_step(text, "STATE_IDLE", "STATE_WAIT")
    text = normalize_priorities(text, "STATE_WAIT")

A request that cannot apply (unknown step, index out of range, identical
target, empty input) returns the input unchanged.

Transitions are addressed by (step identifier, ordinal index) in source order,
the same order SfcGraph exposes them in.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from stsfc import config
from stsfc.block_matcher import code_of, is_closer, is_opener, strip_comments
from stsfc.builder import parse_sfc
from stsfc.matchers import GUARD_RE, PRIORITY_RE
from stsfc.model import LineSpan, SfcGraph, Step, TextSnapshot, Transition, TransitionKind
from stsfc.scanner import find_var_block

logger = logging.getLogger(__name__)

_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_INDENT_RE = re.compile(r"^[ \t]*")
_LEADING_COMMENTS_RE = re.compile(r"^(?:\(\*.*?\*\)\s*)+")
_GUARD_SUB_RE = re.compile(r"(\bIF\s+)(.+?)(\s+THEN\b)", re.IGNORECASE)


@dataclass
class ActionLine:
    """
    One action to write into a step body.

    Properties:
        qualifier: Qualifier code (e.g. "N", "S", "L")
        body: Code for the action; several statements may be separated by newlines
        duration: Duration for time-bearing qualifiers (e.g. "T#5s" or "5s")
    """
    qualifier: str = "N"
    body: str = ""
    duration: Optional[str] = None


# =========================================================================
# HELPERS
# =========================================================================


def _indent(line: str) -> str:
    return _INDENT_RE.match(line).group(0)


def _parse(text: str) -> Tuple[TextSnapshot, SfcGraph]:
    snapshot = TextSnapshot(text)
    return snapshot, parse_sfc(snapshot.text)


def _locate(text: str, step_id: str, index: int) -> Optional[Tuple[TextSnapshot, SfcGraph, Step, Transition]]:
    """Find transition `index` of `step_id` in a fresh parse of `text`."""
    if not text or not step_id:
        return None
    snapshot, graph = _parse(text)
    step = graph.get_step(step_id)
    if step is None:
        logger.debug("No step %r in text", step_id)
        return None
    if index < 0 or index >= len(step.transitions):
        logger.debug("Step %s has no transition #%d", step.id, index)
        return None
    return snapshot, graph, step, step.transitions[index]


def _step_name(name: str, prefix: str = config.STEP_PREFIX) -> Optional[str]:
    """Turn a free-form name into a step identifier ("warm up" -> "STATE_WARM_UP")."""
    cleaned = re.sub(r"\s+", "_", (name or "").strip())
    if not cleaned:
        return None
    if not cleaned.upper().startswith(prefix.upper()):
        cleaned = prefix + cleaned.upper()
    return cleaned if _IDENT_RE.match(cleaned) else None


def _last_code_line(snapshot: TextSnapshot, span: LineSpan) -> Optional[int]:
    for index in range(span.stop - 1, span.start - 1, -1):
        if snapshot.lines[index].strip():
            return index
    return None


# =========================================================================
# RENAME / REMOVE
# =========================================================================


def rename_step(text: str, old: str, new: str) -> str:
    """
    Replace every whole-word occurrence of `old` with `new`, ignoring case.

    No scope analysis is done: the identifier is assumed unique in the text.
    Renaming onto an identifier that is already a step is refused.
    """
    if not text or not old or not new or old == new or not _IDENT_RE.match(new):
        return text
    _, graph = _parse(text)
    if new in graph.constants and graph.constants.resolve(new) != graph.constants.resolve(old):
        logger.debug("Refusing to rename %s onto existing step %s", old, new)
        return text
    pattern = re.compile(r"\b" + re.escape(old) + r"\b", re.IGNORECASE)
    return pattern.sub(lambda _: new, text)


def remove_step(text: str, step_id: str, strip_references: bool = False) -> str:
    """
    Delete a step and everything that leads into it.

    Removed:
        - The constant declaration (and any duplicate declarations)
        - The step block, header through last body line
        - Every transition of another step that only assigns it
        - Assignments of it to the state variable; a transition that also
          has side effects or other branches keeps everything else

    When the removed block opened the chain with IF and an ELSIF step
    follows, that ELSIF becomes IF. A removed sole step also takes the
    chain's END_IF with it.

    Args:
        text: Source text
        step_id: Step to remove
        strip_references: Also strip remaining whole-word occurrences

    Returns:
        New text; remaining references surface as IEC-SFC-015 on analysis
    """
    if not text or not step_id:
        return text
    snapshot, graph = _parse(text)
    step = graph.get_step(step_id)
    if step is None:
        logger.debug("remove_step: no step %r", step_id)
        return text
    lines = snapshot.lines

    deletions: List[LineSpan] = []
    if step.declaration_line is not None:
        deletions.append(snapshot.span(step.declaration_line, step.declaration_line + 1))
    for dup in graph.constants.duplicates:
        if dup.name.upper() == step.id.upper():
            deletions.append(snapshot.span(dup.line_index, dup.line_index + 1))

    rewrites: List[Tuple[LineSpan, List[str]]] = []
    if step.span is not None:
        deletions.append(step.span)
        header = code_of(lines[step.span.start].strip())
        following = step.span.stop
        if re.match(r"^IF\b", header, re.IGNORECASE) and following < len(lines):
            next_code = code_of(lines[following].strip())
            if re.match(r"^ELSIF\b", next_code, re.IGNORECASE):
                rewritten = re.sub(r"\bELSIF\b", "IF", lines[following], count=1, flags=re.IGNORECASE)
                rewrites.append((snapshot.span(following, following + 1), [rewritten]))
            elif is_closer(next_code):
                deletions.append(snapshot.span(following, following + 1))

    for other in graph.steps:
        if other is step:
            continue
        for transition in other.transitions:
            if transition.target == step.id and _only_assigns(snapshot, transition, graph.state_variable):
                deletions.append(transition.span)

    edits = [(span, []) for span in snapshot.merge(deletions)]
    edits.extend(r for r in rewrites if not any(r[0].overlaps(span) for span, _ in edits))
    out = snapshot.replace(edits)
    out = _drop_assignments(out, graph.state_variable, step.id)
    if strip_references:
        out = re.sub(r"\b" + re.escape(step.id) + r"\b", "", out, flags=re.IGNORECASE)
    return out


def _only_assigns(snapshot: TextSnapshot, transition: Transition, state_var: str) -> bool:
    """
    True when the transition's lines do nothing but move to its target.

    Anything else (side effects, an ELSE leading elsewhere) stays in place
    and only the assignment itself is dropped.
    """
    var, sid = re.escape(state_var), re.escape(transition.target)
    assignment = var + r"\s*:=\s*" + sid + r"\s*;?"
    code = [strip_comments(line) for line in snapshot.slice(transition.span)]
    code = [line for line in code if line]
    if len(code) == 1:
        return bool(re.match(
            r"^(?:IF\s+.+?\s+THEN\s+" + assignment + r"\s*END_IF\s*;?|" + assignment + r")$",
            code[0], re.IGNORECASE,
        ))
    if len(code) == 3:
        return (is_opener(code[0]) and is_closer(code[2])
                and bool(re.match(r"^" + assignment + r"$", code[1], re.IGNORECASE)))
    return False


def _drop_assignments(text: str, state_var: str, step_id: str) -> str:
    var, sid = re.escape(state_var), re.escape(step_id)
    whole = re.compile(r"^\s*" + var + r"\s*:=\s*" + sid + r"\s*;?\s*(?:\(\*.*?\*\)\s*)*$", re.IGNORECASE)
    partial = re.compile(r"\b" + var + r"\s*:=\s*" + sid + r"\b\s*;?", re.IGNORECASE)
    kept = []
    for line in text.split("\n"):
        if whole.match(line):
            continue
        kept.append(partial.sub("", line))
    return "\n".join(kept)


# =========================================================================
# TRANSITION EDITS
# =========================================================================


def reorder_transitions(text: str, step_id: str, from_index: int, to_index: int) -> str:
    """
    Move transition `from_index` of a step to position `to_index`.

    Implicit priorities follow source order, so this also reorders them.
    The blocks are reinserted together at the earliest original position.
    """
    located = _locate(text, step_id, from_index)
    if located is None:
        return text
    snapshot, _, step, _ = located
    count = len(step.transitions)
    if to_index < 0 or to_index >= count or to_index == from_index:
        return text
    blocks = [snapshot.slice(t.span) for t in step.transitions]
    order = list(range(count))
    order.insert(to_index, order.pop(from_index))
    spans = [t.span for t in step.transitions]
    merged: List[str] = []
    for position in order:
        merged.extend(blocks[position])
    edits = [(spans[0], merged)] + [(span, []) for span in spans[1:]]
    return snapshot.replace(edits)


def retarget_transition(text: str, step_id: str, index: int, new_target: str) -> str:
    """Point transition `index` of a step at another declared step."""
    located = _locate(text, step_id, index)
    if located is None:
        return text
    snapshot, graph, _, transition = located
    target = graph.constants.resolve(new_target)
    if target is None or target == transition.target:
        return text
    assign = re.compile(
        r"(\b" + re.escape(graph.state_variable) + r"\s*:=\s*)" + re.escape(transition.target) + r"\b",
        re.IGNORECASE,
    )
    block = snapshot.slice(transition.span)
    # the builder takes a block's last assignment as its target
    for offset in range(len(block) - 1, -1, -1):
        line = block[offset]
        if assign.search(line):
            block[offset] = assign.sub(lambda m: m.group(1) + target, line, count=1)
            return snapshot.replace([(transition.span, block)])
    return text


def set_transition_priority(text: str, step_id: str, index: int, priority: int) -> str:
    """
    Give transition `index` an explicit priority.

    An existing (* PRI: n *) marker inside the transition is rewritten,
    otherwise a marker is inserted before the first code token.
    """
    if priority is None or priority < 0:
        return text
    located = _locate(text, step_id, index)
    if located is None:
        return text
    snapshot, _, _, transition = located
    if transition.explicit_priority and transition.priority == priority:
        return text
    marker = f"(* PRI: {priority} *)"
    block = snapshot.slice(transition.span)
    for offset, line in enumerate(block):
        if PRIORITY_RE.search(line):
            block[offset] = PRIORITY_RE.sub(lambda _: marker, line, count=1)
            break
    else:
        first = block[0]
        indent = _indent(first)
        block[0] = f"{indent}{marker} {first[len(indent):]}"
    return snapshot.replace([(transition.span, block)])


def normalize_priorities(text: str, step_id: str, step_size: int = config.DEFAULT_PRIORITY_STEP) -> str:
    """Rewrite a step's priorities to step_size, 2*step_size, ... in source order."""
    if not text or step_size <= 0:
        return text
    _, graph = _parse(text)
    step = graph.get_step(step_id)
    if step is None or not step.transitions:
        return text
    out = text
    for position in range(len(step.transitions)):
        out = set_transition_priority(out, step.id, position, (position + 1) * step_size)
    return out


def set_transition_condition(text: str, step_id: str, index: int, condition: str) -> str:
    """
    Replace the guard of transition `index`.

    A direct assignment gains a guard by being wrapped in a one-line IF.
    """
    cond = (condition or "").strip()
    if not cond:
        return text
    located = _locate(text, step_id, index)
    if located is None:
        return text
    snapshot, _, _, transition = located
    if cond == transition.condition:
        return text
    block = snapshot.slice(transition.span)

    if transition.kind is TransitionKind.DIRECT:
        line = block[-1]
        indent = _indent(line)
        rest = line[len(indent):]
        leading = _LEADING_COMMENTS_RE.match(rest)
        prefix = leading.group(0) if leading else ""
        statement = rest[len(prefix):].rstrip()
        if ";" not in statement:
            statement += ";"
        block[-1] = f"{indent}{prefix}IF {cond} THEN {statement} END_IF;"
        return snapshot.replace([(transition.span, block)])

    for offset, line in enumerate(block):
        if GUARD_RE.match(code_of(line.strip())):
            block[offset] = _GUARD_SUB_RE.sub(lambda m: m.group(1) + cond + m.group(3), line, count=1)
            return snapshot.replace([(transition.span, block)])
    return text


def add_transition(text: str, source: str, target: str, condition: str = "TRUE") -> str:
    """Append a transition from `source` to `target` after the source step's last line."""
    if not text:
        return text
    snapshot, graph = _parse(text)
    step = graph.get_step(source)
    dest = graph.constants.resolve(target)
    cond = (condition or "").strip()
    if step is None or step.span is None or dest is None or not cond:
        logger.debug("add_transition: cannot add %s -> %s", source, target)
        return text

    header_indent = _indent(snapshot.lines[step.span.start])
    last = _last_code_line(snapshot, step.body)
    if last is None:
        indent = header_indent + config.BODY_INDENT
        position = step.span.start + 1
    else:
        indent = _indent(next(
            snapshot.lines[i] for i in range(step.body.start, step.body.stop) if snapshot.lines[i].strip()
        ))
        position = last + 1

    assignment = f"{graph.state_variable} := {dest};"
    if cond.upper() == "TRUE":
        new_line = f"{indent}{assignment}"
    else:
        new_line = f"{indent}IF {cond} THEN {assignment} END_IF;"
    return snapshot.insert(position, [new_line])


def insert_step_between(text: str, step_id: str, index: int, new_step_id: str) -> str:
    """
    Split transition `index` of a step with a fresh intermediate step.

    The new step transitions unconditionally to the old target and the
    original transition is retargeted at it.
    """
    located = _locate(text, step_id, index)
    if located is None:
        return text
    _, graph, step, transition = located
    new_id = _step_name(new_step_id)
    if new_id is None or new_id in graph.constants:
        return text
    with_step = add_step(text, new_id, [f"{graph.state_variable} := {transition.target};"])
    if with_step == text:
        return text
    return retarget_transition(with_step, step.id, index, new_id)


# =========================================================================
# STEP EDITS
# =========================================================================


def add_step(text: str, name: str, body: Optional[Sequence[str]] = None) -> str:
    """
    Declare a new step and append its block to the step chain.

    The value is one more than the largest declared value (0 for the first
    step). The declaration goes after the last step declaration, or just
    before END_VAR when there is none; without a VAR block nothing changes.

    Args:
        text: Source text
        name: Identifier, or a bare name that gets the step prefix
        body: Body lines, without indentation; defaults to an empty N action

    Returns:
        New text
    """
    snapshot, graph = _parse(text)
    step_id = _step_name(name)
    if step_id is None or step_id in graph.constants:
        logger.debug("add_step: %r is invalid or already declared", name)
        return text
    lines = snapshot.lines
    highest = graph.constants.max_value()
    value = 0 if highest is None else highest + 1

    if len(graph.constants):
        last_decl = max(e.line_index for e in graph.constants.entries.values())
        decl_at = last_decl + 1
        decl_indent = _indent(lines[last_decl])
    else:
        block = find_var_block(lines)
        if block is None:
            logger.debug("add_step: no VAR block to declare %s in", step_id)
            return text
        decl_at = block[1] + 1
        decl_indent = "  "
    declaration = [f"{decl_indent}{step_id} : INT := {value};"]

    body_lines = list(body) if body else ["(* Q:N *) ;"]
    var = graph.state_variable
    placed = [s for s in graph.steps if s.span is not None]
    if placed:
        last = max(placed, key=lambda s: s.span.stop)
        header_indent = _indent(lines[last.span.start])
        block_at = last.span.stop
        new_block = [f"{header_indent}ELSIF {var} = {step_id} THEN"]
        new_block += [f"{header_indent}{config.BODY_INDENT}{line}" for line in body_lines]
    else:
        block_at = len(lines)
        new_block = ["", f"IF {var} = {step_id} THEN"]
        new_block += [f"{config.BODY_INDENT}{line}" for line in body_lines]
        new_block.append("END_IF;")

    if block_at == decl_at:
        return snapshot.insert(decl_at, declaration + new_block)
    return snapshot.replace([
        (snapshot.span(decl_at, decl_at), declaration),
        (snapshot.span(block_at, block_at), new_block),
    ])


def format_action(action: ActionLine, indent: str = "") -> List[str]:
    """Render an action as "(* Q:X [T:t] *) code;" lines."""
    qualifier = (action.qualifier or "N").strip().upper()
    marker = f"(* Q:{qualifier}"
    if action.duration:
        duration = action.duration.strip()
        if not duration.upper().startswith("T#"):
            duration = "T#" + duration
        marker += f" T:{duration}"
    marker += " *)"
    statements = [line.strip() for line in (action.body or "").split("\n") if line.strip()] or [""]
    if not statements[-1].endswith(";"):
        statements[-1] += ";"
    rendered = [f"{indent}{marker} {statements[0]}"]
    rendered += [f"{indent}{line}" for line in statements[1:]]
    return rendered


def replace_step_actions(text: str, step_id: str, actions: Sequence[ActionLine]) -> str:
    """
    Rewrite a step body as the given actions followed by its existing transitions.

    Transition blocks are carried over verbatim, in source order.
    """
    if not text:
        return text
    snapshot, graph = _parse(text)
    step = graph.get_step(step_id)
    if step is None or step.span is None:
        return text
    body = step.body
    header_indent = _indent(snapshot.lines[step.span.start])
    indent = header_indent + config.BODY_INDENT

    new_body: List[str] = []
    for action in actions:
        new_body.extend(format_action(action, indent))
    transition_lines = [line for t in step.transitions for line in snapshot.slice(t.span)]
    if new_body and transition_lines:
        new_body.append("")
    new_body.extend(transition_lines)

    last = _last_code_line(snapshot, body)
    if last is not None:
        new_body.extend(snapshot.lines[last + 1:body.stop])
    if new_body == snapshot.slice(body):
        return text
    return snapshot.replace([(body, new_body)])
