"""
Heuristic detector and constant table builder.

These functions read raw text only; they never look at a graph. They are
the recognition layer the graph builder, analyzer and mutators share:

    - detect_state_variable: which identifier holds the current step
    - build_constant_table: every STATE_* : INT := n; declaration
    - detect_initial_steps: which step(s) the machine starts in
    - misplaced_initializations: VAR-block lines that initialise non-steps
    - assignment_targets: every step assigned to the state variable

All of them are total: arbitrary text gives a default or empty result.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Pattern, Set, Tuple

from stsfc import config
from stsfc.model import ConstantTable

logger = logging.getLogger(__name__)

_IDENT = r"[A-Za-z_][A-Za-z0-9_]*"
_KEYWORDS = {"IF", "ELSIF", "ELSE", "THEN", "END_IF", "AND", "OR", "NOT", "XOR", "INT", "TRUE", "FALSE"}

_VAR_BLOCK_RE = re.compile(r"^\s*VAR\b(.*?)^\s*END_VAR\b", re.IGNORECASE | re.MULTILINE | re.DOTALL)
_VAR_DECL_RE = re.compile(r"^\s*(" + _IDENT + r")\s*:")


def _step_ident(prefix: str = config.STEP_PREFIX) -> str:
    return re.escape(prefix) + r"\w+"


def _constant_re(prefix: str) -> Pattern[str]:
    return re.compile(
        r"^\s*(" + _step_ident(prefix) + r")\s*:\s*INT\s*:=\s*(-?\d+)\s*;",
        re.IGNORECASE,
    )


def detect_state_variable(text: str, prefix: str = config.STEP_PREFIX,
                          default: str = config.DEFAULT_STATE_VARIABLE) -> str:
    """
    Find the identifier that holds the current step.

    Looks first for a comparison "(IF|ELSIF) var = STATE_*", then for an
    assignment "var := STATE_*" at statement start. The first match wins;
    with neither present the conventional default is returned.
    """
    if not text:
        return default
    step = _step_ident(prefix)
    comparison = re.search(
        r"\b(?:IF|ELSIF)\s+(" + _IDENT + r")\s*=\s*" + step, text, re.IGNORECASE
    )
    if comparison and comparison.group(1).upper() not in _KEYWORDS:
        return comparison.group(1)
    assignment = re.compile(
        r"(?:^|;|\bTHEN\b|\bELSE\b)\s*(" + _IDENT + r")\s*:=\s*" + step,
        re.IGNORECASE | re.MULTILINE,
    )
    for m in assignment.finditer(text):
        if m.group(1).upper() not in _KEYWORDS:
            return m.group(1)
    logger.debug("No state variable found, falling back to %r", default)
    return default


def build_constant_table(lines: List[str], prefix: str = config.STEP_PREFIX) -> ConstantTable:
    """Collect every `STATE_X : INT := n;` declaration, first one wins."""
    table = ConstantTable()
    regex = _constant_re(prefix)
    for index, line in enumerate(lines):
        m = regex.match(line)
        if not m:
            continue
        if not table.add(m.group(1), int(m.group(2)), index):
            logger.debug("Duplicate step declaration %s on line %d", m.group(1), index)
    return table


def detect_initial_steps(text: str, state_var: str, table: ConstantTable,
                         sentinel: str = config.UNINITIALIZED_SENTINEL,
                         prefix: str = config.STEP_PREFIX) -> List[str]:
    """
    Determine the initial step(s).

    Every "IF var = undefined THEN var := STATE_X" idiom naming a known step
    contributes, in text order. Without any idiom, the state variable's
    declared default is matched against the table (by value, or by name
    when the default is itself a step identifier).

    Returns:
        Canonical step identifiers, possibly empty
    """
    if not text or not len(table):
        return []
    var = re.escape(state_var)
    idiom = re.compile(
        r"\bIF\s+" + var + r"\s*=\s*" + re.escape(sentinel) + r"\s+THEN\s+"
        + var + r"\s*:=\s*(" + _step_ident(prefix) + r")",
        re.IGNORECASE,
    )
    found: List[str] = []
    for m in idiom.finditer(text):
        name = table.resolve(m.group(1))
        if name and name not in found:
            found.append(name)
    if found:
        return found

    default_re = re.compile(
        r"^\s*" + var + r"\s*:\s*INT\s*:=\s*(-?\d+|" + _step_ident(prefix) + r")\s*;",
        re.IGNORECASE | re.MULTILINE,
    )
    m = default_re.search(text)
    if not m:
        logger.debug("No initial step detected for state variable %r", state_var)
        return []
    default = m.group(1)
    named = table.resolve(default)
    if named:
        return [named]
    try:
        by_value = table.name_for_value(int(default))
    except ValueError:
        by_value = None
    return [by_value] if by_value else []


def find_var_block(lines: List[str]) -> Optional[Tuple[int, int]]:
    """Return (first, last) line indices strictly inside the first VAR ... END_VAR block."""
    start = None
    for index, line in enumerate(lines):
        stripped = line.strip().upper()
        if start is None and re.match(r"^VAR\b", stripped):
            start = index
        elif start is not None and re.match(r"^END_VAR\b", stripped):
            return start + 1, index - 1
    return None


def misplaced_initializations(lines: List[str], state_var: str,
                              prefix: str = config.STEP_PREFIX) -> List[int]:
    """
    VAR-block lines that initialise something other than a step constant
    or the state variable itself. These belong in the initial step's actions.
    """
    block = find_var_block(lines)
    if block is None:
        return []
    first, last = block
    flagged = []
    for index in range(first, last + 1):
        stripped = lines[index].strip()
        if not stripped or stripped.startswith("(*") or ":=" not in stripped:
            continue
        if stripped.upper().startswith(prefix.upper()):
            continue
        m = _VAR_DECL_RE.match(stripped)
        if m and m.group(1).lower() == state_var.lower():
            continue
        flagged.append(index)
    return flagged


def assignment_targets(text: str, state_var: str, prefix: str = config.STEP_PREFIX) -> Set[str]:
    """Every identifier assigned to the state variable anywhere in the text, as written."""
    regex = re.compile(
        r"\b" + re.escape(state_var) + r"\s*:=\s*(" + _step_ident(prefix) + r")\b",
        re.IGNORECASE,
    )
    return {m.group(1) for m in regex.finditer(text or "")}


def step_references(text: str, prefix: str = config.STEP_PREFIX) -> Set[str]:
    """Every identifier in code (outside comments) that uses the step prefix."""
    code = re.sub(r"\(\*.*?\*\)", " ", text or "", flags=re.DOTALL)
    return set(re.findall(r"\b" + _step_ident(prefix) + r"\b", code, re.IGNORECASE))


def variables_from_code(text: str) -> List[str]:
    """Names declared in the first VAR block, in declaration order."""
    m = _VAR_BLOCK_RE.search(text or "")
    if not m:
        return []
    names = []
    for line in m.group(1).split("\n"):
        decl = _VAR_DECL_RE.match(line.strip())
        if decl:
            names.append(decl.group(1))
    return names
