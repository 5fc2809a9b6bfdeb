"""
Core SFC Model Objects

Defines the data structures recovered from a Structured Text state machine.

These are plain data classes representing:
    - Text snapshots and the line spans derived from them
    - Steps (named states backed by an integer constant)
    - Transitions (guarded edges between steps)
    - Actions (qualified behaviour active while a step is active)
    - The constant table and the full recovered graph
    - Diagnostics produced by the analyzer

ARCHITECTURAL RULE:
    These objects:
        - Know nothing about how they were recognised
        - Are rebuilt from scratch on every parse
        - Never hold a position that outlives the text it came from
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Set, Tuple


class StalePositionError(ValueError):
    """Raised when a line span is used against a text it was not derived from."""
    pass


def fingerprint_text(text: str) -> str:
    """Return a short stable digest identifying one exact text."""
    return hashlib.blake2b(text.encode("utf-8"), digest_size=12).hexdigest()


@dataclass(frozen=True)
class LineSpan:
    """
    Half-open range of line indices [start, stop) inside one text snapshot.

    Properties:
        start: First line index covered
        stop: One past the last line index covered
        fingerprint: Digest of the snapshot this span was derived from

    IMPORTANT:
        A span is only meaningful against the snapshot whose fingerprint
        it carries. TextSnapshot refuses to slice or edit with a span
        from any other text.
    """

    start: int
    stop: int
    fingerprint: str

    def __len__(self) -> int:
        return max(0, self.stop - self.start)

    @property
    def last(self) -> int:
        """Index of the last covered line (start - 1 for an empty span)."""
        return self.stop - 1

    def is_empty(self) -> bool:
        return self.stop <= self.start

    def contains(self, line_index: int) -> bool:
        return self.start <= line_index < self.stop

    def overlaps(self, other: LineSpan) -> bool:
        return self.start < other.stop and other.start < self.stop


class TextSnapshot:
    """
    Immutable view of one exact source text.

    Lines are split on "\\n" only, so joining them with "\\n" reproduces
    the text byte for byte. Every edit helper returns a new text string and
    leaves the snapshot untouched.
    """

    __slots__ = ("text", "lines", "fingerprint")

    def __init__(self, text: Optional[str]) -> None:
        self.text: str = text or ""
        self.lines: List[str] = self.text.split("\n")
        self.fingerprint: str = fingerprint_text(self.text)

    def __len__(self) -> int:
        return len(self.lines)

    def span(self, start: int, stop: int) -> LineSpan:
        """Create a span tied to this snapshot."""
        if start < 0 or stop < start or stop > len(self.lines):
            raise ValueError(f"Invalid line span [{start}, {stop}) for {len(self.lines)} lines")
        return LineSpan(start, stop, self.fingerprint)

    def owns(self, span: LineSpan) -> bool:
        return span.fingerprint == self.fingerprint

    def check(self, span: LineSpan) -> LineSpan:
        if not self.owns(span):
            raise StalePositionError(
                f"Line span [{span.start}, {span.stop}) belongs to another text snapshot"
            )
        return span

    def slice(self, span: LineSpan) -> List[str]:
        self.check(span)
        return self.lines[span.start:span.stop]

    def text_of(self, span: LineSpan) -> str:
        return "\n".join(self.slice(span))

    def replace(self, edits: Iterable[Tuple[LineSpan, Sequence[str]]]) -> str:
        """
        Apply several line-range replacements and return the new text.

        All spans must belong to this snapshot and must not overlap.
        Edits are applied in descending line order so that no edit shifts
        a range that has not been applied yet. An empty span is an insertion.
        """
        checked = [(self.check(span), list(new_lines)) for span, new_lines in edits]
        checked.sort(key=lambda e: (e[0].start, e[0].stop), reverse=True)
        for (later, _), (earlier, _) in zip(checked, checked[1:]):
            if earlier.overlaps(later) or (earlier.start == later.start and earlier.stop == later.stop):
                raise ValueError(f"Overlapping edits at lines {earlier.start} and {later.start}")
        lines = list(self.lines)
        for span, new_lines in checked:
            lines[span.start:span.stop] = new_lines
        return "\n".join(lines)

    def merge(self, spans: Iterable[LineSpan]) -> List[LineSpan]:
        """Sort spans and merge the overlapping or adjacent ones; empty spans are dropped."""
        ordered = sorted((self.check(s) for s in spans if not s.is_empty()), key=lambda s: s.start)
        merged: List[LineSpan] = []
        for span in ordered:
            if merged and span.start <= merged[-1].stop:
                prev = merged[-1]
                merged[-1] = LineSpan(prev.start, max(prev.stop, span.stop), self.fingerprint)
            else:
                merged.append(span)
        return merged

    def delete(self, spans: Iterable[LineSpan]) -> str:
        """Delete the given spans; overlapping or adjacent spans are merged first."""
        return self.replace((span, []) for span in self.merge(spans))

    def insert(self, line_index: int, new_lines: Sequence[str]) -> str:
        return self.replace([(self.span(line_index, line_index), new_lines)])


class ActionQualifier(Enum):
    """
    IEC 61131-3 action qualifiers.

    Time-bearing qualifiers (L, D, DS, SL) require a duration.
    """

    N = "N"      # non-stored
    S = "S"      # set (stored)
    R = "R"      # reset
    L = "L"      # time limited
    D = "D"      # time delayed
    P = "P"      # pulse
    P1 = "P1"    # pulse, rising edge
    P0 = "P0"    # pulse, falling edge
    DS = "DS"    # delayed and stored
    SL = "SL"    # stored and time limited

    @property
    def is_time_bearing(self) -> bool:
        return self in TIME_QUALIFIERS

    @classmethod
    def parse(cls, code: Optional[str]) -> Optional[ActionQualifier]:
        if not code:
            return None
        try:
            return cls(code.strip().upper())
        except ValueError:
            return None


TIME_QUALIFIERS = frozenset({ActionQualifier.L, ActionQualifier.D, ActionQualifier.DS, ActionQualifier.SL})


class StepKind(Enum):
    INITIAL = "initial"
    ORDINARY = "ordinary"


class TransitionKind(Enum):
    """Which recognizer produced a transition."""
    INLINE = "inline"    # IF guard THEN var := STATE_X; END_IF; on one line
    BLOCK = "block"      # multi-line IF ... END_IF containing the assignment
    DIRECT = "direct"    # bare var := STATE_X


@dataclass
class Action:
    """
    A unit of behaviour active while its step is active.

    Properties:
        qualifier_code: Qualifier code as written in the (* Q:... *) marker,
            "N" for lines without a marker
        duration: Duration from the T: part of the marker (e.g. "T#2s")
        body: Code lines belonging to the action, marker removed
        line_index: First source line of the action
        span: Lines covered by the action
    """

    qualifier_code: str
    body: str
    line_index: int
    span: LineSpan
    duration: Optional[str] = None

    @property
    def qualifier(self) -> Optional[ActionQualifier]:
        return ActionQualifier.parse(self.qualifier_code)

    @property
    def missing_duration(self) -> bool:
        q = self.qualifier
        return q is not None and q.is_time_bearing and not self.duration


@dataclass
class Transition:
    """
    A guarded edge from the owning step to `target`.

    Properties:
        target: Identifier of the destination step (always a known step)
        condition: Guard text with comments stripped; "TRUE" for direct assignments
        priority: Explicit priority from a PRI marker, else encounter order from 1
        explicit_priority: True when the priority came from a marker
        span: The whole transition block, including a stand-alone marker line
        kind: Recognizer that produced it
    """

    target: str
    condition: str
    priority: int
    span: LineSpan
    explicit_priority: bool = False
    kind: TransitionKind = TransitionKind.BLOCK

    @property
    def line_index(self) -> int:
        return self.span.start

    @property
    def block_end_index(self) -> int:
        return self.span.last


@dataclass
class Step:
    """
    A named state of the modelled state machine.

    Properties:
        id: Step identifier as declared (e.g. "STATE_RUNNING")
        label: Identifier without the step prefix (e.g. "RUNNING")
        value: Declared integer value
        kind: StepKind.INITIAL or StepKind.ORDINARY
        actions / transitions: In source order
        span: Header line through the last line of the step; None when the
            step is declared but has no header in the text
        declaration_line: Line of the constant declaration
    """

    id: str
    label: str
    value: int
    kind: StepKind = StepKind.ORDINARY
    actions: List[Action] = field(default_factory=list)
    transitions: List[Transition] = field(default_factory=list)
    span: Optional[LineSpan] = None
    declaration_line: Optional[int] = None

    @property
    def is_initial(self) -> bool:
        return self.kind is StepKind.INITIAL

    @property
    def body(self) -> Optional[LineSpan]:
        """The step's lines without its header line."""
        if self.span is None:
            return None
        return LineSpan(min(self.span.start + 1, self.span.stop), self.span.stop, self.span.fingerprint)


@dataclass
class ConstantEntry:
    name: str
    value: int
    line_index: int


@dataclass
class ConstantTable:
    """
    Step identifier -> declared integer value, in declaration order.

    This table is the only authority on which identifiers are steps.
    Lookups through `resolve` ignore case and return the declared spelling.
    """

    entries: Dict[str, ConstantEntry] = field(default_factory=dict)
    duplicates: List[ConstantEntry] = field(default_factory=list)
    _folded: Dict[str, str] = field(default_factory=dict, repr=False, compare=False)

    def add(self, name: str, value: int, line_index: int) -> bool:
        if name.upper() in self._folded:
            self.duplicates.append(ConstantEntry(name, value, line_index))
            return False
        self.entries[name] = ConstantEntry(name, value, line_index)
        self._folded[name.upper()] = name
        return True

    def resolve(self, name: Optional[str]) -> Optional[str]:
        if not name:
            return None
        return self._folded.get(name.upper())

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.resolve(name) is not None

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self.entries)

    def value_of(self, name: str) -> Optional[int]:
        canonical = self.resolve(name)
        return self.entries[canonical].value if canonical else None

    def name_for_value(self, value: int) -> Optional[str]:
        for entry in self.entries.values():
            if entry.value == value:
                return entry.name
        return None

    def max_value(self) -> Optional[int]:
        return max((e.value for e in self.entries.values()), default=None)


@dataclass
class ScanOverflow:
    """A multi-line IF that assigned a known step but did not close in time."""
    step_id: str
    line_index: int
    target: str
    reason: str


@dataclass
class SfcGraph:
    """
    Root container for everything recovered from one text.

    INVARIANTS:
        - Step ids are unique and all present in `constants`
        - Every transition target is present in `constants`
        - All spans carry `fingerprint`, the digest of the parsed text
    """

    state_variable: str
    fingerprint: str
    constants: ConstantTable = field(default_factory=ConstantTable)
    steps: List[Step] = field(default_factory=list)
    initial_step: Optional[str] = None
    referenced_targets: Set[str] = field(default_factory=set)
    scan_overflows: List[ScanOverflow] = field(default_factory=list)

    def get_step(self, step_id: str) -> Optional[Step]:
        """
        Retrieve a step by identifier (case-insensitive).

        Returns:
            Step object or None if not found
        """
        canonical = self.constants.resolve(step_id)
        for step in self.steps:
            if step.id == canonical:
                return step
        return None

    @property
    def step_ids(self) -> List[str]:
        return [s.id for s in self.steps]

    @property
    def initial_steps(self) -> List[Step]:
        return [s for s in self.steps if s.is_initial]

    def is_empty(self) -> bool:
        return not self.steps

    def edges(self) -> List[Tuple[str, str]]:
        """(source, target) pairs in step order, then transition order."""
        return [(s.id, t.target) for s in self.steps for t in s.transitions]

    def active_step(self, variables: Mapping[str, object]) -> Optional[str]:
        """
        Map an execution snapshot of variable values to the active step.

        The state variable may hold the step's integer value or its identifier.
        """
        value = variables.get(self.state_variable)
        if value is None:
            wanted = self.state_variable.lower()
            value = next((v for k, v in variables.items() if k.lower() == wanted), None)
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, str):
            named = self.constants.resolve(value.strip())
            if named:
                return named
            try:
                value = int(value.strip())
            except ValueError:
                return None
        try:
            number = int(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return None
        for step in self.steps:
            if step.value == number:
                return step.id
        return None


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass
class Diagnostic:
    """
    A structured finding about the recovered graph.

    Properties:
        severity: Severity level
        code: Stable identifier (e.g. "IEC-SFC-003")
        message: Human-readable description
        nodes: Identifiers of the steps concerned, if any
    """

    severity: Severity
    code: str
    message: str
    nodes: List[str] = field(default_factory=list)
