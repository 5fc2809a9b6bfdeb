"""
Tests for the core SFC model objects.

These tests verify:
    - Snapshot spans and stale-position detection
    - Line-range edits on snapshots
    - Action qualifier parsing
    - Constant table lookups
    - Graph retrieval methods
"""

import pytest

from stsfc.model import (
    Action,
    ActionQualifier,
    ConstantTable,
    LineSpan,
    SfcGraph,
    StalePositionError,
    Step,
    StepKind,
    TextSnapshot,
    Transition,
    fingerprint_text,
)


class TestTextSnapshot:
    """Test snapshots and the spans tied to them."""

    def test_lines_round_trip(self):
        """Joining the lines reproduces the text."""
        text = "a\nb\n\nc\n"
        snap = TextSnapshot(text)
        assert "\n".join(snap.lines) == text
        assert len(snap) == 5

    def test_none_is_empty_text(self):
        snap = TextSnapshot(None)
        assert snap.text == ""
        assert snap.lines == [""]

    def test_span_carries_fingerprint(self):
        snap = TextSnapshot("a\nb")
        span = snap.span(0, 2)
        assert span.fingerprint == fingerprint_text("a\nb")
        assert len(span) == 2
        assert span.last == 1

    def test_invalid_span_rejected(self):
        snap = TextSnapshot("a\nb")
        with pytest.raises(ValueError):
            snap.span(1, 0)
        with pytest.raises(ValueError):
            snap.span(0, 5)

    def test_span_from_other_text_is_stale(self):
        """A span must never be applied to a text it was not derived from."""
        old = TextSnapshot("a\nb\nc")
        new = TextSnapshot("a\nb\nc\nd")
        span = old.span(0, 1)
        with pytest.raises(StalePositionError):
            new.slice(span)
        with pytest.raises(StalePositionError):
            new.delete([span])

    def test_stale_error_is_value_error(self):
        assert issubclass(StalePositionError, ValueError)

    def test_replace_applies_in_descending_order(self):
        snap = TextSnapshot("0\n1\n2\n3\n4")
        out = snap.replace([
            (snap.span(0, 1), ["zero"]),
            (snap.span(3, 5), ["tail"]),
        ])
        assert out == "zero\n1\n2\ntail"

    def test_replace_rejects_overlap(self):
        snap = TextSnapshot("0\n1\n2\n3")
        with pytest.raises(ValueError):
            snap.replace([(snap.span(0, 2), []), (snap.span(1, 3), [])])

    def test_delete_merges_adjacent_spans(self):
        snap = TextSnapshot("0\n1\n2\n3\n4")
        out = snap.delete([snap.span(1, 2), snap.span(2, 3), snap.span(1, 2)])
        assert out == "0\n3\n4"

    def test_insert(self):
        snap = TextSnapshot("a\nc")
        assert snap.insert(1, ["b"]) == "a\nb\nc"


class TestLineSpan:

    def test_contains_and_overlaps(self):
        a = LineSpan(2, 5, "x")
        assert a.contains(2)
        assert a.contains(4)
        assert not a.contains(5)
        assert a.overlaps(LineSpan(4, 8, "x"))
        assert not a.overlaps(LineSpan(5, 8, "x"))

    def test_empty_span(self):
        assert LineSpan(3, 3, "x").is_empty()
        assert len(LineSpan(3, 3, "x")) == 0


class TestActionQualifier:

    def test_parse_known(self):
        assert ActionQualifier.parse("p1") is ActionQualifier.P1
        assert ActionQualifier.parse(" N ") is ActionQualifier.N

    def test_parse_unknown(self):
        assert ActionQualifier.parse("X") is None
        assert ActionQualifier.parse("") is None
        assert ActionQualifier.parse(None) is None

    @pytest.mark.parametrize("code", ["L", "D", "DS", "SL"])
    def test_time_bearing(self, code):
        assert ActionQualifier(code).is_time_bearing

    def test_not_time_bearing(self):
        assert not ActionQualifier.S.is_time_bearing
        assert not ActionQualifier.P.is_time_bearing

    def test_action_missing_duration(self):
        span = LineSpan(0, 1, "x")
        assert Action(qualifier_code="L", body="x;", line_index=0, span=span).missing_duration
        assert not Action(qualifier_code="L", body="x;", line_index=0, span=span, duration="T#1s").missing_duration
        assert not Action(qualifier_code="Z", body="x;", line_index=0, span=span).missing_duration


class TestConstantTable:

    def test_first_declaration_wins(self):
        table = ConstantTable()
        assert table.add("STATE_A", 0, 1)
        assert not table.add("state_a", 7, 2)
        assert table.value_of("STATE_A") == 0
        assert len(table) == 1
        assert [d.line_index for d in table.duplicates] == [2]

    def test_resolve_is_case_insensitive(self):
        table = ConstantTable()
        table.add("STATE_Run", 1, 0)
        assert table.resolve("STATE_RUN") == "STATE_Run"
        assert "state_run" in table
        assert table.resolve("STATE_STOP") is None

    def test_max_value_and_reverse_lookup(self):
        table = ConstantTable()
        assert table.max_value() is None
        table.add("STATE_A", 3, 0)
        table.add("STATE_B", 9, 1)
        assert table.max_value() == 9
        assert table.name_for_value(3) == "STATE_A"
        assert table.name_for_value(4) is None
        assert list(table) == ["STATE_A", "STATE_B"]


def _graph() -> SfcGraph:
    table = ConstantTable()
    table.add("STATE_A", 0, 0)
    table.add("STATE_B", 1, 1)
    graph = SfcGraph(state_variable="state", fingerprint="x", constants=table)
    graph.steps = [
        Step(id="STATE_A", label="A", value=0, kind=StepKind.INITIAL,
             transitions=[Transition(target="STATE_B", condition="go", priority=1, span=LineSpan(3, 4, "x"))]),
        Step(id="STATE_B", label="B", value=1),
    ]
    return graph


class TestSfcGraph:

    def test_get_step(self):
        graph = _graph()
        assert graph.get_step("state_b").id == "STATE_B"
        assert graph.get_step("STATE_C") is None

    def test_edges_and_initials(self):
        graph = _graph()
        assert graph.edges() == [("STATE_A", "STATE_B")]
        assert [s.id for s in graph.initial_steps] == ["STATE_A"]
        assert not graph.is_empty()

    def test_active_step_by_value(self):
        graph = _graph()
        assert graph.active_step({"state": 1}) == "STATE_B"
        assert graph.active_step({"STATE": "0"}) == "STATE_A"

    def test_active_step_by_name(self):
        assert _graph().active_step({"state": "state_b"}) == "STATE_B"

    def test_active_step_unknown(self):
        graph = _graph()
        assert graph.active_step({}) is None
        assert graph.active_step({"state": 42}) is None
        assert graph.active_step({"state": True}) is None

    def test_step_body_excludes_header(self):
        step = Step(id="STATE_A", label="A", value=0, span=LineSpan(4, 9, "x"))
        assert (step.body.start, step.body.stop) == (5, 9)
        assert Step(id="STATE_B", label="B", value=1).body is None
