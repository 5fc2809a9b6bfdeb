"""
Tests for the graph builder.

Tests verify that parse_sfc correctly:
    - Recovers steps, transitions and actions with their spans
    - Honours explicit priority markers and encounter order
    - Ignores commented-out code and unknown headers
    - Records transition blocks that did not close in time
    - Is total and deterministic
"""

import pytest

from stsfc.analyzer import check_source
from stsfc.block_matcher import strip_comments
from stsfc.builder import parse_sfc, step_label
from stsfc.examples import EXAMPLE_SCRIPT, GENERATOR_SCRIPT
from stsfc.model import Severity, TextSnapshot, TransitionKind

SCENARIO_A = """VAR
  STATE_INIT : INT := 0;
  STATE_RUN  : INT := 1;
  temp : REAL;
END_VAR

IF state = undefined THEN state := STATE_INIT; END_IF;

IF state = STATE_INIT THEN
   (* Q:N *) temp := Device.ReadInput('30001') / 100.0;
   IF temp > 50.0 THEN
       state := STATE_RUN;
   END_IF;
ELSIF state = STATE_RUN THEN
   (* Q:S *) Device.WriteCoil('00001', TRUE);
END_IF;
"""


class TestScenarioA:
    """Two steps, one guarded transition."""

    def test_steps(self):
        graph = parse_sfc(SCENARIO_A)
        assert graph.state_variable == "state"
        assert graph.step_ids == ["STATE_INIT", "STATE_RUN"]
        assert graph.initial_step == "STATE_INIT"
        assert [s.is_initial for s in graph.steps] == [True, False]
        assert graph.get_step("STATE_RUN").label == "RUN"

    def test_transition(self):
        graph = parse_sfc(SCENARIO_A)
        init = graph.get_step("STATE_INIT")
        assert len(init.transitions) == 1
        t = init.transitions[0]
        assert t.target == "STATE_RUN"
        assert t.condition == "temp > 50.0"
        assert t.priority == 1
        assert not t.explicit_priority
        assert t.kind is TransitionKind.BLOCK
        assert (t.line_index, t.block_end_index) == (10, 12)

    def test_spans(self):
        graph = parse_sfc(SCENARIO_A)
        init, run = graph.steps
        assert (init.span.start, init.span.stop) == (8, 13)
        assert (run.span.start, run.span.stop) == (13, 15)
        assert [(a.span.start, a.span.stop) for a in run.actions] == [(14, 15)]
        assert all(s.span.fingerprint == graph.fingerprint for s in graph.steps)

    def test_actions(self):
        graph = parse_sfc(SCENARIO_A)
        init, run = graph.steps
        assert [a.qualifier_code for a in init.actions] == ["N"]
        assert init.actions[0].body == "temp := Device.ReadInput('30001') / 100.0;"
        assert [a.qualifier_code for a in run.actions] == ["S"]

    def test_no_errors(self):
        report = check_source(SCENARIO_A)
        assert report.errors == []


class TestExamplePrograms:

    def test_tank_filler(self):
        graph = parse_sfc(EXAMPLE_SCRIPT)
        assert graph.edges() == [
            ("STATE_IDLE", "STATE_FILLING"),
            ("STATE_FILLING", "STATE_FULL"),
            ("STATE_FULL", "STATE_IDLE"),
        ]
        filling = graph.get_step("STATE_FILLING")
        assert [(a.qualifier_code, a.duration) for a in filling.actions] == [("S", None), ("L", "T#30s")]

    def test_generator_priorities(self):
        graph = parse_sfc(GENERATOR_SCRIPT)
        starting = graph.get_step("STATE_STARTING")
        assert [t.target for t in starting.transitions] == ["STATE_FAULT", "STATE_RUNNING", "STATE_SHUTDOWN"]
        assert [t.priority for t in starting.transitions] == [1, 2, 3]
        assert all(t.explicit_priority for t in starting.transitions)
        assert [t.kind for t in starting.transitions] == [
            TransitionKind.BLOCK, TransitionKind.INLINE, TransitionKind.INLINE,
        ]

    def test_marker_line_belongs_to_transition(self):
        snapshot = TextSnapshot(GENERATOR_SCRIPT)
        first = parse_sfc(GENERATOR_SCRIPT).get_step("STATE_STARTING").transitions[0]
        assert snapshot.lines[first.span.start].strip() == "(* PRI: 1 *)"
        assert snapshot.lines[first.span.last].strip() == "END_IF;"

    def test_generator_edges(self):
        graph = parse_sfc(GENERATOR_SCRIPT)
        assert graph.initial_step == "STATE_STANDSTILL"
        assert len(graph.steps) == 5
        assert set(graph.edges()) == {
            ("STATE_FAULT", "STATE_STANDSTILL"),
            ("STATE_STANDSTILL", "STATE_STARTING"),
            ("STATE_STARTING", "STATE_FAULT"),
            ("STATE_STARTING", "STATE_RUNNING"),
            ("STATE_STARTING", "STATE_SHUTDOWN"),
            ("STATE_RUNNING", "STATE_SHUTDOWN"),
            ("STATE_SHUTDOWN", "STATE_STANDSTILL"),
        }

    @pytest.mark.parametrize("text", [EXAMPLE_SCRIPT, GENERATOR_SCRIPT])
    def test_actions_and_transitions_partition_body(self, text):
        """Every code line of a step body belongs to exactly one action or transition."""
        snapshot = TextSnapshot(text)
        for step in parse_sfc(text).steps:
            body = step.body
            spans = sorted([a.span for a in step.actions] + [t.span for t in step.transitions],
                           key=lambda s: s.start)
            for span in spans:
                assert body.start <= span.start and span.stop <= body.stop
            for earlier, later in zip(spans, spans[1:]):
                assert not earlier.overlaps(later)
            for index in range(body.start, body.stop):
                if strip_comments(snapshot.lines[index].strip()):
                    assert sum(span.contains(index) for span in spans) == 1, (step.id, index)

    def test_nested_logic_is_not_a_transition(self):
        shutdown = parse_sfc(GENERATOR_SCRIPT).get_step("STATE_SHUTDOWN")
        assert len(shutdown.transitions) == 1
        assert shutdown.transitions[0].condition == "rpm <= 0.0"


class TestRobustness:

    @pytest.mark.parametrize("text", [None, "", "x := 1;", "IF a THEN\nEND_IF;", "(* only a comment"])
    def test_no_steps_gives_empty_graph(self, text):
        graph = parse_sfc(text)
        assert graph.is_empty()
        assert graph.initial_step is None

    def test_parse_is_idempotent(self):
        assert parse_sfc(GENERATOR_SCRIPT) == parse_sfc(GENERATOR_SCRIPT)

    def test_declared_step_without_header(self):
        text = "VAR\n  STATE_A : INT := 0;\n  STATE_B : INT := 1;\nEND_VAR\nIF state = STATE_A THEN\n  x := 1;\nEND_IF;\n"
        graph = parse_sfc(text)
        assert graph.get_step("STATE_B").span is None
        assert graph.get_step("STATE_B").declaration_line == 2

    def test_commented_out_transition_ignored(self):
        text = (
            "VAR\n  STATE_A : INT := 0;\n  STATE_B : INT := 1;\nEND_VAR\n"
            "IF state = STATE_A THEN\n"
            "   (* disabled:\n"
            "   state := STATE_B;\n"
            "   *)\n"
            "   x := 1;\n"
            "END_IF;\n"
        )
        graph = parse_sfc(text)
        step = graph.get_step("STATE_A")
        assert step.transitions == []
        assert [a.body for a in step.actions] == ["x := 1;"]

    def test_unknown_target_is_not_a_transition(self):
        text = "VAR\n  STATE_A : INT := 0;\nEND_VAR\nIF state = STATE_A THEN\n  state := STATE_ZZZ;\nEND_IF;\n"
        assert parse_sfc(text).get_step("STATE_A").transitions == []

    def test_scan_overflow_recorded(self):
        text = (
            "VAR\n  STATE_A : INT := 0;\n  STATE_B : INT := 1;\nEND_VAR\n"
            "IF state = STATE_A THEN\n"
            "   IF go THEN\n"
            "      state := STATE_B;\n"
            "      x := 1;\n"
            "      y := 2;\n"
            "      z := 3;\n"
            "   END_IF;\n"
            "ELSIF state = STATE_B THEN\n"
            "   x := 0;\n"
            "END_IF;\n"
        )
        graph = parse_sfc(text, scan_limit=3)
        assert len(graph.scan_overflows) == 1
        overflow = graph.scan_overflows[0]
        assert (overflow.step_id, overflow.line_index, overflow.target) == ("STATE_A", 5, "STATE_B")

        relaxed = parse_sfc(text)
        assert relaxed.scan_overflows == []
        assert relaxed.get_step("STATE_A").transitions[0].kind is TransitionKind.BLOCK

    def test_branching_block_takes_last_assignment(self):
        text = (
            "VAR\n  STATE_A : INT := 0;\n  STATE_B : INT := 1;\n  STATE_C : INT := 2;\nEND_VAR\n"
            "IF state = STATE_A THEN\n"
            "   IF go THEN state := STATE_B; END_IF;\n"
            "   IF alt THEN\n"
            "      IF fast THEN\n"
            "         state := STATE_B;\n"
            "      ELSE\n"
            "         state := STATE_C;\n"
            "      END_IF;\n"
            "   END_IF;\n"
            "ELSIF state = STATE_B THEN\n"
            "   x := 1;\n"
            "ELSIF state = STATE_C THEN\n"
            "   x := 2;\n"
            "END_IF;\n"
        )
        step = parse_sfc(text).get_step("STATE_A")
        assert [(t.target, t.condition) for t in step.transitions] == [("STATE_B", "go"), ("STATE_C", "alt")]
        assert step.transitions[1].kind is TransitionKind.BLOCK

    def test_custom_state_variable(self):
        text = "VAR\n  STATE_A : INT := 0;\n  STATE_B : INT := 1;\nEND_VAR\nIF seq = STATE_A THEN\n  IF go THEN seq := STATE_B; END_IF;\nEND_IF;\n"
        graph = parse_sfc(text)
        assert graph.state_variable == "seq"
        assert graph.edges() == [("STATE_A", "STATE_B")]


def test_step_label():
    assert step_label("STATE_RUN") == "RUN"
    assert step_label("MODE_X") == "MODE_X"
    assert step_label("STATE_") == "STATE_"


def test_scenario_a_diagnostics_are_not_errors():
    report = check_source(SCENARIO_A)
    assert all(d.severity is not Severity.ERROR for d in report.diagnostics)
