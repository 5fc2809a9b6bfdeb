"""
Tests for the example programs and the sequence builder.
"""

from stsfc.analyzer import check_source
from stsfc.builder import parse_sfc
from stsfc.examples import EXAMPLE_SCRIPT, build_sequence_script


def test_example_active_step():
    graph = parse_sfc(EXAMPLE_SCRIPT)
    assert graph.active_step({"state": 1}) == "STATE_FILLING"
    assert graph.active_step({"state": "STATE_FULL"}) == "STATE_FULL"


def test_sequence_script_chain():
    text = build_sequence_script(["idle", "run", "end"])
    graph = parse_sfc(text)
    assert graph.step_ids == ["STATE_IDLE", "STATE_RUN", "STATE_END"]
    assert graph.initial_step == "STATE_IDLE"
    assert graph.edges() == [("STATE_IDLE", "STATE_RUN"), ("STATE_RUN", "STATE_END")]
    assert all(t.condition == "step_done" for s in graph.steps for t in s.transitions)
    assert check_source(text).diagnostics == []


def test_cyclic_sequence():
    graph = parse_sfc(build_sequence_script(["fill", "drain"], cyclic=True))
    assert graph.edges() == [("STATE_FILL", "STATE_DRAIN"), ("STATE_DRAIN", "STATE_FILL")]


def test_empty_sequence():
    assert parse_sfc(build_sequence_script([])).is_empty()
