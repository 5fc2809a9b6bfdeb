"""
Tests for the command line entry point.
"""

import json

import pytest

from stsfc.builder import parse_sfc
from stsfc.cli import main
from stsfc.examples import EXAMPLE_SCRIPT, GENERATOR_SCRIPT

MULTI_INITIAL = """VAR
  STATE_A : INT := 0;
  STATE_B : INT := 1;
END_VAR
IF state = undefined THEN state := STATE_A; END_IF;
IF state = undefined THEN state := STATE_B; END_IF;
IF state = STATE_A THEN
   state := STATE_B;
ELSIF state = STATE_B THEN
   state := STATE_A;
END_IF;
"""


@pytest.fixture
def program(tmp_path):
    def write(text, name="program.st"):
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return str(path)
    return write


def test_analyze_text(program, capsys):
    assert main(["analyze", program(EXAMPLE_SCRIPT)]) == 0
    out = capsys.readouterr().out
    assert "SFC ANALYSIS REPORT" in out
    assert "STATE_IDLE = 0 (initial)" in out
    assert "NO DIAGNOSTICS" in out


def test_analyze_json(program, capsys):
    assert main(["analyze", program(GENERATOR_SCRIPT), "--format", "json"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["graph"]["initial_step"] == "STATE_STANDSTILL"
    assert [d["code"] for d in payload["diagnostics"]] == ["IEC-SFC-010"]


def test_analyze_errors_exit_1(program, capsys):
    assert main(["analyze", program(MULTI_INITIAL), "--format", "yaml"]) == 1
    assert "IEC-SFC-002" in capsys.readouterr().out


def test_unreadable_file(tmp_path, capsys):
    assert main(["analyze", str(tmp_path / "missing.st")]) == 2
    assert "cannot read" in capsys.readouterr().err


def test_rename_to_stdout(program, capsys):
    assert main(["rename", program(EXAMPLE_SCRIPT), "STATE_FULL", "STATE_DONE"]) == 0
    out = capsys.readouterr().out
    assert "STATE_DONE" in out
    assert "STATE_FULL" not in out


def test_normalize_to_file(program, tmp_path):
    target = tmp_path / "out.st"
    assert main(["normalize", program(GENERATOR_SCRIPT), "STATE_STARTING", "--step-size", "5",
                 "-o", str(target)]) == 0
    graph = parse_sfc(target.read_text(encoding="utf-8"))
    assert [t.priority for t in graph.get_step("STATE_STARTING").transitions] == [5, 10, 15]


def test_remove_and_reorder(program, capsys):
    assert main(["remove", program(GENERATOR_SCRIPT), "STATE_FAULT"]) == 0
    removed = capsys.readouterr().out
    assert "STATE_FAULT" not in removed

    assert main(["reorder", program(GENERATOR_SCRIPT), "STATE_STARTING", "2", "0"]) == 0
    reordered = parse_sfc(capsys.readouterr().out)
    assert reordered.get_step("STATE_STARTING").transitions[0].target == "STATE_SHUTDOWN"
