"""
Example Structured Text programs and a small script builder.

EXAMPLE_SCRIPT is a three-step tank filler that analyzes clean.
GENERATOR_SCRIPT is a generator controller with explicit priorities,
nested logic inside steps and physics constants in its VAR block.
build_sequence_script composes a linear chain of steps with the mutators.
"""
from typing import Sequence

from stsfc.builder import parse_sfc
from stsfc.model import TextSnapshot
from stsfc.mutators import add_step, add_transition
from stsfc.scanner import find_var_block

EXAMPLE_SCRIPT = """(* Tank fill controller *)

VAR
  STATE_IDLE    : INT := 0;
  STATE_FILLING : INT := 1;
  STATE_FULL    : INT := 2;
  level : REAL;
END_VAR

IF state = undefined THEN state := STATE_IDLE; END_IF;

IF state = STATE_IDLE THEN
   (* Q:N *) level := Device.ReadInput('30001') / 10.0;

   IF level < 20.0 THEN
       state := STATE_FILLING;
   END_IF;

ELSIF state = STATE_FILLING THEN
   (* Q:S *) Device.WriteCoil('00001', TRUE);
   (* Q:L T:T#30s *) Device.Log('info', 'Filling...');

   IF level >= 95.0 THEN
       state := STATE_FULL;
   END_IF;

ELSIF state = STATE_FULL THEN
   (* Q:R *) Device.WriteCoil('00001', FALSE);
   (* Q:D T:T#5s *) Device.Log('info', 'Tank full');

   IF level < 80.0 THEN
       state := STATE_IDLE;
   END_IF;
END_IF;
"""

GENERATOR_SCRIPT = """(*
   Generator controller
   Standstill -> Starting -> Running -> Shutdown, with a latched fault
*)

VAR
  STATE_STANDSTILL : INT := 0;
  STATE_STARTING   : INT := 1;
  STATE_RUNNING    : INT := 2;
  STATE_SHUTDOWN   : INT := 3;
  STATE_FAULT      : INT := 4;

  NOMINAL_RPM : REAL := 1500.0;
  RAMP_RPM    : REAL := 100.0;
END_VAR

IF state = undefined THEN
  state := STATE_STANDSTILL;
  rpm := 0.0;
  timer_seq := 0;
END_IF;

cmd_Start := (Device.ReadRegister('192') AND 1) > 0;
sim_Reset := (Device.ReadRegister('95') AND 16) > 0;

IF state = STATE_FAULT THEN
    (* Q:R *) flg_Running := FALSE;
    IF rpm > 0.0 THEN rpm := rpm - RAMP_RPM; END_IF;

    IF sim_Reset THEN
        state := STATE_STANDSTILL;
        Device.Log('info', 'Fault reset');
    END_IF;

ELSIF state = STATE_STANDSTILL THEN
    rpm := 0.0;
    timer_seq := 0;

    IF cmd_Start THEN
        state := STATE_STARTING;
    END_IF;

ELSIF state = STATE_STARTING THEN
    timer_seq := timer_seq + 100;
    IF rpm < NOMINAL_RPM THEN
        rpm := rpm + RAMP_RPM;
    END_IF;

    (* PRI: 1 *)
    IF timer_seq > 10000 THEN
        state := STATE_FAULT;
        Device.Log('error', 'Start timeout');
    END_IF;
    (* PRI: 2 *) IF rpm >= NOMINAL_RPM THEN state := STATE_RUNNING; END_IF;
    (* PRI: 3 *) IF NOT cmd_Start THEN state := STATE_SHUTDOWN; END_IF;

ELSIF state = STATE_RUNNING THEN
    (* Q:S *) flg_Running := TRUE;
    (* Q:L T:T#10s *) Device.Log('info', 'Loading');

    IF NOT cmd_Start THEN
        state := STATE_SHUTDOWN;
        timer_seq := 0;
    END_IF;

ELSIF state = STATE_SHUTDOWN THEN
    timer_seq := timer_seq + 100;
    IF rpm > 0.0 THEN
        rpm := rpm - RAMP_RPM;
        IF rpm < 0.0 THEN rpm := 0.0; END_IF;
    END_IF;

    IF rpm <= 0.0 THEN
        state := STATE_STANDSTILL;
    END_IF;
END_IF;

Device.WriteRegister('78', TO_INT(rpm));
"""

SKELETON = "VAR\nEND_VAR\n"


def build_sequence_script(labels: Sequence[str], condition: str = "step_done", cyclic: bool = False) -> str:
    """
    Build a program whose steps run one after another.

    Each label becomes a step; step k moves to step k+1 when `condition`
    holds, and with `cyclic` the last step returns to the first. The first
    step is made initial through the "undefined" idiom.
    """
    text = SKELETON
    for label in labels:
        text = add_step(text, label)
    ids = parse_sfc(text).step_ids
    if not ids:
        return text

    pairs = list(zip(ids, ids[1:]))
    if cyclic and len(ids) > 1:
        pairs.append((ids[-1], ids[0]))
    for source, target in pairs:
        text = add_transition(text, source, target, condition)

    snapshot = TextSnapshot(text)
    var_block = find_var_block(snapshot.lines)
    end_var = var_block[1] + 1 if var_block else -1
    return snapshot.insert(end_var + 1, ["", f"IF state = undefined THEN state := {ids[0]}; END_IF;"])
