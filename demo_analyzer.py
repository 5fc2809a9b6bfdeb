"""
Demo: Run the analyzer on the example programs, apply a few edits and print the reports.
"""

from stsfc.analyzer import check_source
from stsfc.cli import format_report
from stsfc.examples import EXAMPLE_SCRIPT, GENERATOR_SCRIPT, build_sequence_script
from stsfc.mutators import insert_step_between, normalize_priorities
from stsfc.serialization import graph_to_yaml


if __name__ == "__main__":
    for name, script in (("tank filler", EXAMPLE_SCRIPT), ("generator", GENERATOR_SCRIPT)):
        report = check_source(script)
        print(format_report(report, name))
        print()

    # Renumber the generator's start-up priorities and split a transition
    edited = normalize_priorities(GENERATOR_SCRIPT, "STATE_STARTING", step_size=10)
    edited = insert_step_between(edited, "STATE_STANDSTILL", 0, "PRE_LUBE")
    print(format_report(check_source(edited), "generator (edited)"))
    print()

    sequence = build_sequence_script(["idle", "run", "end"])
    print(sequence)

    yaml_str = graph_to_yaml(check_source(EXAMPLE_SCRIPT).graph)
    with open("example_graph_output.yaml", "w") as f:
        f.write(yaml_str)
    print("✅ Graph exported to example_graph_output.yaml")
