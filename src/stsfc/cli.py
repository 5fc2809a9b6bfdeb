"""
Command line entry point.

    stsfc analyze program.st [--format text|json|yaml]
    stsfc rename program.st STATE_OLD STATE_NEW [-o out.st]
    stsfc remove program.st STATE_X [--strip-references] [-o out.st]
    stsfc normalize program.st STATE_X [--step-size 10] [-o out.st]
    stsfc reorder program.st STATE_X FROM TO [-o out.st]

Mutating commands print the new text unless -o is given.
Exit status: 0 on success, 1 when analysis found errors, 2 when the input
cannot be read.
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

import yaml

from stsfc import config
from stsfc.analyzer import SfcReport, check_source
from stsfc.mutators import normalize_priorities, remove_step, rename_step, reorder_transitions
from stsfc.serialization import diagnostics_to_dict, graph_to_dict

logger = logging.getLogger(__name__)


def format_report(report: SfcReport, source: str = "") -> str:
    """Render an SfcReport as a plain-text summary."""
    graph = report.graph
    out = [
        "=" * 70,
        f"SFC ANALYSIS REPORT: {source}" if source else "SFC ANALYSIS REPORT",
        "=" * 70,
        "",
        "📊 BASIC METRICS",
        f"  State Variable:        {graph.state_variable}",
        f"  Total Steps:           {report.total_steps}",
        f"  Total Transitions:     {report.total_transitions}",
        f"  Total Actions:         {report.total_actions}",
        f"  Initial Step:          {graph.initial_step or 'None'}",
        "",
    ]
    if graph.steps:
        out.append("🔗 STEPS")
        for step in graph.steps:
            marker = " (initial)" if step.is_initial else ""
            out.append(f"  {step.id} = {step.value}{marker}")
            for t in step.transitions:
                out.append(f"    -> {t.target} [{t.priority}] when {t.condition}")
        out.append("")
    if report.diagnostics:
        out.append("⚠️  DIAGNOSTICS")
        for i, diag in enumerate(report.diagnostics, 1):
            out.append(f"  {i}. [{diag.severity.value.upper()}] {diag.code}: {diag.message}")
    else:
        out.append("✨ NO DIAGNOSTICS - SFC looks clean!")
    return "\n".join(out)


def _read(path: str) -> Optional[str]:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return fh.read()
    except OSError as exc:
        print(f"stsfc: cannot read {path}: {exc}", file=sys.stderr)
        return None


def _emit(text: str, output: Optional[str]) -> None:
    if output:
        with open(output, "w", encoding="utf-8") as fh:
            fh.write(text)
        logger.info("Wrote %s", output)
    else:
        sys.stdout.write(text)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="stsfc", description="Recover and edit SFC graphs in Structured Text")
    parser.add_argument("--log-level", default=config.LOG_LEVEL, help="Logging level (default from STSFC_LOG_LEVEL)")
    sub = parser.add_subparsers(dest="command", required=True)

    analyze = sub.add_parser("analyze", help="Parse a program and report diagnostics")
    analyze.add_argument("file")
    analyze.add_argument("--format", choices=("text", "json", "yaml"), default="text")

    rename = sub.add_parser("rename", help="Rename a step everywhere")
    rename.add_argument("file")
    rename.add_argument("old")
    rename.add_argument("new")

    remove = sub.add_parser("remove", help="Remove a step and the transitions into it")
    remove.add_argument("file")
    remove.add_argument("step")
    remove.add_argument("--strip-references", action="store_true",
                        help="Also strip remaining occurrences of the identifier")

    normalize = sub.add_parser("normalize", help="Renumber a step's transition priorities")
    normalize.add_argument("file")
    normalize.add_argument("step")
    normalize.add_argument("--step-size", type=int, default=config.DEFAULT_PRIORITY_STEP)

    reorder = sub.add_parser("reorder", help="Move one transition of a step")
    reorder.add_argument("file")
    reorder.add_argument("step")
    reorder.add_argument("from_index", type=int)
    reorder.add_argument("to_index", type=int)

    for mutating in (rename, remove, normalize, reorder):
        mutating.add_argument("-o", "--output", help="Write the result here instead of stdout")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if not logging.getLogger().handlers:
        logging.basicConfig(level=str(args.log_level).upper(), format=config.LOG_FORMAT)

    text = _read(args.file)
    if text is None:
        return 2

    if args.command == "analyze":
        report = check_source(text)
        if args.format == "text":
            print(format_report(report, args.file))
        else:
            payload = {"graph": graph_to_dict(report.graph), **diagnostics_to_dict(report.diagnostics)}
            if args.format == "json":
                print(json.dumps(payload, indent=2, sort_keys=True))
            else:
                print(yaml.safe_dump(payload, sort_keys=False), end="")
        return 1 if report.errors else 0

    if args.command == "rename":
        result = rename_step(text, args.old, args.new)
    elif args.command == "remove":
        result = remove_step(text, args.step, strip_references=args.strip_references)
    elif args.command == "normalize":
        result = normalize_priorities(text, args.step, step_size=args.step_size)
    else:
        result = reorder_transitions(text, args.step, args.from_index, args.to_index)

    if result == text:
        logger.info("%s made no change to %s", args.command, args.file)
    _emit(result, args.output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
