"""
Structured Text SFC recovery engine (stsfc)

Recovers a Sequential Function Chart (steps, transitions, actions) from
IEC 61131-3 Structured Text written in the state-variable idiom, checks it
for well-formedness, and applies structural edits back to the text.

ARCHITECTURAL GUARANTEE:
------------------------
This package:
    - Reads and returns plain text; it never executes the program
    - Keeps no state between calls
    - Ties every recovered position to the exact text it came from

Rendering, editing UIs and execution engines live outside this package
and consume the graph unchanged.
"""

from stsfc.analyzer import SfcReport, analyze_sfc, check_source
from stsfc.builder import parse_sfc
from stsfc.model import Diagnostic, LineSpan, Severity, SfcGraph, StalePositionError, TextSnapshot

__version__ = "0.1.0"

__all__ = [
    "Diagnostic",
    "LineSpan",
    "Severity",
    "SfcGraph",
    "SfcReport",
    "StalePositionError",
    "TextSnapshot",
    "analyze_sfc",
    "check_source",
    "parse_sfc",
]
