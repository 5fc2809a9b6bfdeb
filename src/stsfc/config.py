"""
Engine configuration constants.

Typed module-level defaults for the recognizer, analyzer and mutators.
Environment variables override the tunable ones so the CLI and callers
can adjust thresholds without code changes; every public function also
accepts the relevant value as a keyword argument.
"""

from __future__ import annotations

import os
from typing import Tuple

# --- Recognition ---
STEP_PREFIX: str = "STATE_"
DEFAULT_STATE_VARIABLE: str = os.getenv("STSFC_DEFAULT_STATE_VARIABLE", "state")
UNINITIALIZED_SENTINEL: str = "undefined"

# Lines scanned past a multi-line IF opener before giving up on a transition block.
BLOCK_SCAN_LIMIT: int = int(os.getenv("STSFC_BLOCK_SCAN_LIMIT", "20"))

# --- Analysis ---
MAX_NESTING_DEPTH: int = int(os.getenv("STSFC_MAX_NESTING_DEPTH", "8"))
TERMINAL_LABEL_HINTS: Tuple[str, ...] = ("end", "final")

# --- Editing ---
DEFAULT_PRIORITY_STEP: int = 10
BODY_INDENT: str = "   "

# --- Logging ---
LOG_LEVEL: str = os.getenv("STSFC_LOG_LEVEL", "WARNING").upper()
LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
