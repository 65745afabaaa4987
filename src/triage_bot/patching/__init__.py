"""Unified-diff parsing and exact-match patch application."""

from triage_bot.patching.diff_generator import count_changes, generate_unified_diff
from triage_bot.patching.diff_parser import parse
from triage_bot.patching.exceptions import ApplyError, ParseError, PatchError
from triage_bot.patching.patch_applier import apply

__all__ = [
    "ApplyError",
    "ParseError",
    "PatchError",
    "apply",
    "count_changes",
    "generate_unified_diff",
    "parse",
]
