"""Utilities for generating unified diffs and change statistics."""

import difflib

from triage_bot.patching.diff_parser import NO_NEWLINE_MARKER


def generate_unified_diff(
    file_path: str,
    original_content: str,
    modified_content: str,
    new_file: bool = False,
) -> str:
    """Generate a git-compatible unified diff.

    Args:
        file_path: Repository-relative path (e.g. "src/app.py").
        original_content: File content before the change.
        modified_content: File content after the change.
        new_file: Use /dev/null as the old file name.

    Returns:
        Unified diff string with a/ b/ prefixes. Empty string if no changes.
    """
    if original_content == modified_content:
        return ""

    original_lines = _lines_with_ends(original_content)
    modified_lines = _lines_with_ends(modified_content)

    diff_gen = difflib.unified_diff(
        original_lines,
        modified_lines,
        fromfile="/dev/null" if new_file else f"a/{file_path}",
        tofile=f"b/{file_path}",
        lineterm="",
    )

    # Headers come without a newline (lineterm=""); body lines keep their own,
    # so a body line without one is the last line of a file lacking a final newline.
    diff_lines = []
    for index, line in enumerate(diff_gen):
        if index < 2 or line.startswith("@@"):
            diff_lines.append(line)
        elif line.endswith("\n"):
            diff_lines.append(line[:-1])
        else:
            diff_lines.append(line)
            diff_lines.append(NO_NEWLINE_MARKER)

    return "\n".join(diff_lines)


def _lines_with_ends(content: str) -> list[str]:
    # Split on "\n" only; str.splitlines also breaks on \r, \f and friends.
    if not content:
        return []
    lines = [line + "\n" for line in content.split("\n")]
    lines[-1] = lines[-1][:-1]
    if not lines[-1]:
        lines.pop()
    return lines


def count_changes(original_content: str, modified_content: str) -> tuple[int, int]:
    """Count added and removed lines between two versions of a file.

    Returns:
        Tuple of (added, removed).
    """
    added = 0
    removed = 0
    matcher = difflib.SequenceMatcher(
        a=_lines_with_ends(original_content),
        b=_lines_with_ends(modified_content),
        autojunk=False,
    )
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag in ("replace", "delete"):
            removed += i2 - i1
        if tag in ("replace", "insert"):
            added += j2 - j1
    return added, removed
