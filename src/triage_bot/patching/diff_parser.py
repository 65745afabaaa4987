"""Parser for unified-diff text.

Turns the output of ``git diff`` / ``diff -u`` into an ordered list of
:class:`FilePatch` objects. Parsing is all-or-nothing: one malformed file
section invalidates the whole diff.
"""

import re

from triage_bot.models import NULL_DEVICE, FilePatch, Hunk, HunkLine, LineKind
from triage_bot.patching.exceptions import ParseError

HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")
NO_NEWLINE_MARKER = "\\ No newline at end of file"


def parse(diff_text: str) -> list[FilePatch]:
    """Parse unified-diff text into per-file patches.

    Args:
        diff_text: Diff text, possibly containing several files and
            ``diff --git`` / ``index`` preamble lines.

    Returns:
        FilePatch objects in the order they appear. Empty list for empty
        or whitespace-only input.

    Raises:
        ParseError: If any file section is malformed.
    """
    if not diff_text or not diff_text.strip():
        return []

    lines = _split_lines(diff_text)
    patches: list[FilePatch] = []
    i = 0
    while i < len(lines):
        line = lines[i]
        if line.startswith("--- "):
            if i + 1 >= len(lines) or not lines[i + 1].startswith("+++ "):
                raise ParseError(f"line {i + 1}: '---' header is not followed by '+++'")
            old_name = _header_path(line[4:], "a/")
            new_name = _header_path(lines[i + 1][4:], "b/")
            i += 2

            hunks: list[Hunk] = []
            while i < len(lines) and lines[i].startswith("@@"):
                hunk, i = _parse_hunk(lines, i, new_name)
                hunks.append(hunk)
            if not hunks:
                raise ParseError(f"{new_name}: file section has no hunk header")
            if i < len(lines) and _is_body_line(lines[i]):
                raise ParseError(
                    f"{new_name}: line {i + 1}: hunk body is longer than its header declares"
                )
            if old_name == NULL_DEVICE and new_name == NULL_DEVICE:
                raise ParseError(f"line {i}: both file names are {NULL_DEVICE}")
            patches.append(FilePatch(old_file_name=old_name, new_file_name=new_name, hunks=hunks))
            continue
        if line.startswith("@@"):
            raise ParseError(f"line {i + 1}: hunk header outside of a file section")
        # diff --git, index, mode, rename and similar preamble lines
        i += 1
    return patches


def strip_prefix(path: str, prefix: str) -> str:
    """Strip a conventional ``a/`` or ``b/`` prefix from a diff path."""
    if path != NULL_DEVICE and path.startswith(prefix):
        return path[len(prefix):]
    return path


def _split_lines(text: str) -> list[str]:
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def _header_path(raw: str, prefix: str) -> str:
    # "--- a/foo.py\t2024-01-01 00:00:00" -> "foo.py"
    path = raw.split("\t", 1)[0].rstrip()
    if len(path) >= 2 and path[0] == '"' and path[-1] == '"':
        path = path[1:-1]
    if not path:
        raise ParseError("empty file name in diff header")
    return strip_prefix(path, prefix)


def _is_body_line(line: str) -> bool:
    if line.startswith("--- ") or line.startswith("+++ "):
        return False
    return line[:1] in (" ", "+", "-")


def _parse_hunk(lines: list[str], start: int, path: str) -> tuple[Hunk, int]:
    header = lines[start]
    match = HUNK_HEADER_RE.match(header)
    if not match:
        raise ParseError(f"{path}: line {start + 1}: malformed hunk header {header!r}")

    old_start = int(match.group(1))
    old_length = int(match.group(2)) if match.group(2) is not None else 1
    new_start = int(match.group(3))
    new_length = int(match.group(4)) if match.group(4) is not None else 1

    old_remaining = old_length
    new_remaining = new_length
    body: list[HunkLine] = []
    i = start + 1
    while old_remaining > 0 or new_remaining > 0:
        if i >= len(lines):
            raise ParseError(
                f"{path}: hunk {header!r} ends early "
                f"({old_remaining} old / {new_remaining} new lines missing)"
            )
        line = lines[i]
        marker, text = line[:1], line[1:]
        if marker == " " or line == "":
            kind = LineKind.CONTEXT
            old_remaining -= 1
            new_remaining -= 1
        elif marker == "-":
            kind = LineKind.REMOVED
            old_remaining -= 1
        elif marker == "+":
            kind = LineKind.ADDED
            new_remaining -= 1
        elif marker == "\\":
            _mark_no_newline(body, path, i)
            i += 1
            continue
        else:
            raise ParseError(f"{path}: line {i + 1}: invalid hunk line {line!r}")
        if old_remaining < 0 or new_remaining < 0:
            raise ParseError(f"{path}: hunk {header!r} line counts do not match its body")
        body.append(HunkLine(kind=kind, text=text))
        i += 1

    while i < len(lines) and lines[i].startswith("\\"):
        _mark_no_newline(body, path, i)
        i += 1

    hunk = Hunk(
        old_start=old_start,
        old_length=old_length,
        new_start=new_start,
        new_length=new_length,
        lines=body,
    )
    return hunk, i


def _mark_no_newline(body: list[HunkLine], path: str, index: int) -> None:
    if not body:
        raise ParseError(f"{path}: line {index + 1}: newline marker before any hunk line")
    body[-1] = body[-1].model_copy(update={"no_newline": True})
