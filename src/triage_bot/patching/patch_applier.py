"""Exact-match application of parsed file patches."""

from triage_bot.models import FilePatch, Hunk, HunkLine, LineKind
from triage_bot.patching.exceptions import ApplyError


def apply(original_content: str | None, file_patch: FilePatch) -> str:
    """Apply every hunk of ``file_patch`` to ``original_content``.

    Context and removed lines must match the original exactly at the
    position named by each hunk header; there is no fuzz or offset search.

    Args:
        original_content: Current file text, or None when the file does not
            exist yet.
        file_patch: Parsed patch for this file.

    Returns:
        The updated file text.

    Raises:
        ApplyError: On any mismatch, overlap, or unsupported patch. The
            original content is never modified.
    """
    path = file_patch.target_path
    if file_patch.is_deleted_file:
        raise ApplyError(f"{path}: deleting files is not supported", path=path)
    if file_patch.is_new_file:
        return _render_new_file(file_patch)
    if original_content is None:
        raise ApplyError(f"{path}: no original content to patch", path=path)

    lines, trailing_newline = _split_content(original_content)
    result: list[str] = []
    cursor = 0
    final_newline = trailing_newline

    for hunk_index, hunk in enumerate(file_patch.hunks, start=1):
        start = hunk.old_start - 1 if hunk.old_length > 0 else hunk.old_start
        if start < cursor:
            raise ApplyError(
                f"{path}: hunk {hunk_index} overlaps the previous hunk",
                path=path,
                hunk_index=hunk_index,
            )
        if start > len(lines):
            raise ApplyError(
                f"{path}: hunk {hunk_index} starts at line {start + 1} "
                f"but the file has {len(lines)} lines",
                path=path,
                hunk_index=hunk_index,
                line_number=start + 1,
            )
        result.extend(lines[cursor:start])
        cursor = start

        for hunk_line in hunk.lines:
            if hunk_line.kind == LineKind.ADDED:
                result.append(hunk_line.text)
                continue
            found = lines[cursor] if cursor < len(lines) else None
            if found != hunk_line.text:
                raise ApplyError(
                    f"{path}: hunk {hunk_index} does not match at line {cursor + 1}: "
                    f"expected {hunk_line.text!r}, found "
                    f"{'end of file' if found is None else repr(found)}",
                    path=path,
                    hunk_index=hunk_index,
                    line_number=cursor + 1,
                    expected=hunk_line.text,
                    found=found,
                )
            if hunk_line.kind == LineKind.CONTEXT:
                result.append(found)
            cursor += 1

        if cursor == len(lines):
            final_newline = _eof_newline(path, hunk_index, hunk, trailing_newline)

    result.extend(lines[cursor:])
    if not result:
        return ""
    return "\n".join(result) + ("\n" if final_newline else "")


def _render_new_file(file_patch: FilePatch) -> str:
    added: list[HunkLine] = [
        line for hunk in file_patch.hunks for line in hunk.lines if line.kind == LineKind.ADDED
    ]
    if not added:
        return ""
    text = "\n".join(line.text for line in added)
    return text if added[-1].no_newline else text + "\n"


def _split_content(content: str) -> tuple[list[str], bool]:
    if content == "":
        return [], False
    if content.endswith("\n"):
        return content[:-1].split("\n"), True
    return content.split("\n"), False


def _eof_newline(path: str, hunk_index: int, hunk: Hunk, trailing_newline: bool) -> bool:
    """Resolve the end-of-file newline for a hunk that reaches the last line."""
    old_side = hunk.old_lines
    if old_side:
        expects_newline = not old_side[-1].no_newline
        if expects_newline != trailing_newline:
            raise ApplyError(
                f"{path}: hunk {hunk_index} disagrees with the file about the "
                "newline at end of file",
                path=path,
                hunk_index=hunk_index,
            )
    new_side = hunk.new_lines
    if new_side:
        return not new_side[-1].no_newline
    return trailing_newline
