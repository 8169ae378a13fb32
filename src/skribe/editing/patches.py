"""Deterministic markdown patch engine.

Each operation takes the full document string and returns a PatchResult
whose ``new_content`` is the complete resulting document, never a diff.
A failed operation returns the input unchanged so callers can persist
``new_content`` wholesale without checking which branch ran.

Headings are recognised line by line (ATX style, ``#`` to ``######``);
lines inside fenced code blocks are skipped. There is no document tree.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from skribe.editing.selection import SelectionContext

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 50

_HEADING_RE = re.compile(r"^(#{1,6})(?!#)[ \t]*(.*?)[ \t]*$")
_CLOSING_HASHES_RE = re.compile(r"(?:^|[ \t]+)#+$")
_FENCE_RE = re.compile(r"^ {0,3}(`{3,}|~{3,})")

AFTER_HEADING_PREFIX = "after_heading:"
LINE_PREFIX = "line:"


@dataclass(frozen=True)
class PatchResult:
    """Outcome of a patch operation."""

    success: bool
    new_content: str
    message: str


@dataclass(frozen=True)
class Heading:
    """One heading line located in a document."""

    level: int
    text: str
    start: int  # offset of the first character of the heading line
    end: int  # offset just past the line terminator (or EOF)
    line_number: int  # 1-based


def _ok(new_content: str, message: str) -> PatchResult:
    return PatchResult(success=True, new_content=new_content, message=message)


def _fail(content: str, message: str) -> PatchResult:
    logger.debug("patch failed: %s", message)
    return PatchResult(success=False, new_content=content, message=message)


def _preview(text: str) -> str:
    if len(text) > PREVIEW_CHARS:
        return text[:PREVIEW_CHARS] + "..."
    return text


def split_lines(content: str) -> list[str]:
    """Split into lines, keeping each line's ``\\n`` terminator."""
    return [line for line in re.split(r"(?<=\n)", content) if line]


def normalize_heading(text: str) -> str:
    """Strip surrounding whitespace and leading ``#`` markers."""
    return text.strip().lstrip("#").strip()


def _heading_text(raw: str) -> str:
    return _CLOSING_HASHES_RE.sub("", raw).strip()


def find_headings(content: str) -> list[Heading]:
    """Return every heading line in document order."""
    headings: list[Heading] = []
    offset = 0
    fence: str | None = None
    for line_number, line in enumerate(split_lines(content), start=1):
        bare = line.rstrip("\r\n")
        if fence is not None:
            closing = bare.strip()
            if closing and set(closing) == {fence[0]} and len(closing) >= len(fence):
                fence = None
        else:
            fence_match = _FENCE_RE.match(bare)
            if fence_match:
                fence = fence_match.group(1)
            else:
                m = _HEADING_RE.match(bare)
                if m:
                    headings.append(Heading(
                        level=len(m.group(1)),
                        text=_heading_text(m.group(2) or ""),
                        start=offset,
                        end=offset + len(line),
                        line_number=line_number,
                    ))
        offset += len(line)
    return headings


def _find_heading(headings: list[Heading], query: str) -> Heading | None:
    """First heading whose text equals the query (markers ignored).

    When the query carries ``#`` markers, a heading of that exact level is
    preferred over an earlier one at a different level.
    """
    target = normalize_heading(query)
    candidates = [h for h in headings if h.text == target]
    if not candidates:
        return None
    stripped = query.strip()
    marker_level = len(stripped) - len(stripped.lstrip("#"))
    if marker_level:
        for h in candidates:
            if h.level == marker_level:
                return h
    return candidates[0]


def _section_end(content: str, headings: list[Heading], heading: Heading) -> int:
    for h in headings:
        if h.start > heading.start and h.level <= heading.level:
            return h.start
    return len(content)


# ── Operations ──


def replace_selection(
    content: str,
    new_text: str,
    selection: SelectionContext | None,
    explanation: str | None = None,
) -> PatchResult:
    """Replace exactly one occurrence of the selected span.

    The selection's stored offsets are tried first; if they no longer
    address the selected text, the first exact match of the text is used.
    """
    if selection is None:
        return _fail(content, "No text is currently selected. Select text in the document first.")
    if not selection.text:
        return _fail(content, "The selection is empty.")

    span = selection.locate(content)
    if span is None:
        return _fail(
            content,
            "The selected text was not found in the current document. "
            "It may have changed since it was selected.",
        )

    start, end = span
    new_content = content[:start] + new_text + content[end:]
    return _ok(new_content, explanation or f"Replaced selection ({end - start} chars) with new content")


def insert_at_position(content: str, text: str, position: str) -> PatchResult:
    """Insert ``text`` at an anchor.

    Anchors: ``start``, ``end``, ``after_heading:<Heading>`` (after the
    heading line and its trailing blank line, if any) and ``line:<N>``
    (1-based, before line N, clamped to the document).
    """
    if not text.strip():
        return _fail(content, "Content to insert is empty.")
    anchor = position.strip()

    if anchor == "start":
        if not content:
            return _ok(text, "Content inserted at start of document")
        return _ok(text.rstrip("\n") + "\n\n" + content, "Content inserted at start of document")

    if anchor == "end":
        if not content:
            return _ok(text, "Content inserted at end of document")
        trailing = "\n" if content.endswith("\n") else ""
        new_content = content.rstrip("\n") + "\n\n" + text.strip("\n") + trailing
        return _ok(new_content, "Content inserted at end of document")

    if anchor.startswith(AFTER_HEADING_PREFIX):
        return _insert_after_heading(content, text, anchor[len(AFTER_HEADING_PREFIX):])

    if anchor.startswith(LINE_PREFIX):
        return _insert_at_line(content, text, anchor[len(LINE_PREFIX):])

    return _fail(
        content,
        f"Unknown position format: {position!r}. "
        "Use 'start', 'end', 'after_heading:HeadingText', or 'line:N'.",
    )


def _insert_after_heading(content: str, text: str, heading_query: str) -> PatchResult:
    name = normalize_heading(heading_query)
    if not name:
        return _fail(content, "after_heading: requires a heading text.")

    heading = _find_heading(find_headings(content), heading_query)
    if heading is None:
        return _fail(content, f'Heading "{name}" not found in document')

    insert_at = heading.end
    rest = content[insert_at:]
    blank = re.match(r"[ \t]*\r?\n", rest)
    if blank:
        insert_at += blank.end()

    before = content[:insert_at]
    after = content[insert_at:]
    if not before.endswith("\n"):
        before += "\n"

    block = text.strip("\n")
    if after:
        block += "\n" if after.startswith(("\n", "\r\n")) else "\n\n"
    elif content.endswith("\n"):
        block += "\n"

    return _ok(before + block + after, f'Content inserted after "{name}"')


def _insert_at_line(content: str, text: str, raw_line: str) -> PatchResult:
    try:
        requested = int(raw_line.strip())
    except ValueError:
        return _fail(content, f"Invalid line number: {raw_line.strip()!r}.")

    lines = split_lines(content)
    line_number = max(1, min(requested, len(lines) + 1))
    block = text if text.endswith("\n") else text + "\n"

    if lines and line_number == len(lines) + 1 and not lines[-1].endswith("\n"):
        # Appending after an unterminated last line: terminate it, keep EOF style
        lines[-1] += "\n"
        block = text.rstrip("\n")

    lines.insert(line_number - 1, block)
    message = f"Content inserted at line {line_number}"
    if line_number != requested:
        message += f" (requested line {requested}, document has {len(split_lines(content))} lines)"
    return _ok("".join(lines), message)


def replace_section(content: str, heading: str, new_content: str) -> PatchResult:
    """Replace a markdown section.

    The section runs from the heading line to the next heading of equal or
    higher level (or EOF). If ``new_content`` begins with a heading line it
    replaces the whole section; otherwise the original heading line is kept
    and only the body is replaced. The whitespace separating the section
    from what follows is preserved.
    """
    name = normalize_heading(heading)
    if not name:
        return _fail(content, "Section heading must not be empty.")

    headings = find_headings(content)
    target = _find_heading(headings, heading)
    if target is None:
        return _fail(content, f'Section "{name}" not found in document')

    end = _section_end(content, headings, target)
    section = content[target.start:end]
    trailer = section[len(section.rstrip()):]

    replacement = new_content.strip("\n").rstrip()
    first_line = replacement.split("\n", 1)[0]
    if replacement and _HEADING_RE.match(first_line.rstrip("\r")):
        new_section = replacement + trailer
    else:
        heading_line = content[target.start:target.end].rstrip("\r\n")
        if replacement:
            gap = "\n" if content[target.end:end].startswith(("\n", "\r\n")) else ""
            new_section = heading_line + "\n" + gap + replacement + trailer
        else:
            new_section = heading_line + trailer

    return _ok(content[:target.start] + new_section + content[end:], f'Section "{name}" replaced')


def find_and_replace(
    content: str, find: str, replace: str, replace_all: bool = False,
) -> PatchResult:
    """Literal (non-regex) substring replacement.

    Replaces the first occurrence in document order unless ``replace_all``.
    Zero occurrences is a failure, not a silent no-op.
    """
    if not find:
        return _fail(content, "Find text must not be empty.")

    count = content.count(find)
    if count == 0:
        return _fail(content, f'Text "{_preview(find)}" not found in document')

    if replace_all:
        new_content = content.replace(find, replace)
        replaced = count
    else:
        new_content = content.replace(find, replace, 1)
        replaced = 1

    noun = "occurrence" if replaced == 1 else "occurrences"
    return _ok(
        new_content,
        f"Replaced {replaced} {noun} of '{_preview(find)}' with '{_preview(replace)}'",
    )


def rewrite_document(content: str, new_content: str, summary: str | None = None) -> PatchResult:
    """Unconditional full replacement. Always succeeds."""
    return _ok(new_content, summary or "Document rewritten")


def outline(content: str) -> str:
    """Indented heading outline, used to orient the model in long documents."""
    lines = [
        f"{'  ' * (h.level - 1)}- {h.text} (line {h.line_number})"
        for h in find_headings(content)
        if h.text
    ]
    return "\n".join(lines)
