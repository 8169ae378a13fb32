"""Selection context: a user-chosen span of the document, treated as a hint."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


def _as_offset(value: Any, name: str) -> int:
    # bool is an int subclass; a JSON true/false is never a valid offset
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"selection {name} must be an integer")
    return value


@dataclass
class SelectionContext:
    """A selected span captured client-side.

    Offsets index into ``content_snapshot`` (the document as the user saw it
    when selecting). The document may have changed since, so offsets must be
    re-validated against the current content before use.
    """

    text: str
    start_offset: int
    end_offset: int
    content_snapshot: str | None = None

    @classmethod
    def capture(cls, content: str, start: int, end: int) -> SelectionContext:
        """Capture the span ``content[start:end]`` together with a snapshot."""
        if not 0 <= start <= end <= len(content):
            raise ValueError(
                f"selection {start}-{end} is outside the document (length {len(content)})"
            )
        return cls(
            text=content[start:end],
            start_offset=start,
            end_offset=end,
            content_snapshot=content,
        )

    @classmethod
    def from_payload(
        cls, payload: Mapping[str, Any], snapshot: str | None = None,
    ) -> SelectionContext:
        """Build from the request shape ``{text, startOffset, endOffset}``.

        Snake-case keys are accepted as well. Raises ValueError on bad types.
        """
        text = payload.get("text")
        if not isinstance(text, str):
            raise ValueError("selection text must be a string")
        start = _as_offset(payload.get("startOffset", payload.get("start_offset")), "startOffset")
        end = _as_offset(payload.get("endOffset", payload.get("end_offset")), "endOffset")
        return cls(text=text, start_offset=start, end_offset=end, content_snapshot=snapshot)

    def _offsets_fit(self, content: str) -> bool:
        return 0 <= self.start_offset <= self.end_offset <= len(content)

    def matches(self, content: str) -> bool:
        """True if the stored offsets still address ``text`` in ``content``."""
        return (
            self._offsets_fit(content)
            and content[self.start_offset:self.end_offset] == self.text
        )

    def is_consistent(self) -> bool:
        """Check the capture invariant against the snapshot, if one was kept."""
        if self.content_snapshot is None:
            return True
        return self.matches(self.content_snapshot)

    def locate(self, content: str) -> tuple[int, int] | None:
        """Find the selection in ``content``.

        Stored offsets win when they still match; otherwise the first exact
        occurrence of the selected text is used. Returns None when the text
        no longer appears at all.
        """
        if not self.text:
            return None
        if self.matches(content):
            return self.start_offset, self.end_offset
        idx = content.find(self.text)
        if idx < 0:
            logger.info(
                "Selection text (%d chars) no longer present in document", len(self.text)
            )
            return None
        logger.warning(
            "Selection offsets %d-%d are stale; relocated to %d-%d by text search",
            self.start_offset, self.end_offset, idx, idx + len(self.text),
        )
        return idx, idx + len(self.text)

    def describe(self) -> str:
        return f"characters {self.start_offset}-{self.end_offset}"
