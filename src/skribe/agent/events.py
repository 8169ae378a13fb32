"""Output items of a run and their wire framings.

A run produces an ordered sequence of TextChunk and Notification items.
Two framings are supported:

- ``ndjson``: every item is one JSON object per line; text travels as
  ``{"type": "TEXT", "text": ...}``.
- ``text``: raw assistant text with notifications embedded as single-line
  JSON markers, each preceded and followed by a newline. Consumers split on
  newlines and try to parse lines that look like JSON objects.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class EventType(str, Enum):
    DOCUMENT_CREATED = "DOCUMENT_CREATED"
    DOCUMENT_UPDATED = "DOCUMENT_UPDATED"
    DOCUMENT_EDIT = "DOCUMENT_EDIT"
    WEB_SEARCH_STARTED = "WEB_SEARCH_STARTED"
    WEB_SEARCH_CITATIONS = "WEB_SEARCH_CITATIONS"
    # ndjson framing only
    TEXT = "TEXT"
    ERROR = "ERROR"


MARKER_TYPES: frozenset[str] = frozenset({
    EventType.DOCUMENT_CREATED.value,
    EventType.DOCUMENT_UPDATED.value,
    EventType.DOCUMENT_EDIT.value,
    EventType.WEB_SEARCH_STARTED.value,
    EventType.WEB_SEARCH_CITATIONS.value,
})


@dataclass(frozen=True)
class TextChunk:
    """A piece of assistant text, forwarded verbatim."""

    text: str


@dataclass(frozen=True)
class Notification:
    """An out-of-band event interleaved with the text stream."""

    type: EventType
    fields: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, **self.fields}


OutputItem = Union[TextChunk, Notification]


# ── Constructors ──


def document_created(document_id: str, title: str, document_type: str) -> Notification:
    return Notification(EventType.DOCUMENT_CREATED, {
        "documentId": document_id, "title": title, "documentType": document_type,
    })


def document_updated(document_id: str, title: str, document_type: str) -> Notification:
    return Notification(EventType.DOCUMENT_UPDATED, {
        "documentId": document_id, "title": title, "documentType": document_type,
    })


def document_edit(document_id: str, content: str, message: str) -> Notification:
    return Notification(EventType.DOCUMENT_EDIT, {
        "documentId": document_id, "content": content, "message": message,
    })


def web_search_started(query: str | None = None) -> Notification:
    fields: dict[str, Any] = {}
    if query:
        fields["query"] = query
    return Notification(EventType.WEB_SEARCH_STARTED, fields)


def web_search_citations(citations: list[dict[str, str]]) -> Notification:
    return Notification(EventType.WEB_SEARCH_CITATIONS, {"citations": citations})


def error_event(message: str) -> Notification:
    return Notification(EventType.ERROR, {"error": message})


# ── Encoders ──


def encode_text(item: OutputItem) -> str:
    if isinstance(item, TextChunk):
        return item.text
    if item.type is EventType.ERROR:
        # text framing signals failure by terminating the body abnormally
        return ""
    return "\n" + json.dumps(item.to_dict()) + "\n"


def encode_ndjson(item: OutputItem) -> str:
    if isinstance(item, TextChunk):
        payload: dict[str, Any] = {"type": EventType.TEXT.value, "text": item.text}
    else:
        payload = item.to_dict()
    return json.dumps(payload) + "\n"


STREAM_FORMATS: dict[str, tuple[str, Callable[[OutputItem], str]]] = {
    "ndjson": ("application/x-ndjson", encode_ndjson),
    "text": ("text/plain; charset=utf-8", encode_text),
}


# ── Consumer side ──


def split_markers(body: str) -> tuple[str, list[dict[str, Any]]]:
    """Separate marker events from text in a ``text``-framed body.

    Lines that look like JSON objects but fail to parse, or parse to an
    unknown type, are kept as literal text.
    """
    events: list[dict[str, Any]] = []
    clean_lines: list[str] = []
    for line in body.split("\n"):
        trimmed = line.strip()
        if trimmed.startswith("{") and trimmed.endswith("}"):
            try:
                parsed = json.loads(trimmed)
            except json.JSONDecodeError:
                parsed = None
            if isinstance(parsed, dict) and parsed.get("type") in MARKER_TYPES:
                events.append(parsed)
                continue
        clean_lines.append(line)
    return "\n".join(clean_lines).strip(), events


def parse_ndjson(body: str) -> tuple[str, list[dict[str, Any]]]:
    """Reassemble an ``ndjson`` body into (text, non-text events)."""
    text_parts: list[str] = []
    events: list[dict[str, Any]] = []
    for line in body.splitlines():
        if not line.strip():
            continue
        record = json.loads(line)
        if record.get("type") == EventType.TEXT.value:
            text_parts.append(record.get("text", ""))
        else:
            events.append(record)
    return "".join(text_parts), events
