"""Shared test helpers: provider event-stream factories and in-memory collaborators."""

from __future__ import annotations

import copy
import json

from skribe.errors import DocumentNotFound

USER = "user_1"
OTHER_USER = "user_2"


def _start(index: int, block: dict) -> dict:
    return {"type": "content_block_start", "index": index, "content_block": block}


def _stop(index: int) -> dict:
    return {"type": "content_block_stop", "index": index}


def _end(stop_reason: str) -> list[dict]:
    return [
        {"type": "message_delta", "delta": {"stop_reason": stop_reason}, "usage": {"output_tokens": 10}},
        {"type": "message_stop"},
    ]


def text_events(text: str, index: int = 0, chunk_size: int = 8) -> list[dict]:
    """Events for one text block, split into small deltas."""
    events = [_start(index, {"type": "text", "text": ""})]
    for i in range(0, len(text), chunk_size):
        events.append({
            "type": "content_block_delta",
            "index": index,
            "delta": {"type": "text_delta", "text": text[i:i + chunk_size]},
        })
    events.append(_stop(index))
    return events


def tool_use_events(name: str, raw_json: str, index: int = 0, tool_id: str = "toolu_1") -> list[dict]:
    """Events for one tool_use block; arguments arrive in two fragments."""
    mid = len(raw_json) // 2
    events = [_start(index, {"type": "tool_use", "id": tool_id, "name": name, "input": {}})]
    for fragment in (raw_json[:mid], raw_json[mid:]):
        events.append({
            "type": "content_block_delta",
            "index": index,
            "delta": {"type": "input_json_delta", "partial_json": fragment},
        })
    events.append(_stop(index))
    return events


def _message_start() -> dict:
    return {"type": "message_start", "message": {"role": "assistant", "usage": {"input_tokens": 100}}}


def make_text_turn(text: str, stop_reason: str = "end_turn") -> list[dict]:
    """A complete turn that only produces text."""
    return [_message_start(), *text_events(text), *_end(stop_reason)]


def make_tool_turn(name: str, args: dict | str, text: str | None = None, tool_id: str = "toolu_1") -> list[dict]:
    """A complete turn ending in one tool call. ``args`` may be a raw (even malformed) JSON string."""
    raw = args if isinstance(args, str) else json.dumps(args)
    events = [_message_start()]
    index = 0
    if text:
        events += text_events(text, index=index)
        index += 1
    events += tool_use_events(name, raw, index=index, tool_id=tool_id)
    events += _end("tool_use")
    return events


def make_multi_tool_turn(calls: list[tuple[str, dict]]) -> list[dict]:
    """A complete turn with several tool calls, closed one after another."""
    events = [_message_start()]
    for i, (name, args) in enumerate(calls):
        events += tool_use_events(name, json.dumps(args), index=i, tool_id=f"toolu_{i + 1}")
    events += _end("tool_use")
    return events


def make_web_search_turn(query: str, citations: list[dict], text: str) -> list[dict]:
    """Server-side web search followed by a cited text block."""
    events = [
        _message_start(),
        _start(0, {"type": "server_tool_use", "id": "srvtoolu_1", "name": "web_search", "input": {}}),
        {
            "type": "content_block_delta",
            "index": 0,
            "delta": {"type": "input_json_delta", "partial_json": json.dumps({"query": query})},
        },
        _stop(0),
        _start(1, {
            "type": "web_search_tool_result",
            "tool_use_id": "srvtoolu_1",
            "content": [
                {"type": "web_search_result", "url": c["url"], "title": c.get("title", ""), "encrypted_content": "x"}
                for c in citations
            ],
        }),
        _stop(1),
        _start(2, {"type": "text", "text": ""}),
        {"type": "content_block_delta", "index": 2, "delta": {"type": "text_delta", "text": text}},
    ]
    for c in citations:
        events.append({
            "type": "content_block_delta",
            "index": 2,
            "delta": {
                "type": "citations_delta",
                "citation": {
                    "type": "web_search_result_location",
                    "url": c["url"],
                    "title": c.get("title"),
                    "cited_text": c.get("cited_text", ""),
                    "encrypted_index": "y",
                },
            },
        })
    events.append(_stop(2))
    events += _end("end_turn")
    return events


class FakeProvider:
    """Replays scripted turns and records every call."""

    name = "fake"

    def __init__(self, turns: list[list[dict]], supports_web_search: bool = True) -> None:
        self.turns = list(turns)
        self.calls: list[dict] = []
        self.supports_web_search = supports_web_search

    async def stream(self, *, system, messages, tools):
        self.calls.append({
            "system": system,
            "messages": copy.deepcopy(messages),
            "tools": [spec.name.value for spec in tools],
        })
        if not self.turns:
            raise AssertionError("unexpected provider call")
        for event in self.turns.pop(0):
            yield event


class FakeSink:
    """In-memory document persistence that records every call."""

    def __init__(self, documents: list[dict] | None = None) -> None:
        self.documents = {d["id"]: dict(d) for d in documents or []}
        self.creates: list[dict] = []
        self.updates: list[dict] = []

    async def create_document(self, project_id, title, content, doc_type):
        doc_id = f"doc{len(self.documents) + 1}"
        record = {
            "id": doc_id, "project_id": project_id, "title": title,
            "content": content, "type": doc_type, "updated_at": "2026-01-01T00:00:00+00:00",
        }
        self.documents[doc_id] = record
        self.creates.append(record)
        return dict(record)

    async def update_document(self, project_id, document_id, content, title=None):
        doc = self.documents.get(document_id)
        if doc is None or doc["project_id"] != project_id:
            raise DocumentNotFound(f"Document {document_id} not found in this project")
        doc["content"] = content
        if title is not None:
            doc["title"] = title
        self.updates.append({"id": document_id, "content": content, "title": title})
        return dict(doc)
