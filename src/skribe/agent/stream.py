"""Stream event parser: reduces one provider turn's events into output and a TurnResult.

Events are dicts in the Anthropic Messages streaming shape:
``message_start``, ``content_block_start``, ``content_block_delta``,
``content_block_stop``, ``message_delta``, ``message_stop``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from skribe.agent.events import OutputItem, TextChunk, web_search_citations, web_search_started
from skribe.errors import ProviderError

logger = logging.getLogger(__name__)


class StopReason(str, Enum):
    TOOL_USE = "tool_use"
    PAUSE_TURN = "pause_turn"
    END_TURN = "end_turn"
    OTHER = "other"

    @classmethod
    def from_raw(cls, raw: str | None) -> StopReason:
        if raw in ("tool_use", "pause_turn", "end_turn"):
            return cls(raw)
        return cls.OTHER


@dataclass
class ToolCallAccumulator:
    """The tool-use block currently open; its JSON arrives in fragments."""

    id: str
    name: str
    partial_json: str = ""


@dataclass(frozen=True)
class CompletedToolCall:
    id: str
    name: str
    raw_input: str


@dataclass
class TurnResult:
    """Everything one provider turn produced."""

    text: str
    tool_calls: list[CompletedToolCall]
    stop_reason: StopReason
    raw_stop_reason: str | None = None
    citations: list[dict[str, str]] = field(default_factory=list)
    content_blocks: list[dict[str, Any]] = field(default_factory=list)

    @property
    def completed_tool_call(self) -> CompletedToolCall | None:
        return self.tool_calls[0] if self.tool_calls else None


def _loads_object(raw: str) -> dict[str, Any]:
    try:
        value = json.loads(raw) if raw else {}
    except json.JSONDecodeError:
        return {}
    return value if isinstance(value, dict) else {}


def _citation_record(citation: dict[str, Any]) -> dict[str, str]:
    return {
        "url": citation.get("url", ""),
        "title": citation.get("title") or "",
        "citedText": citation.get("cited_text") or "",
    }


class StreamEventParser:
    """State machine for one provider turn.

    At most one client tool-use accumulator is open at a time. Text deltas
    are returned from ``feed`` as soon as they arrive; citations are
    buffered per text block and flushed as a single notification when the
    block closes.
    """

    def __init__(self) -> None:
        self._text_parts: list[str] = []
        self._blocks: dict[int, dict[str, Any]] = {}
        self._order: list[int] = []
        self._accumulator: ToolCallAccumulator | None = None
        self._accumulator_index: int | None = None
        self._server_inputs: dict[int, str] = {}
        self._pending_citations: dict[int, list[dict[str, Any]]] = {}
        self._tool_calls: list[CompletedToolCall] = []
        self._citations: list[dict[str, str]] = []
        self._raw_stop_reason: str | None = None

    def feed(self, event: dict[str, Any]) -> list[OutputItem]:
        """Consume one event; return output items to forward, in order."""
        etype = event.get("type")
        if etype == "content_block_start":
            return self._on_block_start(event)
        if etype == "content_block_delta":
            return self._on_block_delta(event)
        if etype == "content_block_stop":
            return self._on_block_stop(event)
        if etype == "message_delta":
            stop = (event.get("delta") or {}).get("stop_reason")
            if stop:
                self._raw_stop_reason = stop
            return []
        if etype == "error":
            error = event.get("error") or {}
            raise ProviderError(error.get("message") or "provider stream error")
        if etype == "message_start":
            usage = (event.get("message") or {}).get("usage") or {}
            logger.debug("message_start: input_tokens=%s", usage.get("input_tokens"))
        return []

    def _on_block_start(self, event: dict[str, Any]) -> list[OutputItem]:
        index = event.get("index", len(self._order))
        block = dict(event.get("content_block") or {})
        btype = block.get("type")
        self._blocks[index] = block
        self._order.append(index)

        if btype == "tool_use":
            if self._accumulator is not None:
                logger.warning(
                    "tool_use block %s opened while %s is still open; dropping the earlier one",
                    index, self._accumulator.name,
                )
            self._accumulator = ToolCallAccumulator(id=block.get("id", ""), name=block.get("name", ""))
            self._accumulator_index = index
            return []

        if btype == "server_tool_use":
            self._server_inputs[index] = ""
            logger.info("Server tool started: %s", block.get("name"))
            if block.get("name") == "web_search":
                return [web_search_started((block.get("input") or {}).get("query"))]
            return []

        if btype == "web_search_tool_result":
            content = block.get("content")
            if isinstance(content, list):
                logger.info("Web search returned %d result(s)", len(content))
            else:
                logger.warning("Web search failed: %s", (content or {}).get("error_code"))
            return []

        if btype == "text":
            initial = block.get("text") or ""
            if initial:
                self._text_parts.append(initial)
                return [TextChunk(initial)]
        return []

    def _on_block_delta(self, event: dict[str, Any]) -> list[OutputItem]:
        index = event.get("index", 0)
        delta = event.get("delta") or {}
        dtype = delta.get("type")
        block = self._blocks.get(index)

        if dtype == "text_delta":
            text = delta.get("text", "")
            if not text:
                return []
            self._text_parts.append(text)
            if block is not None:
                block["text"] = (block.get("text") or "") + text
            return [TextChunk(text)]

        if dtype == "input_json_delta":
            fragment = delta.get("partial_json", "")
            if self._accumulator is not None and index == self._accumulator_index:
                self._accumulator.partial_json += fragment
            elif index in self._server_inputs:
                self._server_inputs[index] += fragment
            else:
                logger.debug("input_json_delta for unknown block %s ignored", index)
            return []

        if dtype == "citations_delta":
            citation = delta.get("citation") or {}
            self._pending_citations.setdefault(index, []).append(citation)
            if block is not None:
                block.setdefault("citations", []).append(citation)
            return []

        return []

    def _on_block_stop(self, event: dict[str, Any]) -> list[OutputItem]:
        index = event.get("index", 0)
        block = self._blocks.get(index)

        if self._accumulator is not None and index == self._accumulator_index:
            acc = self._accumulator
            self._tool_calls.append(CompletedToolCall(id=acc.id, name=acc.name, raw_input=acc.partial_json))
            if block is not None:
                block["input"] = _loads_object(acc.partial_json)
            self._accumulator = None
            self._accumulator_index = None
        elif index in self._server_inputs:
            raw = self._server_inputs.pop(index)
            if raw and block is not None:
                block["input"] = _loads_object(raw)

        pending = self._pending_citations.pop(index, None)
        if not pending:
            return []
        records: list[dict[str, str]] = []
        seen: set[str] = set()
        for citation in pending:
            url = citation.get("url")
            if not url or url in seen:
                continue
            seen.add(url)
            records.append(_citation_record(citation))
        if not records:
            return []
        self._citations.extend(records)
        return [web_search_citations(records)]

    def finish(self) -> TurnResult:
        """Close the turn and return its result."""
        if self._accumulator is not None:
            logger.warning(
                "Stream ended with tool_use block %r still open; discarding it",
                self._accumulator.name,
            )
            self._accumulator = None

        completed_ids = {call.id for call in self._tool_calls}
        blocks: list[dict[str, Any]] = []
        for index in self._order:
            block = self._blocks[index]
            if block.get("type") == "text" and not block.get("text"):
                continue
            if block.get("type") == "tool_use" and block.get("id") not in completed_ids:
                continue
            blocks.append(block)

        return TurnResult(
            text="".join(self._text_parts),
            tool_calls=list(self._tool_calls),
            stop_reason=StopReason.from_raw(self._raw_stop_reason),
            raw_stop_reason=self._raw_stop_reason,
            citations=list(self._citations),
            content_blocks=blocks,
        )
