"""LLM provider interface with Anthropic and Gemini streaming implementations.

Every provider yields events as plain dicts in the Anthropic Messages
streaming shape, so the stream parser only has to understand one format.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from collections.abc import AsyncIterator
from typing import Any, Protocol

import anthropic
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from skribe import config
from skribe.agent.tools import ToolName, ToolSpec, anthropic_tool_params
from skribe.errors import ProviderError

logger = logging.getLogger(__name__)


class StreamingProvider(Protocol):
    """Protocol for providers that stream one model turn as events."""

    name: str
    supports_web_search: bool

    def stream(
        self, *, system: str, messages: list[dict[str, Any]], tools: list[ToolSpec],
    ) -> AsyncIterator[dict[str, Any]]:
        """Start one turn and yield its events."""
        ...


class AnthropicProvider:
    """Anthropic Messages API with streaming and the server-side web search tool."""

    name = "anthropic"
    supports_web_search = True

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        web_search_max_uses: int | None = None,
    ) -> None:
        self._client = anthropic.AsyncAnthropic(api_key=api_key or config.ANTHROPIC_API_KEY)
        self._model = model or config.ANTHROPIC_MODEL
        self._max_tokens = max_tokens or config.MAX_TOKENS
        self._web_search_max_uses = web_search_max_uses or config.WEB_SEARCH_MAX_USES

    async def stream(
        self, *, system: str, messages: list[dict[str, Any]], tools: list[ToolSpec],
    ) -> AsyncIterator[dict[str, Any]]:
        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "system": system,
            "messages": messages,
            "stream": True,
        }
        if tools:
            kwargs["tools"] = anthropic_tool_params(tools, self._web_search_max_uses)

        logger.debug(
            "Anthropic stream via %s (%d messages, %d tools, %d char system)",
            self._model, len(messages), len(tools), len(system),
        )
        t0 = time.perf_counter()
        try:
            async with await self._client.messages.create(**kwargs) as response:
                async for event in response:
                    yield event.model_dump(mode="json", exclude_none=True)
        except anthropic.APIError as e:
            raise ProviderError(f"Anthropic API error: {e}") from e
        logger.debug("Anthropic stream complete: %.0fms", (time.perf_counter() - t0) * 1000)


# ── Gemini ──


def _content_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(b.get("text", "") for b in content if isinstance(b, dict) and b.get("type") == "text")
    return ""


def to_gemini_contents(messages: list[dict[str, Any]]) -> list[types.Content]:
    """Convert Anthropic-shaped messages to Gemini contents.

    Server-tool blocks are dropped; tool results are matched to their
    call by ``tool_use_id`` to recover the function name.
    """
    call_names: dict[str, str] = {}
    contents: list[types.Content] = []
    for message in messages:
        role = "model" if message.get("role") == "assistant" else "user"
        body = message.get("content")
        parts: list[types.Part] = []
        if isinstance(body, str):
            if body:
                parts.append(types.Part.from_text(text=body))
        else:
            for block in body or []:
                btype = block.get("type")
                if btype == "text" and block.get("text"):
                    parts.append(types.Part.from_text(text=block["text"]))
                elif btype == "tool_use":
                    call_names[block["id"]] = block["name"]
                    parts.append(types.Part(function_call=types.FunctionCall(
                        id=block["id"], name=block["name"], args=block.get("input") or {},
                    )))
                elif btype == "tool_result":
                    tool_use_id = block.get("tool_use_id", "")
                    key = "error" if block.get("is_error") else "result"
                    parts.append(types.Part(function_response=types.FunctionResponse(
                        id=tool_use_id,
                        name=call_names.get(tool_use_id, "unknown"),
                        response={key: _content_text(block.get("content"))},
                    )))
        if parts:
            contents.append(types.Content(role=role, parts=parts))
    return contents


def to_gemini_tools(tools: list[ToolSpec]) -> list[types.Tool]:
    declarations = [
        types.FunctionDeclaration(
            name=spec.name.value,
            description=spec.description,
            parameters_json_schema=spec.input_schema,
        )
        for spec in tools
        if spec.name is not ToolName.WEB_SEARCH
    ]
    return [types.Tool(function_declarations=declarations)] if declarations else []


class GeminiProvider:
    """Gemini streaming generation adapted to the Anthropic event shape.

    Function calls arrive whole, so each becomes a tool_use block with a
    single input_json_delta. No web search.
    """

    name = "gemini"
    supports_web_search = False

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> None:
        self._client = genai.Client(api_key=api_key or config.GEMINI_API_KEY)
        self._model = model or config.GEMINI_MODEL
        self._max_tokens = max_tokens or config.MAX_TOKENS

    async def stream(
        self, *, system: str, messages: list[dict[str, Any]], tools: list[ToolSpec],
    ) -> AsyncIterator[dict[str, Any]]:
        gen_config = types.GenerateContentConfig(
            system_instruction=system,
            max_output_tokens=self._max_tokens,
            tools=to_gemini_tools(tools) or None,
            automatic_function_calling=types.AutomaticFunctionCallingConfig(disable=True),
        )
        logger.debug("Gemini stream via %s (%d messages)", self._model, len(messages))
        t0 = time.perf_counter()

        index = 0
        text_open = False
        called_tool = False
        finish_reason: str | None = None
        yield {"type": "message_start", "message": {"role": "assistant", "model": self._model}}
        try:
            response = await self._client.aio.models.generate_content_stream(
                model=self._model,
                contents=to_gemini_contents(messages),
                config=gen_config,
            )
            async for chunk in response:
                if not chunk.candidates:
                    continue
                candidate = chunk.candidates[0]
                if candidate.finish_reason is not None:
                    finish_reason = str(getattr(candidate.finish_reason, "value", candidate.finish_reason))
                parts = candidate.content.parts if candidate.content and candidate.content.parts else []
                for part in parts:
                    if part.function_call is not None:
                        if text_open:
                            yield {"type": "content_block_stop", "index": index}
                            index += 1
                            text_open = False
                        call = part.function_call
                        called_tool = True
                        yield {
                            "type": "content_block_start",
                            "index": index,
                            "content_block": {
                                "type": "tool_use",
                                "id": call.id or f"toolu_{uuid.uuid4().hex[:24]}",
                                "name": call.name,
                                "input": {},
                            },
                        }
                        yield {
                            "type": "content_block_delta",
                            "index": index,
                            "delta": {"type": "input_json_delta", "partial_json": json.dumps(call.args or {})},
                        }
                        yield {"type": "content_block_stop", "index": index}
                        index += 1
                    elif part.text:
                        if not text_open:
                            yield {
                                "type": "content_block_start",
                                "index": index,
                                "content_block": {"type": "text", "text": ""},
                            }
                            text_open = True
                        yield {
                            "type": "content_block_delta",
                            "index": index,
                            "delta": {"type": "text_delta", "text": part.text},
                        }
        except genai_errors.APIError as e:
            raise ProviderError(f"Gemini API error: {e}") from e

        if text_open:
            yield {"type": "content_block_stop", "index": index}
        if called_tool:
            stop_reason = "tool_use"
        elif finish_reason == "MAX_TOKENS":
            stop_reason = "max_tokens"
        else:
            stop_reason = "end_turn"
        yield {"type": "message_delta", "delta": {"stop_reason": stop_reason}}
        yield {"type": "message_stop"}
        logger.debug("Gemini stream complete: %.0fms", (time.perf_counter() - t0) * 1000)


def create_provider(name: str | None = None, api_key: str | None = None) -> StreamingProvider:
    """Build a provider by name (defaults to LLM_PROVIDER)."""
    provider = (name or config.LLM_PROVIDER).lower()
    if provider == "anthropic":
        return AnthropicProvider(api_key=api_key)
    if provider == "gemini":
        return GeminiProvider(api_key=api_key)
    raise ValueError(f"Unknown LLM provider: {provider!r}")
