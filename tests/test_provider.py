"""Tests for the provider adapters, with the SDK clients mocked."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import anthropic
import httpx
import pytest
from google.genai import types

from skribe.agent.provider import (
    AnthropicProvider,
    GeminiProvider,
    create_provider,
    to_gemini_contents,
    to_gemini_tools,
)
from skribe.agent.stream import StopReason, StreamEventParser
from skribe.agent.tools import TOOL_SPECS, ToolName, select_tools
from skribe.errors import ProviderError


async def _aiter(items):
    for item in items:
        yield item


class _MessageStream:
    """Iterable like anthropic.AsyncStream; records whether it was closed."""

    def __init__(self, events):
        self._events = list(events)
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.closed = True

    def __aiter__(self):
        return _aiter(self._events)


async def _drain(provider, tools=None):
    return [
        event async for event in provider.stream(system="sys", messages=[{"role": "user", "content": "hi"}],
                                                 tools=tools or [])
    ]


def _chunk(*parts, finish_reason=None):
    return types.GenerateContentResponse(candidates=[
        types.Candidate(content=types.Content(role="model", parts=list(parts)), finish_reason=finish_reason),
    ])


class TestGeminiConversion:
    def test_messages_to_contents(self):
        messages = [
            {"role": "user", "content": "Fix the price"},
            {"role": "assistant", "content": [
                {"type": "text", "text": "On it."},
                {"type": "tool_use", "id": "call_1", "name": "find_and_replace",
                 "input": {"find": "$10", "replace": "$12"}},
            ]},
            {"role": "user", "content": [
                {"type": "tool_result", "tool_use_id": "call_1", "content": "Error: not found", "is_error": True},
            ]},
        ]
        contents = to_gemini_contents(messages)
        assert [c.role for c in contents] == ["user", "model", "user"]
        assert contents[0].parts[0].text == "Fix the price"

        call = contents[1].parts[1].function_call
        assert call.name == "find_and_replace"
        assert call.args == {"find": "$10", "replace": "$12"}

        response = contents[2].parts[0].function_response
        assert response.name == "find_and_replace"
        assert response.response == {"error": "Error: not found"}

    def test_server_tool_blocks_dropped(self):
        messages = [{"role": "assistant", "content": [
            {"type": "server_tool_use", "id": "srv", "name": "web_search", "input": {"query": "q"}},
            {"type": "web_search_tool_result", "tool_use_id": "srv", "content": []},
        ]}]
        assert to_gemini_contents(messages) == []

    def test_tools_exclude_web_search(self):
        tools = to_gemini_tools(select_tools(has_active_document=True, include_web_search=True))
        (tool,) = tools
        names = {d.name for d in tool.function_declarations}
        assert "web_search" not in names
        assert "find_and_replace" in names

    def test_no_tools(self):
        assert to_gemini_tools([TOOL_SPECS[ToolName.WEB_SEARCH]]) == []


class TestGeminiProvider:
    @pytest.mark.asyncio
    async def test_text_stream(self):
        chunks = [
            _chunk(types.Part.from_text(text="Hello ")),
            _chunk(types.Part.from_text(text="world"), finish_reason=types.FinishReason.STOP),
        ]
        with patch("skribe.agent.provider.genai.Client") as client_cls:
            client_cls.return_value.aio.models.generate_content_stream = AsyncMock(return_value=_aiter(chunks))
            events = await _drain(GeminiProvider(api_key="k"))

        parser = StreamEventParser()
        for event in events:
            parser.feed(event)
        turn = parser.finish()
        assert turn.text == "Hello world"
        assert turn.stop_reason is StopReason.END_TURN
        assert events[0]["type"] == "message_start"
        assert events[-1]["type"] == "message_stop"

    @pytest.mark.asyncio
    async def test_function_call_becomes_tool_use(self):
        chunks = [_chunk(
            types.Part.from_text(text="Editing."),
            types.Part(function_call=types.FunctionCall(name="find_and_replace", args={"find": "a", "replace": "b"})),
            finish_reason=types.FinishReason.STOP,
        )]
        with patch("skribe.agent.provider.genai.Client") as client_cls:
            client_cls.return_value.aio.models.generate_content_stream = AsyncMock(return_value=_aiter(chunks))
            events = await _drain(GeminiProvider(api_key="k"), tools=select_tools(has_active_document=True))

        parser = StreamEventParser()
        for event in events:
            parser.feed(event)
        turn = parser.finish()
        assert turn.stop_reason is StopReason.TOOL_USE
        call = turn.completed_tool_call
        assert call.name == "find_and_replace"
        assert call.id.startswith("toolu_")
        assert [b["type"] for b in turn.content_blocks] == ["text", "tool_use"]
        assert turn.content_blocks[1]["input"] == {"find": "a", "replace": "b"}

    @pytest.mark.asyncio
    async def test_max_tokens(self):
        chunks = [_chunk(types.Part.from_text(text="cut"), finish_reason=types.FinishReason.MAX_TOKENS)]
        with patch("skribe.agent.provider.genai.Client") as client_cls:
            client_cls.return_value.aio.models.generate_content_stream = AsyncMock(return_value=_aiter(chunks))
            events = await _drain(GeminiProvider(api_key="k"))
        assert {"type": "message_delta", "delta": {"stop_reason": "max_tokens"}} in events


class TestAnthropicProvider:
    @pytest.mark.asyncio
    async def test_request_and_event_passthrough(self):
        event = MagicMock()
        event.model_dump.return_value = {"type": "message_stop"}
        with patch("skribe.agent.provider.anthropic.AsyncAnthropic") as client_cls:
            create = AsyncMock(return_value=_MessageStream([event]))
            client_cls.return_value.messages.create = create
            provider = AnthropicProvider(api_key="k", model="m", max_tokens=100, web_search_max_uses=2)
            events = await _drain(provider, tools=select_tools(has_active_document=False, include_web_search=True))

        assert events == [{"type": "message_stop"}]
        kwargs = create.call_args.kwargs
        assert kwargs["model"] == "m"
        assert kwargs["max_tokens"] == 100
        assert kwargs["system"] == "sys"
        assert kwargs["stream"] is True
        assert [t["name"] for t in kwargs["tools"]] == ["create_document", "update_document", "web_search"]
        assert kwargs["tools"][-1]["max_uses"] == 2
        event.model_dump.assert_called_once_with(mode="json", exclude_none=True)

    @pytest.mark.asyncio
    async def test_no_tools_omits_param(self):
        with patch("skribe.agent.provider.anthropic.AsyncAnthropic") as client_cls:
            create = AsyncMock(return_value=_MessageStream([]))
            client_cls.return_value.messages.create = create
            await _drain(AnthropicProvider(api_key="k"))
        assert "tools" not in create.call_args.kwargs

    @pytest.mark.asyncio
    async def test_stream_closed_when_consumer_stops_early(self):
        first, second = MagicMock(), MagicMock()
        first.model_dump.return_value = {"type": "message_start"}
        response = _MessageStream([first, second])
        with patch("skribe.agent.provider.anthropic.AsyncAnthropic") as client_cls:
            client_cls.return_value.messages.create = AsyncMock(return_value=response)
            events = AnthropicProvider(api_key="k").stream(
                system="sys", messages=[{"role": "user", "content": "hi"}], tools=[],
            )
            assert await events.__anext__() == {"type": "message_start"}
            assert not response.closed
            await events.aclose()
        assert response.closed
        second.model_dump.assert_not_called()

    @pytest.mark.asyncio
    async def test_stream_closed_after_full_read(self):
        response = _MessageStream([])
        with patch("skribe.agent.provider.anthropic.AsyncAnthropic") as client_cls:
            client_cls.return_value.messages.create = AsyncMock(return_value=response)
            await _drain(AnthropicProvider(api_key="k"))
        assert response.closed

    @pytest.mark.asyncio
    async def test_api_error_wrapped(self):
        error = anthropic.APIConnectionError(request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"))
        with patch("skribe.agent.provider.anthropic.AsyncAnthropic") as client_cls:
            client_cls.return_value.messages.create = AsyncMock(side_effect=error)
            with pytest.raises(ProviderError, match="Anthropic API error"):
                await _drain(AnthropicProvider(api_key="k"))


class TestCreateProvider:
    def test_anthropic(self):
        with patch("skribe.agent.provider.anthropic.AsyncAnthropic"):
            assert create_provider("anthropic", api_key="k").name == "anthropic"

    def test_gemini(self):
        with patch("skribe.agent.provider.genai.Client"):
            provider = create_provider("Gemini", api_key="k")
        assert provider.name == "gemini"
        assert provider.supports_web_search is False

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown LLM provider"):
            create_provider("llama")
