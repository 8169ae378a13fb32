"""Orchestration loop: drives provider turns and tool dispatch until the model is done."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import AsyncGenerator, AsyncIterator, Awaitable, Callable
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from skribe import config
from skribe.agent.dispatcher import ToolDispatcher
from skribe.agent.events import Notification, OutputItem, TextChunk, encode_text
from skribe.agent.prompts import build_system_prompt
from skribe.agent.provider import StreamingProvider
from skribe.agent.session import ConversationSession
from skribe.agent.stream import StopReason, StreamEventParser
from skribe.agent.tools import ToolSpec, select_tools
from skribe.errors import RunTimeout, TurnBudgetExceeded

logger = logging.getLogger(__name__)

StopCheck = Callable[[], Union[bool, Awaitable[bool]]]


def tool_result_block(tool_use_id: str, content: str, is_error: bool) -> dict[str, Any]:
    return {
        "type": "tool_result",
        "tool_use_id": tool_use_id,
        "content": content,
        "is_error": is_error,
    }


class LoopState(str, Enum):
    BUILD_PROMPT = "build_prompt"
    STREAM_TURN = "stream_turn"
    DISPATCH_TOOL = "dispatch_tool"
    CONTINUE_PAUSED_TURN = "continue_paused_turn"
    TERMINATE = "terminate"


@dataclass
class OrchestrationResult:
    """Summary of a finished (or aborted) run."""

    assistant_text: str
    # Text plus markers in the line-oriented framing; what gets persisted
    transcript: str
    document_content: str | None
    round_trips: int
    stop_reason: StopReason | None
    notifications: list[Notification] = field(default_factory=list)
    cancelled: bool = False


class OrchestrationRun:
    """Async iterator over one run's output items.

    ``result`` is set once iteration stops, including when it stops with
    an exception or the consumer calls ``aclose()`` part way through.
    """

    def __init__(self, items: Callable[[OrchestrationRun], AsyncGenerator[OutputItem, None]]) -> None:
        self.result: OrchestrationResult | None = None
        self._items = items(self)

    def __aiter__(self) -> AsyncIterator[OutputItem]:
        return self._items

    async def aclose(self) -> None:
        """Stop the run where it is; no-op once iteration has finished."""
        await self._items.aclose()

    async def collect(self) -> list[OutputItem]:
        return [item async for item in self._items]


class OrchestrationLoop:
    """Bounded BUILD_PROMPT -> STREAM_TURN -> DISPATCH_TOOL state machine.

    One instance may serve many runs; all mutable state lives in the
    ConversationSession and the run's locals.
    """

    def __init__(
        self,
        provider: StreamingProvider,
        dispatcher: ToolDispatcher,
        max_round_trips: int | None = None,
        turn_timeout: float | None = None,
        run_timeout: float | None = None,
    ) -> None:
        self._provider = provider
        self._dispatcher = dispatcher
        self._max_round_trips = max_round_trips or config.MAX_ROUND_TRIPS
        self._turn_timeout = turn_timeout or config.TURN_TIMEOUT_SECS
        self._run_timeout = run_timeout or config.RUN_TIMEOUT_SECS

    def tools_for(self, session: ConversationSession) -> list[ToolSpec]:
        return select_tools(
            has_active_document=session.active_document is not None,
            include_document_management=session.document_management,
            include_web_search=(
                session.web_search
                and config.WEB_SEARCH_ENABLED
                and self._provider.supports_web_search
            ),
        )

    def start(self, session: ConversationSession, should_stop: StopCheck | None = None) -> OrchestrationRun:
        return OrchestrationRun(lambda run: self._run(run, session, should_stop))

    async def _stopped(self, should_stop: StopCheck | None) -> bool:
        if should_stop is None:
            return False
        value = should_stop()
        if inspect.isawaitable(value):
            value = await value
        return bool(value)

    async def _events(
        self, system: str, messages: list[dict[str, Any]], tools: list[ToolSpec], deadline: float,
    ) -> AsyncGenerator[dict[str, Any], None]:
        """Provider events, each awaited under the turn and run deadlines."""
        iterator = self._provider.stream(system=system, messages=messages, tools=tools).__aiter__()
        try:
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise RunTimeout(f"Run exceeded {self._run_timeout:.0f}s")
                wait = min(self._turn_timeout, remaining)
                try:
                    event = await asyncio.wait_for(iterator.__anext__(), wait)
                except StopAsyncIteration:
                    return
                except asyncio.TimeoutError as e:
                    if wait < self._turn_timeout:
                        raise RunTimeout(f"Run exceeded {self._run_timeout:.0f}s") from e
                    raise RunTimeout(f"No provider event for {self._turn_timeout:.0f}s") from e
                yield event
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()

    async def _run(
        self, run: OrchestrationRun, session: ConversationSession, should_stop: StopCheck | None,
    ) -> AsyncGenerator[OutputItem, None]:
        run_t0 = time.perf_counter()
        deadline = time.monotonic() + self._run_timeout
        round_trips = 0
        text_parts: list[str] = []
        transcript_parts: list[str] = []
        notifications: list[Notification] = []
        stop_reason: StopReason | None = None
        cancelled = False

        def record(item: OutputItem) -> OutputItem:
            if isinstance(item, TextChunk):
                text_parts.append(item.text)
            else:
                notifications.append(item)
            transcript_parts.append(encode_text(item))
            return item

        state = LoopState.BUILD_PROMPT
        try:
            while state is not LoopState.TERMINATE:
                # BUILD_PROMPT
                if await self._stopped(should_stop):
                    logger.info("Client went away before round trip %d; stopping", round_trips + 1)
                    cancelled = True
                    break
                if round_trips >= self._max_round_trips:
                    raise TurnBudgetExceeded(
                        f"Run needed more than {self._max_round_trips} provider round trips"
                    )
                tools = self.tools_for(session)
                system = build_system_prompt(session, tools)
                round_trips += 1
                logger.info(
                    "--- Round trip %d/%d (%d tools, %d char prompt) ---",
                    round_trips, self._max_round_trips, len(tools), len(system),
                )

                state = LoopState.STREAM_TURN
                t0 = time.perf_counter()
                parser = StreamEventParser()
                async with aclosing(self._events(system, list(session.messages), tools, deadline)) as events:
                    async for event in events:
                        for item in parser.feed(event):
                            yield record(item)
                turn = parser.finish()
                stop_reason = turn.stop_reason
                logger.info(
                    "Turn complete: stop=%s, %d tool call(s), %d chars (%.2fs)",
                    turn.raw_stop_reason, len(turn.tool_calls), len(turn.text), time.perf_counter() - t0,
                )

                if turn.stop_reason is StopReason.TOOL_USE and turn.tool_calls:
                    state = LoopState.DISPATCH_TOOL
                    results: list[dict[str, Any]] = []
                    for call in turn.tool_calls:
                        if await self._stopped(should_stop):
                            logger.info("Client went away before dispatching %s; stopping", call.name)
                            cancelled = True
                            break
                        outcome = await self._dispatcher.dispatch(session, call.name, call.raw_input)
                        for notification in outcome.notifications:
                            yield record(notification)
                        results.append(tool_result_block(call.id, outcome.content, outcome.is_error))
                    if cancelled:
                        break
                    session.messages.append({"role": "assistant", "content": turn.content_blocks})
                    session.messages.append({"role": "user", "content": results})
                    state = LoopState.BUILD_PROMPT
                elif turn.stop_reason is StopReason.PAUSE_TURN:
                    state = LoopState.CONTINUE_PAUSED_TURN
                    if turn.content_blocks:
                        session.messages.append({"role": "assistant", "content": turn.content_blocks})
                    state = LoopState.BUILD_PROMPT
                else:
                    if turn.stop_reason is StopReason.TOOL_USE:
                        logger.warning("Stop reason tool_use without a completed tool call; terminating")
                    state = LoopState.TERMINATE
        except GeneratorExit:
            logger.info("Consumer closed the run during %s; stopping", state.value)
            cancelled = True
            raise
        finally:
            run.result = OrchestrationResult(
                assistant_text="".join(text_parts),
                transcript="".join(transcript_parts),
                document_content=session.document_content,
                round_trips=round_trips,
                stop_reason=stop_reason,
                notifications=notifications,
                cancelled=cancelled,
            )
            logger.info(
                "Run finished: %d round trip(s), %d notification(s), stop=%s (%.2fs)",
                round_trips, len(notifications),
                stop_reason.value if stop_reason else None, time.perf_counter() - run_t0,
            )
