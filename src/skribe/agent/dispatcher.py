"""Tool dispatcher: validates model-emitted arguments and executes tool side effects."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from pydantic import ValidationError

from skribe.agent.events import Notification, document_created, document_edit, document_updated
from skribe.agent.session import ConversationSession
from skribe.agent.tools import (
    TOOL_SPECS,
    CreateDocumentArgs,
    FindAndReplaceArgs,
    InsertAtPositionArgs,
    ReplaceSectionArgs,
    ReplaceSelectionArgs,
    RewriteDocumentArgs,
    ToolArgs,
    ToolName,
    UpdateDocumentArgs,
    coerce_document_type,
)
from skribe.editing import patches
from skribe.editing.patches import PatchResult

logger = logging.getLogger(__name__)


class DocumentSink(Protocol):
    """Persistence collaborator for documents, scoped to one project."""

    async def create_document(
        self, project_id: str, title: str, content: str, doc_type: str,
    ) -> dict[str, Any]:
        """Create a document and return its record."""
        ...

    async def update_document(
        self, project_id: str, document_id: str, content: str, title: str | None = None,
    ) -> dict[str, Any]:
        """Replace a document's content (and optionally title); return the record."""
        ...


@dataclass
class DispatchOutcome:
    """What one tool call produced."""

    content: str
    is_error: bool = False
    notifications: list[Notification] = field(default_factory=list)
    # Echoed back to the provider as the tool_use block's input
    parsed_input: dict[str, Any] = field(default_factory=dict)


def _error(message: str, parsed_input: dict[str, Any] | None = None) -> DispatchOutcome:
    return DispatchOutcome(content=f"Error: {message}", is_error=True, parsed_input=parsed_input or {})


def _validation_detail(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "input"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


Handler = Callable[[ConversationSession, Any], Awaitable[DispatchOutcome]]


class ToolDispatcher:
    """Route a completed tool call to its handler.

    Never raises: argument and execution failures become ``Error: ...``
    tool results so the model can correct itself on the next turn.
    """

    def __init__(self, sink: DocumentSink) -> None:
        self._sink = sink
        self._handlers: dict[ToolName, Handler] = {
            ToolName.CREATE_DOCUMENT: self._create_document,
            ToolName.UPDATE_DOCUMENT: self._update_document,
            ToolName.REPLACE_SELECTION: self._replace_selection,
            ToolName.INSERT_AT_POSITION: self._insert_at_position,
            ToolName.REPLACE_SECTION: self._replace_section,
            ToolName.FIND_AND_REPLACE: self._find_and_replace,
            ToolName.REWRITE_DOCUMENT: self._rewrite_document,
            ToolName.WEB_SEARCH: self._web_search,
        }

    @property
    def handled_tools(self) -> frozenset[ToolName]:
        return frozenset(self._handlers)

    async def dispatch(self, session: ConversationSession, name: str, raw_input: str) -> DispatchOutcome:
        t0 = time.perf_counter()
        outcome = await self._dispatch(session, name, raw_input)
        logger.info(
            "  tool done: %s -> %s, %d chars (%.0fms)",
            name, "error" if outcome.is_error else "ok", len(outcome.content),
            (time.perf_counter() - t0) * 1000,
        )
        return outcome

    async def _dispatch(self, session: ConversationSession, name: str, raw_input: str) -> DispatchOutcome:
        try:
            parsed = json.loads(raw_input) if raw_input.strip() else {}
        except json.JSONDecodeError as e:
            logger.warning("Malformed tool input for %s: %s", name, e)
            return _error(f"Failed to parse tool input - {e}")

        if not isinstance(parsed, dict):
            return _error(f"Invalid tool input - expected a JSON object, got {type(parsed).__name__}")

        tool = ToolName.parse(name)
        if tool is None:
            logger.warning("Model called unknown tool %r", name)
            return DispatchOutcome(content=f"Unknown tool: {name}", is_error=True, parsed_input=parsed)

        spec = TOOL_SPECS[tool]
        try:
            args = spec.args_model.model_validate(parsed)
        except ValidationError as e:
            return _error(f"Invalid tool input - {_validation_detail(e)}", parsed)

        logger.info("  -> %s(%s)", tool.value, ", ".join(sorted(parsed)))
        try:
            outcome = await self._handlers[tool](session, args)
        except Exception as e:
            logger.error("  tool error: %s: %s", tool.value, e)
            outcome = _error(str(e) or type(e).__name__)
        outcome.parsed_input = parsed
        return outcome

    # ── Document management ──

    async def _create_document(self, session: ConversationSession, args: CreateDocumentArgs) -> DispatchOutcome:
        doc_type = coerce_document_type(args.type, session.agent_type).value
        record = await self._sink.create_document(session.project_id, args.title, args.content, doc_type)
        session.remember_document(record)
        return DispatchOutcome(
            content=(
                f'Document "{record["title"]}" created successfully with ID: {record["id"]}. '
                "The document is now available in the project dashboard."
            ),
            notifications=[document_created(record["id"], record["title"], record["type"])],
        )

    async def _update_document(self, session: ConversationSession, args: UpdateDocumentArgs) -> DispatchOutcome:
        record = await self._sink.update_document(
            session.project_id, args.document_id, args.content, title=args.title,
        )
        session.remember_document(record)
        active = session.active_document
        if active is not None and active.id == record["id"]:
            active.content = record["content"]
            active.title = record["title"]
        return DispatchOutcome(
            content=f'Document "{record["title"]}" updated successfully.',
            notifications=[document_updated(record["id"], record["title"], record["type"])],
        )

    # ── Patch tools ──

    async def _apply_patch(
        self, session: ConversationSession, tool: ToolName, apply: Callable[[str], PatchResult],
    ) -> DispatchOutcome:
        active = session.active_document
        if active is None:
            return DispatchOutcome(
                content=(
                    f"{tool.value} is unavailable: no document is open for editing. "
                    "Ask the user to open the document, or use update_document with its ID."
                ),
                is_error=True,
            )
        result = apply(active.content)
        if not result.success:
            return _error(result.message)

        record = await self._sink.update_document(session.project_id, active.id, result.new_content)
        active.content = result.new_content
        session.remember_document(record)
        return DispatchOutcome(
            content=result.message,
            notifications=[document_edit(active.id, result.new_content, result.message)],
        )

    async def _replace_selection(self, session: ConversationSession, args: ReplaceSelectionArgs) -> DispatchOutcome:
        return await self._apply_patch(
            session, ToolName.REPLACE_SELECTION,
            lambda content: patches.replace_selection(content, args.new_text, session.selection, args.explanation),
        )

    async def _insert_at_position(self, session: ConversationSession, args: InsertAtPositionArgs) -> DispatchOutcome:
        return await self._apply_patch(
            session, ToolName.INSERT_AT_POSITION,
            lambda content: patches.insert_at_position(content, args.content, args.position),
        )

    async def _replace_section(self, session: ConversationSession, args: ReplaceSectionArgs) -> DispatchOutcome:
        return await self._apply_patch(
            session, ToolName.REPLACE_SECTION,
            lambda content: patches.replace_section(content, args.heading, args.content),
        )

    async def _find_and_replace(self, session: ConversationSession, args: FindAndReplaceArgs) -> DispatchOutcome:
        return await self._apply_patch(
            session, ToolName.FIND_AND_REPLACE,
            lambda content: patches.find_and_replace(content, args.find, args.replace, args.replace_all),
        )

    async def _rewrite_document(self, session: ConversationSession, args: RewriteDocumentArgs) -> DispatchOutcome:
        return await self._apply_patch(
            session, ToolName.REWRITE_DOCUMENT,
            lambda content: patches.rewrite_document(content, args.content, args.summary),
        )

    # ── Provider-executed ──

    async def _web_search(self, session: ConversationSession, args: ToolArgs) -> DispatchOutcome:
        # Server tools never reach here on Anthropic; a provider that reports
        # web_search as a client call gets a neutral answer
        return DispatchOutcome(
            content="web_search is executed by the provider; its results are already in the conversation.",
        )
