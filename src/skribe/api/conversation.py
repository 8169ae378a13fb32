"""Agent request model and conversation setup shared by the HTTP API and the CLI."""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from skribe.agent.events import split_markers
from skribe.agent.loop import OrchestrationResult
from skribe.agent.prompts import agent_allows_web_search
from skribe.agent.session import ActiveDocument, AgentProfile, ConversationSession
from skribe.api.deps import RequestContext, load_project
from skribe.editing.selection import SelectionContext
from skribe.errors import RequestError
from skribe.storage.sqlite_store import SqliteStore

logger = logging.getLogger(__name__)

# Stored turns replayed to the model per agent conversation
HISTORY_LIMIT = 50


class SelectionPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str
    start_offset: int = Field(alias="startOffset", strict=True)
    end_offset: int = Field(alias="endOffset", strict=True)


class HistoryMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class AgentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    agent_or_document_id: str = Field(alias="agentOrDocumentId", min_length=1)
    project_id: str = Field(alias="projectId", min_length=1)
    message: str = Field(min_length=1)
    active_document_id: str | None = Field(default=None, alias="activeDocumentId")
    active_document_content: str | None = Field(default=None, alias="activeDocumentContent")
    selection_context: SelectionPayload | None = Field(default=None, alias="selectionContext")
    message_history: list[HistoryMessage] | None = Field(default=None, alias="messageHistory")
    format: Literal["ndjson", "text"] | None = None


def _history_messages(turns: list[dict]) -> list[dict]:
    """Stored or client-supplied turns as provider messages.

    Markers are stripped from assistant turns; empty turns are dropped and
    consecutive same-role turns merged so roles alternate.
    """
    messages: list[dict] = []
    for turn in turns:
        role = turn["role"]
        content = turn["content"]
        if role == "assistant":
            content, _ = split_markers(content)
        if not content.strip():
            continue
        if messages and messages[-1]["role"] == role:
            messages[-1]["content"] += "\n\n" + content
        else:
            messages.append({"role": role, "content": content})
    while messages and messages[0]["role"] != "user":
        messages.pop(0)
    return messages


def _active_document(record: dict, content_override: str | None) -> ActiveDocument:
    return ActiveDocument(
        id=record["id"],
        title=record["title"],
        type=record["type"],
        content=content_override if content_override is not None else record["content"],
    )


def prepare_session(ctx: RequestContext, req: AgentRequest) -> tuple[ConversationSession, str | None]:
    """Validate ownership and build the session. Returns (session, agent_id).

    ``agent_id`` is None for document-editing conversations, which are not
    persisted as messages.
    """
    store = ctx.store
    load_project(store, ctx.user_id, ctx.project_id)

    target_id = req.agent_or_document_id
    agent = store.get_agent(target_id)
    target_doc = None
    if agent is None:
        target_doc = store.get_document(target_id)
        if target_doc is None:
            raise RequestError(404, "Agent or document not found")
        if target_doc["project_id"] != ctx.project_id:
            raise RequestError(403, "Document does not belong to this project")
    elif agent["project_id"] != ctx.project_id:
        raise RequestError(403, "Agent does not belong to this project")

    active_record = target_doc
    if req.active_document_id and (target_doc is None or req.active_document_id != target_doc["id"]):
        active_record = store.get_document(req.active_document_id)
        if active_record is None or active_record["project_id"] != ctx.project_id:
            raise RequestError(404, "Active document not found")
    active = _active_document(active_record, req.active_document_content) if active_record else None

    selection = None
    if req.selection_context is not None and active is not None:
        selection = SelectionContext.from_payload(
            req.selection_context.model_dump(by_alias=True), snapshot=active.content,
        )

    if req.message_history is not None:
        history = [turn.model_dump() for turn in req.message_history]
    elif agent is not None:
        history = store.list_messages(agent["id"], limit=HISTORY_LIMIT)
    else:
        history = []
    messages = _history_messages(history + [{"role": "user", "content": req.message}])

    if agent is not None:
        session = ConversationSession(
            project_id=ctx.project_id,
            messages=messages,
            agent=AgentProfile(
                id=agent["id"], type=agent["type"], title=agent["title"],
                system_prompt=agent.get("system_prompt"),
            ),
            active_document=active,
            selection=selection,
            project_documents=store.list_documents(ctx.project_id),
            document_management=True,
            web_search=agent_allows_web_search(agent["type"]),
        )
        logger.info(
            "Agent session: %s (%s), %d message(s), active document %s",
            agent["id"], agent["type"], len(messages), active.id if active else None,
        )
        return session, agent["id"]

    logger.info("Document session: %s, %d message(s)", active.id if active else None, len(messages))
    session = ConversationSession(
        project_id=ctx.project_id,
        messages=messages,
        active_document=active,
        selection=selection,
        document_management=False,
    )
    return session, None


def persist_exchange(
    store: SqliteStore, agent_id: str | None, user_message: str, result: OrchestrationResult | None,
) -> None:
    if agent_id is None:
        return
    store.insert_message(agent_id, "user", user_message)
    if result is not None and result.transcript.strip():
        store.insert_message(agent_id, "assistant", result.transcript.strip())


