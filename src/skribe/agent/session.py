"""Per-request conversation state threaded through the loop, prompts and dispatcher."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from skribe.editing.selection import SelectionContext


@dataclass
class ActiveDocument:
    """The document open for editing. ``content`` is the latest known state."""

    id: str
    title: str
    type: str
    content: str


@dataclass
class AgentProfile:
    id: str | None = None
    type: str = "custom"
    title: str = ""
    system_prompt: str | None = None


@dataclass
class ConversationSession:
    """State owned by exactly one request.

    ``messages`` is the provider message list; it grows during the run with
    synthetic tool exchanges that are never persisted.
    """

    project_id: str
    messages: list[dict[str, Any]]
    agent: AgentProfile | None = None
    active_document: ActiveDocument | None = None
    selection: SelectionContext | None = None
    project_documents: list[dict[str, Any]] = field(default_factory=list)
    document_management: bool = True
    web_search: bool = False

    @property
    def agent_type(self) -> str | None:
        return self.agent.type if self.agent else None

    @property
    def document_content(self) -> str | None:
        return self.active_document.content if self.active_document else None

    def remember_document(self, record: dict[str, Any]) -> None:
        """Insert or refresh a project document in the prompt's document list."""
        for i, doc in enumerate(self.project_documents):
            if doc.get("id") == record.get("id"):
                self.project_documents[i] = {**doc, **record}
                return
        self.project_documents.append(record)
