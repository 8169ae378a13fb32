"""Record routes: projects, agents, documents and conversation history."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from skribe.agent.prompts import SYSTEM_PROMPTS
from skribe.agent.tools import DocumentType
from skribe.api.deps import current_user, get_store, load_agent, load_document, load_project
from skribe.errors import RequestError
from skribe.storage.sqlite_store import SqliteStore

logger = logging.getLogger(__name__)

router = APIRouter()


class CreateProjectRequest(BaseModel):
    name: str = Field(min_length=1)
    description: str | None = None


class CreateAgentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str = "custom"
    title: str | None = None
    system_prompt: str | None = Field(default=None, alias="systemPrompt")


class CreateDocumentRequest(BaseModel):
    title: str = Field(min_length=1)
    content: str = ""
    type: DocumentType = DocumentType.CUSTOM


class UpdateDocumentRequest(BaseModel):
    title: str | None = None
    content: str | None = None


# ── Projects ──


@router.post("/projects", status_code=201)
def create_project(
    req: CreateProjectRequest,
    user_id: str = Depends(current_user),
    store: SqliteStore = Depends(get_store),
):
    project_id = store.insert_project(user_id, req.name, req.description)
    logger.info("Created project %s for %s", project_id, user_id)
    return store.get_project(project_id)


@router.get("/projects")
def list_projects(user_id: str = Depends(current_user), store: SqliteStore = Depends(get_store)):
    return store.list_projects(user_id)


@router.get("/projects/{project_id}")
def get_project(
    project_id: str,
    user_id: str = Depends(current_user),
    store: SqliteStore = Depends(get_store),
):
    return load_project(store, user_id, project_id)


# ── Agents ──


@router.post("/projects/{project_id}/agents", status_code=201)
def create_agent(
    project_id: str,
    req: CreateAgentRequest,
    user_id: str = Depends(current_user),
    store: SqliteStore = Depends(get_store),
):
    load_project(store, user_id, project_id)
    if req.type not in SYSTEM_PROMPTS:
        raise RequestError(400, f"Unknown agent type {req.type!r}")
    title = req.title or req.type.replace("_", " ").title()
    agent_id = store.insert_agent(project_id, req.type, title, req.system_prompt)
    return store.get_agent(agent_id)


@router.get("/projects/{project_id}/agents")
def list_agents(
    project_id: str,
    user_id: str = Depends(current_user),
    store: SqliteStore = Depends(get_store),
):
    load_project(store, user_id, project_id)
    return store.list_agents(project_id)


@router.get("/agents/{agent_id}/messages")
def list_messages(
    agent_id: str,
    user_id: str = Depends(current_user),
    store: SqliteStore = Depends(get_store),
):
    load_agent(store, user_id, agent_id)
    return store.list_messages(agent_id)


# ── Documents ──


@router.post("/projects/{project_id}/documents", status_code=201)
def create_document(
    project_id: str,
    req: CreateDocumentRequest,
    user_id: str = Depends(current_user),
    store: SqliteStore = Depends(get_store),
):
    load_project(store, user_id, project_id)
    document_id = store.insert_document(project_id, req.title, req.content, req.type.value)
    return store.get_document(document_id)


@router.get("/projects/{project_id}/documents")
def list_documents(
    project_id: str,
    user_id: str = Depends(current_user),
    store: SqliteStore = Depends(get_store),
):
    load_project(store, user_id, project_id)
    return store.list_documents(project_id)


@router.get("/documents/{document_id}")
def get_document(
    document_id: str,
    user_id: str = Depends(current_user),
    store: SqliteStore = Depends(get_store),
):
    return load_document(store, user_id, document_id)


@router.put("/documents/{document_id}")
def update_document(
    document_id: str,
    req: UpdateDocumentRequest,
    user_id: str = Depends(current_user),
    store: SqliteStore = Depends(get_store),
):
    """Manual save from the editor."""
    load_document(store, user_id, document_id)
    if req.title is None and req.content is None:
        raise RequestError(400, "Nothing to update")
    store.update_document(document_id, content=req.content, title=req.title)
    return store.get_document(document_id)
