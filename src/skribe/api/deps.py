"""Request-scoped dependencies: caller identity, store handle and ownership checks."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

from fastapi import Header

from skribe import config
from skribe.errors import RequestError
from skribe.storage.sqlite_store import SqliteStore


@dataclass
class RequestContext:
    """Identity and store handle owned by one request. Never shared."""

    user_id: str
    project_id: str
    store: SqliteStore


def open_store() -> SqliteStore:
    store = SqliteStore(config.SQLITE_PATH)
    store.init_db()
    return store


def get_store() -> Iterator[SqliteStore]:
    store = open_store()
    try:
        yield store
    finally:
        store.close()


def current_user(x_user_id: str | None = Header(default=None)) -> str:
    """Caller identity from the ``X-User-Id`` header set by the auth proxy."""
    if not x_user_id or not x_user_id.strip():
        raise RequestError(401, "Unauthorized")
    return x_user_id.strip()


def load_project(store: SqliteStore, user_id: str, project_id: str) -> dict:
    project = store.get_project(project_id)
    if project is None:
        raise RequestError(404, "Project not found")
    if project["owner_id"] != user_id:
        raise RequestError(403, "Forbidden")
    return project


def load_document(store: SqliteStore, user_id: str, document_id: str) -> dict:
    document = store.get_document(document_id)
    if document is None:
        raise RequestError(404, "Document not found")
    load_project(store, user_id, document["project_id"])
    return document


def load_agent(store: SqliteStore, user_id: str, agent_id: str) -> dict:
    agent = store.get_agent(agent_id)
    if agent is None:
        raise RequestError(404, "Agent not found")
    load_project(store, user_id, agent["project_id"])
    return agent
