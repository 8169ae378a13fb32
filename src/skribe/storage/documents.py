"""Async document persistence for the tool dispatcher, scoped to one project."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from skribe.errors import DocumentNotFound
from skribe.storage.sqlite_store import SqliteStore

logger = logging.getLogger(__name__)


class StoreDocumentSink:
    """Runs blocking SqliteStore calls off the event loop.

    Every write re-reads the stored record, and a document outside the
    request's project is reported as missing.
    """

    def __init__(self, store: SqliteStore) -> None:
        self._store = store

    def _owned(self, project_id: str, document_id: str) -> dict[str, Any]:
        doc = self._store.get_document(document_id)
        if doc is None or doc["project_id"] != project_id:
            raise DocumentNotFound(f"Document {document_id} not found in this project")
        return doc

    def _create(self, project_id: str, title: str, content: str, doc_type: str) -> dict[str, Any]:
        document_id = self._store.insert_document(project_id, title, content, doc_type)
        logger.info("Created document %s (%s) in project %s", document_id, doc_type, project_id)
        return self._store.get_document(document_id)  # type: ignore[return-value]

    def _update(
        self, project_id: str, document_id: str, content: str, title: str | None,
    ) -> dict[str, Any]:
        self._owned(project_id, document_id)
        self._store.update_document(document_id, content=content, title=title)
        logger.info("Updated document %s (%d chars)", document_id, len(content))
        return self._store.get_document(document_id)  # type: ignore[return-value]

    async def create_document(
        self, project_id: str, title: str, content: str, doc_type: str,
    ) -> dict[str, Any]:
        return await asyncio.to_thread(self._create, project_id, title, content, doc_type)

    async def update_document(
        self, project_id: str, document_id: str, content: str, title: str | None = None,
    ) -> dict[str, Any]:
        return await asyncio.to_thread(self._update, project_id, document_id, content, title)
