"""Document repository seam.

Documents are owned by the surrounding application; the retrieval core
only reads them and writes back processing status and chunk counts.
"""

from __future__ import annotations

import asyncio
from typing import Protocol

from counsel.exceptions import NotFoundError
from counsel.schemas import DocumentRecord
from counsel.schemas.base import DocumentStatus


class DocumentRepository(Protocol):
    async def get(self, document_id: str) -> DocumentRecord | None: ...

    async def list_for_owner(
        self, owner_user_id: str, matter_id: str | None = None
    ) -> list[DocumentRecord]: ...

    async def update_status(
        self,
        document_id: str,
        status: DocumentStatus,
        *,
        chunk_count: int | None = None,
        error_message: str | None = None,
    ) -> DocumentRecord: ...


class InMemoryDocumentRepository:
    """Dictionary-backed repository used by tests and the demo API."""

    def __init__(self, documents: list[DocumentRecord] | None = None) -> None:
        self._documents: dict[str, DocumentRecord] = {}
        self._lock = asyncio.Lock()
        for document in documents or []:
            self._documents[document.id] = document

    async def add(self, document: DocumentRecord) -> DocumentRecord:
        async with self._lock:
            self._documents[document.id] = document
        return document

    async def get(self, document_id: str) -> DocumentRecord | None:
        return self._documents.get(document_id)

    async def list_for_owner(
        self, owner_user_id: str, matter_id: str | None = None
    ) -> list[DocumentRecord]:
        documents = [
            document
            for document in self._documents.values()
            if document.owner_user_id == owner_user_id
            and (matter_id is None or document.matter_id == matter_id)
        ]
        return sorted(documents, key=lambda document: document.created_at, reverse=True)

    async def update_status(
        self,
        document_id: str,
        status: DocumentStatus,
        *,
        chunk_count: int | None = None,
        error_message: str | None = None,
    ) -> DocumentRecord:
        async with self._lock:
            document = self._documents.get(document_id)
            if document is None:
                raise NotFoundError(
                    agent_id="documents",
                    message=f"Document {document_id} not found",
                )
            update: dict[str, object] = {"status": status, "error_message": error_message}
            if chunk_count is not None:
                update["chunk_count"] = chunk_count
            document = document.model_copy(update=update)
            self._documents[document_id] = document
        return document
