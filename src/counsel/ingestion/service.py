"""Document processing: chunk, embed and index extracted text."""

from __future__ import annotations

import logging
import time
import uuid
from typing import TYPE_CHECKING, Any

from counsel.exceptions import AgentFailureError, NotFoundError
from counsel.ingestion.chunker import chunk_document, chunk_legal_document
from counsel.schemas import AgentFailure, DocumentChunk, DocumentRecord, ErrorCodes


if TYPE_CHECKING:
    from counsel.config import CounselSettings
    from counsel.ingestion.documents import DocumentRepository
    from counsel.memory.embeddings import Embedder
    from counsel.memory.vector_store import VectorStore
    from counsel.schemas import TextChunk
    from counsel.services.refinement import RelevanceRefiner


logger = logging.getLogger(__name__)

AGENT_ID = "ingestion"

_DOCUMENT_METADATA_FIELDS = ("document_type", "jurisdiction", "practice_area")


def chunk_id_for(document_id: str, chunk_index: int) -> str:
    """Stable chunk id so reprocessing identical text yields identical rows."""

    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"counsel:{document_id}:{chunk_index}"))


class IngestionService:
    """Turn a document's extracted text into searchable chunks.

    A document is only reported ``ready`` after its chunks are stored and
    countable in the vector store. Any failure marks it ``error`` and
    re-raises.
    """

    def __init__(
        self,
        *,
        documents: DocumentRepository,
        vector_store: VectorStore,
        embedder: Embedder,
        settings: CounselSettings,
        classifier: RelevanceRefiner | None = None,
    ) -> None:
        self._documents = documents
        self._store = vector_store
        self._embedder = embedder
        self._settings = settings
        self._classifier = classifier

    async def process_document(
        self,
        document_id: str,
        owner_user_id: str,
        text: str,
        *,
        matter_id: str | None = None,
        metadata: dict[str, Any] | None = None,
        legal_sections: bool = False,
    ) -> DocumentRecord:
        document = await self._documents.get(document_id)
        if document is None or document.owner_user_id != owner_user_id:
            raise NotFoundError(
                agent_id=AGENT_ID,
                message=f"Document {document_id} not found",
            )

        start = time.perf_counter()
        await self._documents.update_status(document_id, "processing")

        try:
            text_chunks = self._chunk(text, legal_sections=legal_sections)
            vectors = await self._embedder.embed_documents(
                [chunk.content for chunk in text_chunks]
            )
            profile = await self._profile(document, text) if text_chunks else {}
            base_metadata = _base_metadata(document, metadata, profile)
            chunks = [
                DocumentChunk(
                    id=chunk_id_for(document_id, text_chunk.chunk_index),
                    document_id=document_id,
                    owner_user_id=owner_user_id,
                    matter_id=matter_id if matter_id is not None else document.matter_id,
                    chunk_index=text_chunk.chunk_index,
                    content=text_chunk.content,
                    embedding=vector,
                    metadata={**base_metadata, **text_chunk.positional_metadata()},
                )
                for text_chunk, vector in zip(text_chunks, vectors, strict=True)
            ]
            # Prior chunks stay searchable until the replacement set is embedded
            await self._store.delete_by_document(document_id)
            await self._store.upsert_chunks(chunks)

            stored = await self._store.count(owner_user_id, document_id)
            if stored != len(chunks):
                raise AgentFailureError(
                    agent_id=AGENT_ID,
                    error_code=ErrorCodes.TOOL_FAILED,
                    message=(
                        f"Stored {stored} chunks for document {document_id}, "
                        f"expected {len(chunks)}"
                    ),
                )
        except Exception as exc:
            logger.error(
                "Document processing failed",
                extra={"agent_id": AGENT_ID, "document_id": document_id, "error": str(exc)},
            )
            await self._documents.update_status(
                document_id, "error", error_message=str(exc)[:500]
            )
            raise

        record = await self._documents.update_status(
            document_id, "ready", chunk_count=len(chunks)
        )
        logger.info(
            "Document processed",
            extra={
                "agent_id": AGENT_ID,
                "document_id": document_id,
                "chunk_count": len(chunks),
                "processing_time_ms": round((time.perf_counter() - start) * 1000, 2),
            },
        )
        return record

    async def delete_document_chunks(self, document_id: str) -> int:
        return await self._store.delete_by_document(document_id)

    async def _profile(self, document: DocumentRecord, text: str) -> dict[str, Any]:
        """Classifier-detected metadata; empty when unavailable or already known."""

        if self._classifier is None or not self._classifier.is_configured:
            return {}
        if all(getattr(document, field) for field in _DOCUMENT_METADATA_FIELDS):
            return {}

        profile = await self._classifier.classify_document(text)
        if isinstance(profile, AgentFailure):
            logger.warning(
                "Document classification skipped",
                extra={
                    "agent_id": AGENT_ID,
                    "document_id": document.id,
                    "error_code": profile.error_code,
                },
            )
            return {}
        return profile.as_metadata()

    def _chunk(self, text: str, *, legal_sections: bool) -> list[TextChunk]:
        chunker = chunk_legal_document if legal_sections else chunk_document
        return chunker(
            text,
            max_chars=self._settings.chunk_max_chars,
            overlap_chars=self._settings.chunk_overlap_chars,
            min_chars=self._settings.chunk_min_chars,
        )


def _base_metadata(
    document: DocumentRecord,
    extra: dict[str, Any] | None,
    profile: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Detected profile, overridden by the document record, overridden by caller metadata."""

    metadata: dict[str, Any] = {**(profile or {}), "document_name": document.name}
    for field in _DOCUMENT_METADATA_FIELDS:
        value = getattr(document, field)
        if value:
            metadata[field] = value
    if extra:
        metadata.update(extra)
    return metadata


__all__ = ["IngestionService", "chunk_id_for"]
