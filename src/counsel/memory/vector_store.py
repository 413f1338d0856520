"""Vector similarity store contract and the in-process backend.

Every search is scoped to an owner (and optionally a matter); a query
without an owner scope is rejected rather than searched globally.
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import TYPE_CHECKING, Protocol, Sequence

from counsel.exceptions import AgentFailureError, ScopeRequiredError
from counsel.schemas import DocumentChunk, ErrorCodes, SearchResult, SearchScope


if TYPE_CHECKING:
    from counsel.config import CounselSettings


logger = logging.getLogger(__name__)


class VectorStore(Protocol):
    """Persistence contract shared by all vector backends."""

    async def upsert_chunks(self, chunks: Sequence[DocumentChunk]) -> int: ...

    async def search(
        self,
        query_vector: list[float],
        scope: SearchScope,
        *,
        limit: int = 10,
        similarity_threshold: float = 0.5,
    ) -> list[SearchResult]: ...

    async def delete_by_document(self, document_id: str) -> int: ...

    async def count(self, owner_user_id: str, document_id: str | None = None) -> int: ...


def require_scope(scope: SearchScope) -> None:
    """Reject searches that carry no owner."""

    if not scope.owner_user_id or not scope.owner_user_id.strip():
        raise ScopeRequiredError(
            agent_id="vector_store",
            message="Similarity search requires an owner scope",
        )


def check_dimensions(chunks: Sequence[DocumentChunk], dimensions: int | None) -> None:
    if dimensions is None:
        return
    for chunk in chunks:
        if chunk.embedding is not None and len(chunk.embedding) != dimensions:
            raise AgentFailureError(
                agent_id="vector_store",
                error_code=ErrorCodes.INVALID_INPUT,
                message=(
                    f"Chunk {chunk.storage_key} has embedding dimension "
                    f"{len(chunk.embedding)}, expected {dimensions}"
                ),
            )


def cosine_similarity(left: Sequence[float], right: Sequence[float]) -> float:
    """Cosine similarity clamped to the 0-1 range used by SearchResult."""

    if len(left) != len(right):
        return 0.0
    dot = sum(a * b for a, b in zip(left, right))
    norm = math.sqrt(sum(a * a for a in left)) * math.sqrt(sum(b * b for b in right))
    if norm == 0:
        return 0.0
    return max(0.0, min(1.0, dot / norm))


def rank_results(results: list[SearchResult], limit: int) -> list[SearchResult]:
    """Order by descending similarity, ties by chunk index then document id."""

    results.sort(key=lambda r: (-r.similarity_score, r.chunk_index, r.document_id))
    return results[:limit]


class InMemoryVectorStore:
    """Process-local vector store keyed by (document_id, chunk_index)."""

    def __init__(self, dimensions: int | None = None) -> None:
        self.dimensions = dimensions
        self._records: dict[str, DocumentChunk] = {}
        self._lock = asyncio.Lock()

    async def upsert_chunks(self, chunks: Sequence[DocumentChunk]) -> int:
        check_dimensions(chunks, self.dimensions)
        async with self._lock:
            for chunk in chunks:
                self._records[chunk.storage_key] = chunk.model_copy(deep=True)
        return len(chunks)

    async def search(
        self,
        query_vector: list[float],
        scope: SearchScope,
        *,
        limit: int = 10,
        similarity_threshold: float = 0.5,
    ) -> list[SearchResult]:
        require_scope(scope)
        if limit <= 0:
            return []

        matches: list[SearchResult] = []
        for record in self._records.values():
            if record.owner_user_id != scope.owner_user_id:
                continue
            if scope.matter_id is not None and record.matter_id != scope.matter_id:
                continue
            if not record.is_searchable:
                continue
            score = cosine_similarity(query_vector, record.embedding or [])
            if score < similarity_threshold:
                continue
            matches.append(
                SearchResult(
                    chunk_id=record.id,
                    document_id=record.document_id,
                    content=record.content,
                    chunk_index=record.chunk_index,
                    similarity_score=score,
                    metadata=dict(record.metadata),
                )
            )
        return rank_results(matches, limit)

    async def delete_by_document(self, document_id: str) -> int:
        async with self._lock:
            keys = [
                key
                for key, record in self._records.items()
                if record.document_id == document_id
            ]
            for key in keys:
                del self._records[key]
        if keys:
            logger.info(
                "Deleted document chunks",
                extra={"agent_id": "vector_store", "document_id": document_id, "deleted": len(keys)},
            )
        return len(keys)

    async def count(self, owner_user_id: str, document_id: str | None = None) -> int:
        return sum(
            1
            for record in self._records.values()
            if record.owner_user_id == owner_user_id
            and (document_id is None or record.document_id == document_id)
        )

    async def get_chunks(self, document_id: str) -> list[DocumentChunk]:
        chunks = [r for r in self._records.values() if r.document_id == document_id]
        return sorted(chunks, key=lambda chunk: chunk.chunk_index)

    def clear(self) -> None:
        """Remove all stored chunks (useful for tests)."""

        self._records.clear()


def create_vector_store(settings: CounselSettings) -> VectorStore:
    """Build the backend selected by VECTOR_BACKEND."""

    if settings.vector_backend == "lancedb":
        from counsel.memory.lancedb_store import LanceDBVectorStore

        return LanceDBVectorStore(
            settings.lancedb_path, embedding_dim=settings.embedding_dimensions
        )
    return InMemoryVectorStore(dimensions=settings.embedding_dimensions)
