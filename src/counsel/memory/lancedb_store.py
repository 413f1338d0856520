"""LanceDB wrapper for chunk vector storage.

Provides the VectorStore interface on top of an embedded LanceDB table with
a fixed pyarrow schema. Owner and matter filters are applied as a prefilter
so scoped searches never return another owner's rows.
"""

import json
import logging
from typing import Any, Sequence

import lancedb
import pyarrow as pa  # type: ignore[import-untyped]

from counsel.memory.vector_store import check_dimensions, rank_results, require_scope
from counsel.schemas import DocumentChunk, SearchResult, SearchScope


logger = logging.getLogger(__name__)


def _quote(value: str) -> str:
    """Render a string literal for a LanceDB SQL filter."""

    return "'" + value.replace("'", "''") + "'"


class LanceDBVectorStore:
    """LanceDB-backed vector store.

    Schema:
        - chunk_key: str ("document_id:chunk_index", merge key)
        - id: str
        - document_id: str
        - owner_user_id: str
        - matter_id: str (empty when unscoped)
        - chunk_index: int32
        - content: str
        - embedding: fixed-size list[float32]
        - metadata: str (JSON-encoded)
        - created_at: str (ISO 8601)
    """

    def __init__(
        self, db_path: str, embedding_dim: int = 1792, table_name: str = "chunks"
    ) -> None:
        """Initialize LanceDB connection.

        Args:
            db_path: Path to the LanceDB database directory.
            embedding_dim: Dimension of the embedding vectors.
            table_name: Name of the chunk table.
        """
        self.db_path = db_path
        self.embedding_dim = embedding_dim
        self.db = lancedb.connect(db_path)
        self.table_name = table_name

    def _get_schema(self) -> pa.Schema:
        """Define the PyArrow schema for the LanceDB table."""
        return pa.schema(
            [
                pa.field("chunk_key", pa.string()),
                pa.field("id", pa.string()),
                pa.field("document_id", pa.string()),
                pa.field("owner_user_id", pa.string()),
                pa.field("matter_id", pa.string()),
                pa.field("chunk_index", pa.int32()),
                pa.field("content", pa.string()),
                pa.field(
                    "embedding",
                    pa.list_(pa.float32(), list_size=self.embedding_dim),
                ),
                pa.field("metadata", pa.string()),
                pa.field("created_at", pa.string()),
            ]
        )

    def _open_table(self) -> Any | None:
        try:
            return self.db.open_table(self.table_name)
        except (FileNotFoundError, ValueError):
            return None

    def _open_or_create_table(self) -> Any:
        table = self._open_table()
        if table is None:
            table = self.db.create_table(self.table_name, schema=self._get_schema())
        return table

    async def upsert_chunks(self, chunks: Sequence[DocumentChunk]) -> int:
        """Insert or replace chunks keyed by (document_id, chunk_index).

        Chunks without an embedding are not stored: the fixed-size vector
        column cannot represent a pending embedding.
        """
        check_dimensions(chunks, self.embedding_dim)

        data: list[dict[str, Any]] = []
        for chunk in chunks:
            if not chunk.is_searchable:
                logger.warning(
                    "Skipping chunk without embedding",
                    extra={
                        "agent_id": "vector_store",
                        "document_id": chunk.document_id,
                        "chunk_index": chunk.chunk_index,
                    },
                )
                continue
            data.append(
                {
                    "chunk_key": chunk.storage_key,
                    "id": chunk.id,
                    "document_id": chunk.document_id,
                    "owner_user_id": chunk.owner_user_id,
                    "matter_id": chunk.matter_id or "",
                    "chunk_index": chunk.chunk_index,
                    "content": chunk.content,
                    "embedding": chunk.embedding,
                    "metadata": json.dumps(chunk.metadata, default=str),
                    "created_at": chunk.created_at.isoformat(),
                }
            )

        if not data:
            return 0

        table = self._open_or_create_table()
        (
            table.merge_insert("chunk_key")
            .when_matched_update_all()
            .when_not_matched_insert_all()
            .execute(data)
        )
        return len(data)

    async def search(
        self,
        query_vector: list[float],
        scope: SearchScope,
        *,
        limit: int = 10,
        similarity_threshold: float = 0.5,
    ) -> list[SearchResult]:
        """Search for similar chunks within the owner (and matter) scope."""
        require_scope(scope)
        if limit <= 0:
            return []

        table = self._open_table()
        if table is None:
            return []

        where = f"owner_user_id = {_quote(scope.owner_user_id)}"
        if scope.matter_id is not None:
            where += f" AND matter_id = {_quote(scope.matter_id)}"

        rows = (
            table.search(query_vector)
            .metric("cosine")
            .where(where, prefilter=True)
            .limit(limit * 2)  # Headroom for deterministic tie-breaking
            .to_list()
        )

        results: list[SearchResult] = []
        for row in rows:
            # Cosine distance is 1 - cosine similarity
            similarity = max(0.0, min(1.0, 1.0 - float(row.get("_distance", 1.0))))
            if similarity < similarity_threshold:
                continue
            results.append(
                SearchResult(
                    chunk_id=row["id"],
                    document_id=row["document_id"],
                    content=row["content"],
                    chunk_index=int(row["chunk_index"]),
                    similarity_score=similarity,
                    metadata=json.loads(row["metadata"] or "{}"),
                )
            )
        return rank_results(results, limit)

    async def delete_by_document(self, document_id: str) -> int:
        """Delete all chunks of a document. Returns the number removed."""
        table = self._open_table()
        if table is None:
            return 0
        where = f"document_id = {_quote(document_id)}"
        deleted = table.count_rows(where)
        if deleted:
            table.delete(where)
            logger.info(
                "Deleted document chunks",
                extra={"agent_id": "vector_store", "document_id": document_id, "deleted": deleted},
            )
        return int(deleted)

    async def count(self, owner_user_id: str, document_id: str | None = None) -> int:
        table = self._open_table()
        if table is None:
            return 0
        where = f"owner_user_id = {_quote(owner_user_id)}"
        if document_id is not None:
            where += f" AND document_id = {_quote(document_id)}"
        return int(table.count_rows(where))
