"""Two-stage retrieval: scoped vector search, then cross-encoder reranking."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from counsel.schemas import AgentFailure, SearchContext, SearchResult, SearchScope


if TYPE_CHECKING:
    from counsel.memory.embeddings import Embedder
    from counsel.memory.vector_store import VectorStore
    from counsel.services.refinement import RelevanceRefiner


logger = logging.getLogger(__name__)

CONTEXT_SEPARATOR = "\n\n---\n\n"


def document_name(result: SearchResult) -> str:
    return str(result.metadata.get("document_name") or result.document_id)


def build_context(results: list[SearchResult]) -> str:
    """Render results as numbered context blocks for the model prompt."""

    blocks: list[str] = []
    for position, result in enumerate(results, start=1):
        score = result.rerank_score if result.rerank_score is not None else result.similarity_score
        score_str = f" (relevance: {round(score * 100)}%)" if score > 0 else ""
        blocks.append(f"[Document {position}: {document_name(result)}{score_str}]\n{result.content}")
    return CONTEXT_SEPARATOR.join(blocks)


class RetrievalPipeline:
    """Retrieve a wide candidate set by similarity and narrow it by reranking.

    A failed rerank falls back to similarity order so retrieval still
    succeeds when only the reranker is unavailable.
    """

    def __init__(
        self,
        *,
        embedder: Embedder,
        vector_store: VectorStore,
        refiner: RelevanceRefiner | None = None,
    ) -> None:
        self._embedder = embedder
        self._store = vector_store
        self._refiner = refiner

    async def search(
        self,
        query: str,
        scope: SearchScope,
        *,
        top_k: int = 20,
        threshold: float = 0.5,
        rerank_top_k: int = 5,
    ) -> SearchContext:
        if not query.strip():
            return SearchContext(query=query)

        query_vector = await self._embedder.embed_query(query)
        candidates = await self._store.search(
            query_vector, scope, limit=top_k, similarity_threshold=threshold
        )
        if not candidates:
            return SearchContext(query=query)

        results, reranked = await self._rerank(query, candidates, rerank_top_k)
        return SearchContext(
            query=query,
            results=results,
            documents=build_context(results),
            reranked=reranked,
        )

    async def _rerank(
        self, query: str, candidates: list[SearchResult], top_n: int
    ) -> tuple[list[SearchResult], bool]:
        if self._refiner is None:
            return candidates[:top_n], False

        output = await self._refiner.rerank(
            query, [candidate.content for candidate in candidates], top_n=top_n
        )
        if isinstance(output, AgentFailure):
            logger.warning(
                "Rerank failed, using vector similarity order",
                extra={"agent_id": "retrieval", "error_code": output.error_code},
            )
            return candidates[:top_n], False

        return [
            candidates[item.original_index].model_copy(
                update={"rerank_score": item.relevance_score}
            )
            for item in output.results
        ], True
