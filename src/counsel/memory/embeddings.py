"""Embedding generation backed by the Isaacus embedder.

Document and query texts are embedded in different task modes; callers must
use the matching method consistently.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from counsel.config import CounselSettings, get_settings
from counsel.exceptions import MalformedResponseError
from counsel.services.isaacus import IsaacusClient


logger = logging.getLogger(__name__)


class Embedder(Protocol):
    """Anything that turns text into fixed-length vectors."""

    @property
    def dimensions(self) -> int: ...

    async def embed_documents(self, texts: list[str]) -> list[list[float]]: ...

    async def embed_query(self, text: str) -> list[float]: ...


class IsaacusEmbeddings:
    """Generate embeddings with the kanon embedder.

    Inputs larger than the per-request batch limit are split into
    sub-batches, dispatched concurrently (bounded by a semaphore) and
    reassembled in input order. A failure in any sub-batch fails the call.
    """

    def __init__(
        self,
        client: IsaacusClient | None = None,
        *,
        settings: CounselSettings | None = None,
    ) -> None:
        self._settings = settings or (client.settings if client else get_settings())
        self._client = client or IsaacusClient(self._settings)
        self.batch_size = self._settings.embedding_batch_size
        self.max_concurrency = self._settings.embedding_max_concurrency

    @property
    def dimensions(self) -> int:
        return self._settings.embedding_dimensions

    @property
    def is_configured(self) -> bool:
        return self._client.is_configured

    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []

        batches = [
            texts[start : start + self.batch_size]
            for start in range(0, len(texts), self.batch_size)
        ]
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _embed_batch(batch: list[str]) -> list[list[float]]:
            async with semaphore:
                result = await self._client.embed(batch, "retrieval/document")
            return result.vectors

        # gather preserves input order and propagates the first failure
        results = await asyncio.gather(*(_embed_batch(batch) for batch in batches))

        vectors = [vector for batch_vectors in results for vector in batch_vectors]
        for vector in vectors:
            self._check_dimensions(vector)

        logger.info(
            "Embedded documents",
            extra={
                "agent_id": "embeddings",
                "texts": len(texts),
                "batches": len(batches),
            },
        )
        return vectors

    async def embed_query(self, text: str) -> list[float]:
        result = await self._client.embed([text], "retrieval/query")
        vector = result.vectors[0]
        self._check_dimensions(vector)
        return vector

    def _check_dimensions(self, vector: list[float]) -> None:
        if len(vector) != self.dimensions:
            raise MalformedResponseError(
                agent_id="embeddings",
                message=(
                    f"Embedding dimension {len(vector)} does not match "
                    f"configured dimension {self.dimensions}"
                ),
            )
