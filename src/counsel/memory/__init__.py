"""Embedding adapter and vector similarity storage."""

from counsel.memory.embeddings import Embedder, IsaacusEmbeddings
from counsel.memory.vector_store import (
    InMemoryVectorStore,
    VectorStore,
    cosine_similarity,
    create_vector_store,
)


__all__ = [
    "Embedder",
    "IsaacusEmbeddings",
    "InMemoryVectorStore",
    "VectorStore",
    "cosine_similarity",
    "create_vector_store",
]
