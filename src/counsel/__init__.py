"""Counsel RAG - legal document retrieval and agent tool orchestration.

This package implements the retrieval core behind the legal assistant:
document chunking, Isaacus embeddings, owner-scoped vector search,
relevance refinement (rerank, extractive QA, classification), planning and
memory stores, and the tool-calling agent loop that ties them together.
"""

__version__ = "0.1.0"
