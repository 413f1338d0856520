"""Document chunking and ingestion."""

from counsel.ingestion.chunker import (
    chunk_document,
    chunk_legal_document,
    clean_text,
    detect_section_header,
    estimate_tokens,
)
from counsel.ingestion.documents import DocumentRepository, InMemoryDocumentRepository
from counsel.ingestion.service import IngestionService


__all__ = [
    "DocumentRepository",
    "InMemoryDocumentRepository",
    "IngestionService",
    "chunk_document",
    "chunk_legal_document",
    "clean_text",
    "detect_section_header",
    "estimate_tokens",
]
