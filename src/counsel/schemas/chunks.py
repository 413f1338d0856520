"""Chunk, document and search result schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from counsel.schemas.base import DocumentStatus


class TextChunk(BaseModel):
    """A bounded segment produced by the chunker, before persistence.

    Offsets index into the normalised document text so extracted answers can
    be traced back to their source location.
    """

    chunk_index: int = Field(..., ge=0)
    content: str = Field(..., min_length=1)
    start_char: int = Field(..., ge=0)
    end_char: int = Field(..., ge=0)
    section_header: str | None = None
    is_first: bool = False
    is_last: bool = False

    def positional_metadata(self) -> dict[str, Any]:
        metadata: dict[str, Any] = {
            "chunk_index": self.chunk_index,
            "start_char": self.start_char,
            "end_char": self.end_char,
        }
        if self.section_header:
            metadata["section_header"] = self.section_header
        return metadata


class DocumentChunk(BaseModel):
    """A persisted chunk of a document with its (optional) embedding."""

    id: str
    document_id: str
    owner_user_id: str
    matter_id: str | None = None
    chunk_index: int = Field(..., ge=0)
    content: str = Field(..., min_length=1)
    embedding: list[float] | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_searchable(self) -> bool:
        """Chunks without a vector are not eligible for similarity search."""

        return bool(self.embedding)

    @property
    def storage_key(self) -> str:
        return f"{self.document_id}:{self.chunk_index}"


class SearchResult(BaseModel):
    """A single similarity hit. Ephemeral, never persisted."""

    chunk_id: str
    document_id: str
    content: str
    chunk_index: int
    similarity_score: float = Field(..., ge=0.0, le=1.0)
    metadata: dict[str, Any] = Field(default_factory=dict)
    rerank_score: float | None = None


class SearchScope(BaseModel):
    """Owner (and optional matter) a similarity query is restricted to."""

    owner_user_id: str
    matter_id: str | None = None


class DocumentRecord(BaseModel):
    """External document entity consumed by the ingestion pipeline."""

    id: str
    owner_user_id: str
    matter_id: str | None = None
    name: str
    file_type: str | None = None
    status: DocumentStatus = "pending"
    chunk_count: int = 0
    document_type: str | None = None
    jurisdiction: str | None = None
    practice_area: str | None = None
    error_message: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
