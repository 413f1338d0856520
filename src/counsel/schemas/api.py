"""API-specific schemas for FastAPI routes.

These models wrap the core schemas for HTTP requests/responses.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from counsel.schemas.agent import ChatMessage
from counsel.schemas.base import DocumentStatus


class HealthStatus(BaseModel):
    """Response body for the /health endpoint."""

    vector_store: Literal["connected", "degraded", "offline"]
    embeddings: Literal["configured", "unconfigured"]
    llm: Literal["configured", "unconfigured"]


class ChatRequest(BaseModel):
    """Request body for the /chat endpoint."""

    conversation_id: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1, description="New user message")
    matter_id: str | None = None
    history: list[ChatMessage] = Field(
        default_factory=list,
        description="Prior turns of the conversation (system prompt excluded)",
    )


class ProcessDocumentRequest(BaseModel):
    """Request body for /documents/{id}/process once text extraction finished."""

    text: str
    name: str = "document"
    matter_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    legal_sections: bool = Field(
        default=False,
        description="Split on legal headings before chunking",
    )


class ProcessDocumentResponse(BaseModel):
    document_id: str
    status: DocumentStatus
    chunk_count: int


class DeleteChunksResponse(BaseModel):
    document_id: str
    deleted: int
