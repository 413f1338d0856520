"""Retrieval pipeline and citation schemas."""

from pydantic import BaseModel, Field

from counsel.schemas.chunks import SearchResult


class SearchContext(BaseModel):
    """Refined results plus the numbered context block handed to the model."""

    query: str
    results: list[SearchResult] = Field(default_factory=list)
    documents: str = ""
    reranked: bool = False


class Citation(BaseModel):
    """An exact quote traced back to the chunk it came from."""

    document_name: str
    chunk_id: str
    chunk_index: int
    exact_quote: str
    start_char: int = Field(..., description="Offset of the quote within the chunk")
    end_char: int
    document_start_char: int | None = Field(
        default=None, description="Offset of the quote within the normalised document"
    )
    confidence: int = Field(..., ge=0, le=100)
    relevance_score: float
    full_context: str


class CitationResult(BaseModel):
    citations: list[Citation] = Field(default_factory=list)
    verified: bool = False
    documents_processed: int = 0
