"""Pydantic schemas shared across the retrieval core.

Contains:
- AgentFailure, ErrorCodes and shared literals
- TextChunk, DocumentChunk, SearchResult, SearchScope, DocumentRecord
- Refinement results (rerank, extractive QA, classification, risk,
  clause analysis, document profiles, query intent)
- SearchContext, Citation, CitationResult
- TodoItem, MemoryItem
- ChatMessage, ToolCall, ModelTurn, AgentEvent
- API request/response envelopes
"""

from counsel.schemas.agent import (
    AgentEvent,
    AgentRunResult,
    ChatMessage,
    ModelStreamEvent,
    ModelTurn,
    TokenUsage,
    ToolCall,
)
from counsel.schemas.api import (
    ChatRequest,
    DeleteChunksResponse,
    HealthStatus,
    ProcessDocumentRequest,
    ProcessDocumentResponse,
)
from counsel.schemas.base import AgentFailure, ErrorCodes
from counsel.schemas.chunks import (
    DocumentChunk,
    DocumentRecord,
    SearchResult,
    SearchScope,
    TextChunk,
)
from counsel.schemas.planning import MemoryItem, TodoItem
from counsel.schemas.refinement import (
    AnalyzedClause,
    ClassificationOutput,
    ClauseMatch,
    ContractAnalysis,
    ContractAnalysisSummary,
    DocumentProfile,
    EmbeddingBatch,
    ExtractedAnswer,
    ExtractionOutput,
    LabelScore,
    RerankedItem,
    RerankOutput,
    RiskAssessment,
    QueryIntent,
    RiskIndicator,
    UsageInfo,
)
from counsel.schemas.retrieval import Citation, CitationResult, SearchContext


__all__ = [
    # Base
    "AgentFailure",
    "ErrorCodes",
    # Chunks
    "TextChunk",
    "DocumentChunk",
    "DocumentRecord",
    "SearchResult",
    "SearchScope",
    # Refinement
    "UsageInfo",
    "EmbeddingBatch",
    "RerankedItem",
    "RerankOutput",
    "ExtractedAnswer",
    "ExtractionOutput",
    "LabelScore",
    "ClassificationOutput",
    "RiskIndicator",
    "RiskAssessment",
    "ClauseMatch",
    "AnalyzedClause",
    "ContractAnalysisSummary",
    "ContractAnalysis",
    "DocumentProfile",
    "QueryIntent",
    # Retrieval
    "SearchContext",
    "Citation",
    "CitationResult",
    # Planning
    "TodoItem",
    "MemoryItem",
    # Agent
    "ToolCall",
    "ChatMessage",
    "TokenUsage",
    "ModelTurn",
    "ModelStreamEvent",
    "AgentEvent",
    "AgentRunResult",
    # API
    "HealthStatus",
    "ChatRequest",
    "ProcessDocumentRequest",
    "ProcessDocumentResponse",
    "DeleteChunksResponse",
]
