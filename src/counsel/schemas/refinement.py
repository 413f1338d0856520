"""Relevance refinement schemas (rerank, extractive QA, classification)."""

from typing import Any

from pydantic import BaseModel, Field

from counsel.schemas.base import CounselMode, RiskLevel


class UsageInfo(BaseModel):
    """Token accounting reported by the remote API."""

    input_tokens: int = 0
    total_tokens: int | None = None


class EmbeddingBatch(BaseModel):
    """Parsed response of one embedding request."""

    vectors: list[list[float]]
    usage: UsageInfo = Field(default_factory=UsageInfo)


class RemoteRerankScore(BaseModel):
    index: int
    score: float


class RemoteAnswer(BaseModel):
    text: str
    score: float
    start: int
    end: int


class RemoteLabelScore(BaseModel):
    label: str
    score: float


class RerankedItem(BaseModel):
    """A document re-scored against a query."""

    text: str
    relevance_score: float = Field(..., ge=0.0, le=1.0)
    original_index: int


class RerankOutput(BaseModel):
    results: list[RerankedItem]
    usage: UsageInfo | None = None


class ExtractedAnswer(BaseModel):
    """An answer span located inside the supplied context."""

    text: str
    confidence: int = Field(..., ge=0, le=100, description="Normalized percentage")
    start_offset: int
    end_offset: int


class ExtractionOutput(BaseModel):
    answers: list[ExtractedAnswer]
    no_context: bool = False
    message: str | None = None


class LabelScore(BaseModel):
    label: str
    score: float = Field(..., ge=0.0, le=1.0)

    @property
    def confidence(self) -> int:
        return round(self.score * 100)


class ClassificationOutput(BaseModel):
    """Scored labels plus the caller-facing primary classification."""

    primary_label: str
    confidence: int
    labels: list[LabelScore]
    material_labels: list[LabelScore]


class RiskIndicator(BaseModel):
    factor: str
    confidence: int


class RiskAssessment(BaseModel):
    risk_level: RiskLevel
    document_type: str = "unknown"
    indicators: list[RiskIndicator]
    recommendation: str


class ClauseMatch(BaseModel):
    """A text whose IQL score cleared the scan threshold."""

    clause_type: str
    query: str
    score: float = Field(..., ge=0.0, le=1.0)
    text: str
    text_index: int


class AnalyzedClause(BaseModel):
    """A detected clause enriched with risk, mutuality and an exact quote."""

    clause_type: str
    type_label: str
    score: float = Field(..., ge=0.0, le=1.0)
    risk_level: RiskLevel = "medium"
    risk_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    is_mutual: bool = True
    text: str
    text_index: int
    quote: ExtractedAnswer | None = None


class ContractAnalysisSummary(BaseModel):
    total_clauses: int = 0
    high_risk_count: int = 0
    medium_risk_count: int = 0
    low_risk_count: int = 0
    chunks_analyzed: int = 0


class ContractAnalysis(BaseModel):
    """Clauses sorted high risk first, then by score."""

    clauses: list[AnalyzedClause] = Field(default_factory=list)
    summary: ContractAnalysisSummary = Field(default_factory=ContractAnalysisSummary)
    full_analysis: bool = False

    @property
    def high_risk_clauses(self) -> list[AnalyzedClause]:
        return [clause for clause in self.clauses if clause.risk_level == "high"]


class DocumentProfile(BaseModel):
    """Document type, jurisdiction and practice area detected from content."""

    document_type: str = "other"
    confidence: float = Field(default=0.3, ge=0.0, le=1.0)
    secondary_type: str | None = None
    jurisdiction: str | None = None
    practice_area: str | None = None

    def as_metadata(self) -> dict[str, Any]:
        metadata: dict[str, Any] = {
            "document_type": self.document_type,
            "document_type_confidence": round(self.confidence, 3),
        }
        for field in ("secondary_type", "jurisdiction", "practice_area"):
            value = getattr(self, field)
            if value:
                metadata[field] = value
        return metadata


class QueryIntent(BaseModel):
    mode: CounselMode = "general"
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    ai_classified: bool = False
