"""Relevance refinement: reranking, extractive QA and zero-shot classification.

Every operation returns either its result model or an ``AgentFailure``;
remote errors never propagate as exceptions, so one failed refinement step
cannot abort the dependent tool calls of an agent turn.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from counsel.exceptions import AgentFailureError
from counsel.schemas import (
    AgentFailure,
    ClassificationOutput,
    ClauseMatch,
    DocumentProfile,
    ErrorCodes,
    ExtractedAnswer,
    ExtractionOutput,
    LabelScore,
    QueryIntent,
    RerankedItem,
    RerankOutput,
    RiskAssessment,
    RiskIndicator,
)
from counsel.schemas.base import CounselMode, RiskLevel
from counsel.services.isaacus import IsaacusClient


if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence


logger = logging.getLogger(__name__)

AGENT_ID = "refinement"

LEGAL_CLAUSE_LABELS: tuple[str, ...] = (
    "indemnification",
    "limitation_of_liability",
    "termination",
    "confidentiality",
    "intellectual_property",
    "warranty",
    "force_majeure",
    "dispute_resolution",
    "governing_law",
    "assignment",
    "notices",
    "amendments",
    "entire_agreement",
    "severability",
    "waiver",
    "payment_terms",
    "delivery",
    "insurance",
    "compliance",
    "data_protection",
    "other",
)

RISK_LABELS: tuple[str, ...] = (
    "high_risk",
    "medium_risk",
    "low_risk",
    "one_sided",
    "ambiguous",
    "missing_protection",
    "unusual_terms",
    "standard",
)

DOCUMENT_TYPE_LABELS: tuple[str, ...] = (
    "commercial_agreement",
    "employment_contract",
    "nda",
    "lease",
    "shareholders_agreement",
    "terms_of_service",
    "privacy_policy",
    "pleading",
    "affidavit",
    "legislation",
    "case_law",
    "legal_opinion",
    "memorandum",
    "correspondence",
    "other",
)

JURISDICTION_LABELS: tuple[str, ...] = (
    "Australian (Federal)",
    "Australian (NSW)",
    "Australian (VIC)",
    "Australian (QLD)",
    "Australian (WA)",
    "Australian (SA)",
    "Australian (TAS)",
    "Australian (ACT)",
    "Australian (NT)",
    "United States",
    "United Kingdom",
    "European Union",
    "International",
    "Other",
)

PRACTICE_AREA_LABELS: tuple[str, ...] = (
    "Corporate/Commercial",
    "Mergers & Acquisitions",
    "Employment",
    "Intellectual Property",
    "Real Estate/Property",
    "Banking & Finance",
    "Litigation & Dispute Resolution",
    "Regulatory & Compliance",
    "Privacy & Data Protection",
    "Technology",
    "Construction",
    "Insolvency",
    "Tax",
    "Family",
    "Criminal",
    "General",
)

QUERY_INTENT_MODES: dict[str, CounselMode] = {
    "contract_review": "contract_analysis",
    "clause_analysis": "contract_analysis",
    "risk_assessment": "contract_analysis",
    "legal_research": "legal_research",
    "case_law_search": "legal_research",
    "statutory_interpretation": "legal_research",
    "document_drafting": "document_drafting",
    "template_creation": "document_drafting",
    "due_diligence": "due_diligence",
    "transaction_review": "due_diligence",
    "compliance_check": "compliance",
    "regulatory_analysis": "compliance",
    "litigation_support": "litigation",
    "dispute_analysis": "litigation",
    "general_question": "general",
}

# Checked in order; the first mode with two keyword hits wins
INTENT_KEYWORDS: tuple[tuple[CounselMode, tuple[str, ...]], ...] = (
    ("contract_analysis", ("contract", "clause", "agreement", "terms", "indemnity", "liability")),
    ("legal_research", ("case", "precedent", "statute", "legislation", "law", "authority")),
    ("document_drafting", ("draft", "write", "prepare", "create", "template")),
    ("due_diligence", ("due diligence", "m&a", "merger", "acquisition", "transaction")),
    ("compliance", ("compliance", "regulatory", "asic", "apra", "privacy", "gdpr")),
    ("litigation", ("litigation", "dispute", "court", "trial", "evidence")),
)

DOCUMENT_SAMPLE_CHARS = 2000
MIN_DOCUMENT_CHARS = 50
MIN_QUERY_CHARS = 10
JURISDICTION_CUTOFF = 0.5
PRACTICE_AREA_CUTOFF = 0.4
SECONDARY_TYPE_CEILING = 0.8
SECONDARY_TYPE_FLOOR = 0.3

MATERIALITY_CUTOFF = 0.3
MAX_MATERIAL_LABELS = 3
RISK_THRESHOLD = 0.5
FALLBACK_LABEL = "other"

RISK_RECOMMENDATIONS: dict[str, str] = {
    "high": "This text contains potentially high-risk terms. Legal review recommended.",
    "medium": "Some terms may warrant further review.",
    "low": "Text appears to be standard legal language.",
}


def _clamp(score: float) -> float:
    return max(0.0, min(1.0, score))


def _percent(score: float) -> int:
    return round(_clamp(score) * 100)


def derive_risk_level(scores: list[LabelScore]) -> RiskLevel:
    """high if high_risk > 0.5, else medium if medium_risk > 0.5, else low."""

    by_label = {item.label: item.score for item in scores}
    if by_label.get("high_risk", 0.0) > RISK_THRESHOLD:
        return "high"
    if by_label.get("medium_risk", 0.0) > RISK_THRESHOLD:
        return "medium"
    return "low"


def material_labels(scores: list[LabelScore]) -> list[LabelScore]:
    """Labels above the materiality cutoff, strongest first, at most three."""

    ranked = sorted(scores, key=lambda item: item.score, reverse=True)
    return [item for item in ranked if item.score > MATERIALITY_CUTOFF][:MAX_MATERIAL_LABELS]


def keyword_intent(query: str) -> QueryIntent:
    """Keyword fallback used when the classifier is unavailable."""

    lowered = query.lower()
    for mode, keywords in INTENT_KEYWORDS:
        hits = sum(keyword in lowered for keyword in keywords)
        if hits >= 2:
            return QueryIntent(mode=mode, confidence=min(1.0, 0.6 + hits * 0.1))
    return QueryIntent(mode="general", confidence=0.5)


class RelevanceRefiner:
    """Remote-backed refinement operations, pure with respect to local state."""

    def __init__(self, client: IsaacusClient | None = None) -> None:
        self._client = client or IsaacusClient()

    @property
    def is_configured(self) -> bool:
        return self._client.is_configured

    async def rerank(
        self, query: str, documents: list[str], top_n: int = 5
    ) -> RerankOutput | AgentFailure:
        """Re-score documents against a query, most relevant first."""

        if not documents:
            return RerankOutput(results=[])

        try:
            scores, usage = await self._client.rerank(query, documents, top_n=top_n)
        except AgentFailureError as exc:
            return self._failure("rerank", exc)

        results: list[RerankedItem] = []
        for item in sorted(scores, key=lambda s: s.score, reverse=True)[:top_n]:
            if not 0 <= item.index < len(documents):
                return AgentFailure(
                    agent_id=AGENT_ID,
                    error_code=ErrorCodes.REMOTE_MALFORMED,
                    message=f"Reranker returned out-of-range index {item.index}",
                )
            results.append(
                RerankedItem(
                    text=documents[item.index],
                    relevance_score=_clamp(item.score),
                    original_index=item.index,
                )
            )
        return RerankOutput(results=results, usage=usage)

    async def extract_answer(
        self, question: str, context: str, top_k: int = 3
    ) -> ExtractionOutput | AgentFailure:
        """Locate answer spans for a question inside the given context."""

        if not context or not context.strip():
            return ExtractionOutput(answers=[], no_context=True, message="No context provided")

        try:
            answers, _usage = await self._client.extract(question, context, top_k=top_k)
        except AgentFailureError as exc:
            return self._failure("extract", exc)

        if not answers:
            return ExtractionOutput(
                answers=[], message="No answer found in the provided context"
            )

        ranked = sorted(answers, key=lambda answer: answer.score, reverse=True)[:top_k]
        return ExtractionOutput(
            answers=[
                ExtractedAnswer(
                    text=answer.text,
                    confidence=_percent(answer.score),
                    start_offset=answer.start,
                    end_offset=answer.end,
                )
                for answer in ranked
            ]
        )

    async def classify(
        self,
        text: str,
        labels: list[str] | None = None,
        *,
        multi_label: bool = True,
    ) -> ClassificationOutput | AgentFailure:
        """Zero-shot classification; defaults to the legal clause taxonomy.

        When no label clears the materiality cutoff the primary label is
        ``other`` rather than the best sub-threshold guess.
        """

        if not text or not text.strip():
            return AgentFailure(
                agent_id=AGENT_ID,
                error_code=ErrorCodes.INVALID_INPUT,
                message="No text provided",
                recoverable=True,
            )
        candidate_labels = list(labels) if labels else list(LEGAL_CLAUSE_LABELS)

        scores = await self.score_labels(text, candidate_labels, multi_label=multi_label)
        if isinstance(scores, AgentFailure):
            return scores
        material = material_labels(scores)
        primary = material[0] if material else None
        return ClassificationOutput(
            primary_label=primary.label if primary else FALLBACK_LABEL,
            confidence=primary.confidence if primary else 0,
            labels=scores,
            material_labels=material,
        )

    async def analyze_risk(
        self, text: str, document_type: str | None = None
    ) -> RiskAssessment | AgentFailure:
        """Classify against the risk taxonomy and derive a three-level verdict."""

        classification = await self.classify(text, list(RISK_LABELS), multi_label=True)
        if isinstance(classification, AgentFailure):
            return classification

        risk_level = derive_risk_level(classification.labels)
        return RiskAssessment(
            risk_level=risk_level,
            document_type=document_type or "unknown",
            indicators=[
                RiskIndicator(factor=item.label, confidence=item.confidence)
                for item in classification.labels
                if item.score > MATERIALITY_CUTOFF
            ],
            recommendation=RISK_RECOMMENDATIONS[risk_level],
        )

    async def score_labels(
        self, text: str, labels: Sequence[str], *, multi_label: bool = False
    ) -> list[LabelScore] | AgentFailure:
        """Raw label scores, strongest first, without materiality filtering."""

        try:
            raw, _usage = await self._client.classify(text, list(labels), multi_label=multi_label)
        except AgentFailureError as exc:
            return self._failure("classify", exc)
        return sorted(
            (LabelScore(label=item.label, score=_clamp(item.score)) for item in raw),
            key=lambda item: item.score,
            reverse=True,
        )

    async def classify_document(self, text: str) -> DocumentProfile | AgentFailure:
        """Detect document type, jurisdiction and practice area from a sample.

        Only the document type is required; jurisdiction and practice area
        are left unset when their call fails or no label clears its cutoff.
        Texts too short to classify get the ``other`` profile.
        """

        if len(text.strip()) < MIN_DOCUMENT_CHARS:
            return DocumentProfile()
        sample = text[:DOCUMENT_SAMPLE_CHARS]

        types, jurisdiction, practice_area = await asyncio.gather(
            self.score_labels(sample, DOCUMENT_TYPE_LABELS),
            self._best_label(sample, JURISDICTION_LABELS, JURISDICTION_CUTOFF),
            self._best_label(sample, PRACTICE_AREA_LABELS, PRACTICE_AREA_CUTOFF),
        )
        if isinstance(types, AgentFailure):
            return types
        if not types:
            return DocumentProfile()

        best = types[0]
        secondary = None
        if best.score < SECONDARY_TYPE_CEILING and len(types) > 1:
            if types[1].score > SECONDARY_TYPE_FLOOR:
                secondary = types[1].label
        return DocumentProfile(
            document_type=best.label,
            confidence=best.score,
            secondary_type=secondary,
            jurisdiction=jurisdiction,
            practice_area=practice_area,
        )

    async def classify_query_intent(self, query: str) -> QueryIntent:
        """Map a user query to a counsel mode. Falls back to keyword matching."""

        if not self.is_configured or len(query.strip()) < MIN_QUERY_CHARS:
            return keyword_intent(query)

        scores = await self.score_labels(query, list(QUERY_INTENT_MODES))
        if isinstance(scores, AgentFailure) or not scores:
            return keyword_intent(query)

        best = scores[0]
        return QueryIntent(
            mode=QUERY_INTENT_MODES.get(best.label, "general"),
            confidence=best.score,
            ai_classified=True,
        )

    async def scan_clauses(
        self,
        texts: list[str],
        templates: Mapping[str, str],
        threshold: float = 0.5,
    ) -> list[ClauseMatch] | AgentFailure:
        """Score texts against each IQL template and keep matches above threshold.

        Templates run concurrently. A failed template is skipped; the scan
        fails only when every template failed.
        """

        if not texts or not templates:
            return []

        names = list(templates)
        outcomes = await asyncio.gather(
            *(self._client.classify_universal(templates[name], texts) for name in names),
            return_exceptions=True,
        )

        matches: list[ClauseMatch] = []
        failures: list[AgentFailure] = []
        for name, outcome in zip(names, outcomes):
            if isinstance(outcome, AgentFailureError):
                failures.append(self._failure(f"scan:{name}", outcome))
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            scores, _usage = outcome
            for item in scores:
                score = _clamp(item.score)
                if score >= threshold:
                    matches.append(
                        ClauseMatch(
                            clause_type=name,
                            query=templates[name],
                            score=score,
                            text=texts[item.index],
                            text_index=item.index,
                        )
                    )

        if failures and len(failures) == len(names):
            return failures[0]
        return sorted(matches, key=lambda match: match.score, reverse=True)

    async def _best_label(
        self, text: str, labels: Sequence[str], cutoff: float
    ) -> str | None:
        scores = await self.score_labels(text, labels)
        if isinstance(scores, AgentFailure) or not scores:
            return None
        return scores[0].label if scores[0].score > cutoff else None

    @staticmethod
    def _failure(operation: str, exc: AgentFailureError) -> AgentFailure:
        logger.warning(
            "Refinement step failed",
            extra={
                "agent_id": AGENT_ID,
                "operation": operation,
                "error_code": exc.failure.error_code,
            },
        )
        return exc.failure


__all__ = [
    "DOCUMENT_TYPE_LABELS",
    "FALLBACK_LABEL",
    "JURISDICTION_LABELS",
    "LEGAL_CLAUSE_LABELS",
    "MATERIALITY_CUTOFF",
    "PRACTICE_AREA_LABELS",
    "QUERY_INTENT_MODES",
    "RISK_LABELS",
    "RelevanceRefiner",
    "derive_risk_level",
    "keyword_intent",
    "material_labels",
]
