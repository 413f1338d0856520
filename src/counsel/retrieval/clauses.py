"""Contract clause analysis over retrieved chunks.

Clauses are found with IQL template scans, then enriched concurrently with
an exact quote (extractive QA), a risk level and a mutual/unilateral
verdict. Enrichment failures degrade to neutral defaults; only a failed
scan is reported back as an ``AgentFailure``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Literal

from counsel.schemas import (
    AgentFailure,
    AnalyzedClause,
    ClauseMatch,
    ContractAnalysis,
    ContractAnalysisSummary,
    ExtractedAnswer,
)
from counsel.services.iql import (
    BOILERPLATE,
    CLAUSE_TEMPLATES,
    CORE,
    DUE_DILIGENCE,
    HIGH_RISK,
    all_of,
    clause_that,
    label_for,
    obligating,
)


if TYPE_CHECKING:
    from counsel.schemas.base import RiskLevel
    from counsel.services.refinement import RelevanceRefiner


logger = logging.getLogger(__name__)

ScanFocus = Literal["full", "high_risk", "due_diligence", "boilerplate"]

CLAUSE_RISK_LABELS = (
    "low_risk_standard_clause",
    "medium_risk_notable_obligation",
    "high_risk_unusual_or_onerous",
)
MUTUALITY_LABELS = ("mutual_obligation", "unilateral_obligation")

MIN_CLAUSE_CHARS = 20
DEFAULT_RISK: tuple[RiskLevel, float] = ("medium", 0.5)
_RISK_ORDER = {"high": 0, "medium": 1, "low": 2}

SCAN_GROUPS: dict[str, dict[str, str]] = {
    "full": {**HIGH_RISK, **CORE},
    "high_risk": HIGH_RISK,
    "due_diligence": DUE_DILIGENCE,
    "boilerplate": BOILERPLATE,
}


class ClauseAnalyzer:
    """IQL-driven clause detection and enrichment for contract review."""

    def __init__(self, refiner: RelevanceRefiner) -> None:
        self._refiner = refiner

    async def analyze_contract(
        self,
        chunks: list[str],
        *,
        focus: ScanFocus = "full",
        threshold: float = 0.6,
        extract_quotes: bool = True,
        classify_risk: bool = True,
        max_clauses: int = 20,
    ) -> ContractAnalysis | AgentFailure:
        """Detect clauses across chunks, sorted high risk first, then by score.

        Returns an empty, non-full analysis when the classifier is not
        configured or there is nothing to analyze.
        """

        if not chunks or not self._refiner.is_configured:
            return ContractAnalysis(summary=ContractAnalysisSummary(chunks_analyzed=len(chunks)))

        matches = await self._refiner.scan_clauses(chunks, SCAN_GROUPS[focus], threshold)
        if isinstance(matches, AgentFailure):
            return matches

        clauses = await asyncio.gather(
            *(
                self._enrich(match, extract_quotes=extract_quotes, classify_risk=classify_risk)
                for match in matches[:max_clauses]
            )
        )
        ordered = sorted(clauses, key=lambda c: (_RISK_ORDER[c.risk_level], -c.score))

        logger.info(
            "Contract clauses analyzed",
            extra={"agent_id": "clause_analyzer", "focus": focus, "clauses": len(ordered)},
        )
        return ContractAnalysis(
            clauses=ordered,
            summary=ContractAnalysisSummary(
                total_clauses=len(ordered),
                high_risk_count=sum(c.risk_level == "high" for c in ordered),
                medium_risk_count=sum(c.risk_level == "medium" for c in ordered),
                low_risk_count=sum(c.risk_level == "low" for c in ordered),
                chunks_analyzed=len(chunks),
            ),
            full_analysis=True,
        )

    async def scan_high_risk(
        self, chunks: list[str], threshold: float = 0.7
    ) -> list[AnalyzedClause] | AgentFailure:
        """Quick scan for onerous clauses; every hit is reported as high risk."""

        if not chunks or not self._refiner.is_configured:
            return []

        matches = await self._refiner.scan_clauses(chunks, HIGH_RISK, threshold)
        if isinstance(matches, AgentFailure):
            return matches

        clauses = await asyncio.gather(
            *(self._enrich(match, extract_quotes=True, classify_risk=False) for match in matches)
        )
        return [clause.model_copy(update={"risk_level": "high"}) for clause in clauses]

    async def find_party_obligations(
        self,
        chunks: list[str],
        party: str,
        clause_type: str | None = None,
        threshold: float = 0.5,
    ) -> list[ClauseMatch] | AgentFailure:
        """Chunks containing clauses that obligate ``party``.

        A known ``clause_type`` narrows the scan to that template; any other
        value is used as a free-text clause description.
        """

        if not chunks or not party.strip() or not self._refiner.is_configured:
            return []

        query = obligating(party)
        if clause_type:
            template = CLAUSE_TEMPLATES.get(clause_type) or clause_that(clause_type.replace("_", " "))
            query = all_of(template, query)
        return await self._refiner.scan_clauses(
            chunks, {clause_type or "obligation": query}, threshold
        )

    async def _enrich(
        self, match: ClauseMatch, *, extract_quotes: bool, classify_risk: bool
    ) -> AnalyzedClause:
        quote_task = self._quote(match) if extract_quotes else _none()
        risk_task = self._risk(match.text) if classify_risk else _default_risk()
        mutual_task = self._mutuality(match.text) if classify_risk else _mutual()
        quote, (risk_level, risk_confidence), is_mutual = await asyncio.gather(
            quote_task, risk_task, mutual_task
        )
        return AnalyzedClause(
            clause_type=match.clause_type,
            type_label=label_for(match.clause_type),
            score=match.score,
            risk_level=risk_level,
            risk_confidence=risk_confidence,
            is_mutual=is_mutual,
            text=match.text,
            text_index=match.text_index,
            quote=quote,
        )

    async def _quote(self, match: ClauseMatch) -> ExtractedAnswer | None:
        question = f"What is the exact text of the {match.clause_type.replace('_', ' ')} provision?"
        output = await self._refiner.extract_answer(question, match.text, top_k=1)
        if isinstance(output, AgentFailure) or not output.answers:
            return None
        return output.answers[0]

    async def _risk(self, text: str) -> tuple[RiskLevel, float]:
        if len(text) < MIN_CLAUSE_CHARS:
            return DEFAULT_RISK
        scores = await self._refiner.score_labels(text, CLAUSE_RISK_LABELS)
        if isinstance(scores, AgentFailure) or not scores:
            return DEFAULT_RISK
        best = scores[0]
        if "high" in best.label:
            return "high", best.score
        if "low" in best.label:
            return "low", best.score
        return "medium", best.score

    async def _mutuality(self, text: str) -> bool:
        if len(text) < MIN_CLAUSE_CHARS:
            return True
        scores = await self._refiner.score_labels(text, MUTUALITY_LABELS)
        if isinstance(scores, AgentFailure):
            return True
        by_label = {item.label: item.score for item in scores}
        if set(MUTUALITY_LABELS) <= by_label.keys():
            return by_label["mutual_obligation"] > by_label["unilateral_obligation"]
        return True


async def _none() -> None:
    return None


async def _default_risk() -> tuple[RiskLevel, float]:
    return DEFAULT_RISK


async def _mutual() -> bool:
    return True


__all__ = ["CLAUSE_RISK_LABELS", "ClauseAnalyzer", "MUTUALITY_LABELS", "SCAN_GROUPS"]
