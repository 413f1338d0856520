"""Unit tests for ClauseAnalyzer.

Tests cover:
- Ordering of analyzed clauses by risk, then score
- Neutral defaults when enrichment calls fail
- High-risk scans and party obligation queries
"""

from unittest.mock import Mock

import pytest

from counsel.retrieval import ClauseAnalyzer
from counsel.retrieval.clauses import CLAUSE_RISK_LABELS, MUTUALITY_LABELS, SCAN_GROUPS
from counsel.schemas import (
    AgentFailure,
    ClauseMatch,
    ErrorCodes,
    ExtractedAnswer,
    ExtractionOutput,
    LabelScore,
)
from counsel.services.iql import HIGH_RISK


CHUNKS = [
    "The Supplier shall indemnify the Customer against all losses whatsoever.",
    "Either party may terminate this Agreement on ninety days written notice.",
]

FAILURE = AgentFailure(
    agent_id="refinement", error_code=ErrorCodes.REMOTE_SERVICE, message="down", recoverable=True
)


def _match(clause_type: str, index: int, score: float) -> ClauseMatch:
    return ClauseMatch(
        clause_type=clause_type,
        query=f"{{IS {clause_type} clause}}",
        score=score,
        text=CHUNKS[index],
        text_index=index,
    )


def _scores(**scores: float) -> list[LabelScore]:
    ranked = sorted(scores.items(), key=lambda item: item[1], reverse=True)
    return [LabelScore(label=label, score=score) for label, score in ranked]


@pytest.fixture
def analyzer(mock_refiner: Mock) -> ClauseAnalyzer:
    return ClauseAnalyzer(mock_refiner)


@pytest.mark.unit
class TestAnalyzeContract:
    @pytest.mark.asyncio
    async def test_clauses_sorted_high_risk_first(
        self, analyzer: ClauseAnalyzer, mock_refiner: Mock
    ) -> None:
        mock_refiner.scan_clauses.return_value = [
            _match("termination", 1, 0.95),
            _match("indemnity", 0, 0.7),
        ]

        async def _score_labels(text: str, labels: tuple[str, ...]) -> list[LabelScore]:
            if labels == MUTUALITY_LABELS:
                if text == CHUNKS[0]:
                    return _scores(unilateral_obligation=0.8, mutual_obligation=0.2)
                return _scores(mutual_obligation=0.9, unilateral_obligation=0.1)
            if text == CHUNKS[0]:
                return _scores(high_risk_unusual_or_onerous=0.85, low_risk_standard_clause=0.1)
            return _scores(low_risk_standard_clause=0.6, medium_risk_notable_obligation=0.3)

        mock_refiner.score_labels.side_effect = _score_labels
        mock_refiner.extract_answer.return_value = ExtractionOutput(
            answers=[
                ExtractedAnswer(
                    text="indemnify the Customer", confidence=91, start_offset=18, end_offset=40
                )
            ]
        )

        analysis = await analyzer.analyze_contract(CHUNKS)

        assert analysis.full_analysis is True
        assert [c.clause_type for c in analysis.clauses] == ["indemnity", "termination"]
        indemnity, termination = analysis.clauses
        assert (indemnity.risk_level, indemnity.is_mutual) == ("high", False)
        assert indemnity.type_label == "Indemnity"
        assert indemnity.quote.text == "indemnify the Customer"
        assert (termination.risk_level, termination.is_mutual) == ("low", True)
        assert analysis.summary.total_clauses == 2
        assert analysis.summary.high_risk_count == 1
        assert analysis.summary.low_risk_count == 1
        assert analysis.summary.chunks_analyzed == 2
        assert [c.clause_type for c in analysis.high_risk_clauses] == ["indemnity"]
        mock_refiner.scan_clauses.assert_awaited_once_with(CHUNKS, SCAN_GROUPS["full"], 0.6)
        risk_calls = [
            call for call in mock_refiner.score_labels.await_args_list
            if call.args[1] == CLAUSE_RISK_LABELS
        ]
        assert len(risk_calls) == 2

    @pytest.mark.asyncio
    async def test_enrichment_failures_use_defaults(
        self, analyzer: ClauseAnalyzer, mock_refiner: Mock
    ) -> None:
        mock_refiner.scan_clauses.return_value = [_match("termination", 1, 0.8)]
        mock_refiner.score_labels.return_value = FAILURE
        mock_refiner.extract_answer.return_value = FAILURE

        analysis = await analyzer.analyze_contract(CHUNKS)

        clause = analysis.clauses[0]
        assert (clause.risk_level, clause.risk_confidence) == ("medium", 0.5)
        assert clause.is_mutual is True
        assert clause.quote is None
        assert analysis.summary.medium_risk_count == 1

    @pytest.mark.asyncio
    async def test_scan_failure_is_returned(
        self, analyzer: ClauseAnalyzer, mock_refiner: Mock
    ) -> None:
        mock_refiner.scan_clauses.return_value = FAILURE

        output = await analyzer.analyze_contract(CHUNKS, focus="boilerplate")

        assert output == FAILURE

    @pytest.mark.asyncio
    async def test_unconfigured_refiner_gives_empty_analysis(
        self, analyzer: ClauseAnalyzer, mock_refiner: Mock
    ) -> None:
        mock_refiner.is_configured = False

        analysis = await analyzer.analyze_contract(CHUNKS)

        assert analysis.clauses == []
        assert analysis.full_analysis is False
        assert analysis.summary.chunks_analyzed == 2
        mock_refiner.scan_clauses.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_max_clauses_and_no_risk_classification(
        self, analyzer: ClauseAnalyzer, mock_refiner: Mock
    ) -> None:
        mock_refiner.scan_clauses.return_value = [
            _match("indemnity", 0, 0.9),
            _match("termination", 1, 0.8),
            _match("limitation", 0, 0.7),
        ]

        analysis = await analyzer.analyze_contract(
            CHUNKS, extract_quotes=False, classify_risk=False, max_clauses=2
        )

        assert [c.clause_type for c in analysis.clauses] == ["indemnity", "termination"]
        mock_refiner.score_labels.assert_not_awaited()
        mock_refiner.extract_answer.assert_not_awaited()


@pytest.mark.unit
class TestTargetedScans:
    @pytest.mark.asyncio
    async def test_high_risk_scan_marks_every_hit_high(
        self, analyzer: ClauseAnalyzer, mock_refiner: Mock
    ) -> None:
        mock_refiner.scan_clauses.return_value = [_match("broad_indemnity", 0, 0.75)]
        mock_refiner.extract_answer.return_value = ExtractionOutput(answers=[])

        clauses = await analyzer.scan_high_risk(CHUNKS)

        assert [(c.clause_type, c.risk_level) for c in clauses] == [("broad_indemnity", "high")]
        assert clauses[0].quote is None
        mock_refiner.scan_clauses.assert_awaited_once_with(CHUNKS, HIGH_RISK, 0.7)
        mock_refiner.score_labels.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_party_obligations_combine_templates(
        self, analyzer: ClauseAnalyzer, mock_refiner: Mock
    ) -> None:
        mock_refiner.scan_clauses.return_value = [_match("indemnity", 0, 0.66)]

        matches = await analyzer.find_party_obligations(CHUNKS, 'the "Supplier"', "indemnity")

        assert [m.text_index for m in matches] == [0]
        templates = mock_refiner.scan_clauses.await_args.args[1]
        assert templates == {
            "indemnity": "{IS indemnity clause} AND {IS clause obligating \"the 'Supplier'\"}"
        }

    @pytest.mark.asyncio
    async def test_party_obligations_with_free_text_clause_type(
        self, analyzer: ClauseAnalyzer, mock_refiner: Mock
    ) -> None:
        mock_refiner.scan_clauses.return_value = []

        await analyzer.find_party_obligations(CHUNKS, "Customer", "data_return")
        templates = mock_refiner.scan_clauses.await_args.args[1]

        assert templates == {
            "data_return": '{IS clause that "data return"} AND {IS clause obligating "Customer"}'
        }

    @pytest.mark.asyncio
    async def test_party_obligations_without_clause_type(
        self, analyzer: ClauseAnalyzer, mock_refiner: Mock
    ) -> None:
        mock_refiner.scan_clauses.return_value = []

        await analyzer.find_party_obligations(CHUNKS, "Customer")

        assert mock_refiner.scan_clauses.await_args.args[1] == {
            "obligation": '{IS clause obligating "Customer"}'
        }

    @pytest.mark.asyncio
    async def test_blank_party_skips_scan(
        self, analyzer: ClauseAnalyzer, mock_refiner: Mock
    ) -> None:
        assert await analyzer.find_party_obligations(CHUNKS, "  ") == []
        mock_refiner.scan_clauses.assert_not_awaited()
