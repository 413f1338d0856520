"""Unit tests for RelevanceRefiner.

Tests cover:
- Reranking order and short-circuits
- Extractive QA edge cases
- Classification materiality and the 'other' fallback
- Risk level derivation
- Document profiling, query intent and IQL clause scans
- Failures returned as values, never raised
"""

from unittest.mock import AsyncMock, Mock

import pytest

from counsel.exceptions import RemoteServiceError, ServiceConfigurationError
from counsel.schemas import AgentFailure, ErrorCodes, LabelScore, UsageInfo
from counsel.schemas.refinement import RemoteAnswer, RemoteLabelScore, RemoteRerankScore
from counsel.services import IsaacusClient, RelevanceRefiner, derive_risk_level
from counsel.services.refinement import (
    DOCUMENT_TYPE_LABELS,
    JURISDICTION_LABELS,
    LEGAL_CLAUSE_LABELS,
    PRACTICE_AREA_LABELS,
    QUERY_INTENT_MODES,
    RISK_LABELS,
    keyword_intent,
)


@pytest.fixture
def isaacus() -> Mock:
    client = Mock(spec=IsaacusClient)
    client.is_configured = True
    client.rerank = AsyncMock()
    client.extract = AsyncMock()
    client.classify = AsyncMock()
    client.classify_universal = AsyncMock()
    return client


@pytest.fixture
def refiner(isaacus: Mock) -> RelevanceRefiner:
    return RelevanceRefiner(isaacus)


@pytest.mark.unit
class TestRerank:
    @pytest.mark.asyncio
    async def test_empty_documents_skip_remote_call(
        self, refiner: RelevanceRefiner, isaacus: Mock
    ) -> None:
        output = await refiner.rerank("termination", [])

        assert output.results == []
        isaacus.rerank.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_results_sorted_by_score(self, refiner: RelevanceRefiner, isaacus: Mock) -> None:
        isaacus.rerank.return_value = (
            [RemoteRerankScore(index=0, score=0.2), RemoteRerankScore(index=2, score=0.9)],
            UsageInfo(input_tokens=12),
        )

        output = await refiner.rerank("termination", ["a", "b", "c"], top_n=2)

        assert [(r.original_index, r.text) for r in output.results] == [(2, "c"), (0, "a")]
        assert output.usage.input_tokens == 12
        isaacus.rerank.assert_awaited_once_with("termination", ["a", "b", "c"], top_n=2)

    @pytest.mark.asyncio
    async def test_out_of_range_index_is_malformed(
        self, refiner: RelevanceRefiner, isaacus: Mock
    ) -> None:
        isaacus.rerank.return_value = ([RemoteRerankScore(index=5, score=0.9)], UsageInfo())

        output = await refiner.rerank("q", ["only"])

        assert isinstance(output, AgentFailure)
        assert output.error_code == ErrorCodes.REMOTE_MALFORMED

    @pytest.mark.asyncio
    async def test_remote_failure_returned_as_value(
        self, refiner: RelevanceRefiner, isaacus: Mock
    ) -> None:
        isaacus.rerank.side_effect = RemoteServiceError(
            agent_id="isaacus", message="down", status_code=503
        )

        output = await refiner.rerank("q", ["doc"])

        assert isinstance(output, AgentFailure)
        assert output.error_code == ErrorCodes.REMOTE_SERVICE
        assert output.recoverable is True

    @pytest.mark.asyncio
    async def test_missing_credential_returned_as_value(
        self, refiner: RelevanceRefiner, isaacus: Mock
    ) -> None:
        isaacus.rerank.side_effect = ServiceConfigurationError(agent_id="isaacus", message="no key")

        output = await refiner.rerank("q", ["doc"])

        assert isinstance(output, AgentFailure)
        assert output.error_code == ErrorCodes.CONFIG_MISSING_CREDENTIAL


@pytest.mark.unit
class TestExtractAnswer:
    @pytest.mark.asyncio
    async def test_blank_context_short_circuits(
        self, refiner: RelevanceRefiner, isaacus: Mock
    ) -> None:
        output = await refiner.extract_answer("What is the notice period?", "   ")

        assert output.answers == []
        assert output.no_context is True
        assert output.message == "No context provided"
        isaacus.extract.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_answers_is_not_an_error(
        self, refiner: RelevanceRefiner, isaacus: Mock
    ) -> None:
        isaacus.extract.return_value = ([], UsageInfo())

        output = await refiner.extract_answer("q", "some context")

        assert output.answers == []
        assert output.no_context is False
        assert output.message == "No answer found in the provided context"

    @pytest.mark.asyncio
    async def test_answers_carry_percent_confidence_and_offsets(
        self, refiner: RelevanceRefiner, isaacus: Mock
    ) -> None:
        isaacus.extract.return_value = (
            [
                RemoteAnswer(text="thirty days", score=0.41, start=30, end=41),
                RemoteAnswer(text="ninety days", score=0.876, start=10, end=21),
            ],
            UsageInfo(),
        )

        output = await refiner.extract_answer("notice period?", "context", top_k=2)

        assert [a.text for a in output.answers] == ["ninety days", "thirty days"]
        assert output.answers[0].confidence == 88
        assert (output.answers[0].start_offset, output.answers[0].end_offset) == (10, 21)


@pytest.mark.unit
class TestClassify:
    @pytest.mark.asyncio
    async def test_blank_text_is_invalid_input(self, refiner: RelevanceRefiner) -> None:
        output = await refiner.classify("")

        assert isinstance(output, AgentFailure)
        assert output.error_code == ErrorCodes.INVALID_INPUT

    @pytest.mark.asyncio
    async def test_defaults_to_clause_taxonomy(
        self, refiner: RelevanceRefiner, isaacus: Mock
    ) -> None:
        isaacus.classify.return_value = (
            [
                RemoteLabelScore(label="termination", score=0.82),
                RemoteLabelScore(label="notices", score=0.45),
                RemoteLabelScore(label="governing_law", score=0.35),
                RemoteLabelScore(label="waiver", score=0.31),
                RemoteLabelScore(label="payment_terms", score=0.1),
            ],
            UsageInfo(),
        )

        output = await refiner.classify("Either party may terminate on notice.")

        labels_sent = isaacus.classify.await_args.args[1]
        assert labels_sent == list(LEGAL_CLAUSE_LABELS)
        assert output.primary_label == "termination"
        assert output.confidence == 82
        assert [m.label for m in output.material_labels] == ["termination", "notices", "governing_law"]
        assert len(output.labels) == 5

    @pytest.mark.asyncio
    async def test_nothing_material_falls_back_to_other(
        self, refiner: RelevanceRefiner, isaacus: Mock
    ) -> None:
        isaacus.classify.return_value = (
            [RemoteLabelScore(label="termination", score=0.29)],
            UsageInfo(),
        )

        output = await refiner.classify("Some text", ["termination"])

        assert output.primary_label == "other"
        assert output.confidence == 0
        assert output.material_labels == []


@pytest.mark.unit
class TestRisk:
    @pytest.mark.parametrize(
        ("scores", "expected"),
        [
            ({"high_risk": 0.6, "medium_risk": 0.8}, "high"),
            ({"high_risk": 0.5, "medium_risk": 0.51}, "medium"),
            ({"high_risk": 0.5, "medium_risk": 0.5}, "low"),
            ({}, "low"),
        ],
    )
    def test_derive_risk_level(self, scores: dict[str, float], expected: str) -> None:
        labels = [LabelScore(label=label, score=score) for label, score in scores.items()]

        assert derive_risk_level(labels) == expected

    @pytest.mark.asyncio
    async def test_analyze_risk(self, refiner: RelevanceRefiner, isaacus: Mock) -> None:
        isaacus.classify.return_value = (
            [
                RemoteLabelScore(label="high_risk", score=0.6),
                RemoteLabelScore(label="one_sided", score=0.7),
                RemoteLabelScore(label="standard", score=0.2),
            ],
            UsageInfo(),
        )

        output = await refiner.analyze_risk("The supplier has unlimited liability.", "contract")

        assert isaacus.classify.await_args.args[1] == list(RISK_LABELS)
        assert output.risk_level == "high"
        assert output.document_type == "contract"
        assert [i.factor for i in output.indicators] == ["one_sided", "high_risk"]
        assert "Legal review recommended" in output.recommendation

    @pytest.mark.asyncio
    async def test_analyze_risk_propagates_failure_value(self, refiner: RelevanceRefiner) -> None:
        output = await refiner.analyze_risk("   ")

        assert isinstance(output, AgentFailure)


def _label_scores(**scores: float) -> tuple[list[RemoteLabelScore], UsageInfo]:
    return [RemoteLabelScore(label=label, score=score) for label, score in scores.items()], UsageInfo()


@pytest.mark.unit
class TestClassifyDocument:
    @pytest.mark.asyncio
    async def test_short_text_gets_default_profile(
        self, refiner: RelevanceRefiner, isaacus: Mock
    ) -> None:
        profile = await refiner.classify_document("Too short to classify.")

        assert profile.document_type == "other"
        assert profile.confidence == 0.3
        isaacus.classify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_profile_from_three_taxonomies(
        self, refiner: RelevanceRefiner, isaacus: Mock, contract_text: str
    ) -> None:
        responses = {
            DOCUMENT_TYPE_LABELS: _label_scores(nda=0.2, commercial_agreement=0.7, lease=0.4),
            JURISDICTION_LABELS: _label_scores(**{"United Kingdom": 0.65, "United States": 0.2}),
            PRACTICE_AREA_LABELS: _label_scores(Technology=0.35, General=0.1),
        }

        async def _classify(
            text: str, labels: list[str], multi_label: bool = False
        ) -> tuple[list[RemoteLabelScore], UsageInfo]:
            return responses[tuple(labels)]

        isaacus.classify.side_effect = _classify

        profile = await refiner.classify_document(contract_text)

        assert profile.document_type == "commercial_agreement"
        assert profile.confidence == pytest.approx(0.7)
        assert profile.secondary_type == "lease"
        assert profile.jurisdiction == "United Kingdom"
        assert profile.practice_area is None
        assert profile.as_metadata() == {
            "document_type": "commercial_agreement",
            "document_type_confidence": 0.7,
            "secondary_type": "lease",
            "jurisdiction": "United Kingdom",
        }

    @pytest.mark.asyncio
    async def test_optional_taxonomy_failures_are_tolerated(
        self, refiner: RelevanceRefiner, isaacus: Mock, contract_text: str
    ) -> None:
        async def _classify(
            text: str, labels: list[str], multi_label: bool = False
        ) -> tuple[list[RemoteLabelScore], UsageInfo]:
            if tuple(labels) == DOCUMENT_TYPE_LABELS:
                return _label_scores(commercial_agreement=0.92, nda=0.5)
            raise RemoteServiceError(agent_id="isaacus", message="down", status_code=503)

        isaacus.classify.side_effect = _classify

        profile = await refiner.classify_document(contract_text)

        assert profile.document_type == "commercial_agreement"
        assert profile.secondary_type is None
        assert (profile.jurisdiction, profile.practice_area) == (None, None)

    @pytest.mark.asyncio
    async def test_document_type_failure_is_returned(
        self, refiner: RelevanceRefiner, isaacus: Mock, contract_text: str
    ) -> None:
        isaacus.classify.side_effect = RemoteServiceError(
            agent_id="isaacus", message="down", status_code=503
        )

        profile = await refiner.classify_document(contract_text)

        assert isinstance(profile, AgentFailure)
        assert profile.error_code == ErrorCodes.REMOTE_SERVICE


@pytest.mark.unit
class TestQueryIntent:
    @pytest.mark.parametrize(
        ("query", "mode"),
        [
            ("Review the indemnity clause in this contract", "contract_analysis"),
            ("Find a precedent case on this statute", "legal_research"),
            ("Prepare a draft letter", "document_drafting"),
            ("What's the weather like", "general"),
        ],
    )
    def test_keyword_intent(self, query: str, mode: str) -> None:
        assert keyword_intent(query).mode == mode

    def test_keyword_confidence_grows_with_hits(self) -> None:
        intent = keyword_intent("contract clause agreement liability")

        assert intent.confidence == pytest.approx(1.0)
        assert intent.ai_classified is False

    @pytest.mark.asyncio
    async def test_classifier_result_is_mapped_to_mode(
        self, refiner: RelevanceRefiner, isaacus: Mock
    ) -> None:
        isaacus.classify.return_value = _label_scores(
            transaction_review=0.81, contract_review=0.4
        )

        intent = await refiner.classify_query_intent("What change of control rights exist here?")

        assert isaacus.classify.await_args.args[1] == list(QUERY_INTENT_MODES)
        assert intent.mode == "due_diligence"
        assert intent.confidence == pytest.approx(0.81)
        assert intent.ai_classified is True

    @pytest.mark.asyncio
    async def test_short_query_uses_keywords(
        self, refiner: RelevanceRefiner, isaacus: Mock
    ) -> None:
        intent = await refiner.classify_query_intent("hi")

        assert intent.mode == "general"
        isaacus.classify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_classifier_failure_uses_keywords(
        self, refiner: RelevanceRefiner, isaacus: Mock
    ) -> None:
        isaacus.classify.side_effect = RemoteServiceError(
            agent_id="isaacus", message="down", status_code=503
        )

        intent = await refiner.classify_query_intent("Is this dispute headed to court?")

        assert intent.mode == "litigation"
        assert intent.ai_classified is False


@pytest.mark.unit
class TestScanClauses:
    @pytest.mark.asyncio
    async def test_matches_above_threshold_sorted_by_score(
        self, refiner: RelevanceRefiner, isaacus: Mock
    ) -> None:
        results = {
            "{IS termination clause}": [
                RemoteRerankScore(index=0, score=0.55),
                RemoteRerankScore(index=1, score=0.9),
            ],
            "{IS indemnity clause}": [
                RemoteRerankScore(index=0, score=0.49),
                RemoteRerankScore(index=1, score=0.7),
            ],
        }

        async def _universal(query: str, texts: list[str]) -> tuple[list[RemoteRerankScore], UsageInfo]:
            return results[query], UsageInfo()

        isaacus.classify_universal.side_effect = _universal

        matches = await refiner.scan_clauses(
            ["Payment within 30 days.", "Either party may terminate."],
            {"termination": "{IS termination clause}", "indemnity": "{IS indemnity clause}"},
            threshold=0.5,
        )

        assert [(m.clause_type, m.text_index) for m in matches] == [
            ("termination", 1),
            ("indemnity", 1),
            ("termination", 0),
        ]
        assert matches[0].text == "Either party may terminate."
        assert matches[0].query == "{IS termination clause}"

    @pytest.mark.asyncio
    async def test_failed_template_is_skipped(
        self, refiner: RelevanceRefiner, isaacus: Mock
    ) -> None:
        async def _universal(query: str, texts: list[str]) -> tuple[list[RemoteRerankScore], UsageInfo]:
            if "indemnity" in query:
                raise RemoteServiceError(agent_id="isaacus", message="down", status_code=502)
            return [RemoteRerankScore(index=0, score=0.8)], UsageInfo()

        isaacus.classify_universal.side_effect = _universal

        matches = await refiner.scan_clauses(
            ["Either party may terminate."],
            {"termination": "{IS termination clause}", "indemnity": "{IS indemnity clause}"},
        )

        assert [m.clause_type for m in matches] == ["termination"]

    @pytest.mark.asyncio
    async def test_every_template_failing_is_a_failure(
        self, refiner: RelevanceRefiner, isaacus: Mock
    ) -> None:
        isaacus.classify_universal.side_effect = RemoteServiceError(
            agent_id="isaacus", message="down", status_code=502
        )

        output = await refiner.scan_clauses(["text"], {"termination": "{IS termination clause}"})

        assert isinstance(output, AgentFailure)
        assert output.error_code == ErrorCodes.REMOTE_SERVICE

    @pytest.mark.asyncio
    async def test_nothing_to_scan(self, refiner: RelevanceRefiner, isaacus: Mock) -> None:
        assert await refiner.scan_clauses([], {"termination": "{IS termination clause}"}) == []
        isaacus.classify_universal.assert_not_awaited()
