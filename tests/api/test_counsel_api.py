"""API contract tests.

Test Tool: httpx AsyncClient over ASGITransport, with FastAPI dependency
overrides pointing at in-process stores and a scripted chat model.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any
from unittest.mock import Mock

import pytest
from httpx import ASGITransport, AsyncClient

from counsel.api import (
    _get_chat_model,
    _get_documents,
    _get_embedder,
    _get_planning,
    _get_refiner,
    _get_settings,
    _get_vector_store,
    app,
)
from counsel.config import CounselSettings
from counsel.exceptions import ServiceConfigurationError
from counsel.ingestion import InMemoryDocumentRepository
from counsel.memory import InMemoryVectorStore
from counsel.planning import InMemoryPlanningBackend
from counsel.schemas import ErrorCodes, QueryIntent
from tests.mocks.chat_model import ScriptedChatModel, answer_turn, tool_turn
from tests.mocks.embedder import KeywordEmbedder


if TYPE_CHECKING:
    from collections.abc import AsyncIterator


HEADERS = {"X-User-Id": "user-a"}


@pytest.fixture
def chat_model() -> ScriptedChatModel:
    return ScriptedChatModel(
        [
            tool_turn(("c1", "search_documents", {"query": "termination notice"})),
            answer_turn("Ninety days written notice."),
        ]
    )


@pytest.fixture
async def async_client(
    test_settings: CounselSettings,
    vector_store: InMemoryVectorStore,
    keyword_embedder: KeywordEmbedder,
    documents: InMemoryDocumentRepository,
    planning_backend: InMemoryPlanningBackend,
    mock_refiner: Mock,
    chat_model: ScriptedChatModel,
) -> AsyncIterator[AsyncClient]:
    """Provide an Httpx AsyncClient wired to the FastAPI ASGI app."""

    app.dependency_overrides.update(
        {
            _get_settings: lambda: test_settings,
            _get_vector_store: lambda: vector_store,
            _get_embedder: lambda: keyword_embedder,
            _get_documents: lambda: documents,
            _get_planning: lambda: planning_backend,
            _get_refiner: lambda: mock_refiner,
            _get_chat_model: lambda: chat_model,
        }
    )
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.clear()


def _parse_sse(body: str) -> list[tuple[str, dict[str, Any]]]:
    events = []
    for block in body.strip().split("\n\n"):
        lines = dict(line.split(": ", 1) for line in block.splitlines())
        events.append((lines["event"], json.loads(lines["data"])))
    return events


class TestCounselAPI:
    """API contract tests."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_health(self, async_client: AsyncClient) -> None:
        response = await async_client.get("/health")

        assert response.status_code == 200
        assert response.json() == {
            "vector_store": "connected",
            "embeddings": "configured",
            "llm": "unconfigured",
        }

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_process_and_delete_document(
        self, async_client: AsyncClient, documents: InMemoryDocumentRepository, contract_text: str
    ) -> None:
        response = await async_client.post(
            "/documents/doc-new/process",
            json={"text": contract_text, "name": "Services.pdf"},
            headers=HEADERS,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ready"
        assert body["chunk_count"] > 1
        assert (await documents.get("doc-new")).owner_user_id == "user-a"

        deleted = await async_client.delete("/documents/doc-new/chunks", headers=HEADERS)
        assert deleted.json() == {"document_id": "doc-new", "deleted": body["chunk_count"]}

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_foreign_documents_are_not_found(self, async_client: AsyncClient) -> None:
        processed = await async_client.post(
            "/documents/doc-nda/process", json={"text": "NDA text"}, headers=HEADERS
        )
        deleted = await async_client.delete("/documents/doc-nda/chunks", headers=HEADERS)

        assert processed.status_code == 404
        assert processed.json()["detail"]["error_code"] == ErrorCodes.NOT_FOUND
        assert deleted.status_code == 404

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_unknown_document_delete_is_a_no_op(self, async_client: AsyncClient) -> None:
        response = await async_client.delete("/documents/nothing/chunks", headers=HEADERS)

        assert response.json() == {"document_id": "nothing", "deleted": 0}

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_missing_user_header_is_rejected(self, async_client: AsyncClient) -> None:
        response = await async_client.post(
            "/chat", json={"conversation_id": "conv-1", "message": "hi"}
        )

        assert response.status_code == 422

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_chat_streams_agent_events(
        self, async_client: AsyncClient, chat_model: ScriptedChatModel, contract_text: str
    ) -> None:
        await async_client.post(
            "/documents/doc-msa/process", json={"text": contract_text}, headers=HEADERS
        )

        response = await async_client.post(
            "/chat",
            json={"conversation_id": "conv-1", "message": "How is the MSA terminated?"},
            headers=HEADERS,
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = _parse_sse(response.text)
        names = [name for name, _ in events]
        assert names[:3] == ["tool_call_start", "tool_call_args", "tool_call_end"]
        assert names[-1] == "run_finished"
        assert names.count("run_finished") == 1
        tool_result = events[2][1]["result"]
        assert {hit["document_id"] for hit in tool_result["results"]} == {"doc-msa"}
        assert events[-1][1] == {"step": 2, "content": "Ninety days written notice.", "steps": 2}

        first_call = chat_model.calls[0]
        assert first_call[0].role == "system"
        assert first_call[-1].content == "How is the MSA terminated?"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_chat_without_llm_credentials(self, async_client: AsyncClient) -> None:
        def _unconfigured() -> None:
            raise ServiceConfigurationError(agent_id="llm_service", message="no key")

        app.dependency_overrides[_get_chat_model] = _unconfigured

        response = await async_client.post(
            "/chat", json={"conversation_id": "conv-1", "message": "hi"}, headers=HEADERS
        )

        assert response.status_code == 503
        assert response.json()["detail"]["error_code"] == ErrorCodes.CONFIG_MISSING_CREDENTIAL

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_chat_prompt_follows_query_intent(
        self, async_client: AsyncClient, chat_model: ScriptedChatModel, mock_refiner: Mock
    ) -> None:
        mock_refiner.classify_query_intent.return_value = QueryIntent(
            mode="contract_analysis", confidence=0.9, ai_classified=True
        )

        await async_client.post(
            "/chat",
            json={"conversation_id": "conv-1", "message": "Review the indemnity clause risk"},
            headers=HEADERS,
        )

        mock_refiner.classify_query_intent.assert_awaited_once_with("Review the indemnity clause risk")
        system_prompt = chat_model.calls[0][0].content
        assert "## Focus" in system_prompt
        assert "analyze_contract_clauses" in system_prompt

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_general_chat_has_no_focus_section(
        self, async_client: AsyncClient, chat_model: ScriptedChatModel
    ) -> None:
        await async_client.post(
            "/chat", json={"conversation_id": "conv-1", "message": "hello there"}, headers=HEADERS
        )

        assert "## Focus" not in chat_model.calls[0][0].content
