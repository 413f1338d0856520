"""Pytest configuration and shared fixtures.

This module provides fixtures for:
- Test settings that ignore the process environment and .env files
- A fake Isaacus API behind httpx.MockTransport
- Keyword embeddings and in-process stores
- Tool dependencies scoped to a test user
"""

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, Mock

import pytest

from counsel.agents import ToolContext, ToolDependencies
from counsel.config import CounselSettings
from counsel.ingestion import InMemoryDocumentRepository
from counsel.memory import InMemoryVectorStore
from counsel.planning import InMemoryPlanningBackend
from counsel.schemas import DocumentProfile, DocumentRecord, QueryIntent
from counsel.services import IsaacusClient, RelevanceRefiner
from tests.mocks.embedder import KeywordEmbedder
from tests.mocks.isaacus import FakeIsaacusAPI


OWNER = "user-a"
OTHER_OWNER = "user-b"

CONTRACT_TEXT = """MASTER SERVICES AGREEMENT

1. Definitions
In this Agreement the following terms apply. Services means the services described in each statement of work.

2. Payment
The Client shall make payment of each invoice within thirty days. Late payment accrues interest.

3. Confidentiality
Each party shall keep confidential all confidential information of the other party and use it only for this Agreement.

4. Termination
Either party may terminate this Agreement by giving ninety days written notice. Termination for breach requires thirty days notice to cure.

5. Governing Law
This Agreement is governed by the laws of England and Wales."""


# =============================================================================
# Configuration
# =============================================================================


@pytest.fixture
def test_settings() -> CounselSettings:
    """Settings isolated from the environment with small, fast limits."""
    return CounselSettings(
        _env_file=None,
        isaacus_api_key="test-key",
        openai_api_key="",
        anthropic_api_key="",
        embedding_dimensions=9,
        embedding_batch_size=2,
        embedding_max_concurrency=2,
        chunk_max_chars=300,
        chunk_overlap_chars=40,
        chunk_min_chars=20,
        vector_backend="memory",
    )


# =============================================================================
# Isaacus API
# =============================================================================


@pytest.fixture
def fake_isaacus() -> FakeIsaacusAPI:
    """Fresh fake API with no queued responses."""
    return FakeIsaacusAPI()


@pytest.fixture
async def isaacus_client(
    test_settings: CounselSettings, fake_isaacus: FakeIsaacusAPI
) -> AsyncGenerator[IsaacusClient, None]:
    """IsaacusClient wired to the fake API; backoff sleeps are recorded, not awaited."""
    client = IsaacusClient(test_settings, transport=fake_isaacus.transport(), sleep=AsyncMock())
    yield client
    await client.aclose()


# =============================================================================
# Stores and embeddings
# =============================================================================


@pytest.fixture
def keyword_embedder() -> KeywordEmbedder:
    return KeywordEmbedder()


@pytest.fixture
def vector_store(keyword_embedder: KeywordEmbedder) -> InMemoryVectorStore:
    return InMemoryVectorStore(dimensions=keyword_embedder.dimensions)


@pytest.fixture
def documents() -> InMemoryDocumentRepository:
    """Repository seeded with one contract per owner."""
    return InMemoryDocumentRepository(
        [
            DocumentRecord(id="doc-msa", owner_user_id=OWNER, matter_id="matter-1", name="MSA.pdf"),
            DocumentRecord(id="doc-nda", owner_user_id=OTHER_OWNER, name="NDA.pdf"),
        ]
    )


@pytest.fixture
def planning_backend() -> InMemoryPlanningBackend:
    return InMemoryPlanningBackend()


@pytest.fixture
def mock_refiner() -> Mock:
    """RelevanceRefiner double; configure return values per test."""
    refiner = Mock(spec=RelevanceRefiner)
    refiner.is_configured = True
    refiner.rerank = AsyncMock()
    refiner.extract_answer = AsyncMock()
    refiner.classify = AsyncMock()
    refiner.analyze_risk = AsyncMock()
    refiner.score_labels = AsyncMock()
    refiner.scan_clauses = AsyncMock()
    refiner.classify_document = AsyncMock(return_value=DocumentProfile())
    refiner.classify_query_intent = AsyncMock(return_value=QueryIntent())
    return refiner


# =============================================================================
# Tools
# =============================================================================


@pytest.fixture
def tool_context() -> ToolContext:
    return ToolContext(owner_user_id=OWNER, conversation_id="conv-1")


@pytest.fixture
def tool_deps(
    keyword_embedder: KeywordEmbedder,
    vector_store: InMemoryVectorStore,
    documents: InMemoryDocumentRepository,
    mock_refiner: Mock,
    planning_backend: InMemoryPlanningBackend,
) -> ToolDependencies:
    return ToolDependencies(
        embedder=keyword_embedder,
        vector_store=vector_store,
        documents=documents,
        refiner=mock_refiner,
        planning=planning_backend,
    )


@pytest.fixture
def contract_text() -> str:
    return CONTRACT_TEXT
