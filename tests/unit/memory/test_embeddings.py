"""Unit tests for IsaacusEmbeddings batching."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from counsel.config import CounselSettings
from counsel.exceptions import MalformedResponseError, RemoteServiceError
from counsel.memory import IsaacusEmbeddings
from counsel.schemas import EmbeddingBatch
from counsel.services import IsaacusClient


def _client_with(embed: AsyncMock) -> Mock:
    client = Mock(spec=IsaacusClient)
    client.embed = embed
    client.is_configured = True
    return client


def _vector(text: str, dims: int) -> list[float]:
    return [float(text.removeprefix("t"))] + [1.0] * (dims - 1)


@pytest.mark.unit
class TestIsaacusEmbeddings:
    """Tests for sub-batching, ordering and failure handling."""

    @pytest.mark.asyncio
    async def test_empty_input_makes_no_remote_call(self, test_settings: CounselSettings) -> None:
        embed = AsyncMock()
        embeddings = IsaacusEmbeddings(_client_with(embed), settings=test_settings)

        assert await embeddings.embed_documents([]) == []
        embed.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_batches_are_reassembled_in_input_order(
        self, test_settings: CounselSettings
    ) -> None:
        dims = test_settings.embedding_dimensions

        async def fake_embed(batch: list[str], task: str) -> EmbeddingBatch:
            # Earlier batches finish last
            await asyncio.sleep(0.01 * (10 - int(batch[0].removeprefix("t"))))
            return EmbeddingBatch(vectors=[_vector(text, dims) for text in batch])

        embed = AsyncMock(side_effect=fake_embed)
        embeddings = IsaacusEmbeddings(_client_with(embed), settings=test_settings)
        texts = [f"t{i}" for i in range(5)]

        vectors = await embeddings.embed_documents(texts)

        assert [vector[0] for vector in vectors] == [0.0, 1.0, 2.0, 3.0, 4.0]
        assert embed.await_count == 3
        assert [call.args[0] for call in embed.await_args_list if call.args[0][0] == "t4"] == [["t4"]]
        assert all(call.args[1] == "retrieval/document" for call in embed.await_args_list)

    @pytest.mark.asyncio
    async def test_any_failed_batch_fails_the_call(self, test_settings: CounselSettings) -> None:
        dims = test_settings.embedding_dimensions

        async def fake_embed(batch: list[str], task: str) -> EmbeddingBatch:
            if "t3" in batch:
                raise RemoteServiceError(agent_id="isaacus", message="boom", status_code=500)
            return EmbeddingBatch(vectors=[_vector(text, dims) for text in batch])

        embeddings = IsaacusEmbeddings(
            _client_with(AsyncMock(side_effect=fake_embed)), settings=test_settings
        )

        with pytest.raises(RemoteServiceError):
            await embeddings.embed_documents([f"t{i}" for i in range(5)])

    @pytest.mark.asyncio
    async def test_wrong_dimension_is_malformed(self, test_settings: CounselSettings) -> None:
        embed = AsyncMock(return_value=EmbeddingBatch(vectors=[[0.1, 0.2]]))
        embeddings = IsaacusEmbeddings(_client_with(embed), settings=test_settings)

        with pytest.raises(MalformedResponseError):
            await embeddings.embed_documents(["t0"])

    @pytest.mark.asyncio
    async def test_query_uses_query_task(self, test_settings: CounselSettings) -> None:
        dims = test_settings.embedding_dimensions
        embed = AsyncMock(return_value=EmbeddingBatch(vectors=[_vector("t7", dims)]))
        embeddings = IsaacusEmbeddings(_client_with(embed), settings=test_settings)

        vector = await embeddings.embed_query("t7")

        assert vector[0] == 7.0
        embed.assert_awaited_once_with(["t7"], "retrieval/query")
        assert embeddings.dimensions == dims
