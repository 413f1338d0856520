"""Isaacus legal AI API client.

This module provides an async JSON-over-HTTPS client for the Kanon models:
- kanon-2-embedder: document/query embeddings
- kanon-2-reranker: cross-encoder reranking
- kanon-2-reader: extractive question answering
- kanon-2-classifier: zero-shot classification
- kanon-universal-classifier: IQL statement scoring

Responses are parsed by detecting the payload shape once and branching, so a
genuine failure is never confused with an alternate schema version.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, TypeVar

import httpx

from counsel.config import CounselSettings, get_settings
from counsel.exceptions import (
    MalformedResponseError,
    RemoteServiceError,
    ServiceConfigurationError,
)
from counsel.schemas import EmbeddingBatch, ErrorCodes, UsageInfo
from counsel.schemas.base import EmbeddingTask
from counsel.schemas.refinement import RemoteAnswer, RemoteLabelScore, RemoteRerankScore


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable


logger = logging.getLogger(__name__)
T = TypeVar("T")

AGENT_ID = "isaacus"


class IsaacusClient:
    """Async client for the Isaacus API.

    The credential is checked before every request so that a missing key
    surfaces as a configuration error without any network I/O.
    """

    def __init__(
        self,
        settings: CounselSettings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._transport = transport
        self._sleep = sleep or asyncio.sleep
        self._client: httpx.AsyncClient | None = None
        self.request_count = 0

    @property
    def is_configured(self) -> bool:
        return bool(self._settings.isaacus_api_key)

    @property
    def settings(self) -> CounselSettings:
        return self._settings

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client (lazy initialization with caching)."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._settings.isaacus_base_url,
                timeout=httpx.Timeout(self._settings.isaacus_timeout_seconds, connect=10.0),
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> IsaacusClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str], task: EmbeddingTask) -> EmbeddingBatch:
        """Embed a single batch of texts in the given task mode."""

        data = await self._request(
            "/embeddings",
            {"model": self._settings.embedding_model, "texts": texts, "task": task},
            model=self._settings.embedding_model,
        )
        batch = parse_embedding_response(data)
        if len(batch.vectors) != len(texts):
            raise MalformedResponseError(
                agent_id=AGENT_ID,
                message=(
                    f"Embedding response returned {len(batch.vectors)} vectors "
                    f"for {len(texts)} texts"
                ),
            )
        return batch

    async def rerank(
        self, query: str, documents: list[str], top_n: int | None = None
    ) -> tuple[list[RemoteRerankScore], UsageInfo]:
        data = await self._request(
            "/rerank",
            {
                "model": self._settings.reranker_model,
                "query": query,
                "documents": documents,
                "top_n": top_n if top_n is not None else len(documents),
            },
            model=self._settings.reranker_model,
        )
        return parse_rerank_response(data), _parse_usage(data)

    async def extract(
        self, question: str, context: str, top_k: int = 3
    ) -> tuple[list[RemoteAnswer], UsageInfo]:
        data = await self._request(
            "/extract",
            {
                "model": self._settings.reader_model,
                "question": question,
                "context": context,
                "top_k": top_k,
            },
            model=self._settings.reader_model,
        )
        return parse_extract_response(data), _parse_usage(data)

    async def classify(
        self, text: str, labels: list[str], *, multi_label: bool = True
    ) -> tuple[list[RemoteLabelScore], UsageInfo]:
        data = await self._request(
            "/classify",
            {
                "model": self._settings.classifier_model,
                "text": text,
                "labels": labels,
                "multi_label": multi_label,
            },
            model=self._settings.classifier_model,
        )
        return parse_classify_response(data), _parse_usage(data)

    async def classify_universal(
        self, query: str, texts: list[str]
    ) -> tuple[list[RemoteRerankScore], UsageInfo]:
        """Score every text against one IQL statement."""

        data = await self._request(
            "/classify/universal",
            {
                "model": self._settings.universal_classifier_model,
                "query": query,
                "texts": texts,
            },
            model=self._settings.universal_classifier_model,
        )
        scores = parse_universal_response(data)
        for item in scores:
            if not 0 <= item.index < len(texts):
                raise _malformed(f"Universal classifier returned out-of-range index {item.index}")
        return scores, _parse_usage(data)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(
        self, endpoint: str, body: dict[str, Any], *, model: str
    ) -> dict[str, Any]:
        api_key = self._settings.isaacus_api_key
        if not api_key:
            raise ServiceConfigurationError(
                agent_id=AGENT_ID,
                message="ISAACUS_API_KEY environment variable is not configured",
            )
        if not model:
            raise ServiceConfigurationError(
                agent_id=AGENT_ID,
                error_code=ErrorCodes.CONFIG_INVALID,
                message=f"No model configured for {endpoint}",
            )

        async def _call() -> dict[str, Any]:
            self.request_count += 1
            response = await self._get_client().post(
                endpoint,
                json=body,
                headers={"Authorization": f"Bearer {api_key}"},
            )
            response.raise_for_status()
            payload = response.json()
            if not isinstance(payload, dict):
                raise MalformedResponseError(
                    agent_id=AGENT_ID,
                    message=f"Expected a JSON object from {endpoint}",
                )
            return payload

        try:
            data = await self._retry_with_backoff(_call, endpoint=endpoint)
        except httpx.TimeoutException as exc:
            logger.error(
                "Isaacus request timeout",
                extra={
                    "agent_id": AGENT_ID,
                    "endpoint": endpoint,
                    "timeout_seconds": self._settings.isaacus_timeout_seconds,
                },
            )
            raise RemoteServiceError(
                agent_id=AGENT_ID,
                error_code=ErrorCodes.TIMEOUT,
                message=(
                    f"Isaacus {endpoint} timed out after "
                    f"{self._settings.isaacus_timeout_seconds}s"
                ),
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise self._as_remote_error(endpoint, exc) from exc
        except httpx.TransportError as exc:
            logger.error(
                "Isaacus transport failure",
                extra={"agent_id": AGENT_ID, "endpoint": endpoint, "error": str(exc)},
            )
            raise RemoteServiceError(
                agent_id=AGENT_ID,
                message=f"Isaacus {endpoint} unreachable: {type(exc).__name__}",
            ) from exc
        except ValueError as exc:
            raise MalformedResponseError(
                agent_id=AGENT_ID,
                message=f"Isaacus {endpoint} returned invalid JSON",
            ) from exc

        usage = _parse_usage(data)
        logger.info(
            "Isaacus usage",
            extra={
                "agent_id": AGENT_ID,
                "endpoint": endpoint,
                "model": model,
                "input_tokens": usage.input_tokens,
            },
        )
        return data

    async def _retry_with_backoff(
        self,
        func: Callable[[], Awaitable[T]],
        *,
        endpoint: str,
        initial_delay: float = 0.5,
        max_delay: float = 8.0,
        backoff_factor: float = 2.0,
    ) -> T:
        """Retry on 429 (rate limit) and 5xx responses with exponential backoff."""

        delay = initial_delay
        attempts = max(1, self._settings.isaacus_max_retries)

        for attempt in range(attempts):
            try:
                return await func()
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                retryable = status == 429 or 500 <= status < 600
                if retryable and attempt < attempts - 1:
                    logger.warning(
                        "Isaacus request failed, retrying",
                        extra={
                            "agent_id": AGENT_ID,
                            "endpoint": endpoint,
                            "status_code": status,
                            "retry_count": attempt + 1,
                            "delay_seconds": min(delay, max_delay),
                        },
                    )
                    await self._sleep(min(delay, max_delay))
                    delay *= backoff_factor
                    continue
                raise

        raise RuntimeError("Max retries exceeded")

    @staticmethod
    def _as_remote_error(endpoint: str, exc: httpx.HTTPStatusError) -> RemoteServiceError:
        status = exc.response.status_code
        body = exc.response.text
        logger.error(
            "Isaacus API error",
            extra={"agent_id": AGENT_ID, "endpoint": endpoint, "status_code": status},
        )
        if status in (401, 403):
            return RemoteServiceError(
                agent_id=AGENT_ID,
                error_code=ErrorCodes.REMOTE_AUTH,
                message="Invalid Isaacus API key or insufficient permissions",
                status_code=status,
                body=body,
                recoverable=False,
            )
        return RemoteServiceError(
            agent_id=AGENT_ID,
            message=f"Isaacus API error {status} on {endpoint}",
            status_code=status,
            body=body,
            recoverable=status == 429 or status >= 500,
        )


# ----------------------------------------------------------------------
# Response parsing
# ----------------------------------------------------------------------


def _malformed(message: str) -> MalformedResponseError:
    return MalformedResponseError(agent_id=AGENT_ID, message=message)


def _parse_usage(data: dict[str, Any]) -> UsageInfo:
    usage = data.get("usage") or {}
    if not isinstance(usage, dict):
        return UsageInfo()
    input_tokens = usage.get("input_tokens", usage.get("prompt_tokens", 0))
    return UsageInfo(
        input_tokens=int(input_tokens or 0),
        total_tokens=usage.get("total_tokens"),
    )


def parse_embedding_response(data: dict[str, Any]) -> EmbeddingBatch:
    """Parse either the indexed-object or the legacy bare-vector format."""

    raw = data.get("embeddings")
    if not isinstance(raw, list):
        raise _malformed("Embedding response has no 'embeddings' list")
    if not raw:
        return EmbeddingBatch(vectors=[], usage=_parse_usage(data))

    if all(isinstance(item, dict) for item in raw):
        try:
            ordered = sorted(raw, key=lambda item: int(item["index"]))
            vectors = [[float(v) for v in item["embedding"]] for item in ordered]
        except (KeyError, TypeError, ValueError) as exc:
            raise _malformed("Embedding objects must carry 'index' and 'embedding'") from exc
    elif all(isinstance(item, list) for item in raw):
        vectors = [[float(v) for v in item] for item in raw]
    else:
        raise _malformed("Embedding response mixes vector formats")

    return EmbeddingBatch(vectors=vectors, usage=_parse_usage(data))


def parse_rerank_response(data: dict[str, Any]) -> list[RemoteRerankScore]:
    raw = data.get("results")
    if not isinstance(raw, list):
        raise _malformed("Rerank response has no 'results' list")
    parsed: list[RemoteRerankScore] = []
    for item in raw:
        if not isinstance(item, dict) or "index" not in item:
            raise _malformed("Rerank result without 'index'")
        if "score" in item:
            score = item["score"]
        elif "relevance_score" in item:
            score = item["relevance_score"]
        else:
            raise _malformed("Rerank result without a score")
        parsed.append(RemoteRerankScore(index=int(item["index"]), score=float(score)))
    return parsed


def parse_universal_response(data: dict[str, Any]) -> list[RemoteRerankScore]:
    raw = data.get("results")
    if not isinstance(raw, list):
        raise _malformed("Universal classifier response has no 'results' list")
    parsed: list[RemoteRerankScore] = []
    for item in raw:
        if not isinstance(item, dict) or "index" not in item or "score" not in item:
            raise _malformed("Universal classifier result needs 'index' and 'score'")
        parsed.append(RemoteRerankScore(index=int(item["index"]), score=float(item["score"])))
    return parsed


def parse_extract_response(data: dict[str, Any]) -> list[RemoteAnswer]:
    if "extractions" in data:
        extractions = data["extractions"]
        if not isinstance(extractions, list):
            raise _malformed("Extraction response 'extractions' must be a list")
        raw = extractions[0].get("answers", []) if extractions else []
    else:
        raw = data.get("answers")
    if not isinstance(raw, list):
        raise _malformed("Extraction response has no 'answers' list")

    parsed: list[RemoteAnswer] = []
    for item in raw:
        if not isinstance(item, dict):
            raise _malformed("Extraction answer must be an object")
        text = item.get("text", item.get("answer"))
        if text is None:
            raise _malformed("Extraction answer without text")
        try:
            parsed.append(
                RemoteAnswer(
                    text=str(text),
                    score=float(item.get("score", 0.0)),
                    start=int(item["start"]),
                    end=int(item["end"]),
                )
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise _malformed("Extraction answer without offsets") from exc
    return parsed


def parse_classify_response(data: dict[str, Any]) -> list[RemoteLabelScore]:
    if "labels" in data:
        raw = data["labels"]
    elif "classifications" in data:
        classifications = data["classifications"]
        if not isinstance(classifications, list):
            raise _malformed("Classification response 'classifications' must be a list")
        raw = classifications[0] if classifications else []
    else:
        raise _malformed("Classification response has neither 'labels' nor 'classifications'")
    if not isinstance(raw, list):
        raise _malformed("Classification labels must be a list")

    parsed: list[RemoteLabelScore] = []
    for item in raw:
        if not isinstance(item, dict) or "label" not in item or "score" not in item:
            raise _malformed("Classification entry needs 'label' and 'score'")
        parsed.append(RemoteLabelScore(label=str(item["label"]), score=float(item["score"])))
    return parsed


__all__ = [
    "IsaacusClient",
    "parse_classify_response",
    "parse_embedding_response",
    "parse_extract_response",
    "parse_rerank_response",
    "parse_universal_response",
]
