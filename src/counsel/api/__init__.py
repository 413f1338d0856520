"""FastAPI application exposing the legal retrieval core.

Authentication happens upstream; the caller identity arrives in the
``X-User-Id`` header and scopes every tool, search and document operation.
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from typing import TYPE_CHECKING, Any

from fastapi import Depends, FastAPI, Header, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, StreamingResponse

from counsel.agents import (
    AgentLoop,
    CancelToken,
    ToolContext,
    ToolDependencies,
    build_legal_tools,
    build_system_prompt,
)
from counsel.config import CounselSettings, get_settings
from counsel.exceptions import (
    AgentFailureError,
    InvalidTransitionError,
    NotFoundError,
    RemoteServiceError,
    ScopeRequiredError,
    ServiceConfigurationError,
)
from counsel.ingestion import InMemoryDocumentRepository, IngestionService
from counsel.memory import IsaacusEmbeddings, create_vector_store
from counsel.planning import InMemoryPlanningBackend, TodoStore
from counsel.schemas import (
    AgentEvent,
    ChatMessage,
    ChatRequest,
    DeleteChunksResponse,
    DocumentRecord,
    HealthStatus,
    ProcessDocumentRequest,
    ProcessDocumentResponse,
)
from counsel.services import IsaacusClient, LLMService, RelevanceRefiner


if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from counsel.agents.orchestrator import ChatModel
    from counsel.ingestion.documents import DocumentRepository
    from counsel.memory import Embedder, VectorStore
    from counsel.planning import PlanningBackend


logger = logging.getLogger(__name__)

settings = get_settings()


@lru_cache
def _get_settings() -> CounselSettings:
    return get_settings()


@lru_cache
def _get_vector_store() -> VectorStore:
    """Vector backend selected by VECTOR_BACKEND."""
    return create_vector_store(_get_settings())


@lru_cache
def _get_isaacus_client() -> IsaacusClient:
    return IsaacusClient(_get_settings())


@lru_cache
def _get_embedder() -> Embedder:
    return IsaacusEmbeddings(_get_isaacus_client())


@lru_cache
def _get_refiner() -> RelevanceRefiner:
    return RelevanceRefiner(_get_isaacus_client())


@lru_cache
def _get_documents() -> DocumentRepository:
    return InMemoryDocumentRepository()


@lru_cache
def _get_planning() -> PlanningBackend:
    return InMemoryPlanningBackend()


@lru_cache
def _get_chat_model() -> ChatModel:
    """Provider client; raises ServiceConfigurationError without an API key."""
    return LLMService(_get_settings())


def _get_ingestion_service(
    documents: DocumentRepository = Depends(_get_documents),
    vector_store: VectorStore = Depends(_get_vector_store),
    embedder: Embedder = Depends(_get_embedder),
    refiner: RelevanceRefiner = Depends(_get_refiner),
    app_settings: CounselSettings = Depends(_get_settings),
) -> IngestionService:
    return IngestionService(
        documents=documents,
        vector_store=vector_store,
        embedder=embedder,
        settings=app_settings,
        classifier=refiner,
    )


def _get_tool_dependencies(
    embedder: Embedder = Depends(_get_embedder),
    vector_store: VectorStore = Depends(_get_vector_store),
    documents: DocumentRepository = Depends(_get_documents),
    refiner: RelevanceRefiner = Depends(_get_refiner),
    planning: PlanningBackend = Depends(_get_planning),
) -> ToolDependencies:
    return ToolDependencies(
        embedder=embedder,
        vector_store=vector_store,
        documents=documents,
        refiner=refiner,
        planning=planning,
    )


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description="Legal document retrieval and agent tool orchestration API",
)


_ERROR_STATUS: list[tuple[type[AgentFailureError], int]] = [
    (ServiceConfigurationError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ScopeRequiredError, status.HTTP_400_BAD_REQUEST),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (RemoteServiceError, status.HTTP_502_BAD_GATEWAY),
]


@app.exception_handler(AgentFailureError)
async def _agent_failure_handler(_request: Request, exc: AgentFailureError) -> JSONResponse:
    """Serialize AgentFailureError as an AgentFailure payload."""

    status_code = next(
        (code for error_type, code in _ERROR_STATUS if isinstance(exc, error_type)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    return JSONResponse(
        status_code=status_code,
        content={"detail": jsonable_encoder(exc.failure)},
    )


@app.exception_handler(ValueError)
async def _value_error_handler(_request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": str(exc)},
    )


@app.get("/health", response_model=HealthStatus)
async def health(
    vector_store: VectorStore = Depends(_get_vector_store),
    app_settings: CounselSettings = Depends(_get_settings),
) -> HealthStatus:
    """Return the readiness of dependent services."""

    try:
        await vector_store.count("__health__")
        store_status = "connected"
    except Exception:
        logger.exception("Vector store health check failed", extra={"agent_id": "api"})
        store_status = "degraded"

    llm_key = (
        app_settings.openai_api_key
        if app_settings.llm_provider == "openai"
        else app_settings.anthropic_api_key
    )
    return HealthStatus(
        vector_store=store_status,
        embeddings="configured" if app_settings.isaacus_api_key else "unconfigured",
        llm="configured" if llm_key else "unconfigured",
    )


@app.post("/chat")
async def chat(
    payload: ChatRequest,
    request: Request,
    user_id: str = Header(..., alias="X-User-Id", min_length=1),
    model: ChatModel = Depends(_get_chat_model),
    deps: ToolDependencies = Depends(_get_tool_dependencies),
    app_settings: CounselSettings = Depends(_get_settings),
) -> StreamingResponse:
    """Run one agent turn and stream its events as Server-Sent Events."""

    context = ToolContext(
        owner_user_id=user_id,
        conversation_id=payload.conversation_id,
        matter_id=payload.matter_id,
    )
    registry = build_legal_tools(context, deps)
    open_todos = await TodoStore(deps.planning, payload.conversation_id).get_pending()
    intent = await deps.refiner.classify_query_intent(payload.message)
    logger.info(
        "Chat request classified",
        extra={"agent_id": "api", "mode": intent.mode, "ai_classified": intent.ai_classified},
    )

    system_prompt = build_system_prompt(
        matter_id=payload.matter_id, open_todos=open_todos, mode=intent.mode
    )
    history: list[ChatMessage] = [
        ChatMessage.system(system_prompt),
        *(message for message in payload.history if message.role != "system"),
        ChatMessage.user(payload.message),
    ]
    loop = AgentLoop(
        model=model,
        tools=registry,
        max_steps=app_settings.agent_max_steps,
        tool_timeout_seconds=app_settings.agent_tool_timeout_seconds,
    )
    cancel = CancelToken()
    return StreamingResponse(
        content=_stream_sse(loop.stream(history, cancel=cancel), request, cancel),
        media_type="text/event-stream",
    )


@app.post("/documents/{document_id}/process", response_model=ProcessDocumentResponse)
async def process_document(
    document_id: str,
    payload: ProcessDocumentRequest,
    user_id: str = Header(..., alias="X-User-Id", min_length=1),
    documents: DocumentRepository = Depends(_get_documents),
    ingestion: IngestionService = Depends(_get_ingestion_service),
) -> ProcessDocumentResponse:
    """Chunk, embed and index a document's extracted text."""

    existing = await documents.get(document_id)
    if existing is None and isinstance(documents, InMemoryDocumentRepository):
        await documents.add(
            DocumentRecord(
                id=document_id,
                owner_user_id=user_id,
                matter_id=payload.matter_id,
                name=payload.name,
            )
        )

    record = await ingestion.process_document(
        document_id,
        user_id,
        payload.text,
        matter_id=payload.matter_id,
        metadata=payload.metadata,
        legal_sections=payload.legal_sections,
    )
    return ProcessDocumentResponse(
        document_id=record.id,
        status=record.status,
        chunk_count=record.chunk_count,
    )


@app.delete("/documents/{document_id}/chunks", response_model=DeleteChunksResponse)
async def delete_document_chunks(
    document_id: str,
    user_id: str = Header(..., alias="X-User-Id", min_length=1),
    documents: DocumentRepository = Depends(_get_documents),
    ingestion: IngestionService = Depends(_get_ingestion_service),
) -> DeleteChunksResponse:
    """Remove every chunk of a document. Unknown documents delete nothing."""

    document = await documents.get(document_id)
    if document is not None and document.owner_user_id != user_id:
        raise NotFoundError(agent_id="api.documents", message=f"Document {document_id} not found")
    if document is None:
        return DeleteChunksResponse(document_id=document_id, deleted=0)

    deleted = await ingestion.delete_document_chunks(document_id)
    return DeleteChunksResponse(document_id=document_id, deleted=deleted)


def _format_sse(event: AgentEvent) -> str:
    data: dict[str, Any] = {"step": event.step, **event.data}
    return f"event: {event.type}\ndata: {json.dumps(jsonable_encoder(data))}\n\n"


async def _stream_sse(
    events: AsyncGenerator[AgentEvent, None],
    request: Request,
    cancel: CancelToken,
) -> AsyncGenerator[str, None]:
    """Convert AgentEvents into SSE strings; a client disconnect cancels the run."""

    async for event in events:
        if not cancel.cancelled and await request.is_disconnected():
            logger.info("Client disconnected, cancelling run", extra={"agent_id": "api"})
            cancel.cancel()
        yield _format_sse(event)


__all__ = ["app"]
