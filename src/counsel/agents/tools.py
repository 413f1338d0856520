"""Agent tool registry.

Each tool is a descriptor (name, description, pydantic input model, async
handler) collected into an explicit list. Tools are built per request and
closed over a ``ToolContext``, so the owner, conversation and matter scope
never come from model-supplied arguments.

Invoking a tool never raises: the result is always a JSON-serializable dict,
either a payload or ``{"error": ...}``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from counsel.exceptions import AgentFailureError
from counsel.planning import MemoryStore, TodoStore
from counsel.retrieval.clauses import ClauseAnalyzer
from counsel.schemas import AgentFailure, ErrorCodes, SearchScope, ToolCall


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

    from counsel.ingestion.documents import DocumentRepository
    from counsel.memory.embeddings import Embedder
    from counsel.memory.vector_store import VectorStore
    from counsel.planning import PlanningBackend
    from counsel.services.refinement import RelevanceRefiner


logger = logging.getLogger(__name__)

AGENT_ID = "tools"


@dataclass(frozen=True, slots=True)
class Tool:
    """A named, schema-validated unit the model may invoke."""

    name: str
    description: str
    input_model: type[BaseModel]
    handler: Callable[[Any], Awaitable[dict[str, Any]]]

    def spec(self) -> dict[str, Any]:
        """Provider-neutral tool spec (name, description, JSON schema)."""

        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.input_model.model_json_schema(),
        }

    async def invoke(self, arguments: dict[str, Any]) -> dict[str, Any]:
        try:
            payload = self.input_model.model_validate(arguments)
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc']) or 'input'}: {error['msg']}"
                for error in exc.errors()
            )
            return AgentFailure(
                agent_id=AGENT_ID,
                error_code=ErrorCodes.TOOL_VALIDATION,
                message=f"Invalid arguments for {self.name}: {problems}",
                recoverable=True,
            ).to_tool_result()

        try:
            return await self.handler(payload)
        except AgentFailureError as exc:
            logger.warning(
                "Tool failed",
                extra={"agent_id": AGENT_ID, "tool": self.name, "error_code": exc.failure.error_code},
            )
            return exc.failure.to_tool_result()
        except Exception as exc:
            logger.exception(
                "Unexpected tool error",
                extra={"agent_id": AGENT_ID, "tool": self.name},
            )
            return AgentFailure(
                agent_id=AGENT_ID,
                error_code=ErrorCodes.TOOL_FAILED,
                message=f"{self.name} failed: {type(exc).__name__}",
                details={"error": str(exc)},
            ).to_tool_result()


class ToolRegistry:
    """An explicit, statically enumerable set of tools."""

    def __init__(self, tools: Iterable[Tool]) -> None:
        self._tools: dict[str, Tool] = {}
        for tool in tools:
            if tool.name in self._tools:
                raise ValueError(f"Duplicate tool name: {tool.name}")
            self._tools[tool.name] = tool

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def specs(self) -> list[dict[str, Any]]:
        return [tool.spec() for tool in self._tools.values()]

    async def invoke(self, call: ToolCall) -> dict[str, Any]:
        tool = self._tools.get(call.name)
        if tool is None:
            return AgentFailure(
                agent_id=AGENT_ID,
                error_code=ErrorCodes.TOOL_UNKNOWN,
                message=f"Unknown tool: {call.name}",
                recoverable=True,
                details={"available": self.names},
            ).to_tool_result()
        return await tool.invoke(call.arguments)


@dataclass(frozen=True, slots=True)
class ToolContext:
    """Request scope every tool is closed over."""

    owner_user_id: str
    conversation_id: str
    matter_id: str | None = None


@dataclass(slots=True)
class ToolDependencies:
    embedder: Embedder
    vector_store: VectorStore
    documents: DocumentRepository
    refiner: RelevanceRefiner
    planning: PlanningBackend


# ----------------------------------------------------------------------
# Input models
# ----------------------------------------------------------------------


class _ToolInput(BaseModel):
    model_config = ConfigDict(extra="forbid")


class SearchDocumentsInput(_ToolInput):
    query: str = Field(..., min_length=1, description="What you are looking for")
    limit: int = Field(default=10, ge=1, le=50, description="Maximum number of results")
    threshold: float = Field(
        default=0.5, ge=0.0, le=1.0, description="Minimum similarity threshold (0-1)"
    )


class GetDocumentInfoInput(_ToolInput):
    document_id: str = Field(..., min_length=1, description="ID of the document")


class ListDocumentsInput(_ToolInput):
    matter_id: str | None = Field(default=None, description="Only documents in this matter")
    status: Literal["pending", "processing", "ready", "error"] | None = Field(
        default=None, description="Only documents with this processing status"
    )
    limit: int = Field(default=50, ge=1, le=200)


class RerankResultsInput(_ToolInput):
    query: str = Field(..., min_length=1, description="The query to rank documents against")
    documents: list[str] = Field(..., description="Document text chunks to rerank")
    top_n: int = Field(default=5, ge=1, le=50, description="Number of top results to return")


class ExtractAnswerInput(_ToolInput):
    question: str = Field(..., min_length=1, description="The question to answer")
    context: str = Field(..., description="The document text to search for the answer")
    top_k: int = Field(default=3, ge=1, le=10, description="Number of candidate answers")


class ClassifyClausesInput(_ToolInput):
    text: str = Field(..., description="The legal text to classify")
    custom_labels: list[str] | None = Field(
        default=None, description="Labels to classify against instead of the clause taxonomy"
    )


class AnalyzeRiskInput(_ToolInput):
    text: str = Field(..., description="The legal text to analyze")
    document_type: str | None = Field(
        default=None, description="Type of document (e.g. contract, policy)"
    )


class AnalyzeContractClausesInput(_ToolInput):
    texts: list[str] = Field(..., min_length=1, description="Contract text chunks to scan")
    focus: Literal["full", "high_risk", "due_diligence", "boilerplate"] = Field(
        default="full", description="Which clause family to scan for"
    )
    threshold: float = Field(default=0.6, ge=0.0, le=1.0, description="Minimum clause score")
    max_clauses: int = Field(default=20, ge=1, le=50)


class FindPartyObligationsInput(_ToolInput):
    texts: list[str] = Field(..., min_length=1, description="Contract text chunks to scan")
    party: str = Field(..., min_length=1, description="Party name as written in the contract")
    clause_type: str | None = Field(
        default=None, description="Clause type (e.g. indemnity) or a short clause description"
    )


class TodoDraft(_ToolInput):
    content: str = Field(..., min_length=1, description="Description of the task")
    parent_id: str | None = Field(default=None, description="Parent todo id for subtasks")


class WriteTodosInput(_ToolInput):
    todos: list[TodoDraft] = Field(..., min_length=1, description="Todo items to create")
    replace_existing: bool = Field(
        default=False, description="Clear the current plan before adding these items"
    )


class UpdateTodoInput(_ToolInput):
    todo_id: str = Field(..., min_length=1)
    status: Literal["in_progress", "completed", "cancelled"]
    result: str | None = Field(default=None, description="Outcome, usually set on completion")


class GetTodosInput(_ToolInput):
    pending_only: bool = Field(
        default=False, description="Only pending and in-progress items"
    )


class StoreMemoryInput(_ToolInput):
    key: str = Field(..., min_length=1, description="Unique key within the namespace")
    value: Any = Field(..., description="JSON value to remember")
    namespace: str | None = Field(default=None, description="Category, defaults to 'default'")


class RecallMemoryInput(_ToolInput):
    key: str | None = Field(default=None, description="Exact key to recall")
    prefix: str | None = Field(default=None, description="Recall every key with this prefix")
    namespace: str | None = None


class ListMemoriesInput(_ToolInput):
    namespace: str | None = None


# ----------------------------------------------------------------------
# Tool construction
# ----------------------------------------------------------------------


def _percent(score: float) -> int:
    return round(score * 100)


def build_legal_tools(context: ToolContext, deps: ToolDependencies) -> ToolRegistry:
    """Create the scoped tool set for one request."""

    todos = TodoStore(deps.planning, context.conversation_id)
    memory = MemoryStore(deps.planning, context.owner_user_id)
    clauses_analyzer = ClauseAnalyzer(deps.refiner)
    scope = SearchScope(owner_user_id=context.owner_user_id, matter_id=context.matter_id)

    async def search_documents(args: SearchDocumentsInput) -> dict[str, Any]:
        vector = await deps.embedder.embed_query(args.query)
        results = await deps.vector_store.search(
            vector, scope, limit=args.limit, similarity_threshold=args.threshold
        )
        return {
            "query": args.query,
            "result_count": len(results),
            "results": [
                {
                    "chunk_id": result.chunk_id,
                    "document_id": result.document_id,
                    "chunk_index": result.chunk_index,
                    "content": result.content,
                    "relevance_score": _percent(result.similarity_score),
                    "metadata": result.metadata,
                }
                for result in results
            ],
        }

    async def get_document_info(args: GetDocumentInfoInput) -> dict[str, Any]:
        document = await deps.documents.get(args.document_id)
        if document is None or document.owner_user_id != context.owner_user_id:
            return AgentFailure(
                agent_id=AGENT_ID,
                error_code=ErrorCodes.NOT_FOUND,
                message="Document not found",
                recoverable=True,
            ).to_tool_result()
        return document.model_dump(mode="json", exclude={"owner_user_id"})

    async def list_documents(args: ListDocumentsInput) -> dict[str, Any]:
        documents = await deps.documents.list_for_owner(context.owner_user_id, args.matter_id)
        if args.status is not None:
            documents = [document for document in documents if document.status == args.status]
        documents = documents[: args.limit]
        return {
            "count": len(documents),
            "documents": [
                document.model_dump(
                    mode="json",
                    include={"id", "name", "file_type", "status", "chunk_count", "document_type", "created_at"},
                )
                for document in documents
            ],
        }

    async def rerank_results(args: RerankResultsInput) -> dict[str, Any]:
        if not args.documents:
            return {"results": [], "message": "No documents to rerank"}
        output = await deps.refiner.rerank(args.query, args.documents, top_n=args.top_n)
        if isinstance(output, AgentFailure):
            return {**output.to_tool_result(), "results": []}
        return {
            "results": [
                {
                    "text": item.text,
                    "relevance_score": _percent(item.relevance_score),
                    "original_index": item.original_index,
                }
                for item in output.results
            ]
        }

    async def extract_answer(args: ExtractAnswerInput) -> dict[str, Any]:
        output = await deps.refiner.extract_answer(args.question, args.context, top_k=args.top_k)
        if isinstance(output, AgentFailure):
            return {**output.to_tool_result(), "answers": []}
        payload: dict[str, Any] = {
            "answers": [
                {
                    "text": answer.text,
                    "confidence": answer.confidence,
                    "position": {"start": answer.start_offset, "end": answer.end_offset},
                }
                for answer in output.answers
            ]
        }
        if output.no_context:
            payload["no_context"] = True
        if output.message:
            payload["message"] = output.message
        return payload

    async def classify_clauses(args: ClassifyClausesInput) -> dict[str, Any]:
        output = await deps.refiner.classify(args.text, args.custom_labels, multi_label=True)
        if isinstance(output, AgentFailure):
            return {**output.to_tool_result(), "classification": None}
        return {
            "primary_type": output.primary_label,
            "confidence": output.confidence,
            "all_labels": [
                {"type": item.label, "confidence": item.confidence}
                for item in output.material_labels
            ],
        }

    async def analyze_risk(args: AnalyzeRiskInput) -> dict[str, Any]:
        output = await deps.refiner.analyze_risk(args.text, args.document_type)
        if isinstance(output, AgentFailure):
            return {**output.to_tool_result(), "analysis": None}
        return output.model_dump(mode="json")

    async def analyze_contract_clauses(args: AnalyzeContractClausesInput) -> dict[str, Any]:
        if args.focus == "high_risk":
            clauses = await clauses_analyzer.scan_high_risk(args.texts, args.threshold)
            if isinstance(clauses, AgentFailure):
                return {**clauses.to_tool_result(), "clauses": []}
            return {
                "clauses": [clause.model_dump(mode="json") for clause in clauses[: args.max_clauses]],
                "high_risk_count": len(clauses),
            }
        analysis = await clauses_analyzer.analyze_contract(
            args.texts, focus=args.focus, threshold=args.threshold, max_clauses=args.max_clauses
        )
        if isinstance(analysis, AgentFailure):
            return {**analysis.to_tool_result(), "clauses": []}
        return analysis.model_dump(mode="json")

    async def find_party_obligations(args: FindPartyObligationsInput) -> dict[str, Any]:
        matches = await clauses_analyzer.find_party_obligations(
            args.texts, args.party, args.clause_type
        )
        if isinstance(matches, AgentFailure):
            return {**matches.to_tool_result(), "matches": []}
        return {
            "party": args.party,
            "count": len(matches),
            "matches": [
                {
                    "clause_type": match.clause_type,
                    "score": _percent(match.score),
                    "text": match.text,
                    "text_index": match.text_index,
                }
                for match in matches
            ],
        }

    async def write_todos(args: WriteTodosInput) -> dict[str, Any]:
        if args.replace_existing:
            await todos.clear()
        created = [await todos.add(draft.content, draft.parent_id) for draft in args.todos]
        return {
            "created": len(created),
            "todos": [
                item.model_dump(mode="json", include={"id", "content", "status", "order_index", "parent_id"})
                for item in created
            ],
        }

    async def update_todo(args: UpdateTodoInput) -> dict[str, Any]:
        item = await todos.update_status(args.todo_id, args.status, args.result)
        return {
            "todo": item.model_dump(
                mode="json", include={"id", "content", "status", "order_index", "result"}
            )
        }

    async def get_todos(args: GetTodosInput) -> dict[str, Any]:
        items = await (todos.get_pending() if args.pending_only else todos.get_all())
        return {
            "count": len(items),
            "todos": [
                item.model_dump(
                    mode="json",
                    include={"id", "content", "status", "order_index", "parent_id", "result"},
                )
                for item in items
            ],
        }

    async def store_memory(args: StoreMemoryInput) -> dict[str, Any]:
        item = await memory.set(args.key, args.value, args.namespace)
        return {"stored": True, "key": item.key, "namespace": item.namespace}

    async def recall_memory(args: RecallMemoryInput) -> dict[str, Any]:
        if args.key:
            item = await memory.get_item(args.key, args.namespace)
            if item is None:
                return {
                    "found": False,
                    "key": args.key,
                    "message": "Nothing stored under this key",
                }
            return {"found": True, "key": item.key, "namespace": item.namespace, "value": item.value}
        if args.prefix is not None:
            items = await memory.search(args.prefix, args.namespace)
            return {
                "count": len(items),
                "items": [{"key": item.key, "value": item.value} for item in items],
            }
        return AgentFailure(
            agent_id=AGENT_ID,
            error_code=ErrorCodes.INVALID_INPUT,
            message="Provide either a key or a prefix to recall",
            recoverable=True,
        ).to_tool_result()

    async def list_memories(args: ListMemoriesInput) -> dict[str, Any]:
        namespace = args.namespace or memory.default_namespace
        return {
            "namespace": namespace,
            "keys": await memory.list(namespace),
            "namespaces": await memory.namespaces(),
        }

    return ToolRegistry(
        [
            # Document search
            Tool(
                name="search_documents",
                description=(
                    "Search the user's legal documents by semantic similarity. "
                    "Returns the most relevant text chunks with their source documents "
                    "and similarity scores."
                ),
                input_model=SearchDocumentsInput,
                handler=search_documents,
            ),
            Tool(
                name="get_document_info",
                description="Get metadata, type and processing status of one document.",
                input_model=GetDocumentInfoInput,
                handler=get_document_info,
            ),
            Tool(
                name="list_documents",
                description="List documents available to the user, optionally by matter or status.",
                input_model=ListDocumentsInput,
                handler=list_documents,
            ),
            # Refinement
            Tool(
                name="rerank_results",
                description=(
                    "Rerank document chunks against a query to find the most relevant ones. "
                    "Use after an initial search to improve result quality."
                ),
                input_model=RerankResultsInput,
                handler=rerank_results,
            ),
            Tool(
                name="extract_answer",
                description=(
                    "Extract the exact text span that answers a question from a document "
                    "context, with a confidence score and character offsets."
                ),
                input_model=ExtractAnswerInput,
                handler=extract_answer,
            ),
            Tool(
                name="classify_clauses",
                description=(
                    "Classify a legal clause into common contract clause types such as "
                    "indemnification, termination, confidentiality or governing law."
                ),
                input_model=ClassifyClausesInput,
                handler=classify_clauses,
            ),
            Tool(
                name="analyze_risk",
                description=(
                    "Assess a legal text for risk. Returns a low/medium/high verdict with "
                    "the indicators behind it and a recommendation."
                ),
                input_model=AnalyzeRiskInput,
                handler=analyze_risk,
            ),
            Tool(
                name="analyze_contract_clauses",
                description=(
                    "Scan contract chunks for clause types (indemnity, limitation, termination, "
                    "change of control and more). Each clause comes with a risk level, whether "
                    "it is mutual, and an exact quote."
                ),
                input_model=AnalyzeContractClausesInput,
                handler=analyze_contract_clauses,
            ),
            Tool(
                name="find_party_obligations",
                description=(
                    "Find the chunks containing clauses that obligate a named party, optionally "
                    "limited to one clause type."
                ),
                input_model=FindPartyObligationsInput,
                handler=find_party_obligations,
            ),
            # Planning
            Tool(
                name="write_todos",
                description=(
                    "Create a task plan for complex legal work as tracked todo items "
                    "that you complete one by one."
                ),
                input_model=WriteTodosInput,
                handler=write_todos,
            ),
            Tool(
                name="update_todo",
                description=(
                    "Move a todo to in_progress, completed or cancelled. Completed and "
                    "cancelled items cannot change again."
                ),
                input_model=UpdateTodoInput,
                handler=update_todo,
            ),
            Tool(
                name="get_todos",
                description="Get the current task plan in order.",
                input_model=GetTodosInput,
                handler=get_todos,
            ),
            # Memory
            Tool(
                name="store_memory",
                description=(
                    "Remember a fact across conversations. Writing an existing key "
                    "replaces its value."
                ),
                input_model=StoreMemoryInput,
                handler=store_memory,
            ),
            Tool(
                name="recall_memory",
                description="Recall a remembered fact by key, or every fact whose key starts with a prefix.",
                input_model=RecallMemoryInput,
                handler=recall_memory,
            ),
            Tool(
                name="list_memories",
                description="List remembered keys in a namespace and the namespaces in use.",
                input_model=ListMemoriesInput,
                handler=list_memories,
            ),
        ]
    )


__all__ = [
    "Tool",
    "ToolContext",
    "ToolDependencies",
    "ToolRegistry",
    "build_legal_tools",
]
