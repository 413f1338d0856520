"""Base schemas and shared models for the retrieval core.

Holds the standardized failure object returned across tool and refinement
boundaries plus the literal types shared by the other schema modules.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class AgentFailure(BaseModel):
    """Standardized error object for component failures.

    Returned (never raised) wherever a result feeds back into the model so the
    agent can reason about a failed step instead of aborting the turn.
    """

    agent_id: str
    error_code: str
    message: str
    recoverable: bool = False
    details: dict[str, Any] | None = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    def to_tool_result(self) -> dict[str, Any]:
        """Render the failure in the `{error: ...}` shape tools return."""

        payload: dict[str, Any] = {"error": self.message, "code": self.error_code}
        if self.recoverable:
            payload["recoverable"] = True
        return payload


class ErrorCodes:
    """Standard error codes for component failures."""

    # Configuration
    CONFIG_MISSING_CREDENTIAL = "ERR_CONFIG_MISSING_CREDENTIAL"
    CONFIG_INVALID = "ERR_CONFIG_INVALID"

    # Remote services
    REMOTE_SERVICE = "ERR_REMOTE_SERVICE"
    REMOTE_AUTH = "ERR_REMOTE_AUTH"
    REMOTE_MALFORMED = "ERR_REMOTE_MALFORMED"

    # Inputs and lookups
    INVALID_INPUT = "ERR_INVALID_INPUT"
    NOT_FOUND = "ERR_NOT_FOUND"
    SCOPE_REQUIRED = "ERR_SCOPE_REQUIRED"
    INVALID_TRANSITION = "ERR_INVALID_TRANSITION"

    # Memory / retrieval
    MEMORY_NO_RESULTS = "ERR_MEMORY_NO_RESULTS"

    # Tools and agent loop
    TOOL_VALIDATION = "ERR_TOOL_VALIDATION"
    TOOL_UNKNOWN = "ERR_TOOL_UNKNOWN"
    TOOL_FAILED = "ERR_TOOL_FAILED"
    AGENT_STEP_LIMIT = "ERR_AGENT_STEP_LIMIT"
    CANCELLED = "ERR_CANCELLED"

    # General
    TIMEOUT = "ERR_TIMEOUT"


# Type aliases for common literals
DocumentStatus = Literal["pending", "processing", "ready", "error"]
TodoStatus = Literal["pending", "in_progress", "completed", "cancelled"]
RiskLevel = Literal["low", "medium", "high"]
MessageRole = Literal["system", "user", "assistant", "tool"]
EmbeddingTask = Literal["retrieval/document", "retrieval/query"]
CounselMode = Literal[
    "general",
    "contract_analysis",
    "legal_research",
    "document_drafting",
    "due_diligence",
    "compliance",
    "litigation",
]
