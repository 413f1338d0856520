"""Agent loop schemas: messages, tool calls, model turns and stream events.

The event vocabulary mirrors what a live transcript renderer needs:
incremental answer text, the lifecycle of every tool call, and exactly one
terminal event per run.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from counsel.schemas.base import MessageRole


class ToolCall(BaseModel):
    """A tool invocation requested by the model."""

    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ChatMessage(BaseModel):
    """A single message in the conversation history."""

    role: MessageRole
    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_call_id: str | None = None
    name: str | None = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    @classmethod
    def system(cls, content: str) -> "ChatMessage":
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> "ChatMessage":
        return cls(role="user", content=content)

    @classmethod
    def tool_result(cls, call: ToolCall, content: str) -> "ChatMessage":
        return cls(role="tool", content=content, tool_call_id=call.id, name=call.name)


class TokenUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0


class ModelTurn(BaseModel):
    """One complete model response: final text and/or tool-call requests."""

    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    usage: TokenUsage | None = None

    @property
    def wants_tools(self) -> bool:
        return bool(self.tool_calls)

    def as_message(self) -> ChatMessage:
        return ChatMessage(
            role="assistant", content=self.content, tool_calls=list(self.tool_calls)
        )


class ModelStreamEvent(BaseModel):
    """Incremental output of a streaming chat call.

    `text_delta` events carry partial answer text; a single `turn_complete`
    event closes the stream with the assembled `ModelTurn`.
    """

    type: Literal["text_delta", "turn_complete"]
    text: str = ""
    turn: ModelTurn | None = None


AgentEventType = Literal[
    "message_delta",
    "tool_call_start",
    "tool_call_args",
    "tool_call_end",
    "run_finished",
    "run_error",
    "run_cancelled",
]

TERMINAL_EVENT_TYPES: frozenset[str] = frozenset(
    {"run_finished", "run_error", "run_cancelled"}
)


class AgentEvent(BaseModel):
    """A discrete, typed event emitted by the agent loop."""

    type: AgentEventType
    step: int = 0
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENT_TYPES


class AgentRunResult(BaseModel):
    """Collected outcome of a non-streaming run."""

    status: Literal["finished", "error", "cancelled"]
    final_text: str = ""
    steps: int = 0
    messages: list[ChatMessage] = Field(default_factory=list)
    events: list[AgentEvent] = Field(default_factory=list)
    error: dict[str, Any] | None = None
