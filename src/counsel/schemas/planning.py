"""Planning (todo) and long-term memory schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from counsel.schemas.base import TodoStatus


TERMINAL_TODO_STATUSES: frozenset[str] = frozenset({"completed", "cancelled"})

# pending -> in_progress -> completed, or any non-terminal state -> cancelled
ALLOWED_TODO_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"in_progress", "cancelled"}),
    "in_progress": frozenset({"completed", "cancelled"}),
    "completed": frozenset(),
    "cancelled": frozenset(),
}


class TodoItem(BaseModel):
    """A unit of the agent's task plan, owned by one conversation."""

    id: str
    conversation_id: str
    parent_id: str | None = None
    content: str
    status: TodoStatus = "pending"
    order_index: int = Field(..., ge=0)
    result: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_TODO_STATUSES

    def can_transition_to(self, status: TodoStatus) -> bool:
        return status in ALLOWED_TODO_TRANSITIONS[self.status]


class MemoryItem(BaseModel):
    """A durable key/value fact; unique per (owner, namespace, key)."""

    owner_user_id: str
    namespace: str = "default"
    key: str
    value: Any = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
