"""Persistence seam for the agent's task plan and long-term memory.

The backend is injected into the scoped stores; swapping the in-process
implementation for a durable database does not change the store interface.
"""

from __future__ import annotations

import asyncio
import uuid
from collections import defaultdict
from datetime import datetime
from typing import Any, Protocol

from counsel.exceptions import InvalidTransitionError, NotFoundError
from counsel.schemas import MemoryItem, TodoItem
from counsel.schemas.base import TodoStatus


AGENT_ID = "planning"


class PlanningBackend(Protocol):
    """Scoped CRUD contract for todos (per conversation) and memories (per owner)."""

    async def add_todo(
        self, conversation_id: str, content: str, parent_id: str | None = None
    ) -> TodoItem: ...

    async def update_todo(
        self,
        conversation_id: str,
        todo_id: str,
        status: TodoStatus,
        result: str | None = None,
    ) -> TodoItem: ...

    async def list_todos(self, conversation_id: str) -> list[TodoItem]: ...

    async def clear_todos(self, conversation_id: str) -> int: ...

    async def get_memory(self, owner_user_id: str, namespace: str, key: str) -> MemoryItem | None: ...

    async def put_memory(
        self, owner_user_id: str, namespace: str, key: str, value: Any
    ) -> MemoryItem: ...

    async def delete_memory(self, owner_user_id: str, namespace: str, key: str) -> bool: ...

    async def list_memories(self, owner_user_id: str, namespace: str | None = None) -> list[MemoryItem]: ...

    async def clear_memories(self, owner_user_id: str, namespace: str) -> int: ...


def apply_transition(item: TodoItem, status: TodoStatus, result: str | None) -> TodoItem:
    """Return the item moved to ``status`` or raise if the move is not allowed."""

    if not item.can_transition_to(status):
        raise InvalidTransitionError(
            agent_id=AGENT_ID,
            message=f"Cannot move todo {item.id} from {item.status} to {status}",
            details={"todo_id": item.id, "from": item.status, "to": status},
        )
    update: dict[str, Any] = {"status": status, "updated_at": datetime.utcnow()}
    if result is not None:
        update["result"] = result
    return item.model_copy(update=update)


class InMemoryPlanningBackend:
    """Process-local backend.

    Index assignment and status updates are serialized per conversation so
    concurrent ``add`` calls never produce duplicate order indices.
    """

    def __init__(self) -> None:
        self._todos: dict[str, dict[str, TodoItem]] = defaultdict(dict)
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._memories: dict[tuple[str, str, str], MemoryItem] = {}

    async def add_todo(
        self, conversation_id: str, content: str, parent_id: str | None = None
    ) -> TodoItem:
        async with self._locks[conversation_id]:
            todos = self._todos[conversation_id]
            if parent_id is not None and parent_id not in todos:
                raise NotFoundError(
                    agent_id=AGENT_ID,
                    message=f"Parent todo {parent_id} not found",
                )
            next_index = max((todo.order_index for todo in todos.values()), default=-1) + 1
            item = TodoItem(
                id=str(uuid.uuid4()),
                conversation_id=conversation_id,
                parent_id=parent_id,
                content=content,
                order_index=next_index,
            )
            todos[item.id] = item
        return item

    async def update_todo(
        self,
        conversation_id: str,
        todo_id: str,
        status: TodoStatus,
        result: str | None = None,
    ) -> TodoItem:
        async with self._locks[conversation_id]:
            todos = self._todos[conversation_id]
            item = todos.get(todo_id)
            if item is None:
                raise NotFoundError(agent_id=AGENT_ID, message=f"Todo {todo_id} not found")
            updated = apply_transition(item, status, result)
            todos[todo_id] = updated
        return updated

    async def list_todos(self, conversation_id: str) -> list[TodoItem]:
        todos = self._todos.get(conversation_id, {})
        return sorted(todos.values(), key=lambda todo: todo.order_index)

    async def clear_todos(self, conversation_id: str) -> int:
        async with self._locks[conversation_id]:
            removed = len(self._todos.get(conversation_id, {}))
            self._todos.pop(conversation_id, None)
        return removed

    async def get_memory(self, owner_user_id: str, namespace: str, key: str) -> MemoryItem | None:
        return self._memories.get((owner_user_id, namespace, key))

    async def put_memory(
        self, owner_user_id: str, namespace: str, key: str, value: Any
    ) -> MemoryItem:
        storage_key = (owner_user_id, namespace, key)
        existing = self._memories.get(storage_key)
        now = datetime.utcnow()
        item = MemoryItem(
            owner_user_id=owner_user_id,
            namespace=namespace,
            key=key,
            value=value,
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )
        self._memories[storage_key] = item
        return item

    async def delete_memory(self, owner_user_id: str, namespace: str, key: str) -> bool:
        return self._memories.pop((owner_user_id, namespace, key), None) is not None

    async def list_memories(self, owner_user_id: str, namespace: str | None = None) -> list[MemoryItem]:
        items = [
            item
            for (owner, item_namespace, _key), item in self._memories.items()
            if owner == owner_user_id and (namespace is None or item_namespace == namespace)
        ]
        return sorted(items, key=lambda item: (item.namespace, item.key))

    async def clear_memories(self, owner_user_id: str, namespace: str) -> int:
        keys = [
            storage_key
            for storage_key in self._memories
            if storage_key[0] == owner_user_id and storage_key[1] == namespace
        ]
        for storage_key in keys:
            del self._memories[storage_key]
        return len(keys)
