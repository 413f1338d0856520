"""Scoped facades over the planning backend.

A ``TodoStore`` is bound to one conversation and a ``MemoryStore`` to one
owner; neither exposes a way to address another scope.
"""

from __future__ import annotations

from typing import Any

from counsel.planning.backends import PlanningBackend
from counsel.schemas import MemoryItem, TodoItem
from counsel.schemas.base import TodoStatus


DEFAULT_NAMESPACE = "default"

_PENDING_STATUSES = frozenset({"pending", "in_progress"})


class TodoStore:
    """The agent's task plan for a single conversation."""

    def __init__(self, backend: PlanningBackend, conversation_id: str) -> None:
        self._backend = backend
        self.conversation_id = conversation_id

    async def add(self, content: str, parent_id: str | None = None) -> TodoItem:
        return await self._backend.add_todo(self.conversation_id, content, parent_id)

    async def update_status(
        self, todo_id: str, status: TodoStatus, result: str | None = None
    ) -> TodoItem:
        return await self._backend.update_todo(self.conversation_id, todo_id, status, result)

    async def get_all(self) -> list[TodoItem]:
        return await self._backend.list_todos(self.conversation_id)

    async def get_pending(self) -> list[TodoItem]:
        """Pending and in-progress items, in plan order."""

        return [todo for todo in await self.get_all() if todo.status in _PENDING_STATUSES]

    async def clear(self) -> int:
        return await self._backend.clear_todos(self.conversation_id)


class MemoryStore:
    """Long-term key/value memory for a single owner."""

    def __init__(
        self,
        backend: PlanningBackend,
        owner_user_id: str,
        default_namespace: str = DEFAULT_NAMESPACE,
    ) -> None:
        self._backend = backend
        self.owner_user_id = owner_user_id
        self.default_namespace = default_namespace

    def _ns(self, namespace: str | None) -> str:
        return namespace or self.default_namespace

    async def get(self, key: str, namespace: str | None = None) -> Any | None:
        item = await self.get_item(key, namespace)
        return item.value if item else None

    async def get_item(self, key: str, namespace: str | None = None) -> MemoryItem | None:
        return await self._backend.get_memory(self.owner_user_id, self._ns(namespace), key)

    async def set(self, key: str, value: Any, namespace: str | None = None) -> MemoryItem:
        """Upsert: a second write to the same key replaces the value."""

        return await self._backend.put_memory(self.owner_user_id, self._ns(namespace), key, value)

    async def delete(self, key: str, namespace: str | None = None) -> bool:
        return await self._backend.delete_memory(self.owner_user_id, self._ns(namespace), key)

    async def list(self, namespace: str | None = None) -> list[str]:
        return [item.key for item in await self.get_all(namespace)]

    async def get_all(self, namespace: str | None = None) -> list[MemoryItem]:
        return await self._backend.list_memories(self.owner_user_id, self._ns(namespace))

    async def search(self, prefix: str, namespace: str | None = None) -> list[MemoryItem]:
        return [item for item in await self.get_all(namespace) if item.key.startswith(prefix)]

    async def clear(self, namespace: str | None = None) -> int:
        return await self._backend.clear_memories(self.owner_user_id, self._ns(namespace))

    async def namespaces(self) -> list[str]:
        items = await self._backend.list_memories(self.owner_user_id)
        return sorted({item.namespace for item in items})
