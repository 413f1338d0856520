"""Agent task planning (todos) and long-term memory."""

from counsel.planning.backends import InMemoryPlanningBackend, PlanningBackend
from counsel.planning.stores import DEFAULT_NAMESPACE, MemoryStore, TodoStore


__all__ = [
    "DEFAULT_NAMESPACE",
    "InMemoryPlanningBackend",
    "MemoryStore",
    "PlanningBackend",
    "TodoStore",
]
