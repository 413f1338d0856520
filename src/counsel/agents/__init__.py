"""Agent tool registry and orchestration loop."""

from counsel.agents.orchestrator import AgentLoop, CancelToken, ChatModel
from counsel.agents.prompts import LEGAL_AGENT_SYSTEM_PROMPT, build_system_prompt
from counsel.agents.tools import (
    Tool,
    ToolContext,
    ToolDependencies,
    ToolRegistry,
    build_legal_tools,
)


__all__ = [
    "AgentLoop",
    "CancelToken",
    "ChatModel",
    "LEGAL_AGENT_SYSTEM_PROMPT",
    "Tool",
    "ToolContext",
    "ToolDependencies",
    "ToolRegistry",
    "build_legal_tools",
    "build_system_prompt",
]
