"""LLM Service Abstraction - Supports OpenAI and Anthropic APIs.

This module provides a provider-neutral streaming chat interface with:
- Tool (function) calling for both providers
- Retry logic with exponential backoff before the first streamed token
- Error handling with RemoteServiceError conversion
- Token usage logging
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any, Literal, cast

import anthropic
import httpx
import openai
from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from counsel.config import CounselSettings, get_settings
from counsel.exceptions import RemoteServiceError, ServiceConfigurationError
from counsel.schemas import ChatMessage, ErrorCodes, ModelStreamEvent, ModelTurn, TokenUsage, ToolCall


if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Awaitable, Callable


logger = logging.getLogger(__name__)

AGENT_ID = "llm_service"

_STATUS_ERRORS = (openai.APIStatusError, anthropic.APIStatusError)
_TIMEOUT_ERRORS = (openai.APITimeoutError, anthropic.APITimeoutError, httpx.TimeoutException)
_CONNECTION_ERRORS = (openai.APIConnectionError, anthropic.APIConnectionError)


class LLMService:
    """Unified chat model supporting OpenAI and Anthropic providers.

    ``stream_chat`` yields text deltas as they arrive and closes with one
    ``turn_complete`` event carrying the assembled ``ModelTurn`` (final text
    and any tool calls). Provider errors are raised as RemoteServiceError.
    """

    def __init__(
        self,
        settings: CounselSettings | None = None,
        *,
        client: AsyncOpenAI | AsyncAnthropic | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        """Initialize LLM service with configured provider."""
        self._settings = settings or get_settings()
        self._provider: Literal["openai", "anthropic"] = self._settings.llm_provider
        self._model = self._settings.llm_model
        self._max_retries = max(1, self._settings.llm_max_retries)
        self._timeout = self._settings.llm_timeout_seconds
        self._client = client
        self._sleep = sleep or asyncio.sleep

        if client is None:
            if self._provider == "openai" and not self._settings.openai_api_key:
                raise ServiceConfigurationError(
                    agent_id=AGENT_ID,
                    message="OpenAI provider selected but OPENAI_API_KEY not configured",
                )
            if self._provider == "anthropic" and not self._settings.anthropic_api_key:
                raise ServiceConfigurationError(
                    agent_id=AGENT_ID,
                    message="Anthropic provider selected but ANTHROPIC_API_KEY not configured",
                )

    @property
    def provider(self) -> str:
        return self._provider

    def _get_client(self) -> AsyncOpenAI | AsyncAnthropic:
        """Get or create the LLM client (lazy initialization with caching)."""
        if self._client is not None:
            return self._client

        if self._provider == "openai":
            self._client = AsyncOpenAI(
                api_key=self._settings.openai_api_key,
                timeout=httpx.Timeout(self._timeout, connect=10.0),
                max_retries=0,  # We handle retries ourselves
            )
        else:
            self._client = AsyncAnthropic(
                api_key=self._settings.anthropic_api_key,
                timeout=httpx.Timeout(self._timeout, connect=10.0),
                max_retries=0,  # We handle retries ourselves
            )
        return self._client

    async def stream_chat(
        self,
        messages: list[ChatMessage],
        tools: list[dict[str, Any]] | None = None,
    ) -> AsyncGenerator[ModelStreamEvent, None]:
        """Stream one model turn.

        Args:
            messages: Ordered conversation history, system prompt included.
            tools: Provider-neutral tool specs (name, description, parameters).

        Yields:
            ``text_delta`` events, then exactly one ``turn_complete`` event.

        Raises:
            RemoteServiceError: If the provider fails after retries.
        """
        delay = 1.0
        for attempt in range(self._max_retries):
            started = False
            try:
                if self._provider == "openai":
                    stream = self._stream_openai(messages, tools or [])
                else:
                    stream = self._stream_anthropic(messages, tools or [])
                async for event in stream:
                    started = True
                    yield event
                return
            except _STATUS_ERRORS as exc:
                status = exc.status_code
                retryable = status == 429 or 500 <= status < 600
                if retryable and not started and attempt < self._max_retries - 1:
                    logger.warning(
                        "LLM request failed, retrying",
                        extra={
                            "agent_id": AGENT_ID,
                            "provider": self._provider,
                            "status_code": status,
                            "retry_count": attempt + 1,
                            "delay_seconds": min(delay, 16.0),
                        },
                    )
                    await self._sleep(min(delay, 16.0))
                    delay *= 2.0
                    continue
                raise self._handle_status_error(status, exc.message) from exc
            except _TIMEOUT_ERRORS as exc:
                logger.error(
                    "LLM request timeout",
                    extra={
                        "agent_id": AGENT_ID,
                        "provider": self._provider,
                        "timeout_seconds": self._timeout,
                    },
                )
                raise RemoteServiceError(
                    agent_id=AGENT_ID,
                    error_code=ErrorCodes.TIMEOUT,
                    message=f"LLM request timed out after {self._timeout}s",
                ) from exc
            except _CONNECTION_ERRORS as exc:
                raise RemoteServiceError(
                    agent_id=AGENT_ID,
                    message=f"LLM provider unreachable: {type(exc).__name__}",
                ) from exc

    async def complete(
        self,
        messages: list[ChatMessage],
        tools: list[dict[str, Any]] | None = None,
    ) -> ModelTurn:
        """Non-streaming convenience wrapper around stream_chat."""
        turn: ModelTurn | None = None
        async for event in self.stream_chat(messages, tools):
            if event.type == "turn_complete":
                turn = event.turn
        return turn or ModelTurn()

    # ------------------------------------------------------------------
    # OpenAI
    # ------------------------------------------------------------------

    async def _stream_openai(
        self, messages: list[ChatMessage], tools: list[dict[str, Any]]
    ) -> AsyncGenerator[ModelStreamEvent, None]:
        """Stream a chat completion, accumulating tool-call fragments by index."""
        client = cast(AsyncOpenAI, self._get_client())

        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": to_openai_messages(messages),
            "temperature": self._settings.llm_temperature,
            "max_tokens": self._settings.llm_max_tokens,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if tools:
            kwargs["tools"] = to_openai_tools(tools)

        response = await client.chat.completions.create(**kwargs)

        text_parts: list[str] = []
        pending: dict[int, dict[str, str]] = {}
        usage: TokenUsage | None = None

        async for chunk in response:
            if getattr(chunk, "usage", None):
                usage = TokenUsage(
                    input_tokens=chunk.usage.prompt_tokens,
                    output_tokens=chunk.usage.completion_tokens,
                )
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta
            if delta.content:
                text_parts.append(delta.content)
                yield ModelStreamEvent(type="text_delta", text=delta.content)
            for fragment in delta.tool_calls or []:
                slot = pending.setdefault(fragment.index, {"id": "", "name": "", "arguments": ""})
                if fragment.id:
                    slot["id"] = fragment.id
                if fragment.function is not None:
                    if fragment.function.name:
                        slot["name"] += fragment.function.name
                    if fragment.function.arguments:
                        slot["arguments"] += fragment.function.arguments

        tool_calls = [
            ToolCall(
                id=slot["id"] or f"call_{index}",
                name=slot["name"],
                arguments=_parse_arguments(slot["arguments"]),
            )
            for index, slot in sorted(pending.items())
        ]
        self._log_usage(usage)
        yield ModelStreamEvent(
            type="turn_complete",
            turn=ModelTurn(content="".join(text_parts), tool_calls=tool_calls, usage=usage),
        )

    # ------------------------------------------------------------------
    # Anthropic
    # ------------------------------------------------------------------

    async def _stream_anthropic(
        self, messages: list[ChatMessage], tools: list[dict[str, Any]]
    ) -> AsyncGenerator[ModelStreamEvent, None]:
        """Stream a message; tool_use blocks are read from the final message."""
        client = cast(AsyncAnthropic, self._get_client())

        system, converted = to_anthropic_messages(messages)
        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": converted,
            "temperature": self._settings.llm_temperature,
            "max_tokens": self._settings.llm_max_tokens,
        }
        if system:
            kwargs["system"] = system
        if tools:
            kwargs["tools"] = to_anthropic_tools(tools)

        async with client.messages.stream(**kwargs) as stream:
            async for event in stream:
                if event.type == "content_block_delta" and event.delta.type == "text_delta":
                    yield ModelStreamEvent(type="text_delta", text=event.delta.text)
            final = await stream.get_final_message()

        text = ""
        tool_calls: list[ToolCall] = []
        for block in final.content:
            if block.type == "text":
                text += block.text
            elif block.type == "tool_use":
                tool_calls.append(
                    ToolCall(id=block.id, name=block.name, arguments=dict(block.input or {}))
                )

        usage = TokenUsage(
            input_tokens=final.usage.input_tokens,
            output_tokens=final.usage.output_tokens,
        )
        self._log_usage(usage)
        yield ModelStreamEvent(
            type="turn_complete",
            turn=ModelTurn(content=text, tool_calls=tool_calls, usage=usage),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _log_usage(self, usage: TokenUsage | None) -> None:
        if usage is None:
            return
        logger.info(
            "LLM token usage",
            extra={
                "agent_id": AGENT_ID,
                "provider": self._provider,
                "model": self._model,
                "input_tokens": usage.input_tokens,
                "output_tokens": usage.output_tokens,
            },
        )

    def _handle_status_error(self, status: int, message: str) -> RemoteServiceError:
        """Convert provider status errors to RemoteServiceError."""
        logger.error(
            "LLM API error",
            extra={"agent_id": AGENT_ID, "provider": self._provider, "status_code": status},
        )
        if status in (401, 403):
            return RemoteServiceError(
                agent_id=AGENT_ID,
                error_code=ErrorCodes.REMOTE_AUTH,
                message="Invalid LLM API key or insufficient permissions",
                status_code=status,
                recoverable=False,
            )
        if status == 429:
            return RemoteServiceError(
                agent_id=AGENT_ID,
                message="LLM rate limit exceeded after retries",
                status_code=status,
            )
        if 500 <= status < 600:
            return RemoteServiceError(
                agent_id=AGENT_ID,
                message=f"LLM server error: {status}",
                status_code=status,
            )
        return RemoteServiceError(
            agent_id=AGENT_ID,
            message=f"LLM client error: {status}",
            status_code=status,
            body=message,
            recoverable=False,
        )


def _parse_arguments(raw: str) -> dict[str, Any]:
    if not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(
            "Model produced invalid tool arguments",
            extra={"agent_id": AGENT_ID, "arguments": raw[:200]},
        )
        return {"_invalid_arguments": raw}
    return parsed if isinstance(parsed, dict) else {"_invalid_arguments": raw}


def to_openai_tools(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {
                "name": tool["name"],
                "description": tool["description"],
                "parameters": tool["parameters"],
            },
        }
        for tool in tools
    ]


def to_anthropic_tools(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [
        {
            "name": tool["name"],
            "description": tool["description"],
            "input_schema": tool["parameters"],
        }
        for tool in tools
    ]


def to_openai_messages(messages: list[ChatMessage]) -> list[dict[str, Any]]:
    converted: list[dict[str, Any]] = []
    for message in messages:
        if message.role == "tool":
            converted.append(
                {
                    "role": "tool",
                    "tool_call_id": message.tool_call_id,
                    "content": message.content,
                }
            )
        elif message.role == "assistant" and message.tool_calls:
            converted.append(
                {
                    "role": "assistant",
                    "content": message.content or None,
                    "tool_calls": [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {
                                "name": call.name,
                                "arguments": json.dumps(call.arguments),
                            },
                        }
                        for call in message.tool_calls
                    ],
                }
            )
        else:
            converted.append({"role": message.role, "content": message.content})
    return converted


def to_anthropic_messages(
    messages: list[ChatMessage],
) -> tuple[str, list[dict[str, Any]]]:
    """Split out the system prompt and merge tool results into user turns."""

    system_parts: list[str] = []
    converted: list[dict[str, Any]] = []
    for message in messages:
        if message.role == "system":
            system_parts.append(message.content)
        elif message.role == "tool":
            block = {
                "type": "tool_result",
                "tool_use_id": message.tool_call_id,
                "content": message.content,
            }
            previous = converted[-1] if converted else None
            if (
                previous is not None
                and previous["role"] == "user"
                and isinstance(previous["content"], list)
                and all(item.get("type") == "tool_result" for item in previous["content"])
            ):
                previous["content"].append(block)
            else:
                converted.append({"role": "user", "content": [block]})
        elif message.role == "assistant":
            blocks: list[dict[str, Any]] = []
            if message.content:
                blocks.append({"type": "text", "text": message.content})
            for call in message.tool_calls:
                blocks.append(
                    {"type": "tool_use", "id": call.id, "name": call.name, "input": call.arguments}
                )
            if not blocks:
                # Anthropic rejects empty assistant content
                continue
            converted.append({"role": "assistant", "content": blocks})
        else:
            converted.append({"role": "user", "content": message.content})
    return "\n\n".join(part for part in system_parts if part), converted


__all__ = [
    "LLMService",
    "to_anthropic_messages",
    "to_anthropic_tools",
    "to_openai_messages",
    "to_openai_tools",
]
