"""Agent orchestration loop.

Alternates between Reasoning (one streamed model turn over the full
history) and Acting (every tool call of that turn, run concurrently) until
the model answers without requesting tools. The loop is an async generator
of typed ``AgentEvent``s and always ends with exactly one terminal event:
``run_finished``, ``run_error`` or ``run_cancelled``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import aclosing
from typing import TYPE_CHECKING, Any, Protocol

from counsel.exceptions import AgentFailureError
from counsel.schemas import (
    AgentEvent,
    AgentFailure,
    AgentRunResult,
    ChatMessage,
    ErrorCodes,
    ModelStreamEvent,
    ModelTurn,
    ToolCall,
)


if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


logger = logging.getLogger(__name__)

AGENT_ID = "agent_loop"
DEFAULT_MAX_STEPS = 15
DEFAULT_TOOL_TIMEOUT_SECONDS = 45.0
USER_FACING_ERROR = "The assistant could not complete this request."


class ChatModel(Protocol):
    def stream_chat(
        self, messages: list[ChatMessage], tools: list[dict[str, Any]] | None = None
    ) -> AsyncGenerator[ModelStreamEvent, None]:
        ...


class ToolExecutor(Protocol):
    def specs(self) -> list[dict[str, Any]]:
        ...

    async def invoke(self, call: ToolCall) -> dict[str, Any]:
        ...


class CancelToken:
    """External cancellation signal for a running loop."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class AgentLoop:
    """Reasoning/Acting state machine with a hard step limit.

    ``history`` passed to ``stream`` is appended to only at commit points:
    after a final answer, and after every tool result of a step is in. A
    cancelled run therefore never leaves an assistant tool request without
    its results.
    """

    def __init__(
        self,
        *,
        model: ChatModel,
        tools: ToolExecutor,
        max_steps: int = DEFAULT_MAX_STEPS,
        tool_timeout_seconds: float = DEFAULT_TOOL_TIMEOUT_SECONDS,
    ) -> None:
        if max_steps < 1:
            raise ValueError("max_steps must be at least 1")
        self._model = model
        self._tools = tools
        self._max_steps = max_steps
        self._tool_timeout = tool_timeout_seconds
        # Tool batches abandoned on cancellation keep running until they resolve
        self._orphaned: set[asyncio.Future[Any]] = set()

    async def stream(
        self,
        history: list[ChatMessage],
        *,
        cancel: CancelToken | None = None,
    ) -> AsyncGenerator[AgentEvent, None]:
        cancel = cancel or CancelToken()
        tool_specs = self._tools.specs()
        step = 0

        logger.info(
            "Agent run started",
            extra={"agent_id": AGENT_ID, "messages": len(history), "tools": len(tool_specs)},
        )

        while True:
            if cancel.cancelled:
                yield self._cancelled(step)
                return
            if step >= self._max_steps:
                logger.warning(
                    "Agent step limit reached",
                    extra={"agent_id": AGENT_ID, "max_steps": self._max_steps},
                )
                yield self._error(
                    step,
                    AgentFailure(
                        agent_id=AGENT_ID,
                        error_code=ErrorCodes.AGENT_STEP_LIMIT,
                        message=f"Stopped after {self._max_steps} reasoning steps",
                    ),
                )
                return
            step += 1

            # Reasoning
            turn: ModelTurn | None = None
            try:
                async with aclosing(self._model.stream_chat(history, tool_specs)) as model_stream:
                    while not cancel.cancelled:
                        try:
                            model_event = await self._next_model_event(model_stream, cancel)
                        except StopAsyncIteration:
                            break
                        if model_event is None:
                            break
                        if model_event.type == "text_delta" and model_event.text:
                            yield AgentEvent(
                                type="message_delta", step=step, data={"text": model_event.text}
                            )
                        elif model_event.type == "turn_complete":
                            turn = model_event.turn
            except AgentFailureError as exc:
                yield self._error(step, exc.failure)
                return
            except Exception as exc:
                logger.exception("Unexpected model error", extra={"agent_id": AGENT_ID, "step": step})
                yield self._error(
                    step,
                    AgentFailure(
                        agent_id=AGENT_ID,
                        error_code=ErrorCodes.REMOTE_SERVICE,
                        message=f"Unexpected model error: {type(exc).__name__}",
                    ),
                )
                return

            if cancel.cancelled:
                yield self._cancelled(step)
                return
            if turn is None:
                yield self._error(
                    step,
                    AgentFailure(
                        agent_id=AGENT_ID,
                        error_code=ErrorCodes.REMOTE_MALFORMED,
                        message="Model stream ended without a completed turn",
                    ),
                )
                return

            if not turn.wants_tools:
                history.append(turn.as_message())
                logger.info("Agent run finished", extra={"agent_id": AGENT_ID, "steps": step})
                yield AgentEvent(
                    type="run_finished", step=step, data={"content": turn.content, "steps": step}
                )
                return

            # Acting
            calls = turn.tool_calls
            for call in calls:
                yield AgentEvent(
                    type="tool_call_start", step=step, data={"id": call.id, "name": call.name}
                )
                yield AgentEvent(
                    type="tool_call_args",
                    step=step,
                    data={"id": call.id, "name": call.name, "arguments": call.arguments},
                )

            batch = asyncio.ensure_future(
                asyncio.gather(*(self._run_tool(call) for call in calls))
            )
            cancel_wait = asyncio.ensure_future(cancel.wait())
            try:
                await asyncio.wait({batch, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                cancel_wait.cancel()
                if not batch.done():
                    self._orphaned.add(batch)
                    batch.add_done_callback(self._orphaned.discard)

            if not batch.done():
                logger.info(
                    "Agent run cancelled with tools in flight",
                    extra={"agent_id": AGENT_ID, "step": step, "tools": [c.name for c in calls]},
                )
                yield self._cancelled(step)
                return

            results: list[dict[str, Any]] = batch.result()
            for call, result in zip(calls, results):
                yield AgentEvent(
                    type="tool_call_end",
                    step=step,
                    data={
                        "id": call.id,
                        "name": call.name,
                        "result": result,
                        "is_error": "error" in result,
                    },
                )

            history.append(turn.as_message())
            history.extend(
                ChatMessage.tool_result(call, json.dumps(result, default=str))
                for call, result in zip(calls, results)
            )

    async def run(
        self, messages: list[ChatMessage], *, cancel: CancelToken | None = None
    ) -> AgentRunResult:
        """Drive the loop to completion and collect its events."""

        history = list(messages)
        events: list[AgentEvent] = []
        async with aclosing(self.stream(history, cancel=cancel)) as stream:
            async for event in stream:
                events.append(event)

        terminal = events[-1]
        status = {
            "run_finished": "finished",
            "run_error": "error",
            "run_cancelled": "cancelled",
        }[terminal.type]
        return AgentRunResult(
            status=status,  # type: ignore[arg-type]
            final_text=terminal.data.get("content", "") if status == "finished" else "",
            steps=terminal.step,
            messages=history,
            events=events,
            error=terminal.data if status == "error" else None,
        )

    @staticmethod
    async def _next_model_event(
        model_stream: AsyncGenerator[ModelStreamEvent, None], cancel: CancelToken
    ) -> ModelStreamEvent | None:
        """Next event of the model stream, or None if cancelled while waiting.

        Raises StopAsyncIteration once the stream is exhausted.
        """

        async def _advance() -> ModelStreamEvent:
            return await model_stream.__anext__()

        pending = asyncio.ensure_future(_advance())
        cancel_wait = asyncio.ensure_future(cancel.wait())
        interrupted = False
        try:
            await asyncio.wait({pending, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancel_wait.cancel()
            if not pending.done():
                interrupted = True
                pending.cancel()
                # The generator must be idle before aclose() runs
                await asyncio.gather(pending, return_exceptions=True)

        if interrupted:
            return None
        return pending.result()

    async def _run_tool(self, call: ToolCall) -> dict[str, Any]:
        try:
            return await asyncio.wait_for(self._tools.invoke(call), timeout=self._tool_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Tool call timed out",
                extra={"agent_id": AGENT_ID, "tool": call.name, "timeout_seconds": self._tool_timeout},
            )
            return AgentFailure(
                agent_id=AGENT_ID,
                error_code=ErrorCodes.TIMEOUT,
                message=f"{call.name} timed out after {self._tool_timeout}s",
                recoverable=True,
            ).to_tool_result()

    @staticmethod
    def _cancelled(step: int) -> AgentEvent:
        return AgentEvent(
            type="run_cancelled", step=step, data={"code": ErrorCodes.CANCELLED}
        )

    @staticmethod
    def _error(step: int, failure: AgentFailure) -> AgentEvent:
        logger.error(
            "Agent run failed",
            extra={"agent_id": AGENT_ID, "step": step, "error_code": failure.error_code},
        )
        return AgentEvent(
            type="run_error",
            step=step,
            data={
                "message": USER_FACING_ERROR,
                "code": failure.error_code,
                "detail": failure.message,
            },
        )


__all__ = [
    "AgentLoop",
    "CancelToken",
    "ChatModel",
    "DEFAULT_MAX_STEPS",
    "ToolExecutor",
    "USER_FACING_ERROR",
]
