"""Application-specific exception helpers."""

from __future__ import annotations

from typing import Any

from counsel.schemas import AgentFailure, ErrorCodes


class AgentFailureError(RuntimeError):
    """Raised when a component cannot complete its task."""

    default_code = ErrorCodes.TOOL_FAILED
    default_recoverable = False

    def __init__(
        self,
        *,
        agent_id: str,
        message: str,
        error_code: str | None = None,
        recoverable: bool | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.failure = AgentFailure(
            agent_id=agent_id,
            error_code=error_code or self.default_code,
            message=message,
            recoverable=(
                self.default_recoverable if recoverable is None else recoverable
            ),
            details=details,
        )

    def __str__(self) -> str:
        """Return a human-readable form for logging."""

        return f"{self.failure.agent_id}::{self.failure.error_code} - {self.failure.message}"


class ServiceConfigurationError(AgentFailureError):
    """Missing credential or model id. Fatal, never retried."""

    default_code = ErrorCodes.CONFIG_MISSING_CREDENTIAL


class RemoteServiceError(AgentFailureError):
    """HTTP failure from a remote service, with the provider payload attached."""

    default_code = ErrorCodes.REMOTE_SERVICE
    default_recoverable = True

    def __init__(
        self,
        *,
        agent_id: str,
        message: str,
        status_code: int | None = None,
        body: str | None = None,
        error_code: str | None = None,
        recoverable: bool | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if status_code is not None:
            details["status_code"] = status_code
        if body:
            details["body"] = body[:500]
        super().__init__(
            agent_id=agent_id,
            message=message,
            error_code=error_code,
            recoverable=recoverable,
            details=details or None,
        )
        self.status_code = status_code
        self.body = body


class MalformedResponseError(AgentFailureError):
    """Remote response did not match any known schema version."""

    default_code = ErrorCodes.REMOTE_MALFORMED


class NotFoundError(AgentFailureError):
    default_code = ErrorCodes.NOT_FOUND
    default_recoverable = True


class ScopeRequiredError(AgentFailureError):
    """A query arrived without the owner scope needed for data isolation."""

    default_code = ErrorCodes.SCOPE_REQUIRED


class InvalidTransitionError(AgentFailureError):
    default_code = ErrorCodes.INVALID_TRANSITION
    default_recoverable = True


__all__ = [
    "AgentFailureError",
    "InvalidTransitionError",
    "MalformedResponseError",
    "NotFoundError",
    "RemoteServiceError",
    "ScopeRequiredError",
    "ServiceConfigurationError",
]
