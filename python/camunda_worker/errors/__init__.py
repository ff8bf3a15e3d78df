"""Errors a handler may raise to choose the task's outcome.

Any other exception raised by a handler is treated as a fault: it is
reported to the engine as a failure, with the stack trace as error details.

Example:
    >>> from camunda_worker.errors import BpmnError, TaskFailure
    >>>
    >>> def handle(context):
    ...     if context.variables.get_int("amount") > 10_000:
    ...         # Routed to the BPMN error boundary event
    ...         raise BpmnError("AMOUNT_TOO_HIGH", "Amount needs approval")
    ...     if not gateway_available():
    ...         # Retried twice more, one minute apart
    ...         raise TaskFailure("Gateway down", retries=2, retry_timeout_ms=60_000)
    ...     context.complete({"charged": True})
"""

from __future__ import annotations

from typing import Any


class TaskError(Exception):
    """Base class for handler-raised outcome errors.

    Attributes:
        message: Human-readable error message.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class BpmnError(TaskError):
    """Report a business error, routed to a BPMN error boundary event.

    Attributes:
        error_code: Code identifying the BPMN error handler.
        message: Error message passed to the engine.
        variables: Optional variables passed to the execution.
    """

    def __init__(
        self,
        error_code: str,
        message: str = "",
        variables: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message or error_code)
        self.error_code = error_code
        self.variables = variables


class TaskFailure(TaskError):
    """Report a technical failure with explicit retry settings.

    Attributes:
        message: Failure reason.
        details: Detailed error description.
        retries: Retries left; 0 creates an incident. None keeps the
            engine's current value.
        retry_timeout_ms: Delay before the task can be fetched again.
    """

    def __init__(
        self,
        message: str,
        *,
        details: str | None = None,
        retries: int | None = None,
        retry_timeout_ms: int | None = None,
    ) -> None:
        super().__init__(message)
        self.details = details
        self.retries = retries
        self.retry_timeout_ms = retry_timeout_ms


__all__ = [
    "TaskError",
    "BpmnError",
    "TaskFailure",
]
