"""Custom exceptions for the camunda_worker package.

This module provides a hierarchy of exceptions raised by the task service
client, the variable codec and the task context.
"""

from __future__ import annotations


class CamundaWorkerError(Exception):
    """Base exception for all camunda_worker errors.

    Example:
        >>> try:
        ...     context.complete()
        ... except CamundaWorkerError as e:
        ...     print(f"Worker error: {e}")
    """

    pass


class ConfigurationError(CamundaWorkerError):
    """Raised when worker or client options cannot be loaded or validated."""

    pass


class TaskServiceError(CamundaWorkerError):
    """Raised when a call to the remote engine fails.

    Attributes:
        message: Human-readable error message.
        status_code: HTTP status code, if a response was received.
        error_type: Engine-reported error type, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error_type: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_type = error_type


class NotFoundError(TaskServiceError):
    """The task or its lease no longer exists on the engine.

    Example:
        >>> try:
        ...     service.extend_lock(task_id, worker_id, 10_000)
        ... except NotFoundError:
        ...     print("Lease is gone")
    """

    pass


class EngineError(TaskServiceError):
    """The engine rejected the request with an error message.

    Covers conflicts (e.g. the lease is owned by another worker) and
    validation failures reported by the engine.
    """

    pass


class TransportError(TaskServiceError):
    """Connectivity failure, timeout or an unreadable engine response."""

    pass


class VariableError(CamundaWorkerError):
    """Base class for typed variable access errors."""

    def __init__(self, message: str, name: str) -> None:
        super().__init__(message)
        self.name = name


class VariableNotFoundError(VariableError, KeyError):
    """The requested variable is not present in the collection."""

    def __str__(self) -> str:
        return str(self.args[0])


class VariableTypeMismatchError(VariableError, TypeError):
    """The variable's type tag disagrees with the requested interpretation.

    Attributes:
        name: Variable name.
        actual_type: Type tag stored on the variable.
        requested_type: Interpretation that was requested.
    """

    def __init__(self, name: str, actual_type: str, requested_type: str) -> None:
        super().__init__(
            f"cannot convert value type {actual_type} to {requested_type}",
            name,
        )
        self.actual_type = actual_type
        self.requested_type = requested_type


class VariableDecodeError(VariableError, ValueError):
    """The variable's payload could not be parsed as its type tag says."""

    def __init__(self, name: str, type_tag: str, reason: str) -> None:
        super().__init__(f"cannot decode {type_tag} variable {name}: {reason}", name)
        self.type_tag = type_tag


class OutcomeAlreadyReportedError(CamundaWorkerError):
    """Raised when a second outcome is reported for the same task."""

    pass


__all__ = [
    "CamundaWorkerError",
    "ConfigurationError",
    "TaskServiceError",
    "NotFoundError",
    "EngineError",
    "TransportError",
    "VariableError",
    "VariableNotFoundError",
    "VariableTypeMismatchError",
    "VariableDecodeError",
    "OutcomeAlreadyReportedError",
]
