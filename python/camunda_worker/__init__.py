"""
Camunda External Task Worker

This package provides a client for the external task pattern of a remote
workflow engine: workers long-poll the engine for tasks on named topics,
lease them, run a handler, and report the outcome.

Example:
    >>> from camunda_worker import ClientOptions, HttpTaskService, Worker, WorkerOptions
    >>>
    >>> service = HttpTaskService(ClientOptions(endpoint_url="http://localhost:8080/engine-rest"))
    >>> worker = Worker(service, WorkerOptions(max_tasks=5, max_parallel_tasks_per_handler=2))
    >>>
    >>> def send_reminder(context):
    ...     email = context.variables.get_string("email")
    ...     mailer.send(email)
    ...     context.complete({"reminderSent": True})
    ...
    >>> worker.subscribe("send-reminder", send_reminder)
    >>> worker.wait()

    >>> # Use structured logging
    >>> from camunda_worker import log_info
    >>> log_info("Processing started", {"task_id": "abc-123"})
"""

from __future__ import annotations

from camunda_worker.client import HttpTaskService, TaskService
from camunda_worker.config import load_options
from camunda_worker.context import ExternalTaskContext, TaskContext

# Handler-raised outcomes
from camunda_worker.errors import BpmnError, TaskError, TaskFailure
from camunda_worker.event_bridge import EventBridge, EventNames
from camunda_worker.exceptions import (
    CamundaWorkerError,
    ConfigurationError,
    EngineError,
    NotFoundError,
    OutcomeAlreadyReportedError,
    TaskServiceError,
    TransportError,
    VariableError,
    VariableDecodeError,
    VariableNotFoundError,
    VariableTypeMismatchError,
)
from camunda_worker.lock_extender import LockExtender
from camunda_worker.logging import (
    log_debug,
    log_error,
    log_info,
    log_trace,
    log_warn,
)
from camunda_worker.types import (
    ClientOptions,
    LockedExternalTask,
    LogContext,
    TopicSubscription,
    WorkerOptions,
    __version__,
)
from camunda_worker.variables import (
    ValueInfo,
    ValueType,
    Variable,
    Variables,
    create_variables,
)
from camunda_worker.worker import Handler, Subscription, Worker, backoff_units

__all__ = [
    # Version
    "__version__",
    # Worker
    "Worker",
    "Subscription",
    "Handler",
    "backoff_units",
    # Task service
    "TaskService",
    "HttpTaskService",
    # Context
    "TaskContext",
    "ExternalTaskContext",
    "LockExtender",
    # Variables
    "ValueType",
    "ValueInfo",
    "Variable",
    "Variables",
    "create_variables",
    # Types
    "ClientOptions",
    "WorkerOptions",
    "TopicSubscription",
    "LockedExternalTask",
    "LogContext",
    # Configuration
    "load_options",
    # Events
    "EventBridge",
    "EventNames",
    # Handler outcomes
    "TaskError",
    "BpmnError",
    "TaskFailure",
    # Exceptions
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
    # Logging
    "log_error",
    "log_warn",
    "log_info",
    "log_debug",
    "log_trace",
]
