"""Task context handed to handlers.

This module provides the TaskContext interface, the single object a handler
receives, and ExternalTaskContext, its implementation backed by a
TaskService.

A handler must report exactly one outcome per task: ``complete``,
``report_business_error`` or ``report_failure``. A task with no reported
outcome stays locked until its lease expires; the engine then makes it
available again.

Example:
    >>> def charge_card(context: TaskContext) -> None:
    ...     amount = context.variables.get_int("amount")
    ...     context.start_lock_extender()
    ...     receipt = gateway.charge(amount)
    ...     context.complete({"receiptId": receipt.id})
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from .client import TaskService, VariablesInput
from .exceptions import OutcomeAlreadyReportedError
from .lock_extender import LockExtender
from .logging import log_debug, log_info
from .types import LockedExternalTask, WorkerOptions
from .variables import Variables, create_variables


class TaskContext(ABC):
    """Everything a handler can see and do for one task.

    Test doubles implement this interface directly; see
    ``camunda_worker.testing.StubTaskContext``.
    """

    @property
    @abstractmethod
    def task(self) -> LockedExternalTask:
        """The leased task snapshot."""
        ...

    @property
    def task_id(self) -> str:
        return self.task.id

    @property
    def topic(self) -> str:
        return self.task.topic_name

    @property
    def retries_remaining(self) -> int | None:
        """Retries left as last reported by the engine; None if never failed."""
        return self.task.retries

    @property
    def business_key(self) -> str | None:
        return self.task.business_key

    @property
    def variables(self) -> Variables:
        """The task's variables, owned by this handler only."""
        return self.task.variables

    @abstractmethod
    def complete(
        self,
        variables: VariablesInput = None,
        local_variables: VariablesInput = None,
    ) -> None:
        """Complete the task, setting process and local variables."""
        ...

    @abstractmethod
    def report_business_error(
        self,
        error_code: str,
        error_message: str | None = None,
        variables: VariablesInput = None,
    ) -> None:
        """Report a BPMN error identified by ``error_code``."""
        ...

    @abstractmethod
    def report_failure(
        self,
        error_message: str,
        error_details: str | None = None,
        retries: int | None = None,
        retry_timeout_ms: int | None = None,
    ) -> None:
        """Report a technical failure.

        Args:
            error_message: Failure reason.
            error_details: Detailed description, e.g. a stack trace.
            retries: Retries left; 0 creates an incident. When None the
                engine's last known retry count is kept.
            retry_timeout_ms: Delay before the task can be fetched again.
        """
        ...

    @abstractmethod
    def extend_lock(self, new_duration_ms: int) -> None:
        """Set the lock to expire ``new_duration_ms`` from now."""
        ...

    @abstractmethod
    def start_lock_extender(self) -> None:
        """Keep renewing the lock in the background until stopped."""
        ...

    @abstractmethod
    def stop_lock_extender(self) -> None:
        """Stop background renewal. Safe to call at any time."""
        ...

    @property
    @abstractmethod
    def outcome_reported(self) -> bool:
        """Whether one of the outcome operations has been called."""
        ...


class ExternalTaskContext(TaskContext):
    """TaskContext backed by a TaskService.

    Attributes:
        worker_id: Worker owning the task's lease.
    """

    def __init__(
        self,
        task: LockedExternalTask,
        service: TaskService,
        options: WorkerOptions,
        on_lock_extension_failed: Callable[[str, Exception], None] | None = None,
    ) -> None:
        """Initialize the context.

        Args:
            task: The leased task.
            service: Task service used to report outcomes.
            options: Options of the worker that leased the task.
            on_lock_extension_failed: Called with (task_id, error) when the
                lock extender gives up.
        """
        self._task = task
        self._service = service
        self._options = options
        self._on_lock_extension_failed = on_lock_extension_failed
        self.worker_id = task.worker_id or options.worker_id

        self._lock = threading.Lock()
        self._outcome: str | None = None
        self._extender: LockExtender | None = None

    @property
    def task(self) -> LockedExternalTask:
        return self._task

    @property
    def outcome_reported(self) -> bool:
        return self._outcome is not None

    @property
    def outcome(self) -> str | None:
        """Name of the reported outcome, if any."""
        return self._outcome

    # =========================================================================
    # Outcomes
    # =========================================================================

    def complete(
        self,
        variables: VariablesInput = None,
        local_variables: VariablesInput = None,
    ) -> None:
        # Encode first so a bad value leaves the outcome unclaimed
        encoded = create_variables(variables)
        encoded_local = create_variables(local_variables)

        self._claim_outcome("complete")
        self._service.complete(
            self.task_id,
            self.worker_id,
            variables=encoded,
            local_variables=encoded_local,
        )
        log_info("Task completed", self._log_fields())

    def report_business_error(
        self,
        error_code: str,
        error_message: str | None = None,
        variables: VariablesInput = None,
    ) -> None:
        encoded = create_variables(variables) if variables is not None else None

        self._claim_outcome("business_error")
        self._service.report_business_error(
            self.task_id,
            self.worker_id,
            error_code,
            error_message=error_message,
            variables=encoded,
        )
        log_info(
            "Task business error reported",
            {**self._log_fields(), "error_code": error_code},
        )

    def report_failure(
        self,
        error_message: str,
        error_details: str | None = None,
        retries: int | None = None,
        retry_timeout_ms: int | None = None,
    ) -> None:
        if retries is not None and retries < 0:
            raise ValueError(f"retries must be >= 0, got {retries}")
        if retry_timeout_ms is not None and retry_timeout_ms < 0:
            raise ValueError(f"retry_timeout_ms must be >= 0, got {retry_timeout_ms}")

        self._claim_outcome("failure")
        if retries is None:
            retries = self.retries_remaining

        self._service.report_failure(
            self.task_id,
            self.worker_id,
            error_message,
            error_details=error_details,
            retries=retries,
            retry_timeout_ms=retry_timeout_ms,
        )
        log_info(
            "Task failure reported",
            {**self._log_fields(), "retries": retries},
        )

    def _claim_outcome(self, outcome: str) -> None:
        with self._lock:
            if self._outcome is not None:
                raise OutcomeAlreadyReportedError(
                    f"task {self.task_id} already reported outcome {self._outcome!r}"
                )
            self._outcome = outcome

    # =========================================================================
    # Lock management
    # =========================================================================

    def extend_lock(self, new_duration_ms: int) -> None:
        self._service.extend_lock(self.task_id, self.worker_id, new_duration_ms)
        log_debug(
            "Lock extended",
            {**self._log_fields(), "new_duration_ms": new_duration_ms},
        )

    def start_lock_extender(self) -> None:
        """Start renewing the lock.

        Renews ``lock_extension_ms`` every ``lock_renewal_interval_ms``, as
        configured on the worker. Calling it again while an extender is
        active does nothing.
        """
        with self._lock:
            if self._extender is not None:
                return
            self._extender = LockExtender(
                service=self._service,
                task_id=self.task_id,
                worker_id=self.worker_id,
                extension_ms=self._options.lock_extension_ms,
                interval_ms=self._options.lock_renewal_interval_ms,
                on_failure=self._extension_failed,
            )
            self._extender.start()

    def stop_lock_extender(self) -> None:
        with self._lock:
            extender = self._extender
        if extender is not None:
            extender.stop()

    def _extension_failed(self, error: Exception) -> None:
        if self._on_lock_extension_failed is not None:
            self._on_lock_extension_failed(self.task_id, error)

    def _log_fields(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "topic": self.topic,
            "worker_id": self.worker_id,
        }


__all__ = ["TaskContext", "ExternalTaskContext"]
