"""Test double for handler unit tests.

StubTaskContext implements TaskContext without an engine: every call is
recorded so a test can assert on what the handler did.

Example:
    >>> from camunda_worker.testing import StubTaskContext
    >>>
    >>> context = StubTaskContext(variables={"amount": 30})
    >>> charge_card(context)
    >>> assert context.completed
    >>> assert context.completed_variables.get_bool("charged")
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .client import VariablesInput
from .context import TaskContext
from .exceptions import OutcomeAlreadyReportedError
from .types import LockedExternalTask
from .variables import Variables, create_variables


@dataclass
class BusinessErrorCall:
    error_code: str
    error_message: str | None
    variables: Variables | None


@dataclass
class FailureCall:
    error_message: str
    error_details: str | None
    retries: int | None
    retry_timeout_ms: int | None


@dataclass
class CompleteCall:
    variables: Variables = field(default_factory=Variables)
    local_variables: Variables = field(default_factory=Variables)


class StubTaskContext(TaskContext):
    """Recording TaskContext.

    Like the real context it refuses a second outcome, so handlers that
    report twice fail in tests the same way they would in production.

    Attributes:
        complete_calls: Recorded complete() calls.
        business_error_calls: Recorded report_business_error() calls.
        failure_calls: Recorded report_failure() calls.
        extend_lock_calls: Durations passed to extend_lock().
        lock_extender_started: Whether start_lock_extender() was called.
        lock_extender_stopped: Whether stop_lock_extender() was called.
    """

    def __init__(
        self,
        task: LockedExternalTask | None = None,
        *,
        task_id: str = "stub-task",
        topic: str = "stub-topic",
        variables: Mapping[str, Any] | Variables | None = None,
        retries: int | None = None,
        business_key: str | None = None,
    ) -> None:
        """Initialize the stub.

        Args:
            task: Task snapshot to expose. When omitted one is built from the
                keyword arguments.
            task_id: Id of the built task.
            topic: Topic of the built task.
            variables: Native values or Variables for the built task.
            retries: Retries of the built task.
            business_key: Business key of the built task.
        """
        if task is None:
            if not isinstance(variables, Variables):
                variables = create_variables(variables)
            task = LockedExternalTask(
                id=task_id,
                topic_name=topic,
                worker_id="stub-worker",
                retries=retries,
                business_key=business_key,
                variables=variables,
            )
        self._task = task

        self.complete_calls: list[CompleteCall] = []
        self.business_error_calls: list[BusinessErrorCall] = []
        self.failure_calls: list[FailureCall] = []
        self.extend_lock_calls: list[int] = []
        self.lock_extender_started = False
        self.lock_extender_stopped = False

    @property
    def task(self) -> LockedExternalTask:
        return self._task

    @property
    def outcome_reported(self) -> bool:
        return bool(self.complete_calls or self.business_error_calls or self.failure_calls)

    @property
    def completed(self) -> bool:
        return bool(self.complete_calls)

    @property
    def completed_variables(self) -> Variables:
        """Process variables passed to complete()."""
        if not self.complete_calls:
            raise AssertionError("complete() was not called")
        return self.complete_calls[0].variables

    def complete(
        self,
        variables: VariablesInput = None,
        local_variables: VariablesInput = None,
    ) -> None:
        self._check_no_outcome()
        self.complete_calls.append(
            CompleteCall(
                variables=create_variables(variables),
                local_variables=create_variables(local_variables),
            )
        )

    def report_business_error(
        self,
        error_code: str,
        error_message: str | None = None,
        variables: VariablesInput = None,
    ) -> None:
        self._check_no_outcome()
        self.business_error_calls.append(
            BusinessErrorCall(
                error_code=error_code,
                error_message=error_message,
                variables=create_variables(variables) if variables is not None else None,
            )
        )

    def report_failure(
        self,
        error_message: str,
        error_details: str | None = None,
        retries: int | None = None,
        retry_timeout_ms: int | None = None,
    ) -> None:
        self._check_no_outcome()
        self.failure_calls.append(
            FailureCall(
                error_message=error_message,
                error_details=error_details,
                retries=retries,
                retry_timeout_ms=retry_timeout_ms,
            )
        )

    def extend_lock(self, new_duration_ms: int) -> None:
        self.extend_lock_calls.append(new_duration_ms)

    def start_lock_extender(self) -> None:
        self.lock_extender_started = True

    def stop_lock_extender(self) -> None:
        self.lock_extender_stopped = True

    def _check_no_outcome(self) -> None:
        if self.outcome_reported:
            raise OutcomeAlreadyReportedError(f"task {self.task_id} already reported an outcome")


__all__ = ["StubTaskContext", "CompleteCall", "BusinessErrorCall", "FailureCall"]
