"""pytest configuration and fixtures for camunda_worker tests.

This module provides shared fixtures for testing the worker, including a
scriptable in-memory TaskService, fast WorkerOptions and sample tasks.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Generator, Sequence
from typing import Any
from uuid import uuid4

import pytest

from camunda_worker import (
    EventBridge,
    LockedExternalTask,
    TaskService,
    TopicSubscription,
    Variables,
    WorkerOptions,
    create_variables,
)


class FakeTaskService(TaskService):
    """In-memory TaskService that records every call.

    fetch_and_lock pops scripted results in order; each result is either a
    list of tasks or an exception to raise. Once the script is exhausted it
    returns an empty batch after a short pause, like an idle long poll.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.fetch_script: list[list[LockedExternalTask] | Exception] = []
        self.fetch_calls: list[dict[str, Any]] = []
        self.fetch_call_times: list[float] = []
        self.completed: list[tuple[str, Variables, Variables]] = []
        self.failures: list[dict[str, Any]] = []
        self.business_errors: list[dict[str, Any]] = []
        self.lock_extensions: list[tuple[str, int]] = []
        self.extend_lock_error: Exception | None = None
        self.complete_error: Exception | None = None
        self.failure_error: Exception | None = None
        self.idle_pause = 0.005

    def script(self, *results: list[LockedExternalTask] | Exception) -> None:
        with self._lock:
            self.fetch_script.extend(results)

    def fetch_and_lock(
        self,
        worker_id: str,
        max_tasks: int,
        topics: Sequence[TopicSubscription],
        use_priority: bool | None = None,
        long_polling_timeout_ms: int | None = None,
    ) -> list[LockedExternalTask]:
        with self._lock:
            self.fetch_calls.append(
                {
                    "worker_id": worker_id,
                    "max_tasks": max_tasks,
                    "topics": list(topics),
                    "use_priority": use_priority,
                    "long_polling_timeout_ms": long_polling_timeout_ms,
                }
            )
            self.fetch_call_times.append(time.monotonic())
            result = self.fetch_script.pop(0) if self.fetch_script else None

        if result is None:
            time.sleep(self.idle_pause)
            return []
        if isinstance(result, Exception):
            raise result
        return result

    def complete(self, task_id, worker_id, variables=None, local_variables=None) -> None:
        if self.complete_error is not None:
            raise self.complete_error
        with self._lock:
            self.completed.append(
                (task_id, create_variables(variables), create_variables(local_variables))
            )

    def report_failure(
        self,
        task_id,
        worker_id,
        error_message,
        error_details=None,
        retries=None,
        retry_timeout_ms=None,
    ) -> None:
        if self.failure_error is not None:
            raise self.failure_error
        with self._lock:
            self.failures.append(
                {
                    "task_id": task_id,
                    "worker_id": worker_id,
                    "error_message": error_message,
                    "error_details": error_details,
                    "retries": retries,
                    "retry_timeout_ms": retry_timeout_ms,
                }
            )

    def report_business_error(
        self,
        task_id,
        worker_id,
        error_code,
        error_message=None,
        variables=None,
    ) -> None:
        with self._lock:
            self.business_errors.append(
                {
                    "task_id": task_id,
                    "worker_id": worker_id,
                    "error_code": error_code,
                    "error_message": error_message,
                    "variables": variables,
                }
            )

    def extend_lock(self, task_id, worker_id, new_duration_ms) -> None:
        if self.extend_lock_error is not None:
            raise self.extend_lock_error
        with self._lock:
            self.lock_extensions.append((task_id, new_duration_ms))


def wait_until(condition: Callable[[], bool], timeout: float = 5.0, interval: float = 0.005) -> bool:
    """Poll ``condition`` until it holds or ``timeout`` seconds pass."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(interval)
    return condition()


@pytest.fixture(name="wait_until")
def wait_until_fixture() -> Callable[..., bool]:
    """Provide the wait_until polling helper."""
    return wait_until


@pytest.fixture
def fake_service() -> FakeTaskService:
    """Provide a fresh FakeTaskService for each test."""
    return FakeTaskService()


@pytest.fixture
def worker_options() -> WorkerOptions:
    """Provide WorkerOptions with short timers so tests run fast."""
    return WorkerOptions(
        worker_id="test-worker",
        max_tasks=5,
        max_parallel_tasks_per_handler=2,
        long_polling_timeout_ms=0,
        lock_extension_ms=200,
        lock_renewal_interval_ms=20,
        backoff_unit_seconds=0.01,
    )


@pytest.fixture
def event_bridge() -> Generator[EventBridge, None, None]:
    """Provide a fresh EventBridge for each test."""
    bridge = EventBridge()
    yield bridge
    bridge.clear()


@pytest.fixture
def make_task() -> Callable[..., LockedExternalTask]:
    """Provide a factory for LockedExternalTask snapshots."""

    def _make(
        topic: str = "test-topic",
        variables: dict[str, Any] | None = None,
        retries: int | None = None,
        **overrides: Any,
    ) -> LockedExternalTask:
        return LockedExternalTask(
            id=overrides.pop("id", str(uuid4())),
            topic_name=topic,
            worker_id=overrides.pop("worker_id", "test-worker"),
            retries=retries,
            variables=create_variables(variables),
            **overrides,
        )

    return _make


@pytest.fixture
def sample_wire_task() -> dict[str, Any]:
    """Provide a fetch-and-lock response item as sent by the engine."""
    return {
        "activityId": "ServiceTask_1",
        "activityInstanceId": "ServiceTask_1:8e3b",
        "errorMessage": None,
        "errorDetails": None,
        "executionId": "8e3b-exec",
        "id": "task-1",
        "lockExpirationTime": "2015-10-06T16:34:42.000+0200",
        "processDefinitionId": "invoice:1:61b1",
        "processDefinitionKey": "invoice",
        "processInstanceId": "8e3a-inst",
        "tenantId": None,
        "retries": 3,
        "suspended": False,
        "workerId": "test-worker",
        "topicName": "invoice-create",
        "priority": 4,
        "businessKey": "order-42",
        "variables": {
            "orderId": {"type": "String", "value": "A-1", "valueInfo": {}},
            "amount": {"type": "Long", "value": 30, "valueInfo": {}},
            "customer": {
                "type": "Object",
                "value": '{"name": "ACME", "vip": true}',
                "valueInfo": {
                    "objectTypeName": "java.util.HashMap",
                    "serializationDataFormat": "application/json",
                },
            },
        },
    }


# Markers for test categorization
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers",
        "slow: marks tests as slow running",
    )
