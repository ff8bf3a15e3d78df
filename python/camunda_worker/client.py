"""Task service: the engine operations the worker needs.

This module provides the TaskService interface consumed by the worker and
its HTTP implementation against the engine's REST API, built on httpx.

Every failing call raises one of:
    - NotFoundError: the task or its lease is gone (HTTP 404)
    - EngineError: the engine rejected the request with a message
    - TransportError: connectivity, timeout, or an unreadable response

Example:
    >>> from camunda_worker import ClientOptions, HttpTaskService
    >>>
    >>> with HttpTaskService(ClientOptions(endpoint_url="http://camunda:8080/engine-rest")) as service:
    ...     tasks = service.fetch_and_lock(
    ...         worker_id="worker-1",
    ...         max_tasks=5,
    ...         topics=[TopicSubscription(topic_name="invoice-create", lock_duration=30_000)],
    ...     )
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import Any

import httpx

from .exceptions import EngineError, NotFoundError, TransportError
from .logging import log_debug
from .types import (
    BpmnErrorRequest,
    ClientOptions,
    CompleteRequest,
    ExtendLockRequest,
    FailureRequest,
    FetchAndLockRequest,
    LockedExternalTask,
    TopicSubscription,
)
from .variables import Variables, create_variables

VariablesInput = Variables | Mapping[str, Any] | None


class TaskService(ABC):
    """Remote operations on external tasks.

    Implementations must be safe to call from several threads at once.
    """

    @abstractmethod
    def fetch_and_lock(
        self,
        worker_id: str,
        max_tasks: int,
        topics: Sequence[TopicSubscription],
        use_priority: bool | None = None,
        long_polling_timeout_ms: int | None = None,
    ) -> list[LockedExternalTask]:
        """Claim up to ``max_tasks`` tasks and lease them to ``worker_id``."""
        ...

    @abstractmethod
    def complete(
        self,
        task_id: str,
        worker_id: str,
        variables: VariablesInput = None,
        local_variables: VariablesInput = None,
    ) -> None:
        """Complete a task and update process variables."""
        ...

    @abstractmethod
    def report_failure(
        self,
        task_id: str,
        worker_id: str,
        error_message: str,
        error_details: str | None = None,
        retries: int | None = None,
        retry_timeout_ms: int | None = None,
    ) -> None:
        """Report a technical failure. Retries of 0 create an incident."""
        ...

    @abstractmethod
    def report_business_error(
        self,
        task_id: str,
        worker_id: str,
        error_code: str,
        error_message: str | None = None,
        variables: VariablesInput = None,
    ) -> None:
        """Report a BPMN error identified by ``error_code``."""
        ...

    @abstractmethod
    def extend_lock(self, task_id: str, worker_id: str, new_duration_ms: int) -> None:
        """Set the task's lock to expire ``new_duration_ms`` from now."""
        ...


class HttpTaskService(TaskService):
    """TaskService backed by the engine's REST API.

    Attributes:
        options: Connection settings.

    Example:
        >>> service = HttpTaskService(ClientOptions(api_user="demo", api_password="demo"))
        >>> service.extend_lock("task-1", "worker-1", 10_000)
        >>> service.close()
    """

    def __init__(
        self,
        options: ClientOptions | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            options: Connection settings; defaults are used when omitted.
            transport: Optional httpx transport, e.g. for tests.
        """
        self.options = options or ClientOptions()
        auth = None
        if self.options.api_user is not None:
            auth = httpx.BasicAuth(self.options.api_user, self.options.api_password or "")

        self._client = httpx.Client(
            base_url=self.options.endpoint_url,
            timeout=self.options.timeout_seconds,
            headers={"User-Agent": self.options.user_agent},
            auth=auth,
            transport=transport,
        )

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def __enter__(self) -> HttpTaskService:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # =========================================================================
    # Operations
    # =========================================================================

    def fetch_and_lock(
        self,
        worker_id: str,
        max_tasks: int,
        topics: Sequence[TopicSubscription],
        use_priority: bool | None = None,
        long_polling_timeout_ms: int | None = None,
    ) -> list[LockedExternalTask]:
        request = FetchAndLockRequest(
            worker_id=worker_id,
            max_tasks=max_tasks,
            use_priority=use_priority,
            async_response_timeout=long_polling_timeout_ms,
            topics=list(topics),
        )
        # The engine holds the response for up to the long-poll timeout
        long_poll_seconds = (long_polling_timeout_ms or 0) / 1000.0
        response = self._post(
            "/external-task/fetchAndLock",
            request.to_wire(),
            extra_timeout=long_poll_seconds,
        )

        try:
            payload = response.json()
            return [LockedExternalTask.model_validate(item) for item in payload]
        except (ValueError, TypeError) as e:
            raise TransportError(
                f"failed to decode fetch-and-lock response: {e}",
                status_code=response.status_code,
            ) from e

    def complete(
        self,
        task_id: str,
        worker_id: str,
        variables: VariablesInput = None,
        local_variables: VariablesInput = None,
    ) -> None:
        request = CompleteRequest(
            worker_id=worker_id,
            variables=_as_variables(variables),
            local_variables=_as_variables(local_variables),
        )
        self._post(f"/external-task/{task_id}/complete", request.to_wire())

    def report_failure(
        self,
        task_id: str,
        worker_id: str,
        error_message: str,
        error_details: str | None = None,
        retries: int | None = None,
        retry_timeout_ms: int | None = None,
    ) -> None:
        request = FailureRequest(
            worker_id=worker_id,
            error_message=error_message,
            error_details=error_details,
            retries=retries,
            retry_timeout=retry_timeout_ms,
        )
        self._post(f"/external-task/{task_id}/failure", request.to_wire())

    def report_business_error(
        self,
        task_id: str,
        worker_id: str,
        error_code: str,
        error_message: str | None = None,
        variables: VariablesInput = None,
    ) -> None:
        request = BpmnErrorRequest(
            worker_id=worker_id,
            error_code=error_code,
            error_message=error_message,
            variables=_as_variables(variables) if variables is not None else None,
        )
        self._post(f"/external-task/{task_id}/bpmnError", request.to_wire())

    def extend_lock(self, task_id: str, worker_id: str, new_duration_ms: int) -> None:
        request = ExtendLockRequest(worker_id=worker_id, new_duration=new_duration_ms)
        self._post(f"/external-task/{task_id}/extendLock", request.to_wire())

    # =========================================================================
    # Transport
    # =========================================================================

    def _post(
        self,
        path: str,
        body: dict[str, Any],
        *,
        extra_timeout: float = 0.0,
    ) -> httpx.Response:
        log_debug("POST request", {"path": path})
        try:
            response = self._client.post(
                path,
                json=body,
                timeout=self.options.timeout_seconds + extra_timeout,
            )
        except httpx.RequestError as e:
            raise TransportError(f"request to {path} failed: {e}") from e

        _check_response(response)
        return response


def _check_response(response: httpx.Response) -> None:
    """Map an error response to the task service error taxonomy."""
    status_code = response.status_code
    if 200 <= status_code < 300:
        return

    if status_code == 404:
        raise NotFoundError("Not found", status_code=status_code, error_type="NotFound")

    content_type = response.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            body = response.json()
        except ValueError as e:
            raise TransportError(
                f"response error with status code {status_code}: "
                f"failed to decode error response: {e}",
                status_code=status_code,
            ) from e

        if isinstance(body, dict):
            message = body.get("message") or f"response error with status code {status_code}"
            raise EngineError(
                str(message),
                status_code=status_code,
                error_type=body.get("type"),
            )

    message = f"response error with status code {status_code}: {response.text}"
    if status_code >= 500:
        raise TransportError(message, status_code=status_code)
    raise EngineError(message, status_code=status_code)


def _as_variables(values: VariablesInput) -> Variables:
    if isinstance(values, Variables):
        return values
    return create_variables(values)


__all__ = ["TaskService", "HttpTaskService", "VariablesInput"]
