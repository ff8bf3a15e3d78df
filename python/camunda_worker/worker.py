"""Polling and dispatch engine for external tasks.

This module provides the Worker class. Each call to ``Worker.subscribe``
starts a Subscription: one fetch loop that claims batches of tasks for a set
of topics, and a fixed pool of worker loops that run the handler for each
claimed task.

Threading Model:
    - Fetch thread (one per subscription): long-polls the engine, hands
      fetched tasks to the worker loops, backs off after failures
    - Worker threads (``max_parallel_tasks_per_handler`` per subscription):
      build a TaskContext, run the handler, report its outcome
    - Lock extender threads: started on demand by handlers

Backoff:
    After ``n`` consecutive fetch failures the loop sleeps ``min(n, 60)``
    units (``backoff_unit_seconds`` each). One successful fetch resets the
    counter. The loop never gives up; tasks that keep failing end up as
    incidents on the engine instead.

Example:
    >>> from camunda_worker import HttpTaskService, Worker, WorkerOptions
    >>>
    >>> def create_invoice(context):
    ...     invoice = billing.create(context.variables.get_string("orderId"))
    ...     context.complete({"invoiceId": invoice.id})
    ...
    >>> worker = Worker(HttpTaskService(), WorkerOptions(max_parallel_tasks_per_handler=4))
    >>> worker.subscribe(["invoice-create"], create_invoice)
    >>> worker.wait()
"""

from __future__ import annotations

import queue
import threading
import time
import traceback
from collections.abc import Callable, Sequence
from typing import Any

from .client import TaskService
from .context import ExternalTaskContext, TaskContext
from .errors import BpmnError, TaskFailure
from .event_bridge import EventBridge, EventNames
from .logging import log_debug, log_error, log_info, log_warn
from .types import LockedExternalTask, TopicSubscription, WorkerOptions

# A handler reports the outcome through the context. Returning an exception
# instead reports it as a failure.
Handler = Callable[[TaskContext], Any]

TopicsInput = str | TopicSubscription | Sequence[str | TopicSubscription]


def backoff_units(consecutive_failures: int, max_units: int = 60) -> int:
    """Sleep length, in units, after ``consecutive_failures`` failed fetches."""
    return min(max(consecutive_failures, 0), max_units)


class Subscription:
    """One fetch loop and its pool of worker loops.

    Attributes:
        name: Name used for thread names and logs.
        topics: Topics fetched by this subscription.
    """

    def __init__(
        self,
        service: TaskService,
        options: WorkerOptions,
        topics: list[TopicSubscription],
        handler: Handler,
        events: EventBridge,
        name: str,
    ) -> None:
        self._service = service
        self._options = options
        self.topics = topics
        self._handler = handler
        self._events = events
        self.name = name

        self._queue: queue.Queue[LockedExternalTask | None] = queue.Queue()
        self._stop_event = threading.Event()
        self._fetch_thread: threading.Thread | None = None
        self._worker_threads: list[threading.Thread] = []
        self._consecutive_failures = 0

    @property
    def pool_size(self) -> int:
        return self._options.max_parallel_tasks_per_handler

    @property
    def consecutive_failures(self) -> int:
        """Failed fetches since the last successful one, capped at max_backoff_units."""
        return self._consecutive_failures

    @property
    def is_running(self) -> bool:
        return self._fetch_thread is not None and not self._stop_event.is_set()

    def start(self) -> None:
        """Start the worker loops and the fetch loop.

        Raises:
            RuntimeError: If the subscription was already started.
        """
        if self._fetch_thread is not None:
            raise RuntimeError(f"Subscription {self.name} already started")

        for i in range(self.pool_size):
            thread = threading.Thread(
                target=self._worker_loop,
                name=f"{self.name}-worker-{i + 1}",
                daemon=True,
            )
            thread.start()
            self._worker_threads.append(thread)

        self._fetch_thread = threading.Thread(
            target=self._fetch_loop,
            name=f"{self.name}-fetch",
            daemon=True,
        )
        self._fetch_thread.start()

        log_info(
            "Subscription started",
            {
                "subscription": self.name,
                "topics": ",".join(t.topic_name for t in self.topics),
                "pool_size": self.pool_size,
            },
        )

    def stop(self, timeout: float = 5.0) -> None:
        """Stop fetching and let the worker loops finish.

        In-flight handlers are not interrupted; tasks fetched but not yet
        started are abandoned and become available again when their lease
        expires. Safe to call more than once.

        Args:
            timeout: Maximum seconds to wait for each thread.
        """
        if self._stop_event.is_set():
            return

        log_info("Stopping subscription", {"subscription": self.name})
        self._stop_event.set()

        # The fetch loop releases the worker loops once its last hand-off is done
        if self._fetch_thread is not None:
            self._fetch_thread.join(timeout=timeout)
        for thread in self._worker_threads:
            thread.join(timeout=timeout)

        log_info("Subscription stopped", {"subscription": self.name})

    # =========================================================================
    # Fetch loop
    # =========================================================================

    def _fetch_loop(self) -> None:
        while not self._stop_event.is_set():
            if self.fetch_once():
                continue

            delay = self._consecutive_failures * self._options.backoff_unit_seconds
            # Returns early when the subscription is stopped
            self._stop_event.wait(delay)

        for _ in self._worker_threads:
            self._queue.put(None)
        log_debug("Fetch loop terminated", {"subscription": self.name})

    def fetch_once(self) -> bool:
        """Run one fetch-and-lock cycle and hand the tasks to the worker loops.

        Blocks until every fetched task has been picked up by a worker loop,
        so at most one batch is waiting for a free worker at any time.

        Returns:
            True if the fetch succeeded, False if it failed.
        """
        try:
            tasks = self._service.fetch_and_lock(
                worker_id=self._options.worker_id,
                max_tasks=self._options.max_tasks,
                topics=self.topics,
                use_priority=self._options.use_priority,
                long_polling_timeout_ms=self._options.long_polling_timeout_ms,
            )
        except Exception as e:
            self._consecutive_failures = backoff_units(
                self._consecutive_failures + 1,
                self._options.max_backoff_units,
            )
            log_error(
                f"Failed to fetch tasks, sleeping {self._consecutive_failures} units: {e}",
                {
                    "subscription": self.name,
                    "worker_id": self._options.worker_id,
                    "topics": ",".join(t.topic_name for t in self.topics),
                    "max_tasks": self._options.max_tasks,
                    "error_type": type(e).__name__,
                },
            )
            self._events.publish(EventNames.FETCH_ERROR, e, self._consecutive_failures)
            return False

        self._consecutive_failures = 0
        if tasks:
            log_debug(
                "Fetched tasks",
                {"subscription": self.name, "count": len(tasks)},
            )

        for task in tasks:
            self._queue.put(task)
        self._queue.join()
        return True

    # =========================================================================
    # Worker loops
    # =========================================================================

    def _worker_loop(self) -> None:
        while True:
            task = self._queue.get()
            # Hand-off is complete once a loop has taken the task
            self._queue.task_done()

            if task is None:
                break
            if self._stop_event.is_set():
                log_warn(
                    "Subscription stopping, abandoning task to lease expiry",
                    {"subscription": self.name, "task_id": task.id},
                )
                continue

            self.execute(task)

        log_debug("Worker loop terminated", {"subscription": self.name})

    def execute(self, task: LockedExternalTask) -> None:
        """Run the handler for one task inside the containment boundary.

        Nothing raised by the handler escapes this method:
            - BpmnError is reported as a business error
            - TaskFailure is reported as a failure with its retry settings
            - any other exception is reported as a failure whose details
              hold the stack trace
            - a returned exception is reported as a failure with its message
        """
        context = ExternalTaskContext(
            task,
            self._service,
            self._options,
            on_lock_extension_failed=self._lock_extension_failed,
        )
        fields = {
            "subscription": self.name,
            "task_id": task.id,
            "topic": task.topic_name,
        }
        started = time.monotonic()
        self._events.publish(EventNames.TASK_RECEIVED, task)

        try:
            result = self._handler(context)
        except BpmnError as e:
            self._report(
                context,
                lambda: context.report_business_error(e.error_code, e.message, e.variables),
            )
        except TaskFailure as e:
            self._report(
                context,
                lambda: context.report_failure(
                    e.message,
                    error_details=e.details,
                    retries=e.retries,
                    retry_timeout_ms=e.retry_timeout_ms,
                ),
            )
        except Exception as e:
            summary = f"fatal error in task: {type(e).__name__}: {e}"
            details = f"{summary}\nStack trace:\n{traceback.format_exc()}"
            log_error(summary, fields)
            self._events.publish(EventNames.HANDLER_ERROR, task, e)
            self._report(context, lambda: context.report_failure(summary, error_details=details))
        else:
            if isinstance(result, BaseException):
                message = str(result) or type(result).__name__
                log_error(f"task error: {message}", fields)
                self._events.publish(EventNames.HANDLER_ERROR, task, result)
                self._report(context, lambda: context.report_failure(message))
            elif not context.outcome_reported:
                log_warn(
                    "Handler returned without reporting an outcome; task stays locked until its lease expires",
                    fields,
                )
        finally:
            context.stop_lock_extender()
            elapsed_ms = int((time.monotonic() - started) * 1000)
            self._events.publish(EventNames.TASK_HANDLED, task, elapsed_ms)

    def _report(self, context: ExternalTaskContext, send: Callable[[], None]) -> None:
        """Send an outcome on the handler's behalf; failures are only logged."""
        if context.outcome_reported:
            log_warn(
                "Handler already reported an outcome, not reporting another",
                {"task_id": context.task_id, "outcome": context.outcome},
            )
            return

        try:
            send()
        except Exception as e:
            log_error(
                f"Error sending task outcome: {e}",
                {"task_id": context.task_id, "error_type": type(e).__name__},
            )

    def _lock_extension_failed(self, task_id: str, error: Exception) -> None:
        self._events.publish(EventNames.LOCK_EXTENSION_FAILED, task_id, error)


class Worker:
    """External task worker.

    Owns the options, the task service and one Subscription per handler.
    Subscriptions run independently; a failure in one never affects another.

    Attributes:
        options: Immutable worker configuration.
        events: Lifecycle event bridge.
    """

    def __init__(
        self,
        service: TaskService,
        options: WorkerOptions | None = None,
        events: EventBridge | None = None,
    ) -> None:
        """Initialize the Worker.

        Args:
            service: Task service used for all engine calls.
            options: Worker options; defaults (with a generated worker id)
                when omitted.
            events: Event bridge to publish to; a new one when omitted.
        """
        self._service = service
        self.options = options or WorkerOptions()
        self.events = events or EventBridge()
        self._subscriptions: list[Subscription] = []
        self._stopped = threading.Event()
        self._lock = threading.Lock()

    @property
    def worker_id(self) -> str:
        return self.options.worker_id

    @property
    def subscriptions(self) -> list[Subscription]:
        return list(self._subscriptions)

    def subscribe(
        self,
        topics: TopicsInput,
        handler: Handler,
        name: str | None = None,
    ) -> Subscription:
        """Register a handler for one or more topics and start fetching.

        Topics given as plain names, or without a lock duration, use the
        worker's ``lock_duration_ms``.

        Args:
            topics: Topic name(s) or TopicSubscription(s).
            handler: Callable receiving a TaskContext.
            name: Optional subscription name for logs and thread names.

        Returns:
            The started Subscription.

        Raises:
            ValueError: If no topic is given.
            RuntimeError: If the worker has been stopped.
        """
        resolved = self._resolve_topics(topics)
        if not resolved:
            raise ValueError("at least one topic is required")

        with self._lock:
            if self._stopped.is_set():
                raise RuntimeError("Worker has been stopped")

            subscription = Subscription(
                service=self._service,
                options=self.options,
                topics=resolved,
                handler=handler,
                events=self.events,
                name=name or f"{self.worker_id}-{'+'.join(t.topic_name for t in resolved)}",
            )
            self._subscriptions.append(subscription)

        subscription.start()
        return subscription

    def stop(self, timeout: float = 5.0) -> None:
        """Stop every subscription. Safe to call more than once."""
        with self._lock:
            if self._stopped.is_set():
                return
            self._stopped.set()
            subscriptions = list(self._subscriptions)

        log_info("Stopping worker", {"worker_id": self.worker_id})
        for subscription in subscriptions:
            subscription.stop(timeout=timeout)
        log_info("Worker stopped", {"worker_id": self.worker_id})

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the worker is stopped.

        Returns:
            True if the worker was stopped, False on timeout.
        """
        return self._stopped.wait(timeout)

    @property
    def is_running(self) -> bool:
        return not self._stopped.is_set()

    def _resolve_topics(self, topics: TopicsInput) -> list[TopicSubscription]:
        if isinstance(topics, (str, TopicSubscription)):
            topics = [topics]

        resolved = []
        for topic in topics:
            if isinstance(topic, str):
                topic = TopicSubscription(topic_name=topic)
            if topic.lock_duration is None or topic.lock_duration <= 0:
                topic = topic.model_copy(update={"lock_duration": self.options.lock_duration_ms})
            resolved.append(topic)
        return resolved


__all__ = ["Worker", "Subscription", "Handler", "backoff_units"]
