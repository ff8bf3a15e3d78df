"""In-process event bridge for worker lifecycle events.

This module provides the EventBridge class that wraps pyee's EventEmitter
so applications can observe what a Worker is doing (metrics, auditing,
alerting) without touching the dispatch code.

Each Worker owns its own bridge; there is no process-wide instance.

Example:
    >>> worker = Worker(service, WorkerOptions())
    >>>
    >>> def on_handler_error(task, error):
    ...     print(f"Task {task.id} failed: {error}")
    ...
    >>> worker.events.subscribe(EventNames.HANDLER_ERROR, on_handler_error)
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pyee.base import EventEmitter

from .logging import log_debug, log_error


class EventNames:
    """Constants for event names published by a Worker.

    Attributes:
        TASK_RECEIVED: A fetched task was handed to a worker loop.
        TASK_HANDLED: The handler for a task returned (any outcome).
        HANDLER_ERROR: A handler faulted or returned an error.
        FETCH_ERROR: A fetch-and-lock call failed; the loop backs off.
        LOCK_EXTENSION_FAILED: A lock extender gave up renewing a lease.
    """

    TASK_RECEIVED = "task.received"
    TASK_HANDLED = "task.handled"
    HANDLER_ERROR = "handler.error"
    FETCH_ERROR = "fetch.error"
    LOCK_EXTENSION_FAILED = "lock.extension_failed"


class EventBridge:
    """Pub/sub of worker lifecycle events.

    Events:
        task.received: (LockedExternalTask)
        task.handled: (LockedExternalTask, elapsed_ms: int)
        handler.error: (LockedExternalTask, Exception)
        fetch.error: (Exception, delay_units: int)
        lock.extension_failed: (task_id: str, Exception)

    Listener errors are logged and never reach the publisher, so a broken
    listener cannot stop a worker loop.
    """

    def __init__(self) -> None:
        self._emitter = EventEmitter()
        self._event_schema: dict[str, str] = {
            EventNames.TASK_RECEIVED: "LockedExternalTask",
            EventNames.TASK_HANDLED: "tuple[LockedExternalTask, int]",
            EventNames.HANDLER_ERROR: "tuple[LockedExternalTask, Exception]",
            EventNames.FETCH_ERROR: "tuple[Exception, int]",
            EventNames.LOCK_EXTENSION_FAILED: "tuple[str, Exception]",
        }

    def subscribe(self, event: str, handler: Callable[..., Any]) -> None:
        """Subscribe to an event.

        Args:
            event: Event name to subscribe to.
            handler: Callback invoked with the event's arguments.
        """
        self._emitter.on(event, handler)
        handler_name = getattr(handler, "__name__", str(handler))
        log_debug(f"Subscribed to {event}: {handler_name}")

    def unsubscribe(self, event: str, handler: Callable[..., Any]) -> None:
        """Unsubscribe from an event."""
        self._emitter.remove_listener(event, handler)

    def publish(self, event: str, *args: Any) -> None:
        """Publish an event to all subscribers.

        Listeners run synchronously on the publishing thread.
        """
        for listener in self._emitter.listeners(event):
            try:
                listener(*args)
            except Exception as e:
                log_error(f"Event listener for {event} failed: {e}")

    def listener_count(self, event: str) -> int:
        return len(self._emitter.listeners(event))

    def clear(self) -> None:
        """Remove all listeners."""
        self._emitter.remove_all_listeners()

    @property
    def event_schema(self) -> dict[str, str]:
        """Mapping of event names to their payload description."""
        return self._event_schema.copy()


__all__ = ["EventBridge", "EventNames"]
