"""Background lock renewal for long running handlers.

This module provides the LockExtender class that keeps a task's lease alive
while its handler is still running.

Example:
    >>> extender = LockExtender(
    ...     service=service,
    ...     task_id=task.id,
    ...     worker_id="worker-1",
    ...     extension_ms=10_000,
    ...     interval_ms=9_000,
    ... )
    >>> extender.start()
    >>> # ... long running work ...
    >>> extender.stop()
"""

from __future__ import annotations

import threading
from collections.abc import Callable

from .client import TaskService
from .logging import log_debug, log_warn

# Called with the renewal error when the extender gives up
FailureCallback = Callable[[Exception], None]


class LockExtender:
    """Periodically extends the lock of one task.

    Renewal is best effort. When an extension fails (the lease was lost, the
    task no longer exists, the engine is unreachable) the failure is logged
    and the loop ends; the running handler is not interrupted and learns
    about the lost lease when it reports its outcome.

    Threading Model:
        - Handler thread: calls start() and stop()
        - Extender thread: waits on the stop event between renewals, so
          stop() takes effect without waiting for the next tick

    Attributes:
        extension_ms: Lock duration requested on every renewal.
        interval_ms: Time between renewals, shorter than extension_ms.
    """

    def __init__(
        self,
        service: TaskService,
        task_id: str,
        worker_id: str,
        extension_ms: int,
        interval_ms: int,
        on_failure: FailureCallback | None = None,
    ) -> None:
        """Initialize the LockExtender.

        Args:
            service: Task service used for renewals.
            task_id: Id of the leased task.
            worker_id: Worker owning the lease.
            extension_ms: Lock duration requested on every renewal.
            interval_ms: Milliseconds between renewals.
            on_failure: Optional callback invoked with the renewal error.

        Raises:
            ValueError: If interval_ms is not shorter than extension_ms.
        """
        if interval_ms >= extension_ms:
            raise ValueError("interval_ms must be shorter than extension_ms")

        self._service = service
        self._task_id = task_id
        self._worker_id = worker_id
        self.extension_ms = extension_ms
        self.interval_ms = interval_ms
        self._on_failure = on_failure

        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._stopped = False
        self._renewals = 0

    def start(self) -> None:
        """Start the renewal loop.

        Raises:
            RuntimeError: If the extender was already started or stopped.
        """
        with self._lock:
            if self._thread is not None or self._stopped:
                raise RuntimeError("LockExtender cannot be started twice")

            self._thread = threading.Thread(
                target=self._run,
                name=f"lock-extender-{self._task_id}",
                daemon=True,
            )
            self._thread.start()

        log_debug(
            "Lock extender started",
            {"task_id": self._task_id, "interval_ms": self.interval_ms},
        )

    def stop(self) -> bool:
        """Signal the renewal loop to finish.

        Safe to call when the extender was never started or was already
        stopped; only the first call sends the stop signal.

        Returns:
            True if this call sent the stop signal.
        """
        with self._lock:
            if self._stopped:
                return False
            self._stopped = True

        self._stop_event.set()
        log_debug("Lock extender stopped", {"task_id": self._task_id})
        return True

    def join(self, timeout: float | None = None) -> None:
        """Wait for the renewal thread to exit."""
        if self._thread is not None:
            self._thread.join(timeout=timeout)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def renewals(self) -> int:
        """Number of successful renewals."""
        return self._renewals

    def _run(self) -> None:
        interval = self.interval_ms / 1000.0

        # wait() returns True as soon as stop() is called
        while not self._stop_event.wait(interval):
            try:
                self._service.extend_lock(self._task_id, self._worker_id, self.extension_ms)
            except Exception as e:
                log_warn(
                    f"Lock extension failed, stopping extender: {type(e).__name__}: {e}",
                    {"task_id": self._task_id, "worker_id": self._worker_id},
                )
                if self._on_failure is not None:
                    self._on_failure(e)
                return

            self._renewals += 1
            log_debug(
                "Lock extended",
                {"task_id": self._task_id, "new_duration_ms": self.extension_ms},
            )

        log_debug(
            "Lock extender finished",
            {"task_id": self._task_id, "renewals": self._renewals},
        )


__all__ = ["LockExtender"]
