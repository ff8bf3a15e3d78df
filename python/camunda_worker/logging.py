"""Structured logging for the camunda_worker package.

This module provides structured logging functions on top of the standard
``logging`` module. Fields are rendered as ``key=value`` pairs after the
message and are also attached to the record as ``record.fields``.

Example:
    >>> from camunda_worker import log_info, log_error
    >>>
    >>> log_info("Task handled", {
    ...     "task_id": "abc-123",
    ...     "topic": "invoice-create"
    ... })
    >>>
    >>> try:
    ...     process()
    ... except Exception as e:
    ...     log_error(f"Processing failed: {e}", {
    ...         "task_id": "abc-123",
    ...         "error_type": type(e).__name__
    ...     })
"""

from __future__ import annotations

import logging
from typing import Any

from .types import LogContext

LOGGER_NAME = "camunda_worker"

# Below DEBUG; disabled unless explicitly enabled
TRACE = 5
logging.addLevelName(TRACE, "TRACE")

_logger = logging.getLogger(LOGGER_NAME)


def log_error(message: str, fields: dict[str, Any] | LogContext | None = None) -> None:
    """Log an ERROR level message with structured fields.

    Use this for failures that lose work or require intervention.

    Args:
        message: The log message.
        fields: Optional structured fields for context. Can be a dict
                or a LogContext instance.
    """
    _log(logging.ERROR, message, fields)


def log_warn(message: str, fields: dict[str, Any] | LogContext | None = None) -> None:
    """Log a WARN level message with structured fields.

    Use this for degraded operation or retryable failures.
    """
    _log(logging.WARNING, message, fields)


def log_info(message: str, fields: dict[str, Any] | LogContext | None = None) -> None:
    """Log an INFO level message with structured fields.

    Use this for lifecycle events and state transitions.
    """
    _log(logging.INFO, message, fields)


def log_debug(message: str, fields: dict[str, Any] | LogContext | None = None) -> None:
    """Log a DEBUG level message with structured fields."""
    _log(logging.DEBUG, message, fields)


def log_trace(message: str, fields: dict[str, Any] | LogContext | None = None) -> None:
    """Log a TRACE level message with structured fields.

    Use this for very verbose logging, like per-poll diagnostics.
    """
    _log(TRACE, message, fields)


def _log(level: int, message: str, fields: dict[str, Any] | LogContext | None) -> None:
    if not _logger.isEnabledFor(level):
        return

    fields_dict = _normalize_fields(fields)
    if fields_dict:
        rendered = " ".join(f"{k}={v}" for k, v in fields_dict.items())
        _logger.log(level, "%s %s", message, rendered, extra={"fields": fields_dict})
    else:
        _logger.log(level, "%s", message, extra={"fields": {}})


def _normalize_fields(
    fields: dict[str, Any] | LogContext | None,
) -> dict[str, str] | None:
    """Normalize fields to a dict of strings.

    Args:
        fields: Input fields as dict, LogContext, or None.

    Returns:
        Dict with string values, or None if no fields.
    """
    if fields is None:
        return None

    if isinstance(fields, LogContext):
        # Convert LogContext to dict, excluding None values
        return {k: str(v) for k, v in fields.model_dump().items() if v is not None}

    return {k: str(v) for k, v in fields.items()}


__all__ = [
    "LOGGER_NAME",
    "TRACE",
    "log_error",
    "log_warn",
    "log_info",
    "log_debug",
    "log_trace",
]
