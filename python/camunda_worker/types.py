"""Pydantic models for the camunda_worker package.

This module provides type-safe models for the engine's external task
protocol and for worker configuration, using Pydantic v2 for validation
and serialization. Wire models use camelCase aliases; Python code uses the
snake_case field names.
"""

from __future__ import annotations

import random
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .variables import Variable, Variables

__version__ = "0.3.0"

DEFAULT_ENDPOINT_URL = "http://localhost:8080/engine-rest"
DEFAULT_USER_AGENT = f"CamundaClientPy/{__version__}"
DEFAULT_TIMEOUT_SECONDS = 60.0

# Engine date-time format, e.g. 2013-01-23T14:42:45.000+0200
ENGINE_DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%S.%f%z"

# The engine refuses long-poll timeouts above 30 minutes
MAX_LONG_POLLING_TIMEOUT_MS = 1_800_000


def parse_engine_datetime(value: str) -> datetime:
    """Parse an engine timestamp.

    Accepts the engine's ``yyyy-MM-dd'T'HH:mm:ss.SSSZ`` format and falls back
    to ISO 8601.
    """
    try:
        return datetime.strptime(value, ENGINE_DATETIME_FORMAT)
    except ValueError:
        return datetime.fromisoformat(value)


def format_engine_datetime(value: datetime | None) -> str:
    """Format a datetime for the engine; returns an empty string for None."""
    if value is None:
        return ""
    formatted = value.strftime(ENGINE_DATETIME_FORMAT)
    # strftime renders microseconds; the engine expects milliseconds
    head, _, tail = formatted.partition(".")
    return f"{head}.{tail[:3]}{tail[6:]}"


class _WireModel(BaseModel):
    """Base for models exchanged with the engine."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """Dump with camelCase keys, omitting unset optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class LogContext(BaseModel):
    """Context fields for structured logging.

    Example:
        >>> context = LogContext(task_id="abc-123", topic="invoice-create")
        >>> log_info("Task handled", context)
    """

    worker_id: str | None = Field(default=None, description="Worker identity.")
    task_id: str | None = Field(default=None, description="External task id.")
    topic: str | None = Field(default=None, description="Topic name.")
    process_instance_id: str | None = Field(
        default=None,
        description="Process instance the task belongs to.",
    )
    operation: str | None = Field(default=None, description="Operation being performed.")


# =============================================================================
# Fetch and lock
# =============================================================================


class TopicSubscription(_WireModel):
    """One topic entry of a fetch-and-lock request.

    Example:
        >>> topic = TopicSubscription(topic_name="invoice-create", lock_duration=30_000)
    """

    topic_name: str = Field(description="The topic's name.")
    lock_duration: int | None = Field(
        default=None,
        ge=0,
        description="Lock duration in milliseconds. Defaults to the worker's lock duration.",
    )
    variables: list[str] | None = Field(
        default=None,
        description="Variable names to fetch. All variables are fetched when omitted.",
    )
    local_variables: bool | None = Field(
        default=None,
        description="Only fetch local variables.",
    )
    business_key: str | None = None
    process_definition_id: str | None = None
    process_definition_id_in: list[str] | None = None
    process_definition_key: str | None = None
    process_definition_key_in: list[str] | None = None
    without_tenant_id: bool | None = None
    tenant_id_in: list[str] | None = None
    process_variables: dict[str, Any] | None = Field(
        default=None,
        description="Process variable values to filter tasks by.",
    )
    deserialize_values: bool | None = Field(
        default=None,
        description="Deserialize serializable values on the engine side.",
    )

    @field_validator("process_variables", mode="before")
    @classmethod
    def _encode_process_variables(cls, value: Any) -> Any:
        if value is None:
            return None
        return {
            name: item.to_wire() if isinstance(item, Variable) else Variable.from_native(item).to_wire()
            for name, item in value.items()
        }


class FetchAndLockRequest(_WireModel):
    """Fetch-and-lock request body."""

    worker_id: str
    max_tasks: int = Field(ge=1)
    use_priority: bool | None = None
    async_response_timeout: int | None = Field(
        default=None,
        ge=0,
        le=MAX_LONG_POLLING_TIMEOUT_MS,
        description="Long polling timeout in milliseconds.",
    )
    topics: list[TopicSubscription] = Field(default_factory=list)


class LockedExternalTask(_WireModel):
    """A task leased to this worker by fetch-and-lock.

    This is a snapshot; the engine remains the owner of the task state.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str
    topic_name: str = ""
    worker_id: str = ""
    activity_id: str | None = None
    activity_instance_id: str | None = None
    error_message: str | None = None
    error_details: str | None = None
    execution_id: str | None = None
    lock_expiration_time: datetime | None = None
    process_definition_id: str | None = None
    process_definition_key: str | None = None
    process_instance_id: str | None = None
    tenant_id: str | None = None
    retries: int | None = None
    suspended: bool = False
    priority: int = 0
    business_key: str | None = None
    variables: Variables = Field(default_factory=Variables)

    @field_validator("lock_expiration_time", mode="before")
    @classmethod
    def _parse_lock_expiration(cls, value: Any) -> Any:
        if isinstance(value, str):
            if not value:
                return None
            return parse_engine_datetime(value)
        return value


# =============================================================================
# Outcome requests
# =============================================================================


class CompleteRequest(_WireModel):
    worker_id: str
    variables: Variables = Field(default_factory=Variables)
    local_variables: Variables = Field(default_factory=Variables)


class FailureRequest(_WireModel):
    """Failure report body.

    Retries of 0 create an incident on the engine.
    """

    worker_id: str
    error_message: str | None = None
    error_details: str | None = None
    retries: int | None = Field(default=None, ge=0)
    retry_timeout: int | None = Field(
        default=None,
        ge=0,
        description="Milliseconds before the task can be fetched again.",
    )


class BpmnErrorRequest(_WireModel):
    worker_id: str
    error_code: str
    error_message: str | None = None
    variables: Variables | None = None


class ExtendLockRequest(_WireModel):
    worker_id: str
    new_duration: int = Field(ge=0, description="New lock duration in milliseconds, from now.")


# =============================================================================
# Configuration
# =============================================================================


class ClientOptions(BaseModel):
    """Connection settings for the engine's REST API.

    Example:
        >>> options = ClientOptions(endpoint_url="http://camunda:8080/engine-rest")
    """

    endpoint_url: str = Field(default=DEFAULT_ENDPOINT_URL)
    user_agent: str = Field(default=DEFAULT_USER_AGENT)
    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    api_user: str | None = None
    api_password: str | None = None

    model_config = ConfigDict(extra="forbid", frozen=True)


def _generate_worker_id() -> str:
    return f"worker-{random.randint(0, 2**63 - 1)}"  # noqa: S311


class WorkerOptions(BaseModel):
    """Immutable configuration of one Worker.

    The worker id is generated once, when the options are built, if not
    given.

    Example:
        >>> options = WorkerOptions(max_tasks=5, max_parallel_tasks_per_handler=3)
        >>> options.worker_id.startswith("worker-")
        True
    """

    worker_id: str = Field(
        default_factory=_generate_worker_id,
        min_length=1,
        description="Worker identity used for every request.",
    )
    lock_duration_ms: int = Field(
        default=30_000,
        gt=0,
        description="Lock duration for topics that do not set their own.",
    )
    max_tasks: int = Field(default=10, ge=1, description="Maximum tasks per fetch.")
    max_parallel_tasks_per_handler: int = Field(
        default=1,
        description="Worker loops per subscription. Values below 1 are clamped to 1.",
    )
    use_priority: bool | None = None
    long_polling_timeout_ms: int = Field(
        default=20_000,
        ge=0,
        le=MAX_LONG_POLLING_TIMEOUT_MS,
    )
    lock_extension_ms: int = Field(
        default=10_000,
        gt=0,
        description="Lock duration requested on every renewal.",
    )
    lock_renewal_interval_ms: int = Field(
        default=9_000,
        gt=0,
        description="Time between renewals; must be shorter than lock_extension_ms.",
    )
    backoff_unit_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Length of one backoff unit after a failed fetch.",
    )
    max_backoff_units: int = Field(default=60, ge=1)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @field_validator("max_parallel_tasks_per_handler")
    @classmethod
    def _clamp_pool_size(cls, value: int) -> int:
        return max(value, 1)

    @model_validator(mode="after")
    def _check_renewal_interval(self) -> WorkerOptions:
        if self.lock_renewal_interval_ms >= self.lock_extension_ms:
            raise ValueError(
                "lock_renewal_interval_ms must be shorter than lock_extension_ms"
            )
        return self


__all__ = [
    "__version__",
    "DEFAULT_ENDPOINT_URL",
    "DEFAULT_USER_AGENT",
    "ENGINE_DATETIME_FORMAT",
    "MAX_LONG_POLLING_TIMEOUT_MS",
    "parse_engine_datetime",
    "format_engine_datetime",
    "LogContext",
    "TopicSubscription",
    "FetchAndLockRequest",
    "LockedExternalTask",
    "CompleteRequest",
    "FailureRequest",
    "BpmnErrorRequest",
    "ExtendLockRequest",
    "ClientOptions",
    "WorkerOptions",
]
