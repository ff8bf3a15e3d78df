"""Option loading from a YAML file and the environment.

Options are resolved in this order, later sources winning:
    1. Model defaults (see ClientOptions and WorkerOptions)
    2. The ``client:`` and ``worker:`` sections of a YAML file, taken from
       the ``path`` argument or the CAMUNDA_CONFIG_PATH environment variable
    3. CAMUNDA_* environment variables

Example file::

    client:
      endpoint_url: http://camunda:8080/engine-rest
      api_user: demo
      api_password: demo
    worker:
      max_tasks: 5
      max_parallel_tasks_per_handler: 4
      lock_duration_ms: 60000
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .exceptions import ConfigurationError
from .logging import log_debug
from .types import ClientOptions, WorkerOptions

CONFIG_PATH_ENV = "CAMUNDA_CONFIG_PATH"

CLIENT_ENV_VARS: dict[str, str] = {
    "CAMUNDA_ENDPOINT_URL": "endpoint_url",
    "CAMUNDA_USER_AGENT": "user_agent",
    "CAMUNDA_TIMEOUT_SECONDS": "timeout_seconds",
    "CAMUNDA_API_USER": "api_user",
    "CAMUNDA_API_PASSWORD": "api_password",
}

WORKER_ENV_VARS: dict[str, str] = {
    "CAMUNDA_WORKER_ID": "worker_id",
    "CAMUNDA_LOCK_DURATION_MS": "lock_duration_ms",
    "CAMUNDA_MAX_TASKS": "max_tasks",
    "CAMUNDA_MAX_PARALLEL_TASKS": "max_parallel_tasks_per_handler",
    "CAMUNDA_USE_PRIORITY": "use_priority",
    "CAMUNDA_LONG_POLLING_TIMEOUT_MS": "long_polling_timeout_ms",
    "CAMUNDA_LOCK_EXTENSION_MS": "lock_extension_ms",
    "CAMUNDA_LOCK_RENEWAL_INTERVAL_MS": "lock_renewal_interval_ms",
    "CAMUNDA_BACKOFF_UNIT_SECONDS": "backoff_unit_seconds",
    "CAMUNDA_MAX_BACKOFF_UNITS": "max_backoff_units",
}


def load_options(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> tuple[ClientOptions, WorkerOptions]:
    """Load client and worker options.

    Args:
        path: Optional YAML file. Falls back to CAMUNDA_CONFIG_PATH.
        environ: Environment mapping; ``os.environ`` when omitted.

    Returns:
        Tuple of (ClientOptions, WorkerOptions).

    Raises:
        ConfigurationError: If the file cannot be read or parsed, or a value
            fails validation.
    """
    if environ is None:
        environ = os.environ

    if path is None:
        path = environ.get(CONFIG_PATH_ENV) or None

    file_data = _read_file(Path(path)) if path is not None else {}

    client_values = {**_section(file_data, "client"), **_from_env(environ, CLIENT_ENV_VARS)}
    worker_values = {**_section(file_data, "worker"), **_from_env(environ, WORKER_ENV_VARS)}

    try:
        client_options = ClientOptions(**client_values)
        worker_options = WorkerOptions(**worker_values)
    except ValidationError as e:
        raise ConfigurationError(f"invalid options: {e}") from e

    log_debug(
        "Options loaded",
        {
            "source": str(path) if path is not None else "environment",
            "endpoint_url": client_options.endpoint_url,
            "worker_id": worker_options.worker_id,
        },
    )
    return client_options, worker_options


def _read_file(path: Path) -> dict[str, Any]:
    try:
        with path.open() as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"failed to read config file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"config file {path} must contain a mapping")
    return data


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"config section '{name}' must be a mapping")
    return section


def _from_env(environ: Mapping[str, str], names: dict[str, str]) -> dict[str, str]:
    # Values stay strings; pydantic coerces them to the field types
    return {field: environ[var] for var, field in names.items() if environ.get(var, "") != ""}


__all__ = ["load_options", "CONFIG_PATH_ENV", "CLIENT_ENV_VARS", "WORKER_ENV_VARS"]
