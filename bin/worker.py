#!/usr/bin/env python3
"""External Task Worker Process.

Runs a Worker against the engine's REST API until SIGINT or SIGTERM.

Handlers are bound to topics with the CAMUNDA_HANDLERS environment variable
(or ``--handler`` arguments), as comma-separated ``topic=module:function``
entries:

    CAMUNDA_HANDLERS="invoice-create=billing.handlers:create_invoice" \\
    CAMUNDA_ENDPOINT_URL=http://camunda:8080/engine-rest \\
    ./bin/worker.py

Connection and worker options come from CAMUNDA_CONFIG_PATH and the
CAMUNDA_* environment variables, see ``camunda_worker.config``.
"""

from __future__ import annotations

import importlib
import logging
import os
import signal
import sys
from typing import Any

import click

# Add the python source directory to the path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "python"))

from camunda_worker import (
    ConfigurationError,
    EventNames,
    HttpTaskService,
    Worker,
    __version__,
    load_options,
)
from camunda_worker.logging import TRACE
from camunda_worker.worker import Handler

# Get log level from environment
log_level = os.environ.get("CAMUNDA_LOG_LEVEL", "info").upper()
logging.basicConfig(
    level=TRACE if log_level == "TRACE" else getattr(logging, log_level, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S%z",
)
logger = logging.getLogger("camunda-worker")


def parse_handler_specs(specs: list[str]) -> dict[str, str]:
    """Parse ``topic=module:function`` entries into a topic -> target map.

    Raises:
        ConfigurationError: If an entry is malformed.
    """
    bindings: dict[str, str] = {}
    for raw in specs:
        for entry in raw.split(","):
            entry = entry.strip()
            if not entry:
                continue
            topic, sep, target = entry.partition("=")
            if not sep or not topic.strip() or ":" not in target:
                raise ConfigurationError(
                    f"invalid handler binding {entry!r}, expected topic=module:function"
                )
            bindings[topic.strip()] = target.strip()
    return bindings


def load_handler(target: str) -> Handler:
    """Import ``module:function`` and return the callable.

    Raises:
        ConfigurationError: If the module or attribute cannot be loaded.
    """
    module_name, _, attribute = target.partition(":")
    try:
        module = importlib.import_module(module_name)
        handler = getattr(module, attribute)
    except (ImportError, AttributeError) as e:
        raise ConfigurationError(f"cannot load handler {target}: {e}") from e

    if not callable(handler):
        raise ConfigurationError(f"handler {target} is not callable")
    return handler


def show_banner(worker: Worker, endpoint_url: str, bindings: dict[str, str]) -> None:
    """Display startup banner."""
    logger.info("=" * 60)
    logger.info(f"Starting External Task Worker {__version__}")
    logger.info("=" * 60)
    logger.info(f"Python Version: {sys.version.split()[0]}")
    logger.info(f"Engine: {endpoint_url}")
    logger.info(f"Worker Id: {worker.worker_id}")
    logger.info(f"Max Tasks: {worker.options.max_tasks}")
    logger.info(f"Pool Size: {worker.options.max_parallel_tasks_per_handler}")
    logger.info("Handlers:")
    for topic, target in bindings.items():
        logger.info(f"  {topic} -> {target}")


@click.command(help="External task worker")
@click.option("--config", "config_path", default=None, help="YAML options file")
@click.option(
    "--handler",
    "handler_specs",
    multiple=True,
    help="topic=module:function binding, may be repeated",
)
def main(config_path: str | None, handler_specs: tuple[str, ...]) -> None:
    """Run the worker process."""
    raise SystemExit(run(config_path, list(handler_specs)))


def run(config_path: str | None, handler_specs: list[str]) -> int:
    """Run the worker until it is stopped and return the exit code."""
    handler_path = os.environ.get("CAMUNDA_HANDLER_PATH")
    if handler_path and os.path.isdir(handler_path) and handler_path not in sys.path:
        sys.path.insert(0, handler_path)
        logger.info(f"Added CAMUNDA_HANDLER_PATH to sys.path: {handler_path}")

    try:
        client_options, worker_options = load_options(config_path)
        specs = handler_specs or [os.environ.get("CAMUNDA_HANDLERS", "")]
        bindings = parse_handler_specs(specs)
        if not bindings:
            raise ConfigurationError("no handlers configured, set CAMUNDA_HANDLERS or --handler")
        handlers = {topic: load_handler(target) for topic, target in bindings.items()}
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 2

    service = HttpTaskService(client_options)
    worker = Worker(service, worker_options)

    def on_fetch_error(error: Exception, delay_units: int) -> None:
        logger.warning(f"Fetch failed ({type(error).__name__}), backing off {delay_units} units")

    worker.events.subscribe(EventNames.FETCH_ERROR, on_fetch_error)

    def handle_shutdown(signum: int, _frame: Any) -> None:
        """Handle shutdown signals."""
        sig_name = signal.Signals(signum).name
        logger.info(f"Received {sig_name} signal, initiating shutdown...")
        worker.stop()

    signal.signal(signal.SIGTERM, handle_shutdown)
    signal.signal(signal.SIGINT, handle_shutdown)

    show_banner(worker, client_options.endpoint_url, bindings)

    try:
        for topic, handler in handlers.items():
            worker.subscribe(topic, handler)
        logger.info("Worker ready and processing tasks")
        logger.info("=" * 60)

        # Wake up periodically so signal handlers run on the main thread
        while not worker.wait(timeout=1.0):
            pass
    except Exception as e:
        logger.fatal(f"Unexpected error: {type(e).__name__} - {e}")
        worker.stop()
        return 4
    finally:
        service.close()

    logger.info("External Task Worker terminated gracefully")
    return 0


if __name__ == "__main__":
    main()
