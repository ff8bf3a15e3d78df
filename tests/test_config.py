"""Option loading tests.

These tests verify:
- Defaults when no file or environment is given
- YAML file sections
- CAMUNDA_* environment overrides
- ConfigurationError on invalid input
"""

from __future__ import annotations

import pytest

from camunda_worker import ConfigurationError, load_options
from camunda_worker.types import DEFAULT_ENDPOINT_URL


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "worker.yaml"
    path.write_text(
        "client:\n"
        "  endpoint_url: http://camunda:8080/engine-rest\n"
        "  api_user: demo\n"
        "  api_password: secret\n"
        "worker:\n"
        "  worker_id: billing-1\n"
        "  max_tasks: 5\n"
        "  max_parallel_tasks_per_handler: 4\n"
    )
    return path


class TestLoadOptions:
    """Tests for load_options."""

    def test_defaults(self):
        """Test an empty environment yields default options."""
        client, worker = load_options(environ={})

        assert client.endpoint_url == DEFAULT_ENDPOINT_URL
        assert worker.max_tasks == 10
        assert worker.worker_id.startswith("worker-")

    def test_file(self, config_file):
        """Test options are read from the YAML sections."""
        client, worker = load_options(config_file, environ={})

        assert client.endpoint_url == "http://camunda:8080/engine-rest"
        assert client.api_user == "demo"
        assert client.api_password == "secret"
        assert worker.worker_id == "billing-1"
        assert worker.max_tasks == 5
        assert worker.max_parallel_tasks_per_handler == 4

    def test_path_from_environment(self, config_file):
        """Test CAMUNDA_CONFIG_PATH selects the file."""
        _, worker = load_options(environ={"CAMUNDA_CONFIG_PATH": str(config_file)})
        assert worker.worker_id == "billing-1"

    def test_environment_overrides_file(self, config_file):
        """Test environment variables win over the file."""
        environ = {
            "CAMUNDA_ENDPOINT_URL": "http://other:8080/engine-rest",
            "CAMUNDA_MAX_TASKS": "7",
            "CAMUNDA_USE_PRIORITY": "true",
            "CAMUNDA_TIMEOUT_SECONDS": "2.5",
        }
        client, worker = load_options(config_file, environ=environ)

        assert client.endpoint_url == "http://other:8080/engine-rest"
        assert client.timeout_seconds == 2.5
        assert worker.max_tasks == 7
        assert worker.use_priority is True
        assert worker.worker_id == "billing-1"

    def test_empty_environment_values_ignored(self):
        """Test empty variables do not override defaults."""
        _, worker = load_options(environ={"CAMUNDA_MAX_TASKS": ""})
        assert worker.max_tasks == 10

    def test_pool_size_clamped(self):
        """Test a zero pool size from the environment is clamped."""
        _, worker = load_options(environ={"CAMUNDA_MAX_PARALLEL_TASKS": "0"})
        assert worker.max_parallel_tasks_per_handler == 1

    def test_invalid_value(self):
        """Test a value that fails validation raises ConfigurationError."""
        with pytest.raises(ConfigurationError):
            load_options(environ={"CAMUNDA_MAX_TASKS": "many"})

    def test_unknown_key(self, tmp_path):
        """Test unknown keys in the file are rejected."""
        path = tmp_path / "worker.yaml"
        path.write_text("worker:\n  max_taks: 5\n")

        with pytest.raises(ConfigurationError):
            load_options(path, environ={})

    def test_missing_file(self, tmp_path):
        """Test a missing file raises ConfigurationError."""
        with pytest.raises(ConfigurationError):
            load_options(tmp_path / "absent.yaml", environ={})

    def test_malformed_yaml(self, tmp_path):
        """Test unparseable YAML raises ConfigurationError."""
        path = tmp_path / "worker.yaml"
        path.write_text("worker: [unclosed\n")

        with pytest.raises(ConfigurationError):
            load_options(path, environ={})

    def test_section_must_be_mapping(self, tmp_path):
        """Test a non-mapping section is rejected."""
        path = tmp_path / "worker.yaml"
        path.write_text("worker: 5\n")

        with pytest.raises(ConfigurationError):
            load_options(path, environ={})

    def test_empty_file(self, tmp_path):
        """Test an empty file yields defaults."""
        path = tmp_path / "worker.yaml"
        path.write_text("")

        client, _ = load_options(path, environ={})
        assert client.endpoint_url == DEFAULT_ENDPOINT_URL
