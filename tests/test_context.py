"""ExternalTaskContext tests.

These tests verify:
- Outcome operations forward to the task service
- A second outcome is refused
- Lock extension and the background extender
"""

from __future__ import annotations

import pytest

from camunda_worker import (
    EngineError,
    ExternalTaskContext,
    NotFoundError,
    OutcomeAlreadyReportedError,
)


@pytest.fixture
def task(make_task):
    return make_task(id="task-1", topic="invoice", variables={"amount": 30}, retries=3)


@pytest.fixture
def context(task, fake_service, worker_options):
    return ExternalTaskContext(task, fake_service, worker_options)


class TestTaskAccess:
    """Tests for the read side of the context."""

    def test_task_fields(self, context):
        """Test task identity and variables are exposed."""
        assert context.task_id == "task-1"
        assert context.topic == "invoice"
        assert context.retries_remaining == 3
        assert context.variables.get_int("amount") == 30
        assert context.worker_id == "test-worker"

    def test_worker_id_falls_back_to_options(self, make_task, fake_service, worker_options):
        """Test the options' worker id is used when the task has none."""
        context = ExternalTaskContext(make_task(worker_id=""), fake_service, worker_options)
        assert context.worker_id == worker_options.worker_id


class TestOutcomes:
    """Tests for complete, report_business_error and report_failure."""

    def test_complete(self, context, fake_service):
        """Test complete forwards variables."""
        context.complete({"invoiceId": "INV-1"}, local_variables={"step": 1})

        task_id, variables, local_variables = fake_service.completed[0]
        assert task_id == "task-1"
        assert variables.get_string("invoiceId") == "INV-1"
        assert local_variables.get_int("step") == 1
        assert context.outcome_reported
        assert context.outcome == "complete"

    def test_unencodable_variables_leave_outcome_open(self, context, fake_service):
        """Test a value that cannot be encoded does not consume the outcome."""
        with pytest.raises(UnicodeDecodeError):
            context.complete({"payload": b"\xff\xfe"})

        assert not context.outcome_reported
        context.report_failure("encoding failed")
        assert len(fake_service.failures) == 1

    @pytest.mark.parametrize("overrides", [{"retries": -1}, {"retry_timeout_ms": -5}])
    def test_invalid_failure_settings_leave_outcome_open(self, context, fake_service, overrides):
        """Test rejected retry settings do not consume the outcome."""
        with pytest.raises(ValueError):
            context.report_failure("boom", **overrides)

        assert not context.outcome_reported
        assert fake_service.failures == []

    def test_business_error(self, context, fake_service):
        """Test business errors forward code, message and variables."""
        context.report_business_error("E1", "declined", {"reason": "limit"})

        call = fake_service.business_errors[0]
        assert call["error_code"] == "E1"
        assert call["error_message"] == "declined"
        assert call["variables"].get_string("reason") == "limit"

    def test_failure_with_overrides(self, context, fake_service):
        """Test explicit retry settings are forwarded."""
        context.report_failure("boom", "details", retries=0, retry_timeout_ms=500)

        assert fake_service.failures[0] == {
            "task_id": "task-1",
            "worker_id": "test-worker",
            "error_message": "boom",
            "error_details": "details",
            "retries": 0,
            "retry_timeout_ms": 500,
        }

    def test_failure_keeps_last_known_retries(self, context, fake_service):
        """Test an omitted retry count keeps the task's last known value."""
        context.report_failure("boom")
        assert fake_service.failures[0]["retries"] == 3

    def test_failure_first_attempt_omits_retries(self, make_task, fake_service, worker_options):
        """Test a task that never failed sends no retry count."""
        context = ExternalTaskContext(make_task(retries=None), fake_service, worker_options)
        context.report_failure("boom")
        assert fake_service.failures[0]["retries"] is None

    def test_second_outcome_refused(self, context, fake_service):
        """Test only one outcome is sent per task."""
        context.complete()

        with pytest.raises(OutcomeAlreadyReportedError):
            context.report_failure("late")
        with pytest.raises(OutcomeAlreadyReportedError):
            context.complete()

        assert len(fake_service.completed) == 1
        assert fake_service.failures == []

    def test_service_error_propagates(self, context, fake_service):
        """Test service errors reach the handler and still consume the outcome."""
        fake_service.complete_error = EngineError("conflict", status_code=500)

        with pytest.raises(EngineError):
            context.complete()

        assert context.outcome_reported


class TestLockManagement:
    """Tests for extend_lock and the lock extender."""

    def test_extend_lock(self, context, fake_service):
        """Test a single extension is forwarded."""
        context.extend_lock(5000)
        assert fake_service.lock_extensions == [("task-1", 5000)]

    def test_extend_lock_not_found(self, context, fake_service):
        """Test a lost lease surfaces as NotFoundError."""
        fake_service.extend_lock_error = NotFoundError("Not found", status_code=404)
        with pytest.raises(NotFoundError):
            context.extend_lock(5000)

    def test_extender_renews_with_options(self, context, fake_service, worker_options, wait_until):
        """Test the extender uses the configured extension."""
        context.start_lock_extender()
        try:
            assert wait_until(lambda: len(fake_service.lock_extensions) >= 2)
        finally:
            context.stop_lock_extender()

        assert fake_service.lock_extensions[0] == ("task-1", worker_options.lock_extension_ms)

    def test_start_twice_is_noop(self, context, fake_service, wait_until):
        """Test a second start keeps the running extender."""
        context.start_lock_extender()
        first = context._extender
        context.start_lock_extender()

        assert context._extender is first
        context.stop_lock_extender()

    def test_stop_without_start(self, context):
        """Test stopping when no extender was started is harmless."""
        context.stop_lock_extender()
        context.stop_lock_extender()

    def test_stop_twice(self, context, wait_until):
        """Test the extender can be stopped repeatedly."""
        context.start_lock_extender()
        context.stop_lock_extender()
        context.stop_lock_extender()

        assert wait_until(lambda: not context._extender.is_running)

    def test_extension_failure_callback(self, make_task, fake_service, worker_options, wait_until):
        """Test the failure callback receives the task id and error."""
        fake_service.extend_lock_error = NotFoundError("Not found", status_code=404)
        failures = []
        context = ExternalTaskContext(
            make_task(id="task-9"),
            fake_service,
            worker_options,
            on_lock_extension_failed=lambda task_id, error: failures.append((task_id, error)),
        )

        context.start_lock_extender()

        assert wait_until(lambda: len(failures) == 1)
        assert failures[0][0] == "task-9"
        assert isinstance(failures[0][1], NotFoundError)
        context.stop_lock_extender()
