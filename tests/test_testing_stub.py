"""StubTaskContext tests.

These tests verify the handler test double records calls and enforces a
single outcome, so handlers can be unit tested without an engine.
"""

from __future__ import annotations

import pytest

from camunda_worker import OutcomeAlreadyReportedError, TaskContext
from camunda_worker.testing import StubTaskContext


def charge_card(context: TaskContext) -> None:
    """Sample handler used by these tests."""
    amount = context.variables.get_int("amount")
    if amount > 1000:
        context.report_business_error("AMOUNT_TOO_HIGH", f"{amount} needs approval")
        return
    context.start_lock_extender()
    context.complete({"charged": True, "amount": amount})


class TestStubTaskContext:
    """Tests for StubTaskContext."""

    def test_is_a_task_context(self):
        """Test the stub implements the TaskContext interface."""
        assert isinstance(StubTaskContext(), TaskContext)

    def test_defaults(self):
        """Test the built task snapshot."""
        context = StubTaskContext(task_id="t1", topic="billing", retries=2, business_key="order-1")

        assert context.task_id == "t1"
        assert context.topic == "billing"
        assert context.retries_remaining == 2
        assert context.business_key == "order-1"
        assert context.variables == {}

    def test_records_complete(self):
        """Test a completing handler."""
        context = StubTaskContext(variables={"amount": 30})

        charge_card(context)

        assert context.completed
        assert context.completed_variables.get_bool("charged") is True
        assert context.completed_variables.get_int("amount") == 30
        assert context.lock_extender_started

    def test_records_business_error(self):
        """Test a handler reporting a business error."""
        context = StubTaskContext(variables={"amount": 5000})

        charge_card(context)

        assert not context.completed
        call = context.business_error_calls[0]
        assert call.error_code == "AMOUNT_TOO_HIGH"
        assert call.error_message == "5000 needs approval"
        assert call.variables is None

    def test_records_failure(self):
        """Test failure calls are recorded with their settings."""
        context = StubTaskContext()

        context.report_failure("boom", "trace", retries=1, retry_timeout_ms=10)

        call = context.failure_calls[0]
        assert (call.error_message, call.error_details, call.retries, call.retry_timeout_ms) == (
            "boom",
            "trace",
            1,
            10,
        )

    def test_second_outcome_refused(self):
        """Test the stub refuses a second outcome like the real context."""
        context = StubTaskContext()
        context.complete()

        with pytest.raises(OutcomeAlreadyReportedError):
            context.report_failure("late")

    def test_lock_calls(self):
        """Test lock management calls are recorded."""
        context = StubTaskContext()

        context.extend_lock(5000)
        context.start_lock_extender()
        context.stop_lock_extender()

        assert context.extend_lock_calls == [5000]
        assert context.lock_extender_started
        assert context.lock_extender_stopped

    def test_completed_variables_without_complete(self):
        """Test asking for completion variables before completing fails loudly."""
        with pytest.raises(AssertionError):
            StubTaskContext().completed_variables
