"""Tests for per-step retry, backoff and deadlines."""

import asyncio

import pytest

from core.constants import StepType
from core.exceptions import (
    ExecutionCancelledError,
    RetryExhaustedError,
    StepExecutionError,
    StepTimeoutError,
)
from workflow.models import ExecutionContext, WorkflowStep
from workflow.retry import RetryPolicy, compute_delay, execute_with_retry, sleep_or_cancel


def make_context() -> ExecutionContext:
    return ExecutionContext(workflow_id="wf-1", execution_id="exec-1", user_id="user-1")


def make_step(**kwargs) -> WorkflowStep:
    kwargs.setdefault("retry_delay", 0)
    return WorkflowStep(id="s1", type=StepType.ACTION, name="Step 1", **kwargs)


class FlakyRunner:
    """Fails the first ``failures`` calls, then succeeds."""

    def __init__(self, failures: int):
        self.failures = failures
        self.calls = 0

    async def __call__(self, step, context):
        self.calls += 1
        if self.calls <= self.failures:
            raise StepExecutionError(f"failure {self.calls}", step.id)
        return {"ok": True, "attempt": self.calls}


@pytest.mark.unit
class TestComputeDelay:
    """Backoff arithmetic."""

    def test_fixed(self):
        assert compute_delay(5, 1) == 5
        assert compute_delay(5, 3, RetryPolicy.FIXED) == 5

    def test_linear(self):
        assert compute_delay(2, 3, RetryPolicy.LINEAR) == 6

    def test_exponential(self):
        assert compute_delay(1, 1, RetryPolicy.EXPONENTIAL) == 1
        assert compute_delay(1, 4, RetryPolicy.EXPONENTIAL) == 8

    def test_capped(self):
        assert compute_delay(1000, 10, RetryPolicy.EXPONENTIAL) == 3600

    def test_zero_delay(self):
        assert compute_delay(0, 5, RetryPolicy.LINEAR) == 0


@pytest.mark.unit
class TestExecuteWithRetry:
    """Attempt loop behavior."""

    async def test_success_first_try(self):
        runner = FlakyRunner(0)
        ctx = make_context()
        result = await execute_with_retry(make_step(retry_count=3), ctx, runner)
        assert result["attempt"] == 1
        assert runner.calls == 1
        assert "s1" not in ctx.step_results

    async def test_recovers_after_failures(self):
        runner = FlakyRunner(2)
        ctx = make_context()
        result = await execute_with_retry(make_step(retry_count=2), ctx, runner)
        assert result["attempt"] == 3
        assert ctx.step_results["s1"]["retry_count"] == 2

    async def test_exhaustion_runs_retry_count_plus_one_attempts(self):
        runner = FlakyRunner(10)
        ctx = make_context()
        with pytest.raises(RetryExhaustedError) as exc_info:
            await execute_with_retry(make_step(retry_count=2), ctx, runner)

        assert runner.calls == 3
        assert exc_info.value.attempts == 3
        assert exc_info.value.step_id == "s1"
        assert exc_info.value.message == "failure 3"
        assert isinstance(exc_info.value.__cause__, StepExecutionError)

    async def test_no_retries_means_single_attempt(self):
        runner = FlakyRunner(1)
        with pytest.raises(RetryExhaustedError):
            await execute_with_retry(make_step(retry_count=0), make_context(), runner)
        assert runner.calls == 1

    async def test_timeout_counts_as_failure(self):
        calls = 0

        async def slow_then_fast(step, context):
            nonlocal calls
            calls += 1
            if calls == 1:
                await asyncio.sleep(1)
            return {"calls": calls}

        result = await execute_with_retry(make_step(retry_count=1, timeout=0.05), make_context(), slow_then_fast)
        assert result == {"calls": 2}

    async def test_timeout_exhaustion_chains_timeout_error(self):
        async def never_finishes(step, context):
            await asyncio.sleep(1)

        with pytest.raises(RetryExhaustedError) as exc_info:
            await execute_with_retry(make_step(timeout=0.05), make_context(), never_finishes)
        assert isinstance(exc_info.value.__cause__, StepTimeoutError)
        assert "timed out" in exc_info.value.message

    async def test_on_retry_callback(self):
        seen = []

        async def on_retry(step, attempt, error, delay):
            seen.append((step.id, attempt, str(error), delay))

        await execute_with_retry(
            make_step(retry_count=2, retry_delay=0, retry_backoff="linear"),
            make_context(),
            FlakyRunner(2),
            on_retry=on_retry,
        )
        assert seen == [("s1", 1, "failure 1", 0.0), ("s1", 2, "failure 2", 0.0)]

    async def test_default_delay_used_when_step_has_none(self):
        delays = []

        async def on_retry(step, attempt, error, delay):
            delays.append(delay)

        step = WorkflowStep(id="s1", type=StepType.ACTION, retry_count=1)
        with pytest.raises(RetryExhaustedError):
            await execute_with_retry(step, make_context(), FlakyRunner(5), default_delay=0.01, on_retry=on_retry)
        assert delays == [0.01]

    async def test_cancelled_context_stops_before_attempt(self):
        ctx = make_context()
        ctx.cancel_event.set()
        runner = FlakyRunner(0)
        with pytest.raises(ExecutionCancelledError):
            await execute_with_retry(make_step(), ctx, runner)
        assert runner.calls == 0


@pytest.mark.unit
class TestSleepOrCancel:
    async def test_wakes_on_cancel(self):
        ctx = make_context()
        asyncio.get_running_loop().call_later(0.05, ctx.cancel_event.set)
        with pytest.raises(ExecutionCancelledError):
            await sleep_or_cancel(10, ctx)

    async def test_zero_returns_immediately(self):
        await sleep_or_cancel(0, make_context())
