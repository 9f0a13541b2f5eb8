"""Per-step retry with deadlines.

A step runs up to ``retry_count + 1`` times. Each attempt is bounded by
the step's ``timeout`` (or the configured default). Between attempts the
run sleeps ``retry_delay`` seconds, scaled by the step's backoff policy:

- fixed:        delay
- linear:       delay * n
- exponential:  delay * 2 ** (n - 1)

where ``n`` is the 1-based retry number. Sleeps wake early when the run
is cancelled.
"""

import asyncio
from enum import Enum
from typing import Awaitable, Callable, Optional

import structlog

from core.constants import StepType
from core.exceptions import (
    ExecutionCancelledError,
    RetryExhaustedError,
    StepExecutionError,
    StepTimeoutError,
)
from workflow.models import ExecutionContext, StepResult, WorkflowStep

logger = structlog.get_logger(__name__)

MAX_RETRY_DELAY = 3600.0

StepRunner = Callable[[WorkflowStep, ExecutionContext], Awaitable[StepResult]]
RetryCallback = Callable[[WorkflowStep, int, Exception, float], Awaitable[None]]


class RetryPolicy(str, Enum):
    """Backoff applied to ``retry_delay``."""
    FIXED = "fixed"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


def compute_delay(base_delay: float, retry_number: int, policy: RetryPolicy = RetryPolicy.FIXED) -> float:
    """Delay before retry ``retry_number`` (1-based)."""
    if base_delay <= 0:
        return 0.0
    if policy == RetryPolicy.LINEAR:
        delay = base_delay * retry_number
    elif policy == RetryPolicy.EXPONENTIAL:
        delay = base_delay * (2 ** (retry_number - 1))
    else:
        delay = base_delay
    return min(delay, MAX_RETRY_DELAY)


async def sleep_or_cancel(seconds: float, context: ExecutionContext) -> None:
    """Suspend for ``seconds`` unless the run is cancelled first.

    Raises:
        ExecutionCancelledError: The run was cancelled while waiting
    """
    if context.cancelled:
        raise ExecutionCancelledError()
    if seconds <= 0:
        return
    try:
        await asyncio.wait_for(context.cancel_event.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return
    raise ExecutionCancelledError()


def _attempt_timeout(step: WorkflowStep, default_timeout: Optional[float]) -> Optional[float]:
    if step.timeout is not None and step.timeout > 0:
        return step.timeout
    # A delay step's own duration is its budget
    if step.type == StepType.DELAY:
        return None
    return default_timeout


async def execute_with_retry(
    step: WorkflowStep,
    context: ExecutionContext,
    run_step: StepRunner,
    *,
    default_delay: float = 30.0,
    default_timeout: Optional[float] = None,
    on_retry: Optional[RetryCallback] = None,
) -> StepResult:
    """Run ``step`` through ``run_step`` with bounded retry.

    Args:
        step: Step to execute
        context: Run context; receives the in-place retry counter
        run_step: Coroutine function executing one attempt
        default_delay: Seconds between attempts when the step sets none
        default_timeout: Per-attempt deadline when the step sets none
        on_retry: Awaited before each retry sleep with (step, attempt, error, delay)

    Returns:
        The first successful attempt's result

    Raises:
        RetryExhaustedError: Every attempt failed; chained to the last error
        ExecutionCancelledError: The run was cancelled
    """
    timeout = _attempt_timeout(step, default_timeout)
    base_delay = step.retry_delay if step.retry_delay is not None else default_delay
    policy = RetryPolicy(step.retry_backoff)
    last_error: Optional[Exception] = None

    for attempt in range(step.retry_count + 1):
        if context.cancelled:
            raise ExecutionCancelledError()
        try:
            if timeout is None:
                return await run_step(step, context)
            try:
                return await asyncio.wait_for(run_step(step, context), timeout=timeout)
            except asyncio.TimeoutError:
                raise StepTimeoutError(step.id, timeout)
        except ExecutionCancelledError:
            raise
        except Exception as e:
            last_error = e

        if attempt >= step.retry_count:
            break

        retry_number = attempt + 1
        delay = compute_delay(base_delay, retry_number, policy)
        context.record_retry(step.id)
        logger.debug("Retry scheduled", step_id=step.id, attempt=retry_number, delay=delay)
        if on_retry is not None:
            await on_retry(step, retry_number, last_error, delay)
        await sleep_or_cancel(delay, context)

    attempts = step.retry_count + 1
    message = str(last_error) or type(last_error).__name__
    if isinstance(last_error, StepExecutionError):
        message = last_error.message
    raise RetryExhaustedError(message, step.id, attempts) from last_error
