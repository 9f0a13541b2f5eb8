"""Control steps: ``delay`` and ``condition``."""

import re
from typing import Any

import structlog

from core.constants import StepType
from tasks.base_task import BaseStepExecutor
from workflow.conditions import evaluate_conditions
from workflow.models import ExecutionContext, WorkflowStep
from workflow.retry import sleep_or_cancel

logger = structlog.get_logger(__name__)

_DURATION = re.compile(r"^(\d+)\s*(second|minute|hour|day)s?$", re.IGNORECASE)

_UNIT_MS = {
    "second": 1000,
    "minute": 60 * 1000,
    "hour": 60 * 60 * 1000,
    "day": 24 * 60 * 60 * 1000,
}


def parse_delay_duration(duration: Any) -> int:
    """Parse ``"<n> second|minute|hour|day"`` (plural allowed) into milliseconds.

    Anything that does not match yields 0.
    """
    match = _DURATION.match(str(duration).strip()) if duration is not None else None
    if not match:
        return 0
    amount, unit = match.groups()
    return int(amount) * _UNIT_MS[unit.lower()]


class DelayStepExecutor(BaseStepExecutor):
    """Pause the run.

    Config:
        duration: e.g. "30 seconds", "2 hours", "1 day"
    """

    step_type = StepType.DELAY
    display_name = "Delay"
    description = "Wait before continuing"

    async def execute(self, step: WorkflowStep, context: ExecutionContext) -> dict[str, Any]:
        duration = step.configuration.get("duration")
        delay_ms = parse_delay_duration(duration)
        if delay_ms == 0 and duration not in (None, ""):
            logger.warning("Unparseable delay duration, not waiting", step_id=step.id, duration=duration)

        await sleep_or_cancel(delay_ms / 1000, context)
        return {"duration": duration, "delayed_ms": delay_ms}


class ConditionStepExecutor(BaseStepExecutor):
    """Evaluate the step's conditions and report ``passed``.

    Conditions are read from ``configuration.conditions`` or, failing
    that, from the step's own ``conditions``. Branching is decided by the
    orchestrator from ``passed``.
    """

    step_type = StepType.CONDITION
    display_name = "Condition"
    description = "Branch on run data"

    async def execute(self, step: WorkflowStep, context: ExecutionContext) -> dict[str, Any]:
        conditions = step.configuration.get("conditions") or step.conditions or {}
        passed = evaluate_conditions(conditions, context)
        return {"conditions": conditions, "result": passed, "passed": passed}
