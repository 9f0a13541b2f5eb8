"""
Base interface for step executors.

Every step kind (email, webhook, delay, ...) has exactly one executor
inheriting from BaseStepExecutor and implementing execute().
"""

import time
from abc import ABC, abstractmethod

import structlog

from core.constants import StepType
from core.exceptions import ExecutionCancelledError, StepExecutionError
from workflow.models import ExecutionContext, StepResult, WorkflowStep

logger = structlog.get_logger(__name__)


class BaseStepExecutor(ABC):
    """
    Abstract base class for step executors.

    Subclasses must implement:
    - execute(step, context) -> dict
    - step_type (class attribute)
    """

    step_type: StepType
    display_name: str = "Step"
    description: str = ""

    @abstractmethod
    async def execute(self, step: WorkflowStep, context: ExecutionContext) -> StepResult:
        """
        Perform one attempt of the step.

        Args:
            step: Step definition; kind-specific parameters live in ``step.configuration``
            context: Run context (trigger data, variables, earlier step results)

        Returns:
            Kind-specific result fields. May include ``variables`` to merge
            into the run.
        """

    async def run(self, step: WorkflowStep, context: ExecutionContext) -> StepResult:
        """
        Run one attempt with timing and error normalization.

        This is the entry point the orchestrator calls. Any failure leaves
        as a StepExecutionError tagged with the step id.
        """
        start = time.monotonic()
        logger.debug("Step executor starting", step_id=step.id, step_type=self.step_type.value)
        try:
            result = await self.execute(step, context)
        except ExecutionCancelledError:
            raise
        except StepExecutionError as e:
            if e.step_id is None:
                e.step_id = step.id
            logger.debug("Step executor failed", step_id=step.id, error=e.message)
            raise
        except Exception as e:
            logger.debug("Step executor failed", step_id=step.id, error=str(e))
            raise StepExecutionError(str(e) or type(e).__name__, step.id) from e

        execution_time = int((time.monotonic() - start) * 1000)
        output = {"type": self.step_type.value, **result}
        output["execution_time"] = execution_time
        output["success"] = True
        logger.debug(
            "Step executor completed",
            step_id=step.id,
            step_type=self.step_type.value,
            duration_ms=execution_time,
        )
        return output
