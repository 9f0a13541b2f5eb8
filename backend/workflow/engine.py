"""Workflow Execution Engine.

Interprets one stored workflow per run:

- Sequential mode walks the step list with a cursor. A failing step
  (after its retries) aborts the run.
- Parallel mode fans every step out at once and joins them. A failing
  step only marks its own output slot and the run still completes.
- ``condition`` steps may jump the cursor to ``next_step_id`` when they
  pass, or to ``else_step_id`` when they do not.
- Other steps carrying ``conditions`` are skipped when those do not hold.
- Each step runs through the retry wrapper with a per-attempt deadline.
- Runs can be cancelled; the flag is honored at step boundaries and by
  any sleep in progress.

``execute_workflow`` never raises: every failure comes back as a
``WorkflowResult`` with ``success=False``.
"""

import asyncio
from typing import Any, Optional

import structlog

from app.config import Settings, get_settings
from core.constants import ExecutionMode, ExecutionStatus, LogLevel, StepType
from core.exceptions import (
    DefinitionNotFoundError,
    ExecutionCancelledError,
    RetryExhaustedError,
    WorkflowEngineError,
)
from services.workflow_service import WorkflowRepository
from tasks.registry import StepExecutorRegistry
from workflow.audit import ExecutionAuditor, status_log_level
from workflow.conditions import evaluate_conditions
from workflow.models import (
    ExecutionContext,
    StepResult,
    WorkflowDefinition,
    WorkflowResult,
    WorkflowStep,
    new_execution_id,
)
from workflow.retry import execute_with_retry

logger = structlog.get_logger(__name__)


def _error_message(error: BaseException) -> str:
    if isinstance(error, WorkflowEngineError):
        return error.message
    return str(error) or type(error).__name__


# ─── Workflow Engine ───────────────────────────────────────────

class WorkflowEngine:
    """Runs workflow definitions against injected collaborators.

    Args:
        repository: Loads definitions, stores execution records and log rows
        executors: Exhaustive step kind to executor table
        settings: Retry, timeout and concurrency defaults
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        executors: StepExecutorRegistry,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self._repository = repository
        self._executors = executors
        self._running_executions: dict[str, ExecutionContext] = {}

    # ─── Public API ────────────────────────────────────────────

    async def execute_workflow(
        self,
        workflow_id: str,
        trigger_data: Optional[dict[str, Any]] = None,
        user_id: str = "",
        parallel: bool = False,
    ) -> WorkflowResult:
        """Execute a stored workflow once.

        Args:
            workflow_id: Workflow to run
            trigger_data: Input payload, read-only for the run
            user_id: Owner the workflow is loaded for
            parallel: Fan all steps out concurrently instead of walking them

        Returns:
            WorkflowResult; never raises for run failures
        """
        mode = ExecutionMode.PARALLEL if parallel else ExecutionMode.SEQUENTIAL
        return await self._run(workflow_id, trigger_data, user_id, mode, dry_run=False)

    async def execute_workflow_parallel(
        self,
        workflow_id: str,
        trigger_data: Optional[dict[str, Any]] = None,
        user_id: str = "",
    ) -> WorkflowResult:
        return await self.execute_workflow(workflow_id, trigger_data, user_id, parallel=True)

    async def test_workflow(
        self,
        workflow_id: str,
        test_data: Optional[dict[str, Any]] = None,
        user_id: str = "",
    ) -> WorkflowResult:
        """Dry run: executes the steps but writes no execution record or log rows.

        Inactive workflows may be tested.
        """
        return await self._run(workflow_id, test_data, user_id, ExecutionMode.SEQUENTIAL, dry_run=True)

    def cancel_execution(self, execution_id: str) -> bool:
        """Request cancellation of a running execution.

        Returns:
            True if the execution was running
        """
        context = self._running_executions.get(execution_id)
        if context is None:
            return False
        context.cancel_event.set()
        logger.info("Execution cancellation requested", execution_id=execution_id)
        return True

    def get_running_executions(self) -> list[dict]:
        return [
            {
                "execution_id": ctx.execution_id,
                "workflow_id": ctx.workflow_id,
                "user_id": ctx.user_id,
                "current_step": ctx.current_step,
                "elapsed_ms": ctx.elapsed_ms(),
                "cancelled": ctx.cancelled,
            }
            for ctx in self._running_executions.values()
        ]

    async def get_workflow_executions(self, workflow_id: str, user_id: str, limit: int = 50) -> list[dict]:
        """Past executions of a workflow, newest first."""
        return await self._repository.list_executions(workflow_id, user_id, limit)

    # ─── Run lifecycle ─────────────────────────────────────────

    async def _run(
        self,
        workflow_id: str,
        trigger_data: Optional[dict[str, Any]],
        user_id: str,
        mode: ExecutionMode,
        dry_run: bool,
    ) -> WorkflowResult:
        execution_id = new_execution_id("test" if dry_run else "exec")
        auditor = ExecutionAuditor(self._repository, persist=not dry_run)
        context: Optional[ExecutionContext] = None
        output: dict[str, Any] = {}

        with structlog.contextvars.bound_contextvars(execution_id=execution_id, workflow_id=workflow_id):
            try:
                definition = await self._repository.load_workflow(workflow_id, user_id)
                if definition is None or (not definition.is_active and not dry_run):
                    raise DefinitionNotFoundError()

                context = ExecutionContext(
                    workflow_id=definition.id,
                    execution_id=execution_id,
                    user_id=user_id,
                    trigger_data=dict(trigger_data or {}),
                    variables=dict(definition.variables),
                    current_step=definition.steps[0].id if definition.steps else None,
                )
                self._running_executions[execution_id] = context
                await auditor.execution_started(context)

                if mode == ExecutionMode.PARALLEL:
                    failed = await self._execute_parallel(definition, context, output, auditor)
                    if failed:
                        # Fail-soft: the run completes, failures stay in their output slots
                        await auditor.log(
                            context, LogLevel.WARNING, "Parallel steps failed",
                            {"failed_steps": failed},
                        )
                else:
                    await self._execute_sequential(definition, context, output, auditor)

                result = WorkflowResult(
                    success=True,
                    execution_id=execution_id,
                    output=output,
                    duration=context.elapsed_ms(),
                    status=ExecutionStatus.COMPLETED,
                )

            except ExecutionCancelledError as e:
                result = self._failed_result(execution_id, output, context, e, ExecutionStatus.CANCELLED)
            except Exception as e:
                result = self._failed_result(execution_id, output, context, e, ExecutionStatus.FAILED)
            finally:
                self._running_executions.pop(execution_id, None)

            if context is None:
                logger.error("Workflow execution failed", user_id=user_id, error=result.error)
                return result

            await auditor.log(
                context,
                status_log_level(result.status),
                f"Workflow execution {result.status.value}",
                {"duration": result.duration, "error": result.error} if result.error else {"duration": result.duration},
            )
            await auditor.execution_finished(context, result)
            return result

    @staticmethod
    def _failed_result(
        execution_id: str,
        output: dict[str, Any],
        context: Optional[ExecutionContext],
        error: BaseException,
        status: ExecutionStatus,
    ) -> WorkflowResult:
        return WorkflowResult(
            success=False,
            execution_id=execution_id,
            output=output,
            duration=context.elapsed_ms() if context else 0,
            error=_error_message(error),
            status=status,
        )

    # ─── Step execution ────────────────────────────────────────

    def _should_skip(self, step: WorkflowStep, context: ExecutionContext) -> bool:
        # A condition step's conditions are what it evaluates, not a guard:
        # a false one is recorded as {"passed": False} and never as skipped
        if step.type == StepType.CONDITION or not step.conditions:
            return False
        return not evaluate_conditions(step.conditions, context)

    async def _run_step(
        self,
        step: WorkflowStep,
        context: ExecutionContext,
        auditor: ExecutionAuditor,
    ) -> StepResult:
        """Run one step through the retry wrapper and record its result."""
        context.current_step = step.id
        await auditor.log(
            context, LogLevel.INFO, f"Executing step: {step.name}",
            {"step_type": step.type.value}, step.id,
        )

        async def _on_retry(failed_step: WorkflowStep, attempt: int, error: Exception, delay: float) -> None:
            await auditor.log(
                context, LogLevel.WARNING, f"Step {failed_step.name} failed (attempt {attempt})",
                {"attempt": attempt, "error": _error_message(error), "retry_in": delay}, failed_step.id,
            )

        try:
            result = await execute_with_retry(
                step,
                context,
                self._executors.run,
                default_delay=self.settings.WORKFLOW_DEFAULT_RETRY_DELAY,
                default_timeout=self.settings.WORKFLOW_DEFAULT_STEP_TIMEOUT,
                on_retry=_on_retry,
            )
        except RetryExhaustedError as e:
            await auditor.log(
                context, LogLevel.ERROR, f"Step {step.name} failed",
                {"attempts": e.attempts, "error": e.message}, step.id,
            )
            raise

        context.record_result(step.id, result)
        await auditor.log(
            context, LogLevel.INFO, f"Step {step.name} completed",
            {"duration": result.get("execution_time")}, step.id,
        )
        return result

    def _next_index(
        self,
        definition: WorkflowDefinition,
        step: WorkflowStep,
        result: StepResult,
        index: int,
    ) -> int:
        if step.type != StepType.CONDITION:
            return index + 1

        target = step.next_step_id if result.get("passed") else step.else_step_id
        if not target:
            return index + 1

        target_index = definition.index_of(target)
        if target_index == -1:
            logger.warning("Branch target not found, advancing", step_id=step.id, target=target)
            return index + 1
        return target_index

    async def _execute_sequential(
        self,
        definition: WorkflowDefinition,
        context: ExecutionContext,
        output: dict[str, Any],
        auditor: ExecutionAuditor,
    ) -> None:
        """Walk the step list. ``output`` keeps whatever finished before a failure."""
        steps = definition.steps
        limit = self.settings.WORKFLOW_MAX_STEP_EXECUTIONS
        executed = 0
        index = 0

        while index < len(steps):
            if context.cancelled:
                raise ExecutionCancelledError()

            step = steps[index]
            context.current_step = step.id

            if self._should_skip(step, context):
                logger.debug("Step skipped, conditions not met", step_id=step.id)
                index += 1
                continue

            executed += 1
            if executed > limit:
                raise WorkflowEngineError(f"Step execution limit exceeded ({limit})")

            result = await self._run_step(step, context, auditor)
            output[step.id] = result
            context.merge_variables(result.get("variables"))
            index = self._next_index(definition, step, result, index)

    async def _execute_parallel(
        self,
        definition: WorkflowDefinition,
        context: ExecutionContext,
        output: dict[str, Any],
        auditor: ExecutionAuditor,
    ) -> list[str]:
        """Run every step concurrently on forked contexts, then merge.

        Returns:
            Ids of the steps that failed
        """
        semaphore = asyncio.Semaphore(self.settings.WORKFLOW_MAX_PARALLEL_STEPS)

        async def _branch(step: WorkflowStep):
            async with semaphore:
                branch = context.fork()
                if branch.cancelled:
                    raise ExecutionCancelledError()
                if self._should_skip(step, branch):
                    return branch, {"skipped": True}, None
                try:
                    return branch, await self._run_step(step, branch, auditor), None
                except ExecutionCancelledError:
                    raise
                except Exception as e:
                    return branch, None, e

        outcomes = await asyncio.gather(
            *(_branch(step) for step in definition.steps),
            return_exceptions=True,
        )

        failed: list[str] = []
        cancelled = False
        for step, outcome in zip(definition.steps, outcomes):
            if isinstance(outcome, ExecutionCancelledError):
                cancelled = True
                continue
            if isinstance(outcome, BaseException):
                output[step.id] = {"error": _error_message(outcome), "success": False}
                failed.append(step.id)
                continue

            branch, result, error = outcome
            if step.id in branch.step_results:
                context.step_results[step.id] = branch.step_results[step.id]
            if error is not None:
                output[step.id] = {"error": _error_message(error), "success": False}
                failed.append(step.id)
                continue
            output[step.id] = result
            context.merge_variables(result.get("variables"))

        if cancelled:
            raise ExecutionCancelledError()
        return failed
