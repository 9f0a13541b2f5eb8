"""Execution audit sink.

Every run writes an execution record plus one log row per notable
event (run start, step start, retry, step failure, step completion,
run end). Rows go to the repository and the same line goes to the
application log, so a run can be followed from either place.

Log-row writes never fail a run: a storage error is logged and the run
carries on. Creating the execution record is the exception; a run that
cannot be recorded does not start.
"""

from datetime import datetime, timezone
from typing import Any, Optional

import structlog

from core.constants import ExecutionStatus, LogLevel
from services.workflow_service import WorkflowRepository
from workflow.models import ExecutionContext, WorkflowResult

logger = structlog.get_logger(__name__)

_LOG_METHODS = {
    LogLevel.DEBUG: "debug",
    LogLevel.INFO: "info",
    LogLevel.WARNING: "warning",
    LogLevel.ERROR: "error",
    LogLevel.CRITICAL: "critical",
}


class ExecutionAuditor:
    """Writes the audit trail of a single run.

    Args:
        repository: Storage for execution records and log rows
        persist: False for dry runs; lines still reach the application log
    """

    def __init__(self, repository: WorkflowRepository, persist: bool = True):
        self._repository = repository
        self.persist = persist
        self.record_created = False

    async def log(
        self,
        context: ExecutionContext,
        level: LogLevel,
        message: str,
        details: Optional[dict[str, Any]] = None,
        step_id: Optional[str] = None,
    ) -> None:
        fields = dict(details or {})
        if step_id is not None:
            fields["step_id"] = step_id
        getattr(logger, _LOG_METHODS[level])(message, **fields)
        if not self.persist:
            return
        try:
            await self._repository.append_log(
                workflow_id=context.workflow_id,
                execution_id=context.execution_id,
                user_id=context.user_id,
                level=level,
                message=message,
                details=details,
                step_id=step_id,
            )
        except Exception as e:
            logger.warning("Audit log write failed", error=str(e), audit_message=message)

    async def execution_started(self, context: ExecutionContext) -> None:
        """Create the ``running`` execution record and log the start."""
        if self.persist:
            await self._repository.create_execution(
                execution_id=context.execution_id,
                workflow_id=context.workflow_id,
                user_id=context.user_id,
                trigger_data=context.trigger_data,
                started_at=context.started_at,
            )
            self.record_created = True
        await self.log(
            context,
            LogLevel.INFO,
            "Workflow execution started",
            {"trigger_data": context.trigger_data},
        )

    async def execution_finished(self, context: ExecutionContext, result: WorkflowResult) -> None:
        """Store the final status, output, error and duration."""
        if not self.record_created:
            return
        try:
            await self._repository.update_execution(
                execution_id=context.execution_id,
                status=result.status,
                output=result.output,
                error=result.error,
                completed_at=datetime.now(timezone.utc),
                duration_ms=result.duration,
            )
        except Exception as e:
            logger.warning(
                "Execution record update failed",
                error=str(e),
                status=result.status.value,
            )


def status_log_level(status: ExecutionStatus) -> LogLevel:
    if status == ExecutionStatus.COMPLETED:
        return LogLevel.INFO
    if status == ExecutionStatus.CANCELLED:
        return LogLevel.WARNING
    return LogLevel.ERROR
