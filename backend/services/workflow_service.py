"""Workflow persistence used by the engine and the trigger matcher.

``WorkflowRepository`` is the contract the engine depends on.
``SqlWorkflowRepository`` implements it on the async SQLAlchemy models;
every call opens its own short-lived session so concurrent runs never
share one.
"""

import json
import logging
from datetime import datetime
from typing import Any, Optional, Protocol

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.constants import ExecutionStatus, LogLevel
from core.exceptions import InvalidDefinitionError
from db.models.execution import WorkflowExecution
from db.models.trigger import WorkflowTrigger
from db.models.workflow import Workflow
from db.models.workflow_log import WorkflowLog
from workflow.models import Trigger, WorkflowDefinition

logger = logging.getLogger(__name__)


def _json_safe(value: Any) -> Any:
    """Coerce step output into something a JSON column accepts."""
    if value is None:
        return None
    return json.loads(json.dumps(value, default=str))


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def execution_to_dict(record: WorkflowExecution) -> dict:
    """Serialize an execution row for API responses."""
    return {
        "execution_id": record.execution_id,
        "workflow_id": record.workflow_id,
        "user_id": record.user_id,
        "status": record.status,
        "success": record.status == ExecutionStatus.COMPLETED.value,
        "trigger_data": record.trigger_data or {},
        "output": record.output_data or {},
        "error": (record.error_data or {}).get("message"),
        "started_at": _iso(record.started_at),
        "completed_at": _iso(record.completed_at),
        "duration_ms": record.duration_ms,
    }


def log_to_dict(row: WorkflowLog) -> dict:
    return {
        "level": row.level,
        "message": row.message,
        "step_id": row.step_id,
        "details": row.details or {},
        "timestamp": _iso(row.timestamp),
    }


class WorkflowRepository(Protocol):
    """Storage operations the engine needs."""

    async def load_workflow(self, workflow_id: str, user_id: str) -> Optional[WorkflowDefinition]: ...

    async def create_execution(
        self,
        execution_id: str,
        workflow_id: str,
        user_id: str,
        trigger_data: dict,
        started_at: datetime,
    ) -> None: ...

    async def update_execution(
        self,
        execution_id: str,
        status: ExecutionStatus,
        output: dict,
        error: Optional[str],
        completed_at: datetime,
        duration_ms: int,
    ) -> None: ...

    async def append_log(
        self,
        workflow_id: str,
        execution_id: str,
        user_id: str,
        level: LogLevel,
        message: str,
        details: Optional[dict] = None,
        step_id: Optional[str] = None,
    ) -> None: ...

    async def list_active_triggers(self, event_type: str) -> list[Trigger]: ...

    async def list_executions(self, workflow_id: str, user_id: str, limit: int = 50) -> list[dict]: ...

    async def get_execution(self, execution_id: str, user_id: str) -> Optional[dict]: ...

    async def get_execution_logs(self, execution_id: str) -> list[dict]: ...


class SqlWorkflowRepository:
    """WorkflowRepository on SQLAlchemy async sessions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    # ─── Definitions ───────────────────────────────────────

    async def load_workflow(self, workflow_id: str, user_id: str) -> Optional[WorkflowDefinition]:
        """Load a workflow owned by ``user_id``.

        Raises:
            InvalidDefinitionError: The stored steps cannot be parsed
        """
        async with self._session_factory() as session:
            result = await session.execute(
                select(Workflow).where(Workflow.id == workflow_id, Workflow.user_id == user_id)
            )
            workflow = result.scalar_one_or_none()

        if workflow is None:
            return None

        if not isinstance(workflow.steps, list):
            raise InvalidDefinitionError(f"Workflow {workflow_id} steps must be a list")
        return WorkflowDefinition.from_dict({
            "id": workflow.id,
            "user_id": workflow.user_id,
            "name": workflow.name,
            "steps": workflow.steps,
            "variables": workflow.variables or {},
            "is_active": workflow.is_active,
        })

    # ─── Execution records ─────────────────────────────────

    async def create_execution(
        self,
        execution_id: str,
        workflow_id: str,
        user_id: str,
        trigger_data: dict,
        started_at: datetime,
    ) -> None:
        async with self._session_factory() as session:
            session.add(WorkflowExecution(
                execution_id=execution_id,
                workflow_id=workflow_id,
                user_id=user_id,
                status=ExecutionStatus.RUNNING.value,
                trigger_data=_json_safe(trigger_data or {}),
                started_at=started_at,
            ))
            await session.commit()

    async def update_execution(
        self,
        execution_id: str,
        status: ExecutionStatus,
        output: dict,
        error: Optional[str],
        completed_at: datetime,
        duration_ms: int,
    ) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(WorkflowExecution)
                .where(WorkflowExecution.execution_id == execution_id)
                .values(
                    status=status.value,
                    output_data=_json_safe(output),
                    error_data={"message": error} if error else None,
                    completed_at=completed_at,
                    duration_ms=duration_ms,
                )
            )
            await session.commit()

    async def list_executions(self, workflow_id: str, user_id: str, limit: int = 50) -> list[dict]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(WorkflowExecution)
                .where(
                    WorkflowExecution.workflow_id == workflow_id,
                    WorkflowExecution.user_id == user_id,
                )
                .order_by(WorkflowExecution.started_at.desc())
                .limit(limit)
            )
            return [execution_to_dict(r) for r in result.scalars().all()]

    async def get_execution(self, execution_id: str, user_id: str) -> Optional[dict]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(WorkflowExecution).where(
                    WorkflowExecution.execution_id == execution_id,
                    WorkflowExecution.user_id == user_id,
                )
            )
            record = result.scalar_one_or_none()
        return execution_to_dict(record) if record else None

    # ─── Logs ──────────────────────────────────────────────

    async def append_log(
        self,
        workflow_id: str,
        execution_id: str,
        user_id: str,
        level: LogLevel,
        message: str,
        details: Optional[dict] = None,
        step_id: Optional[str] = None,
    ) -> None:
        async with self._session_factory() as session:
            session.add(WorkflowLog(
                workflow_id=workflow_id,
                execution_id=execution_id,
                user_id=user_id,
                step_id=step_id,
                level=level.value,
                message=message,
                details=_json_safe(details),
            ))
            await session.commit()

    async def get_execution_logs(self, execution_id: str) -> list[dict]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(WorkflowLog)
                .where(WorkflowLog.execution_id == execution_id)
                .order_by(WorkflowLog.timestamp)
            )
            return [log_to_dict(r) for r in result.scalars().all()]

    # ─── Triggers ──────────────────────────────────────────

    async def list_active_triggers(self, event_type: str) -> list[Trigger]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(WorkflowTrigger).where(
                    WorkflowTrigger.event_type == event_type,
                    WorkflowTrigger.is_active.is_(True),
                )
            )
            rows = result.scalars().all()

        return [
            Trigger(
                id=row.id,
                event_type=row.event_type,
                workflow_id=row.workflow_id,
                user_id=row.user_id,
                conditions=row.conditions or {},
                is_active=row.is_active,
            )
            for row in rows
        ]
