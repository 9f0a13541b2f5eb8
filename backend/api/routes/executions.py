"""Workflow execution inspection and control endpoints."""

import logging
from typing import List

from fastapi import APIRouter, Depends

from api.schemas.execution import (
    CancelExecutionResponse,
    ExecutionDetailResponse,
    ExecutionLogResponse,
    RunningExecutionResponse,
)
from app.dependencies import get_current_user_id, get_engine, get_repository
from core.exceptions import NotFoundError
from services.workflow_service import WorkflowRepository
from workflow.engine import WorkflowEngine

logger = logging.getLogger(__name__)

router = APIRouter(tags=["executions"])


@router.get("/running", response_model=List[RunningExecutionResponse])
async def list_running_executions(
    user_id: str = Depends(get_current_user_id),
    engine: WorkflowEngine = Depends(get_engine),
) -> List[RunningExecutionResponse]:
    """
    Runs of the caller that are currently in progress in this process.
    """
    return [
        RunningExecutionResponse(**r)
        for r in engine.get_running_executions()
        if r["user_id"] == user_id
    ]


@router.get("/{execution_id}", response_model=ExecutionDetailResponse)
async def get_execution(
    execution_id: str,
    user_id: str = Depends(get_current_user_id),
    repository: WorkflowRepository = Depends(get_repository),
) -> ExecutionDetailResponse:
    """
    Get an execution record with its log rows in write order.
    """
    record = await repository.get_execution(execution_id, user_id)
    if record is None:
        raise NotFoundError(f"Execution {execution_id} not found")

    logs = await repository.get_execution_logs(execution_id)
    return ExecutionDetailResponse(
        **record,
        logs=[ExecutionLogResponse(**row) for row in logs],
    )


@router.post("/{execution_id}/cancel", response_model=CancelExecutionResponse)
async def cancel_execution(
    execution_id: str,
    user_id: str = Depends(get_current_user_id),
    engine: WorkflowEngine = Depends(get_engine),
) -> CancelExecutionResponse:
    """
    Request cancellation of a running execution.

    The run stops at its next step boundary or pending delay.
    """
    running = {r["execution_id"]: r for r in engine.get_running_executions()}
    entry = running.get(execution_id)
    if entry is None or entry["user_id"] != user_id:
        raise NotFoundError(f"Execution {execution_id} is not running")

    cancelled = engine.cancel_execution(execution_id)
    logger.info(f"Cancel requested for execution {execution_id} by user {user_id}")
    return CancelExecutionResponse(execution_id=execution_id, cancelled=cancelled)
