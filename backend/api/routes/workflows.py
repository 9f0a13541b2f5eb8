"""Workflow run endpoints."""

import logging

from fastapi import APIRouter, Depends, Query

from api.schemas.execution import (
    ExecuteWorkflowRequest,
    ExecutionListResponse,
    ExecutionRecordResponse,
    TestWorkflowRequest,
    WorkflowResultResponse,
)
from app.dependencies import get_current_user_id, get_engine
from workflow.engine import WorkflowEngine

logger = logging.getLogger(__name__)

router = APIRouter(tags=["workflows"])


@router.post("/{workflow_id}/execute", response_model=WorkflowResultResponse)
async def execute_workflow(
    workflow_id: str,
    body: ExecuteWorkflowRequest,
    user_id: str = Depends(get_current_user_id),
    engine: WorkflowEngine = Depends(get_engine),
) -> WorkflowResultResponse:
    """
    Run a workflow and wait for it to finish.

    Failed runs still answer 200; inspect ``success`` and ``error``.
    """
    result = await engine.execute_workflow(
        workflow_id,
        trigger_data=body.trigger_data,
        user_id=user_id,
        parallel=body.parallel,
    )
    logger.info(f"Workflow {workflow_id} run {result.execution_id} finished: {result.status.value}")
    return WorkflowResultResponse(**result.to_dict())


@router.post("/{workflow_id}/test", response_model=WorkflowResultResponse)
async def test_workflow(
    workflow_id: str,
    body: TestWorkflowRequest,
    user_id: str = Depends(get_current_user_id),
    engine: WorkflowEngine = Depends(get_engine),
) -> WorkflowResultResponse:
    """
    Dry-run a workflow. Nothing is recorded; inactive workflows are allowed.
    """
    result = await engine.test_workflow(workflow_id, test_data=body.test_data, user_id=user_id)
    return WorkflowResultResponse(**result.to_dict())


@router.get("/{workflow_id}/executions", response_model=ExecutionListResponse)
async def list_workflow_executions(
    workflow_id: str,
    limit: int = Query(50, ge=1, le=500, description="Maximum records to return"),
    user_id: str = Depends(get_current_user_id),
    engine: WorkflowEngine = Depends(get_engine),
) -> ExecutionListResponse:
    """
    Execution history of a workflow, newest first.
    """
    records = await engine.get_workflow_executions(workflow_id, user_id, limit)
    return ExecutionListResponse(
        executions=[ExecutionRecordResponse(**r) for r in records],
        total=len(records),
    )
