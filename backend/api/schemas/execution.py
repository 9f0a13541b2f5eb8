"""Workflow execution request and response schemas."""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field


class ExecuteWorkflowRequest(BaseModel):
    """Request to run a workflow."""

    trigger_data: dict[str, Any] = Field(default_factory=dict, description="Input payload for the run")
    parallel: bool = Field(default=False, description="Run all steps concurrently (fail-soft)")


class TestWorkflowRequest(BaseModel):
    """Request for a dry run."""

    test_data: dict[str, Any] = Field(default_factory=dict, description="Input payload for the dry run")


class WorkflowResultResponse(BaseModel):
    """Outcome of a run."""

    success: bool
    execution_id: str
    output: dict[str, Any] = Field(default_factory=dict, description="Step id to step result")
    duration: int = Field(description="Run duration in milliseconds")
    error: Optional[str] = None
    status: str = Field(description="completed, failed or cancelled")


class ExecutionLogResponse(BaseModel):
    """Audit line of a run."""

    level: str
    message: str
    step_id: Optional[str] = None
    details: dict[str, Any] = Field(default_factory=dict)
    timestamp: Optional[datetime] = None


class ExecutionRecordResponse(BaseModel):
    """Stored execution record."""

    execution_id: str
    workflow_id: str
    user_id: str
    status: str
    success: bool
    trigger_data: dict[str, Any] = Field(default_factory=dict)
    output: dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None


class ExecutionDetailResponse(ExecutionRecordResponse):
    """Execution record with its audit trail."""

    logs: List[ExecutionLogResponse] = Field(default_factory=list)


class ExecutionListResponse(BaseModel):
    """Execution history of a workflow."""

    executions: List[ExecutionRecordResponse]
    total: int


class CancelExecutionResponse(BaseModel):
    execution_id: str
    cancelled: bool


class RunningExecutionResponse(BaseModel):
    execution_id: str
    workflow_id: str
    user_id: str
    current_step: Optional[str] = None
    elapsed_ms: int
    cancelled: bool


class EventRequest(BaseModel):
    """Inbound business event."""

    event_type: str = Field(min_length=1, description="e.g. invoice.created")
    entity_data: dict[str, Any] = Field(default_factory=dict)


class EmitEventRequest(BaseModel):
    """Business event raised for a specific entity."""

    event_type: str = Field(min_length=1)
    entity_id: str
    entity_type: str
    payload: dict[str, Any] = Field(default_factory=dict)


class EventDispatchResponse(BaseModel):
    event_type: str
    started: int = Field(description="Number of workflow runs started")
    results: List[WorkflowResultResponse]
