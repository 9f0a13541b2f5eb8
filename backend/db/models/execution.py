"""Workflow execution record model."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import ExecutionStatus
from db.base import BaseModel


class WorkflowExecution(BaseModel):
    """One run of a workflow.

    Attributes:
        id: Row primary key (UUID string)
        execution_id: Public run identifier (``exec_<ms>_<suffix>``)
        workflow_id: Foreign key to Workflow
        user_id: User the run executed on behalf of
        status: pending, running, completed, failed or cancelled
        trigger_data: Input payload the run started with
        output_data: Step id to step result map
        error_data: ``{"message": ...}`` when the run did not complete
        started_at: Run start timestamp
        completed_at: Run end timestamp
        duration_ms: Wall-clock duration in milliseconds
    """

    __tablename__ = "workflow_executions"

    execution_id: Mapped[str] = mapped_column(nullable=False, unique=True, index=True)
    workflow_id: Mapped[str] = mapped_column(
        ForeignKey("workflows.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        default=ExecutionStatus.PENDING.value, index=True
    )
    trigger_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    output_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    error_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_ms: Mapped[Optional[int]] = mapped_column(nullable=True)

    workflow: Mapped["Workflow"] = relationship(
        "Workflow", back_populates="executions", lazy="noload"
    )
