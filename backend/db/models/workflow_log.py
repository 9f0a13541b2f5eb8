"""Workflow log row model."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import LogLevel
from db.base import BaseModel


class WorkflowLog(BaseModel):
    """Structured audit line written while a workflow runs.

    ``execution_id`` holds the public run identifier rather than a
    foreign key so rows survive independently of the execution record.
    ``timestamp`` is set in Python so rows written within the same
    second still sort in write order.
    """

    __tablename__ = "workflow_logs"

    workflow_id: Mapped[str] = mapped_column(nullable=False, index=True)
    execution_id: Mapped[str] = mapped_column(nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(nullable=False, index=True)
    step_id: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    level: Mapped[str] = mapped_column(default=LogLevel.INFO.value, index=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
