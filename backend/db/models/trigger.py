"""Workflow trigger model.

A trigger maps an inbound business event (``invoice.created``,
``payroll.completed``...) to a workflow. ``conditions`` uses the same
clause format as step guards and is evaluated against the event's
entity data.
"""

from typing import Optional

from sqlalchemy import JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import BaseModel


class WorkflowTrigger(BaseModel):
    """Trigger model: starts a workflow when a matching event arrives.

    Attributes:
        id: UUID primary key
        name: Human-readable trigger name
        event_type: Event type the trigger listens to
        conditions: ``{path: {"operator": ..., "value": ...}}`` clauses
        workflow_id: FK to the workflow to execute
        user_id: Owner; runs execute on their behalf
        is_active: Inactive triggers are never matched
    """

    __tablename__ = "workflow_triggers"

    name: Mapped[str] = mapped_column(nullable=False, default="")
    event_type: Mapped[str] = mapped_column(nullable=False, index=True)
    conditions: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    workflow_id: Mapped[str] = mapped_column(
        ForeignKey("workflows.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(default=True, index=True)

    workflow: Mapped["Workflow"] = relationship(
        "Workflow", back_populates="triggers", lazy="noload"
    )
