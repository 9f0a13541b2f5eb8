"""Workflow definition model."""

from typing import Optional

from sqlalchemy import JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import BaseModel


class Workflow(BaseModel):
    """A stored workflow definition.

    Attributes:
        id: Unique identifier (UUID string)
        user_id: Owner of the workflow
        name: Workflow name
        description: Workflow description
        steps: Ordered list of step definitions (JSON)
        variables: Default variables seeded into every run (JSON)
        is_active: Only active workflows can be executed
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    __tablename__ = "workflows"

    user_id: Mapped[str] = mapped_column(nullable=False, index=True)
    name: Mapped[str] = mapped_column(nullable=False, index=True)
    description: Mapped[str] = mapped_column(nullable=False, default="")
    steps: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    variables: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    is_active: Mapped[bool] = mapped_column(default=True, index=True)

    executions: Mapped[list["WorkflowExecution"]] = relationship(
        "WorkflowExecution",
        back_populates="workflow",
        cascade="all, delete-orphan",
        lazy="noload",
    )
    triggers: Mapped[list["WorkflowTrigger"]] = relationship(
        "WorkflowTrigger",
        back_populates="workflow",
        cascade="all, delete-orphan",
        lazy="noload",
    )
