"""Database models for the workflow engine.

This module imports all models to ensure they are registered
with SQLAlchemy's declarative base.
"""

from db.models.workflow import Workflow
from db.models.execution import WorkflowExecution
from db.models.workflow_log import WorkflowLog
from db.models.trigger import WorkflowTrigger
from db.models.notification import Notification

__all__ = [
    "Workflow",
    "WorkflowExecution",
    "WorkflowLog",
    "WorkflowTrigger",
    "Notification",
]
