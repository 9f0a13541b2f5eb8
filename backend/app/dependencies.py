"""FastAPI dependency injection functions."""

import logging
from typing import Optional

from fastapi import Header, Request

from core.exceptions import UnauthorizedError
from services.workflow_service import WorkflowRepository
from triggers.matcher import TriggerMatcher
from workflow.engine import WorkflowEngine

logger = logging.getLogger(__name__)


async def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """
    Identify the calling user.

    Authentication happens upstream; the gateway forwards the
    authenticated user's id in the ``X-User-Id`` header.

    Raises:
        UnauthorizedError: If the header is missing or blank
    """
    if not x_user_id or not x_user_id.strip():
        raise UnauthorizedError("Missing X-User-Id header")
    return x_user_id.strip()


def get_engine(request: Request) -> WorkflowEngine:
    """Workflow engine created at startup."""
    return request.app.state.engine


def get_matcher(request: Request) -> TriggerMatcher:
    """Trigger matcher created at startup."""
    return request.app.state.matcher


def get_repository(request: Request) -> WorkflowRepository:
    """Workflow repository created at startup."""
    return request.app.state.repository
