"""Business event intake endpoints."""

import logging

from fastapi import APIRouter, Depends

from api.schemas.execution import (
    EmitEventRequest,
    EventDispatchResponse,
    EventRequest,
    WorkflowResultResponse,
)
from app.dependencies import get_current_user_id, get_matcher
from triggers.matcher import TriggerMatcher

logger = logging.getLogger(__name__)

router = APIRouter(tags=["events"])


@router.post("/", response_model=EventDispatchResponse)
async def dispatch_event(
    body: EventRequest,
    user_id: str = Depends(get_current_user_id),
    matcher: TriggerMatcher = Depends(get_matcher),
) -> EventDispatchResponse:
    """
    Deliver an event to the trigger matcher and wait for the matched runs.
    """
    results = await matcher.dispatch(body.event_type, body.entity_data)
    return EventDispatchResponse(
        event_type=body.event_type,
        started=len(results),
        results=[WorkflowResultResponse(**r.to_dict()) for r in results],
    )


@router.post("/emit", response_model=EventDispatchResponse)
async def emit_event(
    body: EmitEventRequest,
    user_id: str = Depends(get_current_user_id),
    matcher: TriggerMatcher = Depends(get_matcher),
) -> EventDispatchResponse:
    """
    Raise an event about a specific entity on behalf of the caller.
    """
    results = await matcher.emit_event(
        user_id,
        body.event_type,
        body.entity_id,
        body.entity_type,
        body.payload,
    )
    return EventDispatchResponse(
        event_type=body.event_type,
        started=len(results),
        results=[WorkflowResultResponse(**r.to_dict()) for r in results],
    )
