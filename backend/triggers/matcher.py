"""Trigger matching: inbound business events to workflow runs.

For an event type, every active trigger whose conditions hold against
the event's entity data starts its workflow with that data as the run's
``trigger_data``. Matched runs execute concurrently and independently;
one failing run never prevents the others.
"""

import asyncio
import logging
from typing import Any, Optional

from services.workflow_service import WorkflowRepository
from workflow.conditions import evaluate_conditions
from workflow.engine import WorkflowEngine
from workflow.models import Trigger, WorkflowResult

logger = logging.getLogger(__name__)


class TriggerMatcher:
    """Finds triggers for an event and hands matches to the engine."""

    def __init__(self, repository: WorkflowRepository, engine: WorkflowEngine):
        self._repository = repository
        self._engine = engine

    def matches(self, trigger: Trigger, entity_data: dict[str, Any]) -> bool:
        return trigger.is_active and evaluate_conditions(trigger.conditions, entity_data)

    async def dispatch(self, event_type: str, entity_data: Optional[dict[str, Any]] = None) -> list[WorkflowResult]:
        """Start every workflow whose trigger matches the event.

        Args:
            event_type: e.g. ``invoice.created``
            entity_data: Event payload, used for matching and as trigger data

        Returns:
            Results of the runs that were started
        """
        entity_data = entity_data or {}
        try:
            triggers = await self._repository.list_active_triggers(event_type)
        except Exception as e:
            logger.error("Failed to load triggers for %s: %s", event_type, e)
            return []

        matched = [t for t in triggers if self.matches(t, entity_data)]
        logger.info(
            "Event %s matched %d of %d trigger(s)", event_type, len(matched), len(triggers)
        )
        if not matched:
            return []

        outcomes = await asyncio.gather(
            *(
                self._engine.execute_workflow(t.workflow_id, entity_data, t.user_id)
                for t in matched
            ),
            return_exceptions=True,
        )

        results: list[WorkflowResult] = []
        for trigger, outcome in zip(matched, outcomes):
            if isinstance(outcome, BaseException):
                logger.error("Trigger %s failed to start workflow %s: %s", trigger.id, trigger.workflow_id, outcome)
                continue
            if not outcome.success:
                logger.warning(
                    "Workflow %s from trigger %s did not complete: %s",
                    trigger.workflow_id, trigger.id, outcome.error,
                )
            results.append(outcome)
        return results

    async def emit_event(
        self,
        user_id: str,
        event_type: str,
        entity_id: str,
        entity_type: str,
        payload: Optional[dict[str, Any]] = None,
    ) -> list[WorkflowResult]:
        """Dispatch a business event raised by the dashboard itself."""
        entity_data = {
            **(payload or {}),
            "entity_id": entity_id,
            "entity_type": entity_type,
            "entityId": entity_id,
            "entityType": entity_type,
        }
        logger.debug("Event %s emitted by user %s for %s %s", event_type, user_id, entity_type, entity_id)
        return await self.dispatch(event_type, entity_data)
