"""
Custom business actions (``action`` steps).

Actions are looked up by ``action_type`` in an ActionRegistry. Each
handler receives the interpolated ``parameters`` and the run context
and returns a result dict; a ``variables`` key in that dict is merged
into the run.

Built-in actions:
- set_variables: parameters become run variables
- log: writes ``parameters.message`` to the application log
"""

from typing import Any, Awaitable, Callable, Optional

import structlog

from core.constants import StepType
from core.exceptions import StepExecutionError
from tasks.base_task import BaseStepExecutor
from workflow.interpolation import interpolate_object
from workflow.models import ExecutionContext, WorkflowStep

logger = structlog.get_logger(__name__)

ActionHandler = Callable[[dict[str, Any], ExecutionContext], Awaitable[dict[str, Any]]]


async def _set_variables(parameters: dict[str, Any], context: ExecutionContext) -> dict[str, Any]:
    return {"variables": dict(parameters)}


async def _log(parameters: dict[str, Any], context: ExecutionContext) -> dict[str, Any]:
    level = str(parameters.get("level", "info")).lower()
    message = parameters.get("message", "")
    log = getattr(logger, level, logger.info)
    log("Workflow action log", message=message, workflow_id=context.workflow_id)
    return {"logged": True, "level": level, "message": message}


class ActionRegistry:
    """Handler table keyed by action type."""

    def __init__(self):
        self._handlers: dict[str, ActionHandler] = {}

    @classmethod
    def with_builtins(cls) -> "ActionRegistry":
        registry = cls()
        registry.register("set_variables", _set_variables)
        registry.register("log", _log)
        return registry

    def register(self, action_type: str, handler: ActionHandler) -> None:
        """Register or replace the handler for ``action_type``."""
        self._handlers[action_type] = handler

    def get(self, action_type: str) -> Optional[ActionHandler]:
        return self._handlers.get(action_type)

    @property
    def available_actions(self) -> list:
        return sorted(self._handlers)


class ActionStepExecutor(BaseStepExecutor):
    """Dispatch to a registered action handler.

    Config:
        action_type: Registered action name (required)
        parameters: Handler input, interpolated
    """

    step_type = StepType.ACTION
    display_name = "Action"
    description = "Run a registered business action"

    def __init__(self, actions: ActionRegistry):
        self._actions = actions

    async def execute(self, step: WorkflowStep, context: ExecutionContext) -> dict[str, Any]:
        config = step.configuration
        action_type = config.get("action_type") or config.get("actionType") or config.get("action")
        handler = self._actions.get(action_type) if action_type else None
        if handler is None:
            raise StepExecutionError(f"Unknown action type '{action_type}'", step.id)

        parameters = interpolate_object(config.get("parameters") or {}, context)
        result = await handler(parameters, context) or {}

        output: dict[str, Any] = {"action": action_type, "parameters": parameters, "result": result}
        if isinstance(result.get("variables"), dict):
            output["variables"] = result["variables"]
        return output
