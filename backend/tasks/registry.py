"""
Step Executor Registry: maps every StepType to its executor.

The registry refuses to build unless every StepType has an executor,
so dispatch can never hit an unknown kind at run time.
"""

from collections.abc import Mapping
from typing import Optional

import httpx

from app.config import Settings, get_settings
from core.constants import StepType
from integrations.base import AIQueryService, EmailSender, NotificationCreator
from tasks.base_task import BaseStepExecutor
from tasks.implementations.action_task import ActionRegistry, ActionStepExecutor
from tasks.implementations.ai_task import GptStepExecutor
from tasks.implementations.flow_task import ConditionStepExecutor, DelayStepExecutor
from tasks.implementations.http_task import WebhookStepExecutor
from tasks.implementations.messaging_task import EmailStepExecutor, NotificationStepExecutor
from workflow.models import ExecutionContext, StepResult, WorkflowStep


class StepExecutorRegistry:
    """Exhaustive StepType to executor table."""

    def __init__(self, executors: Mapping[StepType, BaseStepExecutor]):
        missing = [t.value for t in StepType if t not in executors]
        if missing:
            raise ValueError(f"No executor registered for step types: {', '.join(missing)}")
        self._executors: dict[StepType, BaseStepExecutor] = dict(executors)

    def get(self, step_type: StepType) -> BaseStepExecutor:
        return self._executors[step_type]

    async def run(self, step: WorkflowStep, context: ExecutionContext) -> StepResult:
        """Dispatch one attempt of ``step`` to its executor."""
        return await self._executors[step.type].run(step, context)

    def list_all(self) -> list:
        """List registered step kinds with metadata."""
        return [
            {
                "step_type": step_type.value,
                "display_name": executor.display_name,
                "description": executor.description,
            }
            for step_type, executor in self._executors.items()
        ]

    @property
    def available_types(self) -> list:
        return [t.value for t in self._executors]


def build_default_registry(
    http_client: httpx.AsyncClient,
    email_sender: EmailSender,
    notification_creator: NotificationCreator,
    ai_service: AIQueryService,
    action_registry: Optional[ActionRegistry] = None,
    settings: Optional[Settings] = None,
) -> StepExecutorRegistry:
    """Wire the built-in executors to their collaborators."""
    settings = settings or get_settings()
    return StepExecutorRegistry({
        StepType.ACTION: ActionStepExecutor(action_registry or ActionRegistry.with_builtins()),
        StepType.CONDITION: ConditionStepExecutor(),
        StepType.DELAY: DelayStepExecutor(),
        StepType.WEBHOOK: WebhookStepExecutor(
            http_client,
            timeout=settings.WEBHOOK_TIMEOUT,
            allow_private_networks=settings.WEBHOOK_ALLOW_PRIVATE_NETWORKS,
        ),
        StepType.EMAIL: EmailStepExecutor(email_sender),
        StepType.NOTIFICATION: NotificationStepExecutor(notification_creator),
        StepType.GPT: GptStepExecutor(ai_service),
    })
