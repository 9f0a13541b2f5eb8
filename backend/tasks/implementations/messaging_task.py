"""Email and in-app notification steps."""

from typing import Any

from core.constants import NotificationPriority, StepType
from core.exceptions import StepExecutionError
from integrations.base import EmailSender, NotificationCreator, NotificationRequest
from tasks.base_task import BaseStepExecutor
from workflow.interpolation import interpolate, interpolate_object
from workflow.models import ExecutionContext, WorkflowStep


class EmailStepExecutor(BaseStepExecutor):
    """Send an email through the configured provider.

    Config:
        to: Recipient address template (required)
        subject: Subject template
        template: Provider template id (default: default)
    """

    step_type = StepType.EMAIL
    display_name = "Send Email"
    description = "Send a templated email"

    def __init__(self, sender: EmailSender):
        self._sender = sender

    async def execute(self, step: WorkflowStep, context: ExecutionContext) -> dict[str, Any]:
        config = step.configuration
        if not config.get("to"):
            raise StepExecutionError("Email step requires 'to'", step.id)

        to = interpolate(config["to"], context)
        subject = interpolate(config.get("subject", ""), context)
        template = config.get("template") or "default"

        message_id = await self._sender.send(to, subject, template)
        return {
            "to": to,
            "subject": subject,
            "template": template,
            "sent": True,
            "message_id": message_id,
        }


class NotificationStepExecutor(BaseStepExecutor):
    """Create an in-app notification for the run's user.

    Config:
        title: Title template (required)
        message: Body template
        type: Notification category (default: system)
        priority: low | normal | high | urgent (default: normal)
        data: Extra payload, interpolated
        action_url: Link template
    """

    step_type = StepType.NOTIFICATION
    display_name = "Notify"
    description = "Create a dashboard notification"

    def __init__(self, creator: NotificationCreator):
        self._creator = creator

    async def execute(self, step: WorkflowStep, context: ExecutionContext) -> dict[str, Any]:
        config = step.configuration
        if not config.get("title"):
            raise StepExecutionError("Notification step requires 'title'", step.id)

        try:
            priority = NotificationPriority(config.get("priority") or NotificationPriority.NORMAL.value)
        except ValueError:
            raise StepExecutionError(f"Unknown notification priority {config.get('priority')!r}", step.id)

        action_url = config.get("action_url") or config.get("actionUrl")
        request = NotificationRequest(
            user_id=context.user_id,
            title=interpolate(config["title"], context),
            message=interpolate(config.get("message", ""), context),
            type=config.get("type") or "system",
            priority=priority,
            data=interpolate_object(config.get("data") or {}, context),
            action_url=interpolate(action_url, context) if action_url else None,
        )

        notification_id = await self._creator.create(request)
        return {"notification_id": notification_id, "sent": True}
