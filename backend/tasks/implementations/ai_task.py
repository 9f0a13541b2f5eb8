"""
AI query step (``gpt``).

Sends an interpolated query to the AI query service and returns the
answer with its structured analysis and a confidence score.
"""

from typing import Any

from core.constants import StepType
from core.exceptions import StepExecutionError
from integrations.base import AIQueryService
from tasks.base_task import BaseStepExecutor
from workflow.interpolation import interpolate
from workflow.models import ExecutionContext, WorkflowStep


class GptStepExecutor(BaseStepExecutor):
    """Ask the AI service a question built from run data.

    Config:
        query: Question template (required), e.g.
            "Summarize cash flow risk for {{triggerData.company}}"
        analysis_type: Hint for the model (default: general)
    """

    step_type = StepType.GPT
    display_name = "AI Query"
    description = "Ask the AI assistant and capture its analysis"

    def __init__(self, service: AIQueryService):
        self._service = service

    async def execute(self, step: WorkflowStep, context: ExecutionContext) -> dict[str, Any]:
        config = step.configuration
        template = config.get("query")
        if not template:
            raise StepExecutionError("AI step requires 'query'", step.id)

        query = interpolate(template, context)
        analysis_type = config.get("analysis_type") or config.get("analysisType") or "general"

        answer = await self._service.query(query, context.user_id, analysis_type)
        return {
            "query": query,
            "response": answer.get("response"),
            "analysis": answer.get("analysis"),
            "confidence": answer.get("confidence"),
        }
