"""Outbound webhook step.

POSTs (by default) a JSON document describing the run to a configured
URL. The body always carries the run identifiers, the trigger payload
and the results accumulated so far; custom ``payload`` fields are
interpolated and merged on top.
"""

import ipaddress
from typing import Any
from urllib.parse import urlparse

import httpx
import structlog

from core.constants import StepType
from core.exceptions import StepExecutionError
from tasks.base_task import BaseStepExecutor
from workflow.interpolation import interpolate, interpolate_object
from workflow.models import ExecutionContext, WorkflowStep

logger = structlog.get_logger(__name__)

FORBIDDEN_PORTS = (5432, 6379, 9000)  # postgres, redis, internal admin


def _is_private_ip(ip_str: str) -> bool:
    """Check if an IP address is private, loopback or reserved."""
    try:
        ip = ipaddress.ip_address(ip_str)
    except ValueError:
        return False
    return ip.is_private or ip.is_loopback or ip.is_reserved or ip.is_link_local


def validate_webhook_url(url: str, allow_private_networks: bool = False) -> None:
    """Reject URLs a workflow must not call.

    Only http(s) is allowed. Unless ``allow_private_networks`` is set,
    localhost, private/loopback IP literals and internal service ports
    are refused. Hostnames are not resolved.

    Raises:
        ValueError: If the URL is unsafe
    """
    parsed = urlparse(url)
    if parsed.scheme.lower() not in ("http", "https"):
        raise ValueError(f"Unsupported scheme: {parsed.scheme or 'none'}. Only HTTP and HTTPS allowed.")

    hostname = parsed.hostname
    if not hostname:
        raise ValueError("URL must have a valid hostname")

    if allow_private_networks:
        return

    if hostname.lower() == "localhost" or _is_private_ip(hostname):
        raise ValueError(f"Connections to {hostname} are not allowed")

    if parsed.port in FORBIDDEN_PORTS:
        raise ValueError(f"Connections to internal port {parsed.port} are not allowed")


class WebhookStepExecutor(BaseStepExecutor):
    """Deliver run data to an external endpoint.

    Config:
        url: Target URL template (required)
        method: HTTP method (default: POST)
        headers: Extra request headers, interpolated
        payload: Custom body fields, interpolated and merged into the body

    Any non-2xx response fails the attempt so the retry policy applies.
    """

    step_type = StepType.WEBHOOK
    display_name = "Webhook"
    description = "Send run data to an external URL"

    def __init__(self, client: httpx.AsyncClient, timeout: float = 30.0, allow_private_networks: bool = False):
        self._client = client
        self._timeout = timeout
        self._allow_private_networks = allow_private_networks

    def build_payload(self, step: WorkflowStep, context: ExecutionContext) -> dict[str, Any]:
        custom = interpolate_object(step.configuration.get("payload") or {}, context)
        return {
            "executionId": context.execution_id,
            "workflowId": context.workflow_id,
            "userId": context.user_id,
            "triggerData": context.trigger_data,
            "stepResults": context.step_results,
            **custom,
        }

    async def execute(self, step: WorkflowStep, context: ExecutionContext) -> dict[str, Any]:
        config = step.configuration
        if not config.get("url"):
            raise StepExecutionError("Webhook step requires 'url'", step.id)

        url = interpolate(config["url"], context)
        try:
            validate_webhook_url(url, self._allow_private_networks)
        except ValueError as e:
            raise StepExecutionError(str(e), step.id)

        method = str(config.get("method") or "POST").upper()
        headers = {
            "Content-Type": "application/json",
            **interpolate_object(config.get("headers") or {}, context),
        }

        try:
            response = await self._client.request(
                method,
                url,
                json=self.build_payload(step, context),
                headers=headers,
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            raise StepExecutionError(f"Webhook request failed: {e}", step.id) from e

        try:
            body = response.json()
        except ValueError:
            body = response.text

        if not response.is_success:
            logger.warning("Webhook rejected", step_id=step.id, url=url, status=response.status_code)
            raise StepExecutionError(f"Webhook returned HTTP {response.status_code}", step.id)

        return {
            "url": url,
            "method": method,
            "status": response.status_code,
            "response": body,
        }
