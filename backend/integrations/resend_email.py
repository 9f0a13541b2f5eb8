"""Email delivery through the Resend HTTP API."""

import html
from typing import Optional

import httpx
import structlog

from app.config import Settings, get_settings

logger = structlog.get_logger(__name__)


# Body templates keyed by template id. Unknown ids fall back to "default".
EMAIL_TEMPLATES: dict[str, str] = {
    "default": "<p>{subject}</p>",
    "invoice_reminder": (
        "<h2>{subject}</h2>"
        "<p>This is a reminder about an outstanding invoice. "
        "Open your dashboard to review it.</p>"
    ),
    "workflow_report": (
        "<h2>{subject}</h2>"
        "<p>A workflow in your dashboard finished and produced a report.</p>"
    ),
}


class ResendEmailSender:
    """EmailSender implementation backed by Resend.

    Uses the application's shared ``httpx.AsyncClient``.
    """

    def __init__(self, client: httpx.AsyncClient, settings: Optional[Settings] = None):
        self._client = client
        self.settings = settings or get_settings()

    async def send(self, to: str, subject: str, template_id: str) -> str:
        if not self.settings.RESEND_API_KEY:
            raise RuntimeError("Email delivery is not configured (RESEND_API_KEY missing)")

        body = EMAIL_TEMPLATES.get(template_id, EMAIL_TEMPLATES["default"])
        response = await self._client.post(
            f"{self.settings.RESEND_API_BASE.rstrip('/')}/emails",
            headers={"Authorization": f"Bearer {self.settings.RESEND_API_KEY}"},
            json={
                "from": self.settings.EMAIL_FROM_ADDRESS,
                "to": [to],
                "subject": subject,
                "html": body.format(subject=html.escape(subject)),
                "tags": [{"name": "template", "value": template_id}],
            },
        )
        if response.status_code >= 400:
            logger.error("Email send rejected", status=response.status_code, body=response.text[:300])
            raise RuntimeError(f"Email provider error {response.status_code}")

        message_id = response.json().get("id", "")
        logger.info("Email sent", to=to, template=template_id, message_id=message_id)
        return message_id
