"""Call contracts for the engine's external collaborators.

The engine only depends on these protocols; concrete adapters live next
to this module and are wired in ``app.main``. Tests pass fakes.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from core.constants import NotificationPriority


@dataclass
class NotificationRequest:
    """An in-app notification to create for a user."""
    user_id: str
    title: str
    message: str
    type: str = "system"
    priority: NotificationPriority = NotificationPriority.NORMAL
    data: dict[str, Any] = field(default_factory=dict)
    action_url: Optional[str] = None


class EmailSender(Protocol):
    async def send(self, to: str, subject: str, template_id: str) -> str:
        """Send an email and return the provider's message id."""
        ...


class NotificationCreator(Protocol):
    async def create(self, request: NotificationRequest) -> str:
        """Persist a notification and return its id."""
        ...


class AIQueryService(Protocol):
    async def query(self, query: str, user_id: str, analysis_type: str = "general") -> dict[str, Any]:
        """Answer ``query``; returns ``{"response", "analysis", "confidence"}``."""
        ...
