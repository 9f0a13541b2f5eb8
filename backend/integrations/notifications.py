"""In-app notifications stored in the ``notifications`` table."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from db.models.notification import Notification
from integrations.base import NotificationRequest

logger = structlog.get_logger(__name__)


class DatabaseNotificationCreator:
    """NotificationCreator that inserts a row per notification."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create(self, request: NotificationRequest) -> str:
        notification = Notification(
            user_id=request.user_id,
            type=request.type,
            title=request.title,
            message=request.message,
            priority=getattr(request.priority, "value", request.priority),
            data=request.data or None,
            action_url=request.action_url,
        )
        async with self._session_factory() as session:
            session.add(notification)
            await session.commit()

        logger.info("Notification created", user_id=request.user_id, notification_id=notification.id)
        return notification.id
