"""In-app notification model."""

from typing import Optional

from sqlalchemy import JSON, Text
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import NotificationPriority
from db.base import BaseModel


class Notification(BaseModel):
    """A notification shown in a user's dashboard inbox."""

    __tablename__ = "notifications"

    user_id: Mapped[str] = mapped_column(nullable=False, index=True)
    type: Mapped[str] = mapped_column(nullable=False, default="system")
    title: Mapped[str] = mapped_column(nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    priority: Mapped[str] = mapped_column(default=NotificationPriority.NORMAL.value)
    data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    action_url: Mapped[Optional[str]] = mapped_column(nullable=True)
    is_read: Mapped[bool] = mapped_column(default=False, index=True)
