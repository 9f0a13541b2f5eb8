"""Event bus listener.

Subscribes to a Redis pub/sub channel. Other services publish business
events there as JSON:

    {"event_type": "invoice.overdue", "entity_data": {"invoice_id": "...", "amount": 1200}}

Each message is handed to the TriggerMatcher on its own task, so a
long-running workflow never holds up the events behind it.
"""

import asyncio
import json
import logging
from typing import Any, Optional

import redis.asyncio as aioredis

from app.config import Settings, get_settings
from triggers.matcher import TriggerMatcher
from workflow.models import WorkflowResult

logger = logging.getLogger(__name__)


def decode_event(raw: Any) -> Optional[tuple[str, dict]]:
    """Parse a pub/sub message body into ``(event_type, entity_data)``.

    Returns None for anything malformed.
    """
    try:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        message = json.loads(raw) if raw else None
    except (TypeError, json.JSONDecodeError, UnicodeDecodeError):
        return None

    if not isinstance(message, dict):
        return None
    event_type = message.get("event_type")
    entity_data = message.get("entity_data", {})
    if not isinstance(event_type, str) or not event_type or not isinstance(entity_data, dict):
        return None
    return event_type, entity_data


class EventBusListener:
    """Background Redis subscriber feeding the trigger matcher."""

    def __init__(
        self,
        matcher: TriggerMatcher,
        redis_client: Optional[aioredis.Redis] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.channel = self.settings.EVENT_BUS_CHANNEL
        self._matcher = matcher
        self._redis = redis_client
        self._task: Optional[asyncio.Task] = None
        self._dispatches: set[asyncio.Task] = set()

    @property
    def redis(self) -> aioredis.Redis:
        if self._redis is None:
            self._redis = aioredis.from_url(self.settings.REDIS_URL)
        return self._redis

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._listen())
        logger.info("Started event bus listener on channel: %s", self.channel)

    async def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        pending = list(self._dispatches)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._dispatches.clear()
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    async def handle_message(self, raw: Any) -> list[WorkflowResult]:
        decoded = decode_event(raw)
        if decoded is None:
            logger.warning("Dropping malformed event on %s: %r", self.channel, raw)
            return []
        event_type, entity_data = decoded
        return await self._matcher.dispatch(event_type, entity_data)

    def schedule_message(self, raw: Any) -> asyncio.Task:
        """Dispatch a message in the background and return its task."""
        task = asyncio.create_task(self.handle_message(raw))
        self._dispatches.add(task)
        task.add_done_callback(self._dispatch_done)
        return task

    def _dispatch_done(self, task: asyncio.Task) -> None:
        self._dispatches.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Event handling failed on %s: %s", self.channel, exc, exc_info=exc)

    async def publish_event(self, event_type: str, entity_data: dict[str, Any]) -> int:
        """Publish an event; returns the number of subscribers that got it."""
        body = json.dumps({"event_type": event_type, "entity_data": entity_data}, default=str)
        return await self.redis.publish(self.channel, body)

    async def _listen(self) -> None:
        pubsub = self.redis.pubsub()
        try:
            await pubsub.subscribe(self.channel)
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                self.schedule_message(message.get("data"))
        except asyncio.CancelledError:
            logger.info("Event bus listener cancelled for channel: %s", self.channel)
            raise
        except Exception as exc:
            logger.error("Event bus listener error for channel %s: %s", self.channel, exc, exc_info=True)
        finally:
            await pubsub.aclose()
