"""Fire-and-forget lifecycle notifications over a Redis list.

Delivery (email, push, in-app) belongs to a separate consumer that pops
from ``Settings.notification_queue_key``. Publishing never fails the
caller: by the time an event is published the transition that caused it
has already committed.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

import structlog
from prometheus_client import Counter
from redis.exceptions import RedisError

from case_engine.models.domain import NotificationEvent, NotificationType
from case_engine.utils.clock import utcnow

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger: structlog.stdlib.BoundLogger = structlog.get_logger()

NOTIFICATIONS_PUBLISHED = Counter(
    "notifications_published_total",
    "Notification events pushed to the queue",
    ["type"],
)
NOTIFICATIONS_FAILED = Counter(
    "notifications_failed_total",
    "Notification events that could not be pushed",
    ["type"],
)


def build_event(
    recipient_id: str,
    type_: NotificationType,
    message: str,
    case_id: str,
) -> NotificationEvent:
    return NotificationEvent(
        recipient_id=recipient_id,
        type=type_,
        message=message,
        related_case_id=case_id,
        created_at=utcnow(),
    )


class NotificationPublisher:
    """Pushes serialized NotificationEvents onto a Redis list."""

    def __init__(
        self,
        redis: Redis | None,
        *,
        queue_key: str = "notifications:events",
        enabled: bool = True,
    ) -> None:
        self._redis = redis
        self._queue_key = queue_key
        self._enabled = enabled and redis is not None

    async def publish(self, event: NotificationEvent) -> bool:
        """Enqueue one event. Returns False (and logs) instead of raising."""
        if not self._enabled or self._redis is None:
            logger.debug("notification_skipped", type=event.type, case_id=event.related_case_id)
            return False
        try:
            await self._redis.lpush(self._queue_key, event.model_dump_json())  # type: ignore[misc]
        except (RedisError, OSError):
            NOTIFICATIONS_FAILED.labels(type=event.type.value).inc()
            logger.warning(
                "notification_publish_failed",
                type=event.type,
                case_id=event.related_case_id,
                recipient_id=event.recipient_id,
                exc_info=True,
            )
            return False
        NOTIFICATIONS_PUBLISHED.labels(type=event.type.value).inc()
        logger.info(
            "notification_published",
            type=event.type,
            case_id=event.related_case_id,
            recipient_id=event.recipient_id,
        )
        return True

    async def publish_all(self, events: Iterable[NotificationEvent]) -> int:
        """Publish events in order; returns how many were enqueued."""
        published = 0
        for event in events:
            if await self.publish(event):
                published += 1
        return published
