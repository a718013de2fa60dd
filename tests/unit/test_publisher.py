"""Tests for the Redis notification publisher."""

import json
from unittest.mock import AsyncMock

from redis.exceptions import ConnectionError as RedisConnectionError

from case_engine.models.domain import NotificationType
from case_engine.services.notifications.publisher import NotificationPublisher, build_event


def _event():
    return build_event("client-1", NotificationType.CASE_SUBMITTED, "submitted", "case-1")


class TestNotificationPublisher:
    async def test_pushes_json_onto_queue(self):
        redis = AsyncMock()
        publisher = NotificationPublisher(redis, queue_key="q")

        assert await publisher.publish(_event()) is True

        redis.lpush.assert_awaited_once()
        key, payload = redis.lpush.await_args.args
        assert key == "q"
        body = json.loads(payload)
        assert body["recipient_id"] == "client-1"
        assert body["type"] == "case_submitted"
        assert body["related_case_id"] == "case-1"

    async def test_redis_failure_is_swallowed(self):
        redis = AsyncMock()
        redis.lpush.side_effect = RedisConnectionError("down")
        publisher = NotificationPublisher(redis, queue_key="q")

        assert await publisher.publish(_event()) is False

    async def test_disabled_publisher_does_not_touch_redis(self):
        redis = AsyncMock()
        publisher = NotificationPublisher(redis, queue_key="q", enabled=False)

        assert await publisher.publish(_event()) is False
        redis.lpush.assert_not_awaited()

    async def test_publish_all_counts_successes(self):
        redis = AsyncMock()
        redis.lpush.side_effect = [1, RedisConnectionError("down"), 1]
        publisher = NotificationPublisher(redis, queue_key="q")

        assert await publisher.publish_all([_event(), _event(), _event()]) == 2

    async def test_no_client_means_disabled(self):
        assert await NotificationPublisher(None).publish(_event()) is False
