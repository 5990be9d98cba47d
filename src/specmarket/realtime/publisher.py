"""Event publisher for per-user real-time delivery.

Write paths receive an ``EventPublisher`` through FastAPI dependency
injection and call it after their transaction commits. The production
implementation publishes to the ``ws:user:{user_id}`` Redis channel; the
pub/sub bridge fans those messages out to the user's WebSocket connections.

Delivery is best-effort: failures are logged and never reach the caller.
"""

from __future__ import annotations

import json
from typing import Any, Protocol

import structlog
from fastapi import Depends
from redis.asyncio import Redis

from specmarket.redis_client import get_optional_redis

logger = structlog.get_logger()

# Event names on the wire
MESSAGE_NEW = "message:new"
MESSAGE_READ = "message:read"
THREAD_UPDATED = "thread:updated"
APPLICATION_UPDATED = "application:updated"

USER_CHANNEL_PREFIX = "ws:user:"


def user_channel(user_id: str) -> str:
    return f"{USER_CHANNEL_PREFIX}{user_id}"


class EventPublisher(Protocol):
    async def publish(self, user_id: str, event: str, data: dict[str, Any]) -> None: ...


class RedisEventPublisher:
    """Publish events to ``ws:user:{id}``. A no-op when Redis is not configured."""

    def __init__(self, redis: Redis | None) -> None:
        self.redis = redis

    async def publish(self, user_id: str, event: str, data: dict[str, Any]) -> None:
        if self.redis is None:
            return
        payload = json.dumps({"event": event, "data": data}, default=str)
        try:
            await self.redis.publish(user_channel(user_id), payload)
        except Exception:
            logger.warning("event_publish_failed", user_id=user_id, event_name=event, exc_info=True)


async def publish_many(publisher: EventPublisher, user_ids: list[str], event: str, data: dict[str, Any]) -> None:
    """Publish the same event to several users (e.g. both thread participants)."""
    for user_id in user_ids:
        try:
            await publisher.publish(user_id, event, data)
        except Exception:
            # A publisher that raises must not stop delivery to the other recipients
            logger.warning("event_publish_failed", user_id=user_id, event_name=event, exc_info=True)


def get_event_publisher(redis: Redis | None = Depends(get_optional_redis)) -> EventPublisher:
    """FastAPI dependency. Tests override it with a recording publisher."""
    return RedisEventPublisher(redis)
