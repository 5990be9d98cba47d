"""Bridges Redis pub/sub to WebSocket clients.

Pattern-subscribes to ``ws:user:*`` (written by ``RedisEventPublisher``) and
hands each event to the connection manager. Running the bridge in every API
process lets any process deliver to a user connected to any other.
"""

import asyncio
import json

import redis.asyncio as aioredis
import structlog

from specmarket.realtime.manager import ConnectionManager, manager
from specmarket.realtime.publisher import USER_CHANNEL_PREFIX

logger = structlog.get_logger()

USER_PATTERN = f"{USER_CHANNEL_PREFIX}*"


class PubSubBridge:
    """Subscribes to Redis pub/sub and pushes events to WebSocket clients."""

    def __init__(self, redis_client: aioredis.Redis, connections: ConnectionManager | None = None) -> None:
        self.redis = redis_client
        self.connections = connections or manager
        self._running = False

    async def handle_message(self, message: dict) -> int:
        """Deliver one pub/sub message. Returns the number of sockets reached."""
        if message.get("type") != "pmessage":
            return 0

        redis_channel = message.get("channel", "")
        if isinstance(redis_channel, bytes):
            redis_channel = redis_channel.decode()
        if not redis_channel.startswith(USER_CHANNEL_PREFIX):
            return 0

        user_id = redis_channel[len(USER_CHANNEL_PREFIX):]
        if not user_id:
            logger.warning("pubsub_invalid_user_id", channel=redis_channel)
            return 0

        try:
            data = message.get("data", b"")
            if isinstance(data, bytes):
                data = data.decode()
            payload = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("pubsub_invalid_message", channel=redis_channel)
            return 0

        event = payload.get("event", "notification")
        sent = await self.connections.deliver_event(user_id, event, payload.get("data", {}))
        if sent > 0:
            logger.debug("user_event_sent", user_id=user_id, event_name=event, recipients=sent)
        return sent

    async def start(self) -> None:
        """Listen until ``stop()`` is called or the task is cancelled."""
        self._running = True
        pubsub = self.redis.pubsub()
        await pubsub.psubscribe(USER_PATTERN)
        logger.info("pubsub_bridge_started", patterns=[USER_PATTERN])

        try:
            while self._running:
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if message is None:
                    continue
                await self.handle_message(message)
        except asyncio.CancelledError:
            pass
        finally:
            await pubsub.punsubscribe()
            await pubsub.aclose()
            logger.info("pubsub_bridge_stopped")

    async def stop(self) -> None:
        """Signal the bridge to stop."""
        self._running = False
