"""Tests for the Redis pub/sub to WebSocket bridge and the event publisher."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest

from specmarket.realtime.bridge import USER_PATTERN, PubSubBridge
from specmarket.realtime.publisher import RedisEventPublisher, publish_many, user_channel


def _pmessage(channel: str, data: object) -> dict:
    return {"type": "pmessage", "pattern": USER_PATTERN, "channel": channel, "data": data}


class TestHandleMessage:
    @pytest.mark.asyncio
    async def test_forwards_user_event(self) -> None:
        connections = AsyncMock()
        connections.deliver_event = AsyncMock(return_value=1)
        bridge = PubSubBridge(AsyncMock(), connections)

        payload = json.dumps({"event": "message:new", "data": {"id": "m1"}})
        sent = await bridge.handle_message(_pmessage("ws:user:u1", payload))

        assert sent == 1
        connections.deliver_event.assert_awaited_once_with("u1", "message:new", {"id": "m1"})

    @pytest.mark.asyncio
    async def test_bytes_payload(self) -> None:
        connections = AsyncMock()
        connections.deliver_event = AsyncMock(return_value=1)
        bridge = PubSubBridge(AsyncMock(), connections)

        payload = json.dumps({"event": "thread:updated", "data": {}}).encode()
        await bridge.handle_message(_pmessage("ws:user:u2", payload))
        connections.deliver_event.assert_awaited_once_with("u2", "thread:updated", {})

    @pytest.mark.asyncio
    async def test_ignores_other_message_types(self) -> None:
        connections = AsyncMock()
        bridge = PubSubBridge(AsyncMock(), connections)
        assert await bridge.handle_message({"type": "psubscribe", "channel": "ws:user:*", "data": 1}) == 0
        connections.deliver_event.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_json_dropped(self) -> None:
        connections = AsyncMock()
        bridge = PubSubBridge(AsyncMock(), connections)
        assert await bridge.handle_message(_pmessage("ws:user:u1", "{not json")) == 0
        connections.deliver_event.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_user_id_dropped(self) -> None:
        connections = AsyncMock()
        bridge = PubSubBridge(AsyncMock(), connections)
        assert await bridge.handle_message(_pmessage("ws:user:", "{}")) == 0
        connections.deliver_event.assert_not_awaited()


class TestRedisEventPublisher:
    @pytest.mark.asyncio
    async def test_publishes_to_user_channel(self) -> None:
        redis = AsyncMock()
        await RedisEventPublisher(redis).publish("u1", "message:read", {"threadId": "t1"})
        channel, payload = redis.publish.await_args.args
        assert channel == user_channel("u1") == "ws:user:u1"
        assert json.loads(payload) == {"event": "message:read", "data": {"threadId": "t1"}}

    @pytest.mark.asyncio
    async def test_noop_without_redis(self) -> None:
        await RedisEventPublisher(None).publish("u1", "message:new", {})

    @pytest.mark.asyncio
    async def test_redis_failure_is_swallowed(self) -> None:
        redis = AsyncMock()
        redis.publish = AsyncMock(side_effect=ConnectionError("down"))
        await RedisEventPublisher(redis).publish("u1", "message:new", {})


class TestPublishMany:
    @pytest.mark.asyncio
    async def test_failure_does_not_stop_other_recipients(self) -> None:
        delivered: list[str] = []

        class FlakyPublisher:
            async def publish(self, user_id: str, event: str, data: dict) -> None:
                if user_id == "bad":
                    raise RuntimeError("boom")
                delivered.append(user_id)

        await publish_many(FlakyPublisher(), ["bad", "good"], "thread:updated", {})
        assert delivered == ["good"]
