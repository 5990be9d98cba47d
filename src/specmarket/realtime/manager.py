"""WebSocket connection manager.

Tracks active WebSocket connections per user and their channel
subscriptions, and fans events out to them.
"""

import json
import time
from collections import defaultdict
from dataclasses import dataclass, field

import structlog
from fastapi import WebSocket

logger = structlog.get_logger()

VALID_CHANNELS = {"chat", "matching"}

# Which WebSocket channel each published event belongs to
EVENT_CHANNELS: dict[str, str] = {
    "message:new": "chat",
    "message:read": "chat",
    "thread:updated": "chat",
    "application:updated": "matching",
}


@dataclass
class ClientConnection:
    """Represents a single WebSocket client."""

    websocket: WebSocket
    user_id: str
    subscriptions: set[str] = field(default_factory=lambda: set(VALID_CHANNELS))
    connected_at: float = field(default_factory=time.time)
    messages_sent: int = 0


class ConnectionManager:
    """Manages all active WebSocket connections.

    Only touched from the event loop, so no locking is needed.
    """

    def __init__(self, max_connections_per_user: int = 5) -> None:
        self.max_connections_per_user = max_connections_per_user
        self._connections: dict[str, ClientConnection] = {}  # conn_id -> client
        self._user_connections: dict[str, set[str]] = defaultdict(set)  # user_id -> {conn_ids}

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def is_online(self, user_id: str) -> bool:
        return bool(self._user_connections.get(user_id))

    async def connect(self, websocket: WebSocket, conn_id: str, user_id: str) -> bool:
        """Accept a new connection. Returns False (and closes) when the user is over the limit."""
        if len(self._user_connections.get(user_id, ())) >= self.max_connections_per_user:
            await websocket.close(code=4008, reason="Too many connections")
            logger.info("ws_rejected_limit", user_id=user_id)
            return False

        await websocket.accept()
        self._connections[conn_id] = ClientConnection(websocket=websocket, user_id=user_id)
        self._user_connections[user_id].add(conn_id)
        logger.info("ws_connected", conn_id=conn_id, user_id=user_id)
        return True

    async def disconnect(self, conn_id: str) -> None:
        """Remove a connection."""
        client = self._connections.pop(conn_id, None)
        if client is None:
            return

        self._user_connections[client.user_id].discard(conn_id)
        if not self._user_connections[client.user_id]:
            del self._user_connections[client.user_id]

        logger.info("ws_disconnected", conn_id=conn_id, user_id=client.user_id)

    async def subscribe(self, conn_id: str, channel: str) -> bool:
        """Subscribe a connection to a channel. Returns False if invalid."""
        client = self._connections.get(conn_id)
        if client is None or channel not in VALID_CHANNELS:
            return False
        client.subscriptions.add(channel)
        return True

    async def unsubscribe(self, conn_id: str, channel: str) -> bool:
        client = self._connections.get(conn_id)
        if client is None:
            return False
        client.subscriptions.discard(channel)
        return True

    async def send_to_user(self, user_id: str, channel: str, message: dict) -> int:
        """Send a message to every connection of a user subscribed to ``channel``.

        Returns the number of connections that received it. Connections that
        fail to send are dropped.
        """
        conn_ids = list(self._user_connections.get(user_id, set()))
        payload = json.dumps({"channel": channel, "data": message}, default=str)
        sent = 0
        failed: list[str] = []

        for conn_id in conn_ids:
            client = self._connections.get(conn_id)
            if client is None or channel not in client.subscriptions:
                continue
            try:
                await client.websocket.send_text(payload)
                client.messages_sent += 1
                sent += 1
            except Exception:
                failed.append(conn_id)

        for conn_id in failed:
            await self.disconnect(conn_id)

        return sent

    async def deliver_event(self, user_id: str, event: str, data: dict) -> int:
        """Route a published event to the user's connections on the event's channel."""
        channel = EVENT_CHANNELS.get(event, "chat")
        return await self.send_to_user(user_id, channel, {"type": event, "payload": data})

    def get_stats(self) -> dict:
        return {
            "total_connections": len(self._connections),
            "unique_users": len(self._user_connections),
        }


# Global singleton
manager = ConnectionManager()
