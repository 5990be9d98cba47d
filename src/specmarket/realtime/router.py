"""WebSocket endpoint with JWT authentication and channel multiplexing."""

import json
import uuid

import jwt
import structlog
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from specmarket.auth.jwt import verify_token
from specmarket.config import get_settings
from specmarket.realtime.manager import manager

logger = structlog.get_logger()

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: str | None = Query(None),
) -> None:
    """Per-user event stream.

    The token comes from the ``token`` query parameter or the session cookie.
    Connections start subscribed to every channel.

    Protocol:
        Client -> Server:
            {"action": "subscribe", "channel": "chat"}
            {"action": "unsubscribe", "channel": "matching"}
            {"action": "ping"}

        Server -> Client:
            {"channel": "chat", "data": {"type": "message:new", "payload": {...}}}
            {"type": "pong"}
            {"type": "error", "message": "..."}
            {"type": "subscribed", "channel": "chat"}
            {"type": "unsubscribed", "channel": "chat"}
    """
    raw_token = token or websocket.cookies.get(get_settings().session_cookie_name)
    try:
        if not raw_token:
            msg = "Missing token"
            raise jwt.InvalidTokenError(msg)
        payload = verify_token(raw_token, expected_type="access")
        user_id = str(payload["sub"])
    except (jwt.InvalidTokenError, KeyError) as e:
        await websocket.close(code=4001, reason=f"Authentication failed: {e}")
        return

    conn_id = str(uuid.uuid4())
    if not await manager.connect(websocket, conn_id, user_id):
        return

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                await websocket.send_json({"type": "error", "message": "Invalid JSON"})
                continue

            action = msg.get("action") if isinstance(msg, dict) else None

            if action == "subscribe":
                channel = msg.get("channel", "")
                if await manager.subscribe(conn_id, channel):
                    await websocket.send_json({"type": "subscribed", "channel": channel})
                else:
                    await websocket.send_json({"type": "error", "message": f"Invalid channel: {channel}"})

            elif action == "unsubscribe":
                channel = msg.get("channel", "")
                await manager.unsubscribe(conn_id, channel)
                await websocket.send_json({"type": "unsubscribed", "channel": channel})

            elif action == "ping":
                await websocket.send_json({"type": "pong"})

            else:
                await websocket.send_json({"type": "error", "message": f"Unknown action: {action}"})

    except WebSocketDisconnect:
        await manager.disconnect(conn_id)
    except Exception:
        logger.exception("ws_error", conn_id=conn_id)
        await manager.disconnect(conn_id)
