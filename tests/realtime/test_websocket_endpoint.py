"""WebSocket endpoint tests: auth and client actions."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt as pyjwt
import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from specmarket.auth.jwt import _load_keys, create_access_token
from specmarket.config import get_settings
from specmarket.main import create_app


@pytest.fixture
def test_client() -> TestClient:
    return TestClient(create_app())


@pytest.fixture
def ws_token() -> str:
    return create_access_token("ws-user-1", "CLIENT")


@pytest.fixture
def expired_ws_token() -> str:
    private_key, _ = _load_keys()
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": "ws-user-1",
        "iat": now - timedelta(hours=2),
        "exp": now - timedelta(hours=1),
        "iss": settings.jwt_issuer,
        "type": "access",
    }
    return pyjwt.encode(payload, private_key, algorithm=settings.jwt_algorithm)


class TestWebSocketAuth:
    def test_valid_token(self, test_client: TestClient, ws_token: str) -> None:
        with test_client.websocket_connect(f"/ws?token={ws_token}") as ws:
            ws.send_json({"action": "ping"})
            assert ws.receive_json() == {"type": "pong"}

    def test_missing_token(self, test_client: TestClient) -> None:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with test_client.websocket_connect("/ws") as ws:
                ws.receive_json()
        assert exc_info.value.code == 4001

    def test_invalid_token(self, test_client: TestClient) -> None:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with test_client.websocket_connect("/ws?token=invalid.jwt.token") as ws:
                ws.receive_json()
        assert exc_info.value.code == 4001

    def test_expired_token(self, test_client: TestClient, expired_ws_token: str) -> None:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with test_client.websocket_connect(f"/ws?token={expired_ws_token}") as ws:
                ws.receive_json()
        assert exc_info.value.code == 4001


class TestWebSocketActions:
    def test_subscribe_and_unsubscribe(self, test_client: TestClient, ws_token: str) -> None:
        with test_client.websocket_connect(f"/ws?token={ws_token}") as ws:
            ws.send_json({"action": "unsubscribe", "channel": "matching"})
            assert ws.receive_json() == {"type": "unsubscribed", "channel": "matching"}
            ws.send_json({"action": "subscribe", "channel": "matching"})
            assert ws.receive_json() == {"type": "subscribed", "channel": "matching"}

    def test_invalid_channel(self, test_client: TestClient, ws_token: str) -> None:
        with test_client.websocket_connect(f"/ws?token={ws_token}") as ws:
            ws.send_json({"action": "subscribe", "channel": "mining"})
            data = ws.receive_json()
            assert data["type"] == "error"
            assert "Invalid channel" in data["message"]

    def test_invalid_json(self, test_client: TestClient, ws_token: str) -> None:
        with test_client.websocket_connect(f"/ws?token={ws_token}") as ws:
            ws.send_text("not valid json {{{")
            data = ws.receive_json()
            assert data["type"] == "error"
            assert "Invalid JSON" in data["message"]

    def test_unknown_action(self, test_client: TestClient, ws_token: str) -> None:
        with test_client.websocket_connect(f"/ws?token={ws_token}") as ws:
            ws.send_json({"action": "explode"})
            data = ws.receive_json()
            assert data["type"] == "error"
            assert "Unknown action" in data["message"]
