"""Shared test fixtures."""

from __future__ import annotations

import os
import tempfile
from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from typing import Any

import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

os.environ.setdefault("SPM_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SPM_REDIS_URL", "")
os.environ.setdefault("SPM_LOG_FORMAT", "console")

from specmarket.auth.jwt import reset_keys  # noqa: E402
from specmarket.auth.service import ensure_admin  # noqa: E402
from specmarket.catalog.service import seed_categories  # noqa: E402
from specmarket.config import get_settings  # noqa: E402
from specmarket.database import close_db, get_engine, get_session_factory, init_db  # noqa: E402
from specmarket.db.base import Base  # noqa: E402
from specmarket.main import create_app  # noqa: E402
from specmarket.realtime.publisher import get_event_publisher  # noqa: E402

ADMIN_EMAIL = "admin@test.io"
ADMIN_PASSWORD = "AdminPass123"
DEFAULT_PASSWORD = "Password123"


def _ensure_test_keys() -> tuple[str, str]:
    """Generate an RSA key pair for JWT signing in a temp directory."""
    settings = get_settings()
    if os.path.exists(settings.jwt_private_key_path) and os.path.exists(settings.jwt_public_key_path):
        return settings.jwt_private_key_path, settings.jwt_public_key_path

    tmpdir = tempfile.mkdtemp(prefix="specmarket_test_keys_")
    private_path = os.path.join(tmpdir, "jwt_private.pem")
    public_path = os.path.join(tmpdir, "jwt_public.pem")

    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    with open(private_path, "wb") as f:
        f.write(
            key.private_bytes(
                serialization.Encoding.PEM,
                serialization.PrivateFormat.PKCS8,
                serialization.NoEncryption(),
            )
        )
    with open(public_path, "wb") as f:
        f.write(
            key.public_key().public_bytes(
                serialization.Encoding.PEM,
                serialization.PublicFormat.SubjectPublicKeyInfo,
            )
        )

    os.environ["SPM_JWT_PRIVATE_KEY_PATH"] = private_path
    os.environ["SPM_JWT_PUBLIC_KEY_PATH"] = public_path
    get_settings.cache_clear()
    reset_keys()
    return private_path, public_path


class RecordingPublisher:
    """Event publisher that keeps every event in memory."""

    def __init__(self) -> None:
        self.events: list[tuple[str, str, dict[str, Any]]] = []

    async def publish(self, user_id: str, event: str, data: dict[str, Any]) -> None:
        self.events.append((user_id, event, data))

    def for_user(self, user_id: str, event: str | None = None) -> list[dict[str, Any]]:
        return [d for uid, ev, d in self.events if uid == user_id and (event is None or ev == event)]

    def names(self) -> list[str]:
        return [ev for _, ev, _ in self.events]


@pytest.fixture(scope="session", autouse=True)
def _jwt_keys() -> tuple[str, str]:
    return _ensure_test_keys()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest_asyncio.fixture
async def app(publisher: RecordingPublisher) -> AsyncGenerator[FastAPI, None]:
    """Application bound to a fresh in-memory database with seeded categories."""
    settings = get_settings()
    await init_db(settings.database_url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with get_session_factory()() as session:
        await seed_categories(session)
        await session.commit()

    application = create_app()
    application.dependency_overrides[get_event_publisher] = lambda: publisher
    yield application

    application.dependency_overrides.clear()
    await close_db()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client. Lifespan is not run: no Redis, no bridge."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def db_session(app: FastAPI) -> AsyncGenerator[AsyncSession, None]:
    """Direct database session for setup and assertions."""
    async with get_session_factory()() as session:
        yield session


# ---------------------------------------------------------------------------
# Marketplace helpers
# ---------------------------------------------------------------------------


@dataclass
class Account:
    email: str
    user_id: str
    token: str
    headers: dict[str, str] = field(default_factory=dict)


class Market:
    """Drives common setup steps through the public API."""

    def __init__(self, client: AsyncClient) -> None:
        self.client = client

    async def register(self, email: str, password: str = DEFAULT_PASSWORD, display_name: str | None = None) -> Account:
        body: dict[str, Any] = {"email": email, "password": password}
        if display_name:
            body["displayName"] = display_name
        resp = await self.client.post("/api/auth/register", json=body)
        assert resp.status_code == 201, resp.text
        return await self.login(email, password)

    async def login(self, email: str, password: str = DEFAULT_PASSWORD) -> Account:
        resp = await self.client.post("/api/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.text
        # Every call passes explicit bearer headers; the cookie jar stays empty
        self.client.cookies.clear()
        data = resp.json()
        token = data["accessToken"]
        return Account(
            email=email,
            user_id=data["user"]["id"],
            token=token,
            headers={"Authorization": f"Bearer {token}"},
        )

    async def specialist(
        self,
        email: str,
        categories: list[str] | None = None,
        display_name: str | None = None,
        **profile: Any,
    ) -> Account:
        """Register, become a specialist, pick categories and fill the profile."""
        account = await self.register(email, display_name=display_name)
        resp = await self.client.post("/api/me/become-specialist", headers=account.headers)
        assert resp.status_code == 200, resp.text
        if categories:
            resp = await self.client.put(
                "/api/me/specialist-categories", json={"slugs": categories}, headers=account.headers
            )
            assert resp.status_code == 200, resp.text
        if profile:
            resp = await self.client.patch("/api/me/specialist-profile", json=profile, headers=account.headers)
            assert resp.status_code == 200, resp.text
        return account

    async def admin(self) -> Account:
        async with get_session_factory()() as session:
            await ensure_admin(session, ADMIN_EMAIL, ADMIN_PASSWORD)
            await session.commit()
        return await self.login(ADMIN_EMAIL, ADMIN_PASSWORD)

    async def create_request(self, account: Account, **overrides: Any) -> str:
        body: dict[str, Any] = {
            "categorySlug": "psychologist",
            "title": "Нужна консультация",
            "description": "Хочу разобраться с тревожностью и стрессом на работе",
            "preferredFormat": "online",
            "budgetMinCents": 400000,
            "budgetMaxCents": 700000,
        }
        body.update(overrides)
        resp = await self.client.post("/api/requests", json=body, headers=account.headers)
        assert resp.status_code == 201, resp.text
        return resp.json()["id"]

    async def apply(self, account: Account, request_id: str, message: str = "Готов помочь") -> str:
        resp = await self.client.post(
            f"/api/requests/{request_id}/applications", json={"message": message}, headers=account.headers
        )
        assert resp.status_code == 201, resp.text
        return resp.json()["id"]

    async def set_status(self, account: Account, request_id: str, status: str):
        return await self.client.put(
            f"/api/requests/{request_id}/status", json={"status": status}, headers=account.headers
        )

    async def open_thread(self, client_account: Account, specialist: Account, request_id: str | None = None) -> str:
        body: dict[str, Any] = {"specialistId": specialist.user_id}
        if request_id:
            body["requestId"] = request_id
        resp = await self.client.post("/api/chat/threads", json=body, headers=client_account.headers)
        assert resp.status_code in (200, 201), resp.text
        return resp.json()["thread"]["id"]


@pytest.fixture
def market(client: AsyncClient) -> Market:
    return Market(client)
