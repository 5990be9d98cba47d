"""Tests for the authorization guards and their HTTP mapping."""

import pytest
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from specmarket.auth.guards import (
    GuardError,
    GuardReason,
    require_active_user,
    require_admin,
    require_client_profile,
    require_specialist_profile,
)
from specmarket.auth.service import ensure_admin, register_user
from specmarket.db.models import Role, User, UserStatus
from specmarket.middleware.error_handler import GUARD_MESSAGES, GUARD_STATUS


class TestGuards:
    async def test_missing_subject(self, db_session: AsyncSession) -> None:
        with pytest.raises(GuardError) as exc_info:
            await require_active_user(db_session, None)
        assert exc_info.value.reason == GuardReason.UNAUTHORIZED

    async def test_unknown_subject(self, db_session: AsyncSession) -> None:
        with pytest.raises(GuardError) as exc_info:
            await require_active_user(db_session, "no-such-user")
        assert exc_info.value.reason == GuardReason.USER_NOT_FOUND

    async def test_blocked_user(self, db_session: AsyncSession) -> None:
        user = await register_user(db_session, "blocked@test.io", "Password123")
        user_id = user.id
        await db_session.execute(update(User).where(User.id == user_id).values(status=UserStatus.BLOCKED))
        await db_session.commit()
        db_session.expire_all()
        with pytest.raises(GuardError) as exc_info:
            await require_active_user(db_session, user_id)
        assert exc_info.value.reason == GuardReason.USER_NOT_ACTIVE

    async def test_client_profile(self, db_session: AsyncSession) -> None:
        user = await register_user(db_session, "client@test.io", "Password123")
        await db_session.commit()
        found, profile = await require_client_profile(db_session, user.id)
        assert found.id == user.id
        assert profile.user_id == user.id

    async def test_no_specialist_profile(self, db_session: AsyncSession) -> None:
        user = await register_user(db_session, "client@test.io", "Password123")
        await db_session.commit()
        with pytest.raises(GuardError) as exc_info:
            await require_specialist_profile(db_session, user.id)
        assert exc_info.value.reason == GuardReason.NO_SPECIALIST_PROFILE

    async def test_admin_required(self, db_session: AsyncSession) -> None:
        user = await register_user(db_session, "client@test.io", "Password123")
        await db_session.commit()
        with pytest.raises(GuardError) as exc_info:
            await require_admin(db_session, user.id)
        assert exc_info.value.reason == GuardReason.ADMIN_REQUIRED

    async def test_seeded_admin_passes(self, db_session: AsyncSession) -> None:
        admin = await ensure_admin(db_session, "root@test.io", "AdminPass123")
        await db_session.commit()
        assert (await require_admin(db_session, admin.id)).role == Role.ADMIN

    async def test_ensure_admin_promotes_existing_user(self, db_session: AsyncSession) -> None:
        user = await register_user(db_session, "promote@test.io", "Password123")
        await db_session.commit()
        promoted = await ensure_admin(db_session, "promote@test.io", "ignored-password")
        assert promoted.id == user.id
        assert promoted.role == Role.ADMIN


class TestGuardMapping:
    def test_every_reason_is_mapped(self) -> None:
        assert set(GUARD_STATUS) == set(GuardReason)
        assert set(GUARD_MESSAGES) == set(GuardReason)

    def test_status_codes(self) -> None:
        assert GUARD_STATUS[GuardReason.UNAUTHORIZED] == 401
        assert GUARD_STATUS[GuardReason.NO_CLIENT_PROFILE] == 403
        assert GUARD_STATUS[GuardReason.NO_SPECIALIST_PROFILE] == 403
        assert GUARD_STATUS[GuardReason.ADMIN_REQUIRED] == 403
        assert GUARD_STATUS[GuardReason.USER_NOT_ACTIVE] == 403


class TestGuardsOverHttp:
    async def test_specialist_route_rejects_client(self, client, market) -> None:
        account = await market.register("client@test.io")
        resp = await client.get("/api/me/specialist-profile", headers=account.headers)
        assert resp.status_code == 403
        assert resp.json() == {"error": "Требуется профиль специалиста"}

    async def test_admin_route_rejects_specialist(self, client, market) -> None:
        account = await market.specialist("spec@test.io", ["psychologist"])
        resp = await client.get("/api/admin/specialists", headers=account.headers)
        assert resp.status_code == 403
        assert resp.json() == {"error": "Требуются права администратора"}

    async def test_admin_route_anonymous(self, client) -> None:
        resp = await client.patch("/api/admin/specialists/someone/verify", json={"verified": True})
        assert resp.status_code == 401

    async def test_blocked_user_token_rejected(self, client, market, db_session: AsyncSession) -> None:
        account = await market.register("blocked@test.io")
        await db_session.execute(update(User).where(User.id == account.user_id).values(status=UserStatus.BLOCKED))
        await db_session.commit()
        resp = await client.get("/api/auth/me", headers=account.headers)
        assert resp.status_code == 403
        assert resp.json() == {"error": "Аккаунт неактивен"}
