"""Authorization guards.

Each guard resolves the acting user from a session subject and enforces one
precondition. Guards only know *why* they refused (a ``GuardReason``); the
HTTP status and the user-facing message are chosen in one place by the error
handler, so the guards can be reused outside the web layer.
"""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING

from sqlalchemy import select

from specmarket.db.models import ClientProfile, Role, SpecialistProfile, User, UserStatus

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


class GuardReason(str, enum.Enum):
    UNAUTHORIZED = "UNAUTHORIZED"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    USER_NOT_ACTIVE = "USER_NOT_ACTIVE"
    NO_CLIENT_PROFILE = "NO_CLIENT_PROFILE"
    NO_SPECIALIST_PROFILE = "NO_SPECIALIST_PROFILE"
    ADMIN_REQUIRED = "ADMIN_REQUIRED"


class GuardError(Exception):
    """Raised when a guard refuses the actor."""

    def __init__(self, reason: GuardReason) -> None:
        self.reason = reason
        super().__init__(reason.value)


async def require_active_user(db: AsyncSession, subject: str | None) -> User:
    """Resolve the session subject to an ACTIVE user.

    Raises:
        GuardError: UNAUTHORIZED, USER_NOT_FOUND or USER_NOT_ACTIVE.
    """
    if not subject:
        raise GuardError(GuardReason.UNAUTHORIZED)

    result = await db.execute(select(User).where(User.id == subject))
    user = result.scalar_one_or_none()
    if user is None:
        raise GuardError(GuardReason.USER_NOT_FOUND)
    if user.status != UserStatus.ACTIVE:
        raise GuardError(GuardReason.USER_NOT_ACTIVE)
    return user


async def require_client_profile(db: AsyncSession, subject: str | None) -> tuple[User, ClientProfile]:
    """Active user that owns a client profile."""
    user = await require_active_user(db, subject)
    if user.client_profile is None:
        raise GuardError(GuardReason.NO_CLIENT_PROFILE)
    return user, user.client_profile


async def require_specialist_profile(db: AsyncSession, subject: str | None) -> tuple[User, SpecialistProfile]:
    """Active user that owns a specialist profile."""
    user = await require_active_user(db, subject)
    if user.specialist_profile is None:
        raise GuardError(GuardReason.NO_SPECIALIST_PROFILE)
    return user, user.specialist_profile


async def require_admin(db: AsyncSession, subject: str | None) -> User:
    """Active user with the ADMIN role. Never bypassed."""
    user = await require_active_user(db, subject)
    if user.role != Role.ADMIN:
        raise GuardError(GuardReason.ADMIN_REQUIRED)
    return user
