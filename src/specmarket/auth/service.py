"""
Authentication business logic.

Handles user creation, credential checks, account lockout and the seeded
admin account.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from specmarket.auth.password import (
    check_needs_rehash,
    hash_password,
    validate_password_strength,
    verify_password,
)
from specmarket.config import get_settings
from specmarket.db.models import ClientProfile, Role, User, UserStatus
from specmarket.errors import AuthenticationError, ConflictError, ForbiddenError, RateLimitedError

if TYPE_CHECKING:
    from redis.asyncio import Redis
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

EMAIL_TAKEN = "Пользователь с таким email уже существует"


# ---------------------------------------------------------------------------
# User queries
# ---------------------------------------------------------------------------


async def get_user_by_id(db: AsyncSession, user_id: str) -> User | None:
    """Fetch a user by ID."""
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    """Fetch a user by email (case-insensitive)."""
    result = await db.execute(select(User).where(func.lower(User.email) == email.lower().strip()))
    return result.scalar_one_or_none()


async def get_users_by_ids(db: AsyncSession, user_ids: set[str] | list[str]) -> dict[str, User]:
    """Batch-load users (with profiles) keyed by ID."""
    if not user_ids:
        return {}
    result = await db.execute(select(User).where(User.id.in_(list(user_ids))))
    return {u.id: u for u in result.scalars().all()}


def display_name_of(user: User) -> str | None:
    """Best display name: specialist card, then client profile."""
    if user.specialist_profile is not None:
        return user.specialist_profile.display_name
    if user.client_profile is not None:
        return user.client_profile.display_name
    return None


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


async def register_user(
    db: AsyncSession,
    email: str,
    password: str,
    display_name: str | None = None,
) -> User:
    """
    Register a new CLIENT with a client profile.

    Raises:
        PasswordStrengthError: If the password is out of bounds.
        ConflictError: If the email is already registered.
    """
    validate_password_strength(password)

    email = email.lower().strip()
    if await get_user_by_email(db, email) is not None:
        raise ConflictError(EMAIL_TAKEN)

    user = User(
        email=email,
        password_hash=hash_password(password),
        role=Role.CLIENT,
        status=UserStatus.ACTIVE,
        created_at=datetime.now(timezone.utc),
        login_count=0,
        client_profile=ClientProfile(display_name=display_name or email.split("@")[0]),
        specialist_profile=None,
    )
    # A concurrent registration of the same email loses on users.email
    try:
        async with db.begin_nested():
            db.add(user)
    except IntegrityError:
        raise ConflictError(EMAIL_TAKEN) from None
    logger.info("user_registered", user_id=user.id, role=user.role.value)
    return user


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


async def authenticate_user(
    db: AsyncSession,
    redis: Redis | None,
    email: str,
    password: str,
) -> User:
    """
    Authenticate a user with email + password.

    Lockout counters live in Redis; without Redis, lockout is not enforced.

    Raises:
        AuthenticationError: If the credentials are invalid.
        RateLimitedError: If the account is temporarily locked.
        ForbiddenError: If the account is not active.
    """
    user = await get_user_by_email(db, email)
    if user is None:
        raise AuthenticationError

    if redis is not None and await check_account_lockout(redis, user.id):
        raise RateLimitedError

    if not verify_password(password, user.password_hash):
        if redis is not None:
            await increment_failed_login(redis, user.id)
        raise AuthenticationError

    if user.status != UserStatus.ACTIVE:
        msg = "Аккаунт заблокирован"
        raise ForbiddenError(msg)

    if redis is not None:
        await clear_failed_login(redis, user.id)

    user.last_login = datetime.now(timezone.utc)
    user.login_count = (user.login_count or 0) + 1

    if check_needs_rehash(user.password_hash):
        user.password_hash = hash_password(password)
        logger.info("password_rehashed", user_id=user.id)

    await db.flush()
    logger.info("user_logged_in", user_id=user.id)
    return user


# ---------------------------------------------------------------------------
# Account lockout
# ---------------------------------------------------------------------------


async def check_account_lockout(redis: Redis, user_id: str) -> bool:
    """Check if the account is locked due to too many failed login attempts."""
    settings = get_settings()
    count_str = await redis.get(f"login_attempts:{user_id}")
    if count_str is None:
        return False
    return int(count_str) >= settings.account_lockout_threshold


async def increment_failed_login(redis: Redis, user_id: str) -> int:
    """Increment failed login counter. Returns the new count."""
    settings = get_settings()
    key = f"login_attempts:{user_id}"
    count = await redis.incr(key)
    if count == 1:
        await redis.expire(key, settings.account_lockout_duration_minutes * 60)
    return int(count)


async def clear_failed_login(redis: Redis, user_id: str) -> None:
    """Clear the failed login counter after a successful login."""
    await redis.delete(f"login_attempts:{user_id}")


# ---------------------------------------------------------------------------
# Seeded admin
# ---------------------------------------------------------------------------


async def ensure_admin(db: AsyncSession, email: str, password: str) -> User:
    """Create the admin account if missing, or promote an existing user. Idempotent."""
    user = await get_user_by_email(db, email)
    if user is None:
        user = User(
            email=email.lower().strip(),
            password_hash=hash_password(password),
            role=Role.ADMIN,
            status=UserStatus.ACTIVE,
            created_at=datetime.now(timezone.utc),
            login_count=0,
            client_profile=None,
            specialist_profile=None,
        )
        db.add(user)
        await db.flush()
        logger.info("admin_seeded", user_id=user.id)
    elif user.role != Role.ADMIN:
        user.role = Role.ADMIN
        await db.flush()
        logger.info("admin_promoted", user_id=user.id)
    return user
