"""Authentication router: /api/auth/* endpoints."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Response
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from specmarket.auth.dependencies import get_active_user
from specmarket.auth.jwt import create_access_token
from specmarket.auth.password import PasswordStrengthError
from specmarket.auth.schemas import (
    LoginRequest,
    RegisteredUser,
    RegisterRequest,
    RegisterResponse,
    TokenResponse,
    UserResponse,
)
from specmarket.auth.service import authenticate_user, display_name_of, register_user
from specmarket.config import get_settings
from specmarket.database import get_session
from specmarket.db.models import User
from specmarket.errors import DomainValidationError, FieldError
from specmarket.redis_client import get_optional_redis
from specmarket.schemas import SuccessResponse

logger = structlog.get_logger()

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


def user_response(user: User) -> UserResponse:
    """Build a UserResponse from a User model."""
    return UserResponse(
        id=user.id,
        email=user.email,
        role=user.role,
        display_name=display_name_of(user),
        has_client_profile=user.client_profile is not None,
        has_specialist_profile=user.specialist_profile is not None,
        created_at=user.created_at,
        last_login=user.last_login,
    )


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_session),
) -> RegisterResponse:
    """Register a client account with email + password."""
    try:
        user = await register_user(db, email=body.email, password=body.password, display_name=body.display_name)
    except PasswordStrengthError as e:
        raise DomainValidationError(details=[FieldError("password", str(e))]) from e
    await db.commit()

    return RegisterResponse(
        user=RegisteredUser(
            id=user.id,
            email=user.email,
            role=user.role,
            display_name=display_name_of(user) or "",
        )
    )


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_session),
    redis: Redis | None = Depends(get_optional_redis),
) -> TokenResponse:
    """Login with email + password. Sets the session cookie and returns the token."""
    user = await authenticate_user(db, redis, body.email, body.password)
    await db.commit()

    settings = get_settings()
    token = create_access_token(user.id, user.role.value)
    response.set_cookie(
        settings.session_cookie_name,
        token,
        max_age=settings.jwt_access_token_expire_minutes * 60,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )
    return TokenResponse(
        access_token=token,
        expires_in=settings.jwt_access_token_expire_minutes * 60,
        user=user_response(user),
    )


@router.post("/logout", response_model=SuccessResponse)
async def logout(response: Response) -> SuccessResponse:
    """Clear the session cookie. Tokens are stateless; bearer tokens simply expire."""
    response.delete_cookie(get_settings().session_cookie_name)
    return SuccessResponse()


@router.get("/me", response_model=UserResponse)
async def me(user: User = Depends(get_active_user)) -> UserResponse:
    """Current user with profile flags."""
    return user_response(user)
