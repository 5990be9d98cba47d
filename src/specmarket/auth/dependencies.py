"""FastAPI authentication dependencies.

Thin wrappers that feed the session subject into the guards in
``specmarket.auth.guards``. Refusals propagate as ``GuardError`` and are
mapped to HTTP by the error handler.
"""

from __future__ import annotations

import jwt
import structlog
from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from specmarket.auth.guards import (
    GuardError,
    require_active_user,
    require_admin,
    require_client_profile,
    require_specialist_profile,
)
from specmarket.auth.jwt import verify_token
from specmarket.config import get_settings
from specmarket.database import get_session
from specmarket.db.models import ClientProfile, SpecialistProfile, User

logger = structlog.get_logger()

_bearer = HTTPBearer(auto_error=False)


async def get_session_subject(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> str | None:
    """Return the user id of the current session, or None.

    The bearer header wins over the session cookie. An invalid or expired
    token counts as no session.
    """
    if credentials is not None:
        token = credentials.credentials
    else:
        token = request.cookies.get(get_settings().session_cookie_name)
    if not token:
        return None

    try:
        payload = verify_token(token, expected_type="access")
    except jwt.InvalidTokenError as e:
        logger.debug("session_token_rejected", error=str(e))
        return None
    return payload.get("sub")


async def get_active_user(
    subject: str | None = Depends(get_session_subject),
    db: AsyncSession = Depends(get_session),
) -> User:
    return await require_active_user(db, subject)


async def get_optional_user(
    subject: str | None = Depends(get_session_subject),
    db: AsyncSession = Depends(get_session),
) -> User | None:
    """Active user or None, for endpoints that degrade for anonymous callers."""
    try:
        return await require_active_user(db, subject)
    except GuardError:
        return None


async def get_client(
    subject: str | None = Depends(get_session_subject),
    db: AsyncSession = Depends(get_session),
) -> tuple[User, ClientProfile]:
    return await require_client_profile(db, subject)


async def get_specialist(
    subject: str | None = Depends(get_session_subject),
    db: AsyncSession = Depends(get_session),
) -> tuple[User, SpecialistProfile]:
    return await require_specialist_profile(db, subject)


async def get_admin(
    subject: str | None = Depends(get_session_subject),
    db: AsyncSession = Depends(get_session),
) -> User:
    return await require_admin(db, subject)
