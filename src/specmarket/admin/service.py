"""
Admin operations: specialist verification and moderation listings.

There is no audit table. Every verification change is written as a
structured ``admin_verify_specialist`` log line instead.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Literal

import structlog
from sqlalchemy import func, or_, select

from specmarket.catalog.service import get_public_specialist
from specmarket.db.models import Category, Request, RequestStatus, SpecialistProfile, User

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

VerifiedFilter = Literal["true", "false", "all"]


async def set_specialist_verified(
    db: AsyncSession,
    admin_user_id: str,
    specialist_user_id: str,
    verified: bool,
) -> SpecialistProfile:
    """
    Set the ``verified`` flag of a specialist.

    Raises:
        NotFoundError: If the target is not an active specialist.
    """
    profile = await get_public_specialist(db, specialist_user_id)
    previous = profile.verified
    profile.verified = verified
    await db.flush()
    logger.info(
        "admin_verify_specialist",
        admin_id=admin_user_id,
        specialist_id=specialist_user_id,
        verified=verified,
        previous=previous,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
    return profile


async def list_specialists_for_review(
    db: AsyncSession,
    q: str | None = None,
    verified: VerifiedFilter = "all",
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[tuple[SpecialistProfile, User]], int]:
    """Specialists with their accounts, unverified first, then newest."""
    query = select(SpecialistProfile, User).join(User, User.id == SpecialistProfile.user_id)
    if verified == "true":
        query = query.where(SpecialistProfile.verified.is_(True))
    elif verified == "false":
        query = query.where(SpecialistProfile.verified.is_(False))
    if q:
        pattern = f"%{q.lower()}%"
        query = query.where(
            or_(
                func.lower(SpecialistProfile.display_name).like(pattern),
                func.lower(User.email).like(pattern),
                func.lower(SpecialistProfile.city).like(pattern),
            )
        )

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()
    result = await db.execute(
        query.order_by(SpecialistProfile.verified.asc(), SpecialistProfile.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    return [(profile, user) for profile, user in result.all()], total


async def list_all_requests(
    db: AsyncSession,
    status: RequestStatus | None = None,
    category: str | None = None,
    client_id: str | None = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[Request], int]:
    """Every request on the platform, newest first."""
    query = select(Request)
    if status is not None:
        query = query.where(Request.status == status)
    if category:
        query = query.join(Category, Category.id == Request.category_id).where(Category.slug == category)
    if client_id:
        query = query.where(Request.client_user_id == client_id)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()
    result = await db.execute(query.order_by(Request.created_at.desc()).offset(offset).limit(limit))
    return list(result.scalars().all()), total
