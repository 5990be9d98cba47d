"""Reviews: listing, creation and the denormalised rating on the specialist card."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlalchemy import func, select

from specmarket.db.models import (
    Application,
    ApplicationStatus,
    ClientProfile,
    Request,
    RequestStatus,
    Review,
    SpecialistProfile,
)
from specmarket.errors import ForbiddenError, StateConflictError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()


async def list_public_reviews(
    db: AsyncSession,
    specialist_user_id: str,
    limit: int = 10,
    offset: int = 0,
) -> list[tuple[Review, str | None]]:
    """Newest public reviews with the reviewing client's display name."""
    result = await db.execute(
        select(Review, ClientProfile.display_name)
        .outerjoin(ClientProfile, ClientProfile.user_id == Review.client_user_id)
        .where(Review.specialist_user_id == specialist_user_id)
        .where(Review.is_public.is_(True))
        .order_by(Review.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    return [(review, name) for review, name in result.all()]


async def review_stats(db: AsyncSession, specialist_user_id: str) -> tuple[float, int]:
    """(average rating rounded to one decimal, count) over public reviews."""
    row = (
        await db.execute(
            select(func.avg(Review.rating), func.count(Review.id))
            .where(Review.specialist_user_id == specialist_user_id)
            .where(Review.is_public.is_(True))
        )
    ).one()
    average, count = row
    return (round(float(average), 1) if average is not None else 0.0), int(count)


async def _eligible_request_id(
    db: AsyncSession,
    client_user_id: str,
    specialist_user_id: str,
    request_id: str | None,
) -> str | None:
    """A COMPLETED request of this client with an ACCEPTED application from this specialist."""
    query = (
        select(Request.id)
        .join(Application, Application.request_id == Request.id)
        .where(Request.client_user_id == client_user_id)
        .where(Request.status == RequestStatus.COMPLETED)
        .where(Application.specialist_user_id == specialist_user_id)
        .where(Application.status == ApplicationStatus.ACCEPTED)
    )
    if request_id is not None:
        query = query.where(Request.id == request_id)
    result = await db.execute(query.order_by(Request.updated_at.desc()).limit(1))
    return result.scalar_one_or_none()


async def create_review(
    db: AsyncSession,
    client_user_id: str,
    specialist: SpecialistProfile,
    rating: int,
    comment: str | None,
    request_id: str | None = None,
) -> Review:
    """
    Leave a review after completed work and refresh the specialist's rating.

    Raises:
        ForbiddenError: If the client has no completed work with this specialist.
        StateConflictError: If the client already reviewed this work.
    """
    eligible = await _eligible_request_id(db, client_user_id, specialist.user_id, request_id)
    if eligible is None:
        msg = "Отзыв можно оставить только после завершённой работы со специалистом"
        raise ForbiddenError(msg)

    duplicate = await db.execute(
        select(Review.id)
        .where(Review.specialist_user_id == specialist.user_id)
        .where(Review.client_user_id == client_user_id)
        .where(Review.request_id == eligible)
    )
    if duplicate.scalar_one_or_none() is not None:
        msg = "Вы уже оставили отзыв по этой заявке"
        raise StateConflictError(msg)

    review = Review(
        specialist_user_id=specialist.user_id,
        client_user_id=client_user_id,
        request_id=eligible,
        rating=rating,
        comment=comment,
        is_public=True,
    )
    db.add(review)
    await db.flush()

    specialist.average_rating, specialist.total_reviews = await review_stats(db, specialist.user_id)
    await db.flush()
    logger.info(
        "review_created",
        review_id=review.id,
        specialist_id=specialist.user_id,
        rating=rating,
        average_rating=specialist.average_rating,
    )
    return review
