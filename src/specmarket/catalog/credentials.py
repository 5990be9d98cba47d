"""Education and publications a specialist lists on their profile."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import select

from specmarket.db.models import Education, Publication
from specmarket.errors import NotFoundError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

EDUCATION_NOT_FOUND = "Образование не найдено"
PUBLICATION_NOT_FOUND = "Публикация не найдена"


async def list_education(db: AsyncSession, specialist_user_id: str) -> list[Education]:
    """Newest first."""
    result = await db.execute(
        select(Education)
        .where(Education.specialist_user_id == specialist_user_id)
        .order_by(Education.created_at.desc(), Education.id)
    )
    return list(result.scalars().all())


async def add_education(db: AsyncSession, specialist_user_id: str, fields: dict[str, Any]) -> Education:
    education = Education(specialist_user_id=specialist_user_id, **fields)
    db.add(education)
    await db.flush()
    logger.info("education_added", user_id=specialist_user_id, education_id=education.id)
    return education


async def delete_education(db: AsyncSession, specialist_user_id: str, education_id: str) -> None:
    """
    Remove one of the specialist's education entries.

    Raises:
        NotFoundError: No such entry, or it belongs to someone else.
    """
    result = await db.execute(
        select(Education)
        .where(Education.id == education_id)
        .where(Education.specialist_user_id == specialist_user_id)
    )
    education = result.scalar_one_or_none()
    if education is None:
        raise NotFoundError(EDUCATION_NOT_FOUND)
    await db.delete(education)
    await db.flush()
    logger.info("education_deleted", user_id=specialist_user_id, education_id=education_id)


async def list_publications(db: AsyncSession, specialist_user_id: str) -> list[Publication]:
    result = await db.execute(
        select(Publication)
        .where(Publication.specialist_user_id == specialist_user_id)
        .order_by(Publication.created_at.desc(), Publication.id)
    )
    return list(result.scalars().all())


async def add_publication(db: AsyncSession, specialist_user_id: str, fields: dict[str, Any]) -> Publication:
    publication = Publication(specialist_user_id=specialist_user_id, **fields)
    db.add(publication)
    await db.flush()
    logger.info("publication_added", user_id=specialist_user_id, publication_id=publication.id)
    return publication


async def delete_publication(db: AsyncSession, specialist_user_id: str, publication_id: str) -> None:
    """
    Raises:
        NotFoundError: No such publication, or it belongs to someone else.
    """
    result = await db.execute(
        select(Publication)
        .where(Publication.id == publication_id)
        .where(Publication.specialist_user_id == specialist_user_id)
    )
    publication = result.scalar_one_or_none()
    if publication is None:
        raise NotFoundError(PUBLICATION_NOT_FOUND)
    await db.delete(publication)
    await db.flush()
    logger.info("publication_deleted", user_id=specialist_user_id, publication_id=publication_id)
