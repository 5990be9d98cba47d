"""Catalog business logic: categories, specialist search and self-service."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import delete, exists, func, or_, select

from specmarket.config import get_settings
from specmarket.db.models import (
    Category,
    Role,
    SpecialistCategory,
    SpecialistProfile,
    User,
    UserStatus,
)
from specmarket.errors import DomainValidationError, FieldError, NotFoundError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

# Seed data for the reference table
DEFAULT_CATEGORIES: list[tuple[str, str]] = [
    ("psychologist", "Психолог"),
    ("nutritionist", "Нутрициолог"),
    ("personal-trainer", "Персональный тренер"),
    ("health-coach", "Здоровье-коуч"),
    ("physiotherapist", "Физиотерапевт"),
]


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


async def list_categories(db: AsyncSession) -> list[Category]:
    result = await db.execute(select(Category).order_by(Category.name))
    return list(result.scalars().all())


async def get_category_by_slug(db: AsyncSession, slug: str) -> Category | None:
    result = await db.execute(select(Category).where(Category.slug == slug))
    return result.scalar_one_or_none()


async def seed_categories(db: AsyncSession) -> int:
    """Insert missing default categories. Idempotent; returns the number added."""
    existing = set((await db.execute(select(Category.slug))).scalars().all())
    added = 0
    for slug, name in DEFAULT_CATEGORIES:
        if slug not in existing:
            db.add(Category(slug=slug, name=name))
            added += 1
    if added:
        await db.flush()
        logger.info("categories_seeded", added=added)
    return added


async def categories_for_specialists(db: AsyncSession, user_ids: list[str]) -> dict[str, list[Category]]:
    """Map specialist user id -> categories, for a page of specialists."""
    if not user_ids:
        return {}
    result = await db.execute(
        select(SpecialistCategory.specialist_user_id, Category)
        .join(Category, Category.id == SpecialistCategory.category_id)
        .where(SpecialistCategory.specialist_user_id.in_(user_ids))
        .order_by(Category.name)
    )
    mapping: dict[str, list[Category]] = {uid: [] for uid in user_ids}
    for user_id, category in result.all():
        mapping[user_id].append(category)
    return mapping


async def specialist_category_ids(db: AsyncSession, user_id: str) -> set[str]:
    result = await db.execute(
        select(SpecialistCategory.category_id).where(SpecialistCategory.specialist_user_id == user_id)
    )
    return set(result.scalars().all())


# ---------------------------------------------------------------------------
# Specialist search
# ---------------------------------------------------------------------------


@dataclass
class SpecialistFilters:
    category: str | None = None
    format: str = "any"
    city: str | None = None
    min_exp: int | None = None
    price_min: int | None = None
    price_max: int | None = None
    q: str | None = None
    verified_only: bool = True
    sort: str = "recent"
    limit: int = 20
    offset: int = 0


async def search_specialists(db: AsyncSession, filters: SpecialistFilters) -> tuple[list[SpecialistProfile], int]:
    """
    Filtered, paginated specialist listing. Only ACTIVE users are listed.

    Returns:
        Tuple of (profiles for the page, total matching).
    """
    query = (
        select(SpecialistProfile)
        .join(User, User.id == SpecialistProfile.user_id)
        .where(User.status == UserStatus.ACTIVE)
    )

    if filters.category:
        query = query.where(
            exists()
            .where(SpecialistCategory.specialist_user_id == SpecialistProfile.user_id)
            .where(SpecialistCategory.category_id == Category.id)
            .where(Category.slug == filters.category)
        )

    if filters.format == "online":
        query = query.where(SpecialistProfile.online_only.is_(True))
    elif filters.format == "offline":
        query = query.where(SpecialistProfile.online_only.is_(False))
        if filters.city:
            query = query.where(SpecialistProfile.city == filters.city)

    if filters.min_exp is not None:
        query = query.where(SpecialistProfile.experience_years >= filters.min_exp)
    if filters.price_min is not None:
        query = query.where(SpecialistProfile.price_min_cents >= filters.price_min)
    if filters.price_max is not None:
        query = query.where(SpecialistProfile.price_max_cents <= filters.price_max)
    if filters.verified_only:
        query = query.where(SpecialistProfile.verified.is_(True))
    if filters.q:
        pattern = f"%{filters.q.lower()}%"
        query = query.where(
            or_(
                func.lower(SpecialistProfile.display_name).like(pattern),
                func.lower(SpecialistProfile.bio).like(pattern),
            )
        )

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()

    if filters.sort == "price_asc":
        query = query.order_by(SpecialistProfile.price_min_cents.asc().nulls_last())
    elif filters.sort == "price_desc":
        query = query.order_by(SpecialistProfile.price_min_cents.desc().nulls_last())
    else:
        query = query.order_by(SpecialistProfile.created_at.desc())

    result = await db.execute(query.offset(filters.offset).limit(filters.limit))
    return list(result.scalars().all()), total


async def get_public_specialist(db: AsyncSession, user_id: str) -> SpecialistProfile:
    """
    Fetch a specialist profile visible in the catalog.

    Raises:
        NotFoundError: If the user has no specialist profile or is not active.
    """
    result = await db.execute(
        select(SpecialistProfile)
        .join(User, User.id == SpecialistProfile.user_id)
        .where(SpecialistProfile.user_id == user_id)
        .where(User.status == UserStatus.ACTIVE)
    )
    profile = result.scalar_one_or_none()
    if profile is None:
        msg = "Специалист не найден"
        raise NotFoundError(msg)
    return profile


# ---------------------------------------------------------------------------
# Specialist self-service
# ---------------------------------------------------------------------------


async def become_specialist(db: AsyncSession, user: User) -> tuple[SpecialistProfile, bool]:
    """
    Give the user a specialist profile. Idempotent.

    The display name is taken from the client profile, or the email's local part.
    A CLIENT is promoted to SPECIALIST; an ADMIN keeps their role.

    Returns:
        Tuple of (profile, already_had_profile).
    """
    if user.specialist_profile is not None:
        return user.specialist_profile, True

    display_name = user.client_profile.display_name if user.client_profile else user.email.split("@")[0]
    profile = SpecialistProfile(user_id=user.id, display_name=display_name, online_only=True)
    user.specialist_profile = profile
    if user.role == Role.CLIENT:
        user.role = Role.SPECIALIST
    await db.flush()
    logger.info("specialist_profile_created", user_id=user.id)
    return profile, False


_EDITABLE_FIELDS = (
    "display_name",
    "bio",
    "city",
    "online_only",
    "experience_years",
    "price_min_cents",
    "price_max_cents",
    "avatar_url",
)


async def update_specialist_profile(db: AsyncSession, profile: SpecialistProfile, changes: dict) -> SpecialistProfile:
    """
    Apply a partial update. ``verified`` and rating aggregates are not editable here.

    Raises:
        DomainValidationError: If the resulting price range is inverted.
    """
    for field in _EDITABLE_FIELDS:
        if field in changes:
            setattr(profile, field, changes[field])

    if (
        profile.price_min_cents is not None
        and profile.price_max_cents is not None
        and profile.price_min_cents > profile.price_max_cents
    ):
        raise DomainValidationError(
            details=[FieldError("priceMaxCents", "Максимальная цена должна быть не меньше минимальной")]
        )

    await db.flush()
    logger.info("specialist_profile_updated", user_id=profile.user_id, fields=sorted(changes))
    return profile


async def replace_specialist_categories(db: AsyncSession, user_id: str, slugs: list[str]) -> list[Category]:
    """
    Replace all of a specialist's category links with ``slugs``.

    Every slug is validated before anything is written, so an unknown slug
    leaves the existing links untouched. The caller owns the transaction.

    Raises:
        DomainValidationError: Too many slugs, or one or more unknown slugs
            (all of them listed in one message).
    """
    settings = get_settings()
    wanted = list(dict.fromkeys(slugs))
    if len(wanted) > settings.max_specialist_categories:
        msg = f"Можно выбрать не более {settings.max_specialist_categories} категорий"
        raise DomainValidationError(details=[FieldError("slugs", msg)])

    found: list[Category] = []
    if wanted:
        result = await db.execute(select(Category).where(Category.slug.in_(wanted)))
        found = list(result.scalars().all())

    known = {c.slug for c in found}
    unknown = [s for s in wanted if s not in known]
    if unknown:
        raise DomainValidationError(
            details=[FieldError("slugs", f"Неизвестные категории: {', '.join(unknown)}")]
        )

    await db.execute(delete(SpecialistCategory).where(SpecialistCategory.specialist_user_id == user_id))
    for category in found:
        db.add(SpecialistCategory(specialist_user_id=user_id, category_id=category.id))
    await db.flush()
    logger.info("specialist_categories_replaced", user_id=user_id, slugs=wanted)
    return found
