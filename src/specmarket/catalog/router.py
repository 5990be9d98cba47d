"""Public catalog router: categories, specialists and reviews."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from specmarket.auth.dependencies import get_client
from specmarket.catalog.credentials import list_education, list_publications
from specmarket.catalog.reviews import create_review, list_public_reviews, review_stats
from specmarket.catalog.schemas import (
    CategoriesResponse,
    CategoryOut,
    CreateReviewRequest,
    EducationOut,
    PublicationOut,
    ReviewCreatedResponse,
    ReviewOut,
    ReviewsResponse,
    ReviewStats,
    SpecialistCard,
    SpecialistListResponse,
    SpecialistProfileOut,
)
from specmarket.catalog.service import (
    SpecialistFilters,
    categories_for_specialists,
    get_public_specialist,
    list_categories,
    search_specialists,
)
from specmarket.database import get_session
from specmarket.db.models import ClientProfile, Education, Publication, SpecialistProfile, User

router = APIRouter(prefix="/api", tags=["Catalog"])


def _card(profile: SpecialistProfile, category_slugs: list[str]) -> SpecialistCard:
    return SpecialistCard(
        id=profile.user_id,
        display_name=profile.display_name,
        city=profile.city,
        online_only=profile.online_only,
        price_min_cents=profile.price_min_cents,
        price_max_cents=profile.price_max_cents,
        experience_years=profile.experience_years,
        categories=category_slugs,
        verified=profile.verified,
        avatar_url=profile.avatar_url,
        average_rating=profile.average_rating or 0.0,
        total_reviews=profile.total_reviews or 0,
    )


def education_out(education: Education) -> EducationOut:
    return EducationOut(
        id=education.id,
        title=education.title,
        institution=education.institution,
        degree=education.degree,
        year=education.year,
        document_url=education.document_url,
        document_type=education.document_type,
        is_verified=education.is_verified,
        verified_at=education.verified_at,
        verified_by=education.verified_by,
        created_at=education.created_at,
    )


def publication_out(publication: Publication) -> PublicationOut:
    return PublicationOut(
        id=publication.id,
        title=publication.title,
        url=publication.url,
        type=publication.type,
        year=publication.year,
        created_at=publication.created_at,
    )


async def profile_out(db: AsyncSession, profile: SpecialistProfile) -> SpecialistProfileOut:
    """Full profile card with categories, education and publications."""
    categories = await categories_for_specialists(db, [profile.user_id])
    education = await list_education(db, profile.user_id)
    publications = await list_publications(db, profile.user_id)
    return SpecialistProfileOut(
        id=profile.user_id,
        display_name=profile.display_name,
        bio=profile.bio,
        city=profile.city,
        online_only=profile.online_only,
        experience_years=profile.experience_years,
        price_min_cents=profile.price_min_cents,
        price_max_cents=profile.price_max_cents,
        verified=profile.verified,
        avatar_url=profile.avatar_url,
        average_rating=profile.average_rating or 0.0,
        total_reviews=profile.total_reviews or 0,
        categories=[CategoryOut(slug=c.slug, name=c.name) for c in categories[profile.user_id]],
        education=[education_out(e) for e in education],
        publications=[publication_out(p) for p in publications],
        created_at=profile.created_at,
    )


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


@router.get("/categories", response_model=CategoriesResponse)
async def get_categories(db: AsyncSession = Depends(get_session)) -> CategoriesResponse:
    """All categories ordered by name."""
    categories = await list_categories(db)
    return CategoriesResponse(categories=[CategoryOut(slug=c.slug, name=c.name) for c in categories])


# ---------------------------------------------------------------------------
# Specialists
# ---------------------------------------------------------------------------


@router.get("/specialists", response_model=SpecialistListResponse)
async def get_specialists(
    category: str | None = Query(None),
    format: Literal["online", "offline", "any"] = Query("any"),  # noqa: A002
    city: str | None = Query(None),
    min_exp: int | None = Query(None, alias="minExp", ge=0),
    price_min: int | None = Query(None, alias="priceMin", ge=0),
    price_max: int | None = Query(None, alias="priceMax", ge=0),
    q: str | None = Query(None, max_length=100),
    verified_only: bool = Query(True, alias="verifiedOnly"),
    sort: Literal["recent", "price_asc", "price_desc"] = Query("recent"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_session),
) -> SpecialistListResponse:
    """Search the specialist catalog."""
    filters = SpecialistFilters(
        category=category,
        format=format,
        city=city,
        min_exp=min_exp,
        price_min=price_min,
        price_max=price_max,
        q=q,
        verified_only=verified_only,
        sort=sort,
        limit=limit,
        offset=offset,
    )
    profiles, total = await search_specialists(db, filters)
    categories = await categories_for_specialists(db, [p.user_id for p in profiles])
    return SpecialistListResponse(
        items=[_card(p, [c.slug for c in categories.get(p.user_id, [])]) for p in profiles],
        total=total,
    )


@router.get("/specialists/{specialist_id}", response_model=SpecialistProfileOut)
async def get_specialist(
    specialist_id: str,
    db: AsyncSession = Depends(get_session),
) -> SpecialistProfileOut:
    """Public specialist profile."""
    profile = await get_public_specialist(db, specialist_id)
    return await profile_out(db, profile)


# ---------------------------------------------------------------------------
# Reviews
# ---------------------------------------------------------------------------


@router.get("/specialists/{specialist_id}/reviews", response_model=ReviewsResponse)
async def get_specialist_reviews(
    specialist_id: str,
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_session),
) -> ReviewsResponse:
    """Public reviews of a specialist with aggregate stats."""
    profile = await get_public_specialist(db, specialist_id)
    rows = await list_public_reviews(db, profile.user_id, limit=limit, offset=offset)
    average, count = await review_stats(db, profile.user_id)
    return ReviewsResponse(
        reviews=[
            ReviewOut(
                id=review.id,
                rating=review.rating,
                comment=review.comment,
                client_name=name,
                created_at=review.created_at,
            )
            for review, name in rows
        ],
        stats=ReviewStats(average_rating=average, total_reviews=count),
    )


@router.post("/reviews", response_model=ReviewCreatedResponse, status_code=201)
async def post_review(
    body: CreateReviewRequest,
    actor: tuple[User, ClientProfile] = Depends(get_client),
    db: AsyncSession = Depends(get_session),
) -> ReviewCreatedResponse:
    """Review a specialist after completed work."""
    user, client_profile = actor
    specialist = await get_public_specialist(db, body.specialist_id)
    review = await create_review(
        db,
        client_user_id=user.id,
        specialist=specialist,
        rating=body.rating,
        comment=body.comment,
        request_id=body.request_id,
    )
    await db.commit()
    return ReviewCreatedResponse(
        review=ReviewOut(
            id=review.id,
            rating=review.rating,
            comment=review.comment,
            client_name=client_profile.display_name,
            created_at=review.created_at,
        )
    )
