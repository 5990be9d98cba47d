"""Self-service router: /api/me/* for the signed-in user."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from specmarket.auth.dependencies import get_active_user, get_specialist
from specmarket.catalog.credentials import (
    add_education,
    add_publication,
    delete_education,
    delete_publication,
    list_education,
    list_publications,
)
from specmarket.catalog.router import education_out, profile_out, publication_out
from specmarket.catalog.schemas import (
    BecomeSpecialistResponse,
    CreateEducationRequest,
    CreatePublicationRequest,
    EducationListResponse,
    EducationOut,
    ProfileFlags,
    ProfileInfoResponse,
    PublicationListResponse,
    PublicationOut,
    ReplaceCategoriesRequest,
    SpecialistProfileOut,
    SpecialistProfileUpdate,
)
from specmarket.catalog.service import (
    become_specialist,
    replace_specialist_categories,
    update_specialist_profile,
)
from specmarket.database import get_session
from specmarket.db.models import SpecialistProfile, User
from specmarket.matching.service import get_unread_counts
from specmarket.redis_client import get_optional_redis
from specmarket.schemas import CamelModel, OkResponse, SuccessResponse

router = APIRouter(prefix="/api/me", tags=["Me"])


class UnreadCountsResponse(CamelModel):
    chat: int
    applications: int
    requests: int
    total: int


@router.post("/become-specialist", response_model=BecomeSpecialistResponse)
async def post_become_specialist(
    user: User = Depends(get_active_user),
    db: AsyncSession = Depends(get_session),
) -> BecomeSpecialistResponse:
    """Create an empty specialist profile for the current user. Idempotent."""
    profile, already = await become_specialist(db, user)
    await db.commit()
    return BecomeSpecialistResponse(specialist_profile_id=profile.user_id, already_had_profile=already)


@router.get("/profile-info", response_model=ProfileInfoResponse)
async def get_profile_info(user: User = Depends(get_active_user)) -> ProfileInfoResponse:
    return ProfileInfoResponse(
        profile=ProfileFlags(
            has_client_profile=user.client_profile is not None,
            has_specialist_profile=user.specialist_profile is not None,
        )
    )


@router.get("/specialist-profile", response_model=SpecialistProfileOut)
async def get_own_specialist_profile(
    actor: tuple[User, SpecialistProfile] = Depends(get_specialist),
    db: AsyncSession = Depends(get_session),
) -> SpecialistProfileOut:
    _, profile = actor
    return await profile_out(db, profile)


@router.patch("/specialist-profile", response_model=SpecialistProfileOut)
async def patch_own_specialist_profile(
    body: SpecialistProfileUpdate,
    actor: tuple[User, SpecialistProfile] = Depends(get_specialist),
    db: AsyncSession = Depends(get_session),
) -> SpecialistProfileOut:
    """Update the editable fields of my specialist card."""
    _, profile = actor
    await update_specialist_profile(db, profile, body.model_dump(exclude_unset=True))
    await db.commit()
    await db.refresh(profile)
    return await profile_out(db, profile)


@router.put("/specialist-categories", response_model=OkResponse)
async def put_specialist_categories(
    body: ReplaceCategoriesRequest,
    actor: tuple[User, SpecialistProfile] = Depends(get_specialist),
    db: AsyncSession = Depends(get_session),
) -> OkResponse:
    """Replace all my categories at once; nothing changes if any slug is unknown."""
    user, _ = actor
    await replace_specialist_categories(db, user.id, body.slugs)
    await db.commit()
    return OkResponse()


# ---------------------------------------------------------------------------
# Education and publications
# ---------------------------------------------------------------------------


@router.get("/specialist-profile/education", response_model=EducationListResponse)
async def get_my_education(
    actor: tuple[User, SpecialistProfile] = Depends(get_specialist),
    db: AsyncSession = Depends(get_session),
) -> EducationListResponse:
    user, _ = actor
    return EducationListResponse(education=[education_out(e) for e in await list_education(db, user.id)])


@router.post("/specialist-profile/education", response_model=EducationOut, status_code=201)
async def post_my_education(
    body: CreateEducationRequest,
    actor: tuple[User, SpecialistProfile] = Depends(get_specialist),
    db: AsyncSession = Depends(get_session),
) -> EducationOut:
    """Add a diploma, certificate or license. New entries start unverified."""
    user, _ = actor
    fields = body.model_dump()
    fields["document_url"] = str(body.document_url) if body.document_url is not None else None
    education = await add_education(db, user.id, fields)
    await db.commit()
    return education_out(education)


@router.delete("/specialist-profile/education/{education_id}", response_model=SuccessResponse)
async def delete_my_education(
    education_id: str,
    actor: tuple[User, SpecialistProfile] = Depends(get_specialist),
    db: AsyncSession = Depends(get_session),
) -> SuccessResponse:
    user, _ = actor
    await delete_education(db, user.id, education_id)
    await db.commit()
    return SuccessResponse()


@router.get("/specialist-profile/publications", response_model=PublicationListResponse)
async def get_my_publications(
    actor: tuple[User, SpecialistProfile] = Depends(get_specialist),
    db: AsyncSession = Depends(get_session),
) -> PublicationListResponse:
    user, _ = actor
    return PublicationListResponse(publications=[publication_out(p) for p in await list_publications(db, user.id)])


@router.post("/specialist-profile/publications", response_model=PublicationOut, status_code=201)
async def post_my_publication(
    body: CreatePublicationRequest,
    actor: tuple[User, SpecialistProfile] = Depends(get_specialist),
    db: AsyncSession = Depends(get_session),
) -> PublicationOut:
    user, _ = actor
    fields = body.model_dump()
    fields["url"] = str(body.url)
    publication = await add_publication(db, user.id, fields)
    await db.commit()
    return publication_out(publication)


@router.delete("/specialist-profile/publications/{publication_id}", response_model=SuccessResponse)
async def delete_my_publication(
    publication_id: str,
    actor: tuple[User, SpecialistProfile] = Depends(get_specialist),
    db: AsyncSession = Depends(get_session),
) -> SuccessResponse:
    user, _ = actor
    await delete_publication(db, user.id, publication_id)
    await db.commit()
    return SuccessResponse()


@router.get("/unread-counts", response_model=UnreadCountsResponse)
async def get_my_unread_counts(
    user: User = Depends(get_active_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis | None = Depends(get_optional_redis),
) -> UnreadCountsResponse:
    counts = await get_unread_counts(db, redis, user)
    return UnreadCountsResponse(**counts)
