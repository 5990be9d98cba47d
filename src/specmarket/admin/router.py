"""Admin router: /api/admin/*. Every endpoint requires the ADMIN role."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from specmarket.admin.schemas import (
    AdminRequestOut,
    AdminRequestsResponse,
    AdminSpecialistOut,
    AdminSpecialistsResponse,
    VerifyRequest,
    VerifyResponse,
)
from specmarket.admin.service import (
    VerifiedFilter,
    list_all_requests,
    list_specialists_for_review,
    set_specialist_verified,
)
from specmarket.auth.dependencies import get_admin
from specmarket.database import get_session
from specmarket.db.models import RequestStatus, User
from specmarket.matching.router import request_fields

router = APIRouter(prefix="/api/admin", tags=["Admin"])


@router.patch("/specialists/{specialist_id}/verify", response_model=VerifyResponse)
async def verify_specialist(
    specialist_id: str,
    body: VerifyRequest,
    admin: User = Depends(get_admin),
    db: AsyncSession = Depends(get_session),
) -> VerifyResponse:
    """Set or clear the verified badge of a specialist."""
    profile = await set_specialist_verified(db, admin.id, specialist_id, body.verified)
    await db.commit()
    return VerifyResponse(verified=profile.verified)


@router.get("/specialists", response_model=AdminSpecialistsResponse)
async def get_specialists(
    q: str | None = Query(None, max_length=100),
    verified: VerifiedFilter = Query("all"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    _admin: User = Depends(get_admin),
    db: AsyncSession = Depends(get_session),
) -> AdminSpecialistsResponse:
    rows, total = await list_specialists_for_review(db, q=q, verified=verified, limit=limit, offset=offset)
    return AdminSpecialistsResponse(
        items=[
            AdminSpecialistOut(
                id=profile.user_id,
                email=user.email,
                display_name=profile.display_name,
                city=profile.city,
                verified=profile.verified,
                status=user.status,
                average_rating=profile.average_rating or 0.0,
                total_reviews=profile.total_reviews or 0,
                created_at=profile.created_at,
            )
            for profile, user in rows
        ],
        total=total,
        limit=limit,
        offset=offset,
        has_more=offset + len(rows) < total,
    )


@router.get("/requests", response_model=AdminRequestsResponse)
async def get_requests(
    status: RequestStatus | None = Query(None),
    category: str | None = Query(None),
    client_id: str | None = Query(None, alias="clientId"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    _admin: User = Depends(get_admin),
    db: AsyncSession = Depends(get_session),
) -> AdminRequestsResponse:
    requests, total = await list_all_requests(
        db, status=status, category=category, client_id=client_id, limit=limit, offset=offset
    )
    return AdminRequestsResponse(
        items=[AdminRequestOut(**request_fields(r), client_id=r.client_user_id) for r in requests],
        total=total,
    )
