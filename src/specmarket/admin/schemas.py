"""Admin request/response schemas."""

from __future__ import annotations

from specmarket.db.models import UserStatus
from specmarket.matching.schemas import RequestOut
from specmarket.schemas import CamelModel, UtcDatetime


class VerifyRequest(CamelModel):
    verified: bool


class VerifyResponse(CamelModel):
    ok: bool = True
    verified: bool


class AdminSpecialistOut(CamelModel):
    id: str
    email: str
    display_name: str
    city: str | None
    verified: bool
    status: UserStatus
    average_rating: float
    total_reviews: int
    created_at: UtcDatetime


class AdminSpecialistsResponse(CamelModel):
    items: list[AdminSpecialistOut]
    total: int
    limit: int
    offset: int
    has_more: bool


class AdminRequestOut(RequestOut):
    client_id: str


class AdminRequestsResponse(CamelModel):
    items: list[AdminRequestOut]
    total: int
