"""Request/response schemas for catalog endpoints."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import Field, HttpUrl, field_validator, model_validator

from specmarket.db.models import DocumentType, PublicationType
from specmarket.schemas import CamelModel, UtcDatetime


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


class CategoryOut(CamelModel):
    slug: str
    name: str


class CategoriesResponse(CamelModel):
    categories: list[CategoryOut]


# ---------------------------------------------------------------------------
# Education and publications
# ---------------------------------------------------------------------------

MIN_YEAR = 1900


def _check_year(v: int | None) -> int | None:
    if v is not None and not MIN_YEAR <= v <= datetime.now(timezone.utc).year:
        msg = "Некорректный год"
        raise ValueError(msg)
    return v


class EducationOut(CamelModel):
    id: str
    title: str
    institution: str
    degree: str | None
    year: int | None
    document_url: str | None
    document_type: DocumentType
    is_verified: bool
    verified_at: UtcDatetime | None
    verified_by: str | None
    created_at: UtcDatetime


class EducationListResponse(CamelModel):
    education: list[EducationOut]


class CreateEducationRequest(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    institution: str = Field(..., min_length=1, max_length=200)
    degree: str | None = Field(None, max_length=120)
    year: int | None = None
    document_url: HttpUrl | None = None
    document_type: DocumentType = DocumentType.DIPLOMA

    @field_validator("title", "institution", "degree", mode="before")
    @classmethod
    def strip_text(cls, v: object) -> object:
        return v.strip() if isinstance(v, str) else v

    @field_validator("year")
    @classmethod
    def check_year(cls, v: int | None) -> int | None:
        return _check_year(v)


class PublicationOut(CamelModel):
    id: str
    title: str
    url: str
    type: PublicationType
    year: int | None
    created_at: UtcDatetime


class PublicationListResponse(CamelModel):
    publications: list[PublicationOut]


class CreatePublicationRequest(CamelModel):
    title: str = Field(..., min_length=1, max_length=300)
    url: HttpUrl
    type: PublicationType
    year: int | None = None

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, v: object) -> object:
        return v.strip() if isinstance(v, str) else v

    @field_validator("year")
    @classmethod
    def check_year(cls, v: int | None) -> int | None:
        return _check_year(v)


# ---------------------------------------------------------------------------
# Specialists
# ---------------------------------------------------------------------------


class SpecialistCard(CamelModel):
    """Catalog list item."""

    id: str
    display_name: str
    city: str | None
    online_only: bool
    price_min_cents: int | None
    price_max_cents: int | None
    experience_years: int | None
    categories: list[str]
    verified: bool
    avatar_url: str | None
    average_rating: float
    total_reviews: int


class SpecialistListResponse(CamelModel):
    items: list[SpecialistCard]
    total: int


class SpecialistProfileOut(CamelModel):
    """Full public profile."""

    id: str
    display_name: str
    bio: str | None
    city: str | None
    online_only: bool
    experience_years: int | None
    price_min_cents: int | None
    price_max_cents: int | None
    verified: bool
    avatar_url: str | None
    average_rating: float
    total_reviews: int
    categories: list[CategoryOut]
    created_at: UtcDatetime
    education: list[EducationOut] = Field(default_factory=list)
    publications: list[PublicationOut] = Field(default_factory=list)


class SpecialistProfileUpdate(CamelModel):
    """Partial update of one's own specialist profile."""

    display_name: str | None = Field(None, min_length=2, max_length=60)
    bio: str | None = Field(None, max_length=2000)
    city: str | None = Field(None, max_length=100)
    online_only: bool | None = None
    experience_years: int | None = Field(None, ge=0, le=80)
    price_min_cents: int | None = Field(None, ge=0)
    price_max_cents: int | None = Field(None, ge=0)
    avatar_url: str | None = Field(None, max_length=2048)

    @model_validator(mode="after")
    def check_price_range(self) -> SpecialistProfileUpdate:
        if (
            self.price_min_cents is not None
            and self.price_max_cents is not None
            and self.price_min_cents > self.price_max_cents
        ):
            msg = "Максимальная цена должна быть не меньше минимальной"
            raise ValueError(msg)
        return self


class BecomeSpecialistResponse(CamelModel):
    ok: bool = True
    specialist_profile_id: str
    already_had_profile: bool


class ProfileFlags(CamelModel):
    has_client_profile: bool
    has_specialist_profile: bool


class ProfileInfoResponse(CamelModel):
    ok: bool = True
    profile: ProfileFlags


class ReplaceCategoriesRequest(CamelModel):
    slugs: list[str] = Field(default_factory=list, max_length=5)


# ---------------------------------------------------------------------------
# Reviews
# ---------------------------------------------------------------------------


class ReviewOut(CamelModel):
    id: str
    rating: int
    comment: str | None
    client_name: str | None
    created_at: UtcDatetime


class ReviewStats(CamelModel):
    average_rating: float
    total_reviews: int


class ReviewsResponse(CamelModel):
    reviews: list[ReviewOut]
    stats: ReviewStats


class CreateReviewRequest(CamelModel):
    specialist_id: str
    request_id: str | None = None
    rating: int = Field(..., ge=1, le=5)
    comment: str | None = Field(None, min_length=10, max_length=500)

    @field_validator("comment", mode="before")
    @classmethod
    def strip_comment(cls, v: object) -> object:
        return v.strip() if isinstance(v, str) else v


class ReviewCreatedResponse(CamelModel):
    success: bool = True
    review: ReviewOut
