"""Request/response schemas for requests and applications."""

from __future__ import annotations

from typing import Literal

from pydantic import Field, field_validator, model_validator

from specmarket.catalog.schemas import CategoryOut
from specmarket.db.models import ApplicationStatus, RequestStatus
from specmarket.schemas import CamelModel, UtcDatetime

FormatName = Literal["online", "offline", "any"]


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class CreateRequestBody(CamelModel):
    """New client request. ``city`` is required for offline meetings."""

    category_slug: str = Field(..., min_length=1, max_length=64)
    title: str = Field(..., min_length=5, max_length=200)
    description: str = Field(..., min_length=20, max_length=2000)
    preferred_format: FormatName = "any"
    city: str | None = Field(None, max_length=100)
    budget_min_cents: int | None = Field(None, ge=0)
    budget_max_cents: int | None = Field(None, ge=0)

    @field_validator("title", "description", "city", mode="before")
    @classmethod
    def strip_text(cls, v: object) -> object:
        return v.strip() if isinstance(v, str) else v

    @model_validator(mode="after")
    def check_consistency(self) -> CreateRequestBody:
        if self.preferred_format == "offline" and not self.city:
            msg = "Для офлайн-встречи укажите город"
            raise ValueError(msg)
        if (
            self.budget_min_cents is not None
            and self.budget_max_cents is not None
            and self.budget_min_cents > self.budget_max_cents
        ):
            msg = "Минимальный бюджет не может превышать максимальный"
            raise ValueError(msg)
        return self


class RequestCreatedResponse(CamelModel):
    id: str
    status: RequestStatus
    created_at: UtcDatetime


class PersonOut(CamelModel):
    id: str
    display_name: str
    avatar_url: str | None = None


class AcceptedApplicationOut(CamelModel):
    id: str
    status: ApplicationStatus
    specialist: PersonOut


class RequestOut(CamelModel):
    id: str
    title: str
    description: str
    preferred_format: FormatName
    city: str | None
    budget_min_cents: int | None
    budget_max_cents: int | None
    status: RequestStatus
    category: CategoryOut
    created_at: UtcDatetime
    updated_at: UtcDatetime | None


class MyRequestOut(RequestOut):
    applications: list[AcceptedApplicationOut]


class MyRequestsResponse(CamelModel):
    items: list[MyRequestOut]
    total: int


class FeedItemOut(RequestOut):
    relevance_score: int
    relevance_reasons: list[str]


class FeedResponse(CamelModel):
    items: list[FeedItemOut]
    total: int


class ChangeStatusBody(CamelModel):
    status: RequestStatus


class RequestStatusResponse(CamelModel):
    id: str
    status: RequestStatus


# ---------------------------------------------------------------------------
# Applications
# ---------------------------------------------------------------------------


class CreateApplicationBody(CamelModel):
    message: str = Field(..., min_length=1, max_length=1000)

    @field_validator("message", mode="before")
    @classmethod
    def strip_message(cls, v: object) -> object:
        return v.strip() if isinstance(v, str) else v


class ApplicationCreatedResponse(CamelModel):
    id: str
    status: ApplicationStatus
    created_at: UtcDatetime


class RequestApplicationOut(CamelModel):
    """An application as seen by the request owner."""

    id: str
    message: str
    status: ApplicationStatus
    created_at: UtcDatetime
    specialist: PersonOut


class RequestApplicationsResponse(CamelModel):
    items: list[RequestApplicationOut]
    total: int


class MyApplicationRequestOut(RequestOut):
    client: PersonOut


class MyApplicationOut(CamelModel):
    """An application as seen by the specialist who sent it."""

    id: str
    message: str
    status: ApplicationStatus
    created_at: UtcDatetime
    request: MyApplicationRequestOut


class MyApplicationsResponse(CamelModel):
    items: list[MyApplicationOut]
    total: int


class AcceptResponse(CamelModel):
    thread_id: str
