"""Request/response schemas for chat endpoints."""

from __future__ import annotations

from pydantic import Field, field_validator

from specmarket.schemas import CamelModel, UtcDatetime


class CreateThreadRequest(CamelModel):
    specialist_id: str
    request_id: str | None = None


class ThreadOut(CamelModel):
    id: str
    client_id: str
    specialist_id: str
    request_id: str | None
    created_at: UtcDatetime
    last_message_at: UtcDatetime | None


class ThreadEnvelope(CamelModel):
    thread: ThreadOut


class PeerOut(CamelModel):
    id: str
    display_name: str
    avatar_url: str | None = None


class LastMessageOut(CamelModel):
    id: str
    body: str
    sender_id: str
    created_at: UtcDatetime


class ThreadListItem(CamelModel):
    id: str
    request_id: str | None
    updated_at: UtcDatetime | None
    peer: PeerOut
    last_message: LastMessageOut | None
    unread_count: int


class ThreadListResponse(CamelModel):
    threads: list[ThreadListItem]
    total: int


class MessageOut(CamelModel):
    id: str
    thread_id: str
    sender_id: str
    body: str
    attachment_url: str | None
    is_read: bool
    read_at: UtcDatetime | None
    created_at: UtcDatetime


class MessagePage(CamelModel):
    items: list[MessageOut]
    has_more: bool


class SendMessageRequest(CamelModel):
    body: str = Field(..., min_length=1, max_length=2000)
    attachment_url: str | None = Field(None, max_length=2048)

    @field_validator("body", mode="before")
    @classmethod
    def strip_body(cls, v: object) -> object:
        return v.strip() if isinstance(v, str) else v


class MessageCreatedResponse(CamelModel):
    id: str
    created_at: UtcDatetime


class MarkReadRequest(CamelModel):
    up_to_message_id: str | None = None


class MarkReadResponse(CamelModel):
    success: bool = True
    updated: int
