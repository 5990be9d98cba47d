"""Upload router: raw avatar uploads and upload URL issuing."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Request
from pydantic import Field

from specmarket.auth.dependencies import get_specialist
from specmarket.db.models import SpecialistProfile, User
from specmarket.schemas import CamelModel, SuccessResponse
from specmarket.uploads.storage import AVATAR_MAX_BYTES, avatar_object_key, receive_upload

router = APIRouter(tags=["Uploads"])


class AvatarUploadUrlRequest(CamelModel):
    content_type: Literal["image/jpeg", "image/png", "image/webp"]
    size: int = Field(..., ge=1, le=AVATAR_MAX_BYTES)


class AvatarUploadUrlResponse(CamelModel):
    upload_url: str
    object_key: str
    public_url: str


@router.put("/api/upload/{path:path}", response_model=SuccessResponse)
async def put_upload(path: str, request: Request) -> SuccessResponse:
    """Store a raw request body under ``avatars/``."""
    content_length = request.headers.get("content-length", "")
    declared = int(content_length) if content_length.isdigit() else None
    await receive_upload(path, request.stream(), declared)
    return SuccessResponse()


@router.post("/api/me/avatar-upload-url", response_model=AvatarUploadUrlResponse)
async def post_avatar_upload_url(
    body: AvatarUploadUrlRequest,
    actor: tuple[User, SpecialistProfile] = Depends(get_specialist),
) -> AvatarUploadUrlResponse:
    """Issue a storage key for a new avatar and the URLs to upload and serve it."""
    user, _ = actor
    key = avatar_object_key(user.id, body.content_type)
    return AvatarUploadUrlResponse(upload_url=f"/api/upload/{key}", object_key=key, public_url=f"/uploads/{key}")
