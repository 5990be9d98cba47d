"""Request/response schemas for authentication endpoints."""

from __future__ import annotations

from pydantic import EmailStr, Field, field_validator

from specmarket.db.models import Role
from specmarket.schemas import CamelModel, UtcDatetime


class RegisterRequest(CamelModel):
    """Email registration. Display name defaults to the email's local part."""

    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    display_name: str | None = Field(None, min_length=2, max_length=60)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Normalize email to lowercase."""
        return v.lower().strip()


class LoginRequest(CamelModel):
    """Login with email + password."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Normalize email to lowercase."""
        return v.lower().strip()


class RegisteredUser(CamelModel):
    id: str
    email: str
    role: Role
    display_name: str


class RegisterResponse(CamelModel):
    success: bool = True
    user: RegisteredUser


class UserResponse(CamelModel):
    """The signed-in user with profile flags."""

    id: str
    email: str
    role: Role
    display_name: str | None
    has_client_profile: bool
    has_specialist_profile: bool
    created_at: UtcDatetime
    last_login: UtcDatetime | None = None


class TokenResponse(CamelModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse
