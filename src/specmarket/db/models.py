"""ORM models for the marketplace schema.

IDs are UUID4 strings so the same schema runs on PostgreSQL and on the
SQLite database used by the test suite. Money is stored as integer cents.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from specmarket.db.base import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum(cls: type[enum.Enum]) -> Enum:
    return Enum(cls, native_enum=False, length=16, validate_strings=True)


# ---------------------------------------------------------------------------
# Status vocabularies (one canonical enum per entity)
# ---------------------------------------------------------------------------


class Role(str, enum.Enum):
    CLIENT = "CLIENT"
    SPECIALIST = "SPECIALIST"
    ADMIN = "ADMIN"


class UserStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    BLOCKED = "BLOCKED"


class PreferredFormat(str, enum.Enum):
    ONLINE = "ONLINE"
    OFFLINE = "OFFLINE"
    ANY = "ANY"


class RequestStatus(str, enum.Enum):
    """OPEN, then IN_PROGRESS once an application is accepted, then COMPLETED or CANCELLED."""

    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ApplicationStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


class DocumentType(str, enum.Enum):
    DIPLOMA = "diploma"
    CERTIFICATE = "certificate"
    LICENSE = "license"


class PublicationType(str, enum.Enum):
    ARTICLE = "ARTICLE"
    BOOK = "BOOK"
    RESEARCH = "RESEARCH"
    BLOG_POST = "BLOG_POST"
    PODCAST = "PODCAST"
    VIDEO = "VIDEO"


# ---------------------------------------------------------------------------
# Users and profiles
# ---------------------------------------------------------------------------


class User(Base):
    """Credential record. Profiles hang off it 1:1 keyed by user_id."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(256), nullable=False)
    role: Mapped[Role] = mapped_column(_enum(Role), nullable=False, default=Role.CLIENT)
    status: Mapped[UserStatus] = mapped_column(_enum(UserStatus), nullable=False, default=UserStatus.ACTIVE)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    login_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    client_profile: Mapped[ClientProfile | None] = relationship(
        "ClientProfile", back_populates="user", uselist=False, lazy="selectin"
    )
    specialist_profile: Mapped[SpecialistProfile | None] = relationship(
        "SpecialistProfile", back_populates="user", uselist=False, lazy="selectin"
    )


class ClientProfile(Base):
    __tablename__ = "client_profiles"

    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(60), nullable=False)

    user: Mapped[User] = relationship("User", back_populates="client_profile")


class SpecialistProfile(Base):
    """Public-facing specialist card. ``verified`` is only written by admins."""

    __tablename__ = "specialist_profiles"

    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(60), nullable=False)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    online_only: Mapped[bool] = mapped_column(Boolean, default=True, server_default="true")
    experience_years: Mapped[int | None] = mapped_column(Integer, nullable=True)
    price_min_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    price_max_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    verified: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    average_rating: Mapped[float] = mapped_column(Float, default=0.0, server_default="0")
    total_reviews: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, onupdate=utcnow)

    user: Mapped[User] = relationship("User", back_populates="specialist_profile")


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    slug: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)


class SpecialistCategory(Base):
    """Join row between a specialist and one of their categories."""

    __tablename__ = "specialist_categories"

    specialist_user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("specialist_profiles.user_id", ondelete="CASCADE"), primary_key=True
    )
    category_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("categories.id", ondelete="CASCADE"), primary_key=True
    )


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


class Education(Base):
    """A diploma, certificate or license listed on a specialist's profile."""

    __tablename__ = "education"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    specialist_user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("specialist_profiles.user_id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    institution: Mapped[str] = mapped_column(String(200), nullable=False)
    degree: Mapped[str | None] = mapped_column(String(120), nullable=True)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    document_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    document_type: Mapped[DocumentType] = mapped_column(
        _enum(DocumentType), nullable=False, default=DocumentType.DIPLOMA
    )
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    verified_by: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class Publication(Base):
    __tablename__ = "publications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    specialist_user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("specialist_profiles.user_id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[PublicationType] = mapped_column(_enum(PublicationType), nullable=False)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


class Request(Base):
    """A client's request for help in one category."""

    __tablename__ = "requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    client_user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    category_id: Mapped[str] = mapped_column(String(36), ForeignKey("categories.id"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    preferred_format: Mapped[PreferredFormat] = mapped_column(
        _enum(PreferredFormat), nullable=False, default=PreferredFormat.ANY
    )
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    budget_min_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    budget_max_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[RequestStatus] = mapped_column(
        _enum(RequestStatus), nullable=False, default=RequestStatus.OPEN, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, onupdate=utcnow)

    category: Mapped[Category] = relationship("Category", lazy="selectin")


class Application(Base):
    """A specialist's response to a request. One per (request, specialist)."""

    __tablename__ = "applications"
    __table_args__ = (UniqueConstraint("request_id", "specialist_user_id", name="uq_applications_request_specialist"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    request_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    specialist_user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[ApplicationStatus] = mapped_column(
        _enum(ApplicationStatus), nullable=False, default=ApplicationStatus.PENDING
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, onupdate=utcnow)

    request: Mapped[Request] = relationship("Request", lazy="selectin")


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


class ChatThread(Base):
    """Conversation between one client and one specialist.

    ``request_key`` mirrors ``request_id`` with ``""`` for NULL so the unique
    constraint also covers threads without an originating request.
    """

    __tablename__ = "chat_threads"
    __table_args__ = (
        UniqueConstraint("client_user_id", "specialist_user_id", "request_key", name="uq_chat_threads_participants"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    client_user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    specialist_user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    request_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("requests.id", ondelete="SET NULL"), nullable=True
    )
    request_key: Mapped[str] = mapped_column(String(36), nullable=False, default="", server_default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    last_message_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def participant_ids(self) -> tuple[str, str]:
        return self.client_user_id, self.specialist_user_id

    def peer_of(self, user_id: str) -> str:
        return self.specialist_user_id if user_id == self.client_user_id else self.client_user_id


class ChatMessage(Base):
    __tablename__ = "chat_messages"
    __table_args__ = (Index("ix_chat_messages_thread_created", "thread_id", "created_at"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    thread_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("chat_threads.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sender_user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    attachment_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


# ---------------------------------------------------------------------------
# Reviews
# ---------------------------------------------------------------------------


class Review(Base):
    __tablename__ = "reviews"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    specialist_user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    client_user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    request_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("requests.id", ondelete="SET NULL"), nullable=True
    )
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_public: Mapped[bool] = mapped_column(Boolean, default=True, server_default="true")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
