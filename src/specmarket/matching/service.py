"""
Matching business logic: client requests, the specialist feed and applications.

Every listing is scoped to the caller's own rows. Status changes go through
``specmarket.matching.states``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError

from specmarket.catalog.service import get_category_by_slug, specialist_category_ids
from specmarket.chat.service import count_unread_messages, get_or_create_thread
from specmarket.config import get_settings
from specmarket.db.models import (
    Application,
    ApplicationStatus,
    Category,
    ChatThread,
    PreferredFormat,
    Request,
    RequestStatus,
    SpecialistProfile,
    User,
)
from specmarket.errors import ConflictError, DomainValidationError, FieldError, ForbiddenError, NotFoundError
from specmarket.matching.states import (
    CLIENT_TRANSITIONS,
    SPECIALIST_TRANSITIONS,
    validate_application_transition,
    validate_request_transition,
)

if TYPE_CHECKING:
    from redis.asyncio import Redis
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

REQUEST_NOT_FOUND = "Заявка не найдена"
APPLICATION_NOT_FOUND = "Отклик не найден"
REQUEST_NOT_OPEN = "Заявка не принимает отклики"
ALREADY_APPLIED = "Вы уже откликнулись на эту заявку"


def unread_cutoff() -> datetime:
    """Start of the trailing window used by the unread counters."""
    return datetime.now(timezone.utc) - timedelta(hours=get_settings().unread_window_hours)


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


async def get_request(db: AsyncSession, request_id: str) -> Request:
    result = await db.execute(select(Request).where(Request.id == request_id))
    request = result.scalar_one_or_none()
    if request is None:
        raise NotFoundError(REQUEST_NOT_FOUND)
    return request


async def get_owned_request(db: AsyncSession, request_id: str, client_user_id: str) -> Request:
    """A request of this client; someone else's request is reported as missing."""
    request = await get_request(db, request_id)
    if request.client_user_id != client_user_id:
        raise NotFoundError(REQUEST_NOT_FOUND)
    return request


async def create_request(
    db: AsyncSession,
    client_user_id: str,
    category_slug: str,
    title: str,
    description: str,
    preferred_format: PreferredFormat,
    city: str | None = None,
    budget_min_cents: int | None = None,
    budget_max_cents: int | None = None,
) -> Request:
    """
    Create an OPEN request.

    Raises:
        NotFoundError: If the category slug is unknown.
    """
    category = await get_category_by_slug(db, category_slug)
    if category is None:
        msg = "Категория не найдена"
        raise NotFoundError(msg)

    request = Request(
        client_user_id=client_user_id,
        category_id=category.id,
        title=title,
        description=description,
        preferred_format=preferred_format,
        city=city,
        budget_min_cents=budget_min_cents,
        budget_max_cents=budget_max_cents,
        status=RequestStatus.OPEN,
        created_at=datetime.now(timezone.utc),
        category=category,
    )
    db.add(request)
    await db.flush()
    logger.info("request_created", request_id=request.id, client_id=client_user_id, category=category_slug)
    return request


async def list_client_requests(
    db: AsyncSession,
    client_user_id: str,
    status: RequestStatus | None = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[Request], int, dict[str, list[Application]]]:
    """
    The client's own requests, newest first.

    Returns:
        Tuple of (requests, total, accepted applications keyed by request id).
    """
    query = select(Request).where(Request.client_user_id == client_user_id)
    if status is not None:
        query = query.where(Request.status == status)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()
    result = await db.execute(query.order_by(Request.created_at.desc()).offset(offset).limit(limit))
    requests = list(result.scalars().all())

    accepted: dict[str, list[Application]] = {r.id: [] for r in requests}
    if requests:
        apps = await db.execute(
            select(Application)
            .where(Application.request_id.in_(list(accepted)))
            .where(Application.status == ApplicationStatus.ACCEPTED)
        )
        for app in apps.scalars().all():
            accepted[app.request_id].append(app)
    return requests, total, accepted


@dataclass
class FeedFilters:
    category: str | None = None
    format: str | None = None
    city: str | None = None
    q: str | None = None
    status: RequestStatus = RequestStatus.OPEN
    limit: int = 20
    offset: int = 0


@dataclass
class FeedItem:
    request: Request
    relevance_score: int = 0
    relevance_reasons: list[str] = field(default_factory=list)


def score_request(request: Request, profile: SpecialistProfile, my_category_ids: set[str]) -> FeedItem:
    """Explainable relevance of a request for a specialist."""
    item = FeedItem(request=request)
    if profile.city and request.city == profile.city:
        item.relevance_score += 3
        item.relevance_reasons.append("В вашем городе")
    if profile.price_min_cents and request.budget_min_cents and request.budget_min_cents >= profile.price_min_cents:
        item.relevance_score += 2
        item.relevance_reasons.append("Подходящий бюджет")
    if request.category_id in my_category_ids:
        item.relevance_score += 1
        item.relevance_reasons.append("Ваша категория")
    return item


async def specialist_feed(
    db: AsyncSession,
    profile: SpecialistProfile,
    filters: FeedFilters,
) -> tuple[list[FeedItem], int]:
    """
    Requests a specialist can respond to.

    Without a category filter the feed is restricted to the specialist's own
    categories, so a specialist who has not picked any sees an empty feed.
    Ordered by budget (largest first, unknown last), then newest.
    """
    my_category_ids = await specialist_category_ids(db, profile.user_id)

    query = (
        select(Request)
        .where(Request.status == filters.status)
        .where(Request.client_user_id != profile.user_id)
    )
    if filters.category:
        query = query.join(Category, Category.id == Request.category_id).where(Category.slug == filters.category)
    elif not my_category_ids:
        return [], 0
    else:
        query = query.where(Request.category_id.in_(my_category_ids))

    if filters.format == "online":
        query = query.where(Request.preferred_format.in_([PreferredFormat.ONLINE, PreferredFormat.ANY]))
    elif filters.format == "offline":
        query = query.where(Request.preferred_format.in_([PreferredFormat.OFFLINE, PreferredFormat.ANY]))

    if filters.city:
        query = query.where(
            or_(Request.city == filters.city, Request.preferred_format != PreferredFormat.OFFLINE)
        )

    if filters.q:
        pattern = f"%{filters.q.lower()}%"
        query = query.where(or_(func.lower(Request.title).like(pattern), func.lower(Request.description).like(pattern)))

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()
    result = await db.execute(
        query.order_by(Request.budget_max_cents.desc().nulls_last(), Request.created_at.desc())
        .offset(filters.offset)
        .limit(filters.limit)
    )
    items = [score_request(r, profile, my_category_ids) for r in result.scalars().all()]
    return items, total


async def change_request_status(
    db: AsyncSession,
    request_id: str,
    actor_user_id: str,
    target: RequestStatus,
) -> Request:
    """
    Move a request along its lifecycle on behalf of a participant.

    The owner may cancel an open request, or complete/cancel one in progress.
    The specialist whose application was accepted may complete it.

    Raises:
        NotFoundError: Unknown request, or the actor is not a participant.
        StateConflictError: The transition is not allowed for this actor.
    """
    request = await get_request(db, request_id)

    if request.client_user_id == actor_user_id:
        allowed = CLIENT_TRANSITIONS
    else:
        accepted = await db.execute(
            select(Application.id)
            .where(Application.request_id == request.id)
            .where(Application.specialist_user_id == actor_user_id)
            .where(Application.status == ApplicationStatus.ACCEPTED)
        )
        if accepted.scalar_one_or_none() is None:
            raise NotFoundError(REQUEST_NOT_FOUND)
        allowed = SPECIALIST_TRANSITIONS

    validate_request_transition(request.status, target)
    if (request.status, target) not in allowed:
        msg = f"Недопустимый переход статуса: {request.status.value} -> {target.value}"
        raise DomainValidationError(msg, details=[FieldError("status", msg)])

    previous = request.status
    request.status = target
    request.updated_at = datetime.now(timezone.utc)
    await db.flush()
    logger.info(
        "request_status_changed",
        request_id=request.id,
        actor_id=actor_user_id,
        from_status=previous.value,
        to_status=target.value,
    )
    return request


# ---------------------------------------------------------------------------
# Applications
# ---------------------------------------------------------------------------


async def has_applied(db: AsyncSession, request_id: str, specialist_user_id: str) -> bool:
    result = await db.execute(
        select(Application.id)
        .where(Application.request_id == request_id)
        .where(Application.specialist_user_id == specialist_user_id)
    )
    return result.scalar_one_or_none() is not None


async def apply_to_request(
    db: AsyncSession,
    request_id: str,
    specialist_user_id: str,
    message: str,
) -> Application:
    """
    Respond to an open request.

    Raises:
        NotFoundError: Unknown request.
        StateConflictError: The request is not OPEN.
        DomainValidationError: The specialist owns the request.
        ConflictError: The specialist already responded.
    """
    request = await get_request(db, request_id)
    if request.status != RequestStatus.OPEN:
        raise DomainValidationError(REQUEST_NOT_OPEN)
    if request.client_user_id == specialist_user_id:
        msg = "Нельзя откликнуться на собственную заявку"
        raise DomainValidationError(msg)

    if await has_applied(db, request.id, specialist_user_id):
        raise ConflictError(ALREADY_APPLIED)

    application = Application(
        request_id=request.id,
        specialist_user_id=specialist_user_id,
        message=message,
        status=ApplicationStatus.PENDING,
        created_at=datetime.now(timezone.utc),
        request=request,
    )
    try:
        async with db.begin_nested():
            db.add(application)
    except IntegrityError:
        raise ConflictError(ALREADY_APPLIED) from None
    logger.info(
        "application_created",
        application_id=application.id,
        request_id=request.id,
        specialist_id=specialist_user_id,
    )
    return application


async def list_request_applications(
    db: AsyncSession,
    request_id: str,
    client_user_id: str,
) -> tuple[Request, list[Application]]:
    """
    Applications to one of the client's requests, newest first.

    Raises:
        NotFoundError: Unknown request.
        ForbiddenError: The caller does not own the request.
    """
    request = await get_request(db, request_id)
    if request.client_user_id != client_user_id:
        raise ForbiddenError
    result = await db.execute(
        select(Application).where(Application.request_id == request.id).order_by(Application.created_at.desc())
    )
    return request, list(result.scalars().all())


async def list_specialist_applications(
    db: AsyncSession,
    specialist_user_id: str,
    status: ApplicationStatus | None = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[Application], int]:
    """The specialist's own applications, newest first."""
    query = select(Application).where(Application.specialist_user_id == specialist_user_id)
    if status is not None:
        query = query.where(Application.status == status)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()
    result = await db.execute(query.order_by(Application.created_at.desc()).offset(offset).limit(limit))
    return list(result.scalars().all()), total


async def _get_owned_application(db: AsyncSession, application_id: str, client_user_id: str) -> Application:
    result = await db.execute(select(Application).where(Application.id == application_id))
    application = result.scalar_one_or_none()
    if application is None:
        raise NotFoundError(APPLICATION_NOT_FOUND)
    if application.request.client_user_id != client_user_id:
        raise ForbiddenError
    return application


async def accept_application(
    db: AsyncSession,
    application_id: str,
    client_user_id: str,
) -> tuple[Application, ChatThread]:
    """
    Accept a pending application.

    In one transaction (owned by the caller): the application becomes
    ACCEPTED, its request moves OPEN -> IN_PROGRESS, and the chat thread for
    (client, specialist, request) is found or created.

    Raises:
        NotFoundError / ForbiddenError: Unknown application or not the request owner.
        StateConflictError: Already processed, or the request is no longer open.
    """
    application = await _get_owned_application(db, application_id, client_user_id)
    validate_application_transition(application.status, ApplicationStatus.ACCEPTED)

    request = application.request
    if request.status != RequestStatus.OPEN:
        raise DomainValidationError(REQUEST_NOT_OPEN)
    validate_request_transition(request.status, RequestStatus.IN_PROGRESS)

    now = datetime.now(timezone.utc)
    application.status = ApplicationStatus.ACCEPTED
    application.updated_at = now
    request.status = RequestStatus.IN_PROGRESS
    request.updated_at = now
    await db.flush()

    thread, _ = await get_or_create_thread(db, request.client_user_id, application.specialist_user_id, request.id)
    logger.info(
        "application_accepted",
        application_id=application.id,
        request_id=request.id,
        thread_id=thread.id,
    )
    return application, thread


async def decline_application(
    db: AsyncSession,
    application_id: str,
    client_user_id: str,
) -> Application:
    """
    Reject a pending application. Only the request owner may do this, once.

    Raises:
        NotFoundError: Unknown application.
        ForbiddenError: The caller does not own the request.
        StateConflictError: The application is no longer PENDING.
    """
    application = await _get_owned_application(db, application_id, client_user_id)
    validate_application_transition(application.status, ApplicationStatus.REJECTED)

    application.status = ApplicationStatus.REJECTED
    application.updated_at = datetime.now(timezone.utc)
    await db.flush()
    logger.info("application_declined", application_id=application.id, request_id=application.request_id)
    return application


# ---------------------------------------------------------------------------
# Unread counters
# ---------------------------------------------------------------------------


async def count_new_applications(db: AsyncSession, client_user_id: str) -> int:
    """PENDING applications to the client's requests created in the trailing window."""
    result = await db.execute(
        select(func.count(Application.id))
        .join(Request, Request.id == Application.request_id)
        .where(Request.client_user_id == client_user_id)
        .where(Application.status == ApplicationStatus.PENDING)
        .where(Application.created_at >= unread_cutoff())
    )
    return int(result.scalar_one())


async def count_new_requests(db: AsyncSession, specialist_user_id: str) -> int:
    """OPEN requests in the specialist's categories created in the trailing window."""
    category_ids = await specialist_category_ids(db, specialist_user_id)
    if not category_ids:
        return 0
    result = await db.execute(
        select(func.count(Request.id))
        .where(Request.category_id.in_(category_ids))
        .where(Request.status == RequestStatus.OPEN)
        .where(Request.client_user_id != specialist_user_id)
        .where(Request.created_at >= unread_cutoff())
    )
    return int(result.scalar_one())


UNREAD_COUNTS_CACHE_KEY = "unread_counts:{user_id}"


async def get_unread_counts(db: AsyncSession, redis: Redis | None, user: User) -> dict[str, int]:
    """All badge counters for the header in one call.

    Cached in Redis for ``unread_counts_cache_ttl_seconds`` when Redis is
    available; a cache failure falls through to the database.
    """
    cache_key = UNREAD_COUNTS_CACHE_KEY.format(user_id=user.id)
    if redis is not None:
        try:
            cached = await redis.get(cache_key)
            if cached:
                return json.loads(cached)
        except Exception:
            logger.debug("unread_counts_cache_miss", user_id=user.id, exc_info=True)

    chat = await count_unread_messages(db, user.id)
    applications = await count_new_applications(db, user.id)
    requests = await count_new_requests(db, user.id) if user.specialist_profile is not None else 0
    counts = {
        "chat": chat,
        "applications": applications,
        "requests": requests,
        "total": chat + applications + requests,
    }

    if redis is not None:
        try:
            await redis.setex(cache_key, get_settings().unread_counts_cache_ttl_seconds, json.dumps(counts))
        except Exception:
            logger.debug("unread_counts_cache_store_failed", user_id=user.id, exc_info=True)
    return counts
