"""Matching routers: /api/requests/* and /api/applications/*."""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from specmarket.auth.dependencies import get_active_user, get_client, get_optional_user, get_specialist
from specmarket.auth.service import display_name_of, get_users_by_ids
from specmarket.catalog.schemas import CategoryOut
from specmarket.chat.service import thread_event
from specmarket.database import get_session
from specmarket.db.models import (
    ApplicationStatus,
    ClientProfile,
    PreferredFormat,
    Request,
    RequestStatus,
    SpecialistProfile,
    User,
)
from specmarket.matching.schemas import (
    AcceptedApplicationOut,
    AcceptResponse,
    ApplicationCreatedResponse,
    ChangeStatusBody,
    CreateApplicationBody,
    CreateRequestBody,
    FeedItemOut,
    FeedResponse,
    FormatName,
    MyApplicationOut,
    MyApplicationRequestOut,
    MyApplicationsResponse,
    MyRequestOut,
    MyRequestsResponse,
    PersonOut,
    RequestApplicationOut,
    RequestApplicationsResponse,
    RequestCreatedResponse,
    RequestStatusResponse,
)
from specmarket.matching.service import (
    FeedFilters,
    accept_application,
    apply_to_request,
    change_request_status,
    count_new_applications,
    count_new_requests,
    create_request,
    decline_application,
    list_client_requests,
    list_request_applications,
    list_specialist_applications,
    specialist_feed,
)
from specmarket.realtime.publisher import (
    APPLICATION_UPDATED,
    THREAD_UPDATED,
    EventPublisher,
    get_event_publisher,
    publish_many,
)
from specmarket.schemas import CountResponse, SuccessResponse

requests_router = APIRouter(prefix="/api/requests", tags=["Requests"])
applications_router = APIRouter(prefix="/api/applications", tags=["Applications"])


def _person(user: User | None, user_id: str) -> PersonOut:
    if user is None:
        return PersonOut(id=user_id, display_name="")
    avatar = user.specialist_profile.avatar_url if user.specialist_profile else None
    return PersonOut(id=user.id, display_name=display_name_of(user) or user.email.split("@")[0], avatar_url=avatar)


def request_fields(request: Request) -> dict:
    return {
        "id": request.id,
        "title": request.title,
        "description": request.description,
        "preferred_format": request.preferred_format.value.lower(),
        "city": request.city,
        "budget_min_cents": request.budget_min_cents,
        "budget_max_cents": request.budget_max_cents,
        "status": request.status,
        "category": CategoryOut(slug=request.category.slug, name=request.category.name),
        "created_at": request.created_at,
        "updated_at": request.updated_at or request.created_at,
    }


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


@requests_router.post("", response_model=RequestCreatedResponse, status_code=201)
async def post_request(
    body: CreateRequestBody,
    actor: tuple[User, ClientProfile] = Depends(get_client),
    db: AsyncSession = Depends(get_session),
) -> RequestCreatedResponse:
    """Create a request as a client."""
    user, _ = actor
    request = await create_request(
        db,
        client_user_id=user.id,
        category_slug=body.category_slug,
        title=body.title,
        description=body.description,
        preferred_format=PreferredFormat(body.preferred_format.upper()),
        city=body.city or None,
        budget_min_cents=body.budget_min_cents,
        budget_max_cents=body.budget_max_cents,
    )
    await db.commit()
    return RequestCreatedResponse(id=request.id, status=request.status, created_at=request.created_at)


@requests_router.get("/mine", response_model=MyRequestsResponse)
async def get_my_requests(
    status: RequestStatus | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    actor: tuple[User, ClientProfile] = Depends(get_client),
    db: AsyncSession = Depends(get_session),
) -> MyRequestsResponse:
    """My requests, newest first, each with its accepted application."""
    user, _ = actor
    requests, total, accepted = await list_client_requests(db, user.id, status=status, limit=limit, offset=offset)
    specialists = await get_users_by_ids(db, {a.specialist_user_id for apps in accepted.values() for a in apps})
    items = [
        MyRequestOut(
            **request_fields(r),
            applications=[
                AcceptedApplicationOut(
                    id=a.id,
                    status=a.status,
                    specialist=_person(specialists.get(a.specialist_user_id), a.specialist_user_id),
                )
                for a in accepted[r.id]
            ],
        )
        for r in requests
    ]
    return MyRequestsResponse(items=items, total=total)


@requests_router.get("/feed", response_model=FeedResponse)
async def get_feed(
    category: str | None = Query(None),
    format: FormatName | None = Query(None),  # noqa: A002
    city: str | None = Query(None),
    q: str | None = Query(None, max_length=100),
    status: RequestStatus = Query(RequestStatus.OPEN),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    actor: tuple[User, SpecialistProfile] = Depends(get_specialist),
    db: AsyncSession = Depends(get_session),
) -> FeedResponse:
    """Requests for specialists, with relevance hints."""
    _, profile = actor
    filters = FeedFilters(
        category=category, format=format, city=city, q=q, status=status, limit=limit, offset=offset
    )
    items, total = await specialist_feed(db, profile, filters)
    return FeedResponse(
        items=[
            FeedItemOut(
                **request_fields(item.request),
                relevance_score=item.relevance_score,
                relevance_reasons=item.relevance_reasons,
            )
            for item in items
        ],
        total=total,
    )


@requests_router.get("/unread-count", response_model=CountResponse)
async def get_new_requests_count(
    user: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_session),
) -> CountResponse:
    """Fresh open requests in my specialist categories; 0 for anonymous callers."""
    if user is None or user.specialist_profile is None:
        return CountResponse(count=0)
    return CountResponse(count=await count_new_requests(db, user.id))


@requests_router.put("/{request_id}/status", response_model=RequestStatusResponse)
async def put_request_status(
    request_id: str,
    body: ChangeStatusBody,
    user: User = Depends(get_active_user),
    db: AsyncSession = Depends(get_session),
) -> RequestStatusResponse:
    """Cancel or complete a request (owner, or the accepted specialist for completion)."""
    request = await change_request_status(db, request_id, user.id, body.status)
    await db.commit()
    return RequestStatusResponse(id=request.id, status=request.status)


@requests_router.post("/{request_id}/applications", response_model=ApplicationCreatedResponse, status_code=201)
async def post_application(
    request_id: str,
    body: CreateApplicationBody,
    background: BackgroundTasks,
    actor: tuple[User, SpecialistProfile] = Depends(get_specialist),
    db: AsyncSession = Depends(get_session),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> ApplicationCreatedResponse:
    """Respond to an open request as a specialist."""
    user, _ = actor
    application = await apply_to_request(db, request_id, user.id, body.message)
    client_id = application.request.client_user_id
    await db.commit()

    background.add_task(
        publish_many,
        publisher,
        [client_id],
        APPLICATION_UPDATED,
        {"applicationId": application.id, "requestId": request_id, "status": application.status.value},
    )
    return ApplicationCreatedResponse(id=application.id, status=application.status, created_at=application.created_at)


@requests_router.get("/{request_id}/applications", response_model=RequestApplicationsResponse)
async def get_request_applications(
    request_id: str,
    user: User = Depends(get_active_user),
    db: AsyncSession = Depends(get_session),
) -> RequestApplicationsResponse:
    """Applications to my request."""
    _, applications = await list_request_applications(db, request_id, user.id)
    specialists = await get_users_by_ids(db, {a.specialist_user_id for a in applications})
    return RequestApplicationsResponse(
        items=[
            RequestApplicationOut(
                id=a.id,
                message=a.message,
                status=a.status,
                created_at=a.created_at,
                specialist=_person(specialists.get(a.specialist_user_id), a.specialist_user_id),
            )
            for a in applications
        ],
        total=len(applications),
    )


# ---------------------------------------------------------------------------
# Applications
# ---------------------------------------------------------------------------


@applications_router.get("/mine", response_model=MyApplicationsResponse)
async def get_my_applications(
    status: ApplicationStatus | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    actor: tuple[User, SpecialistProfile] = Depends(get_specialist),
    db: AsyncSession = Depends(get_session),
) -> MyApplicationsResponse:
    """My applications, newest first, with the request and its client."""
    user, _ = actor
    applications, total = await list_specialist_applications(db, user.id, status=status, limit=limit, offset=offset)
    clients = await get_users_by_ids(db, {a.request.client_user_id for a in applications})
    return MyApplicationsResponse(
        items=[
            MyApplicationOut(
                id=a.id,
                message=a.message,
                status=a.status,
                created_at=a.created_at,
                request=MyApplicationRequestOut(
                    **request_fields(a.request),
                    client=_person(clients.get(a.request.client_user_id), a.request.client_user_id),
                ),
            )
            for a in applications
        ],
        total=total,
    )


@applications_router.get("/unread-count", response_model=CountResponse)
async def get_new_applications_count(
    user: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_session),
) -> CountResponse:
    """Fresh pending applications to my requests; 0 for anonymous callers."""
    if user is None:
        return CountResponse(count=0)
    return CountResponse(count=await count_new_applications(db, user.id))


@applications_router.post("/{application_id}/accept", response_model=AcceptResponse)
async def post_accept(
    application_id: str,
    background: BackgroundTasks,
    user: User = Depends(get_active_user),
    db: AsyncSession = Depends(get_session),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> AcceptResponse:
    """Accept an application: the request goes IN_PROGRESS and a chat thread opens."""
    application, thread = await accept_application(db, application_id, user.id)
    await db.commit()

    background.add_task(publish_many, publisher, list(thread.participant_ids()), THREAD_UPDATED, thread_event(thread))
    background.add_task(
        publish_many,
        publisher,
        [application.specialist_user_id],
        APPLICATION_UPDATED,
        {"applicationId": application.id, "requestId": application.request_id, "status": application.status.value},
    )
    return AcceptResponse(thread_id=thread.id)


@applications_router.post("/{application_id}/decline", response_model=SuccessResponse)
async def post_decline(
    application_id: str,
    background: BackgroundTasks,
    user: User = Depends(get_active_user),
    db: AsyncSession = Depends(get_session),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> SuccessResponse:
    """Decline an application. Only the request owner, only once."""
    application = await decline_application(db, application_id, user.id)
    await db.commit()

    background.add_task(
        publish_many,
        publisher,
        [application.specialist_user_id],
        APPLICATION_UPDATED,
        {"applicationId": application.id, "requestId": application.request_id, "status": application.status.value},
    )
    return SuccessResponse()
