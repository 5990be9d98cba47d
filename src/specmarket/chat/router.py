"""Chat router: /api/chat/* endpoints.

Writes commit first and only then schedule real-time events as background
tasks, so a slow or failing push never affects the stored data.
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from specmarket.auth.dependencies import get_active_user, get_client, get_optional_user
from specmarket.catalog.service import get_public_specialist
from specmarket.chat.schemas import (
    CreateThreadRequest,
    LastMessageOut,
    MarkReadRequest,
    MarkReadResponse,
    MessageCreatedResponse,
    MessageOut,
    MessagePage,
    PeerOut,
    SendMessageRequest,
    ThreadEnvelope,
    ThreadListItem,
    ThreadListResponse,
    ThreadOut,
)
from specmarket.chat.service import (
    count_unread_messages,
    get_or_create_thread,
    get_thread_for_participant,
    list_messages,
    list_threads,
    mark_thread_read,
    message_event,
    peer_display_name,
    send_message,
    thread_event,
)
from specmarket.database import get_session
from specmarket.db.models import ChatMessage, ChatThread, ClientProfile, User
from specmarket.matching.service import get_owned_request
from specmarket.realtime.publisher import (
    MESSAGE_NEW,
    MESSAGE_READ,
    THREAD_UPDATED,
    EventPublisher,
    get_event_publisher,
    publish_many,
)
from specmarket.schemas import CountResponse

router = APIRouter(prefix="/api/chat", tags=["Chat"])


def thread_out(thread: ChatThread) -> ThreadOut:
    return ThreadOut(
        id=thread.id,
        client_id=thread.client_user_id,
        specialist_id=thread.specialist_user_id,
        request_id=thread.request_id,
        created_at=thread.created_at,
        last_message_at=thread.last_message_at,
    )


def _message_out(message: ChatMessage) -> MessageOut:
    return MessageOut(
        id=message.id,
        thread_id=message.thread_id,
        sender_id=message.sender_user_id,
        body=message.body,
        attachment_url=message.attachment_url,
        is_read=message.is_read,
        read_at=message.read_at,
        created_at=message.created_at,
    )


@router.post("/threads", response_model=ThreadEnvelope, status_code=201)
async def create_thread(
    body: CreateThreadRequest,
    response: Response,
    actor: tuple[User, ClientProfile] = Depends(get_client),
    db: AsyncSession = Depends(get_session),
) -> ThreadEnvelope:
    """Open (or reopen) a conversation with a specialist. 201 when new, 200 when it already existed."""
    user, _ = actor
    specialist = await get_public_specialist(db, body.specialist_id)
    if body.request_id is not None:
        await get_owned_request(db, body.request_id, user.id)
    thread, created = await get_or_create_thread(db, user.id, specialist.user_id, body.request_id)
    await db.commit()
    if not created:
        response.status_code = 200
    return ThreadEnvelope(thread=thread_out(thread))


@router.get("/threads", response_model=ThreadListResponse)
async def get_threads(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_active_user),
    db: AsyncSession = Depends(get_session),
) -> ThreadListResponse:
    """My threads, most recently active first."""
    rows, total = await list_threads(db, user.id, limit=limit, offset=offset)
    items: list[ThreadListItem] = []
    for row in rows:
        thread: ChatThread = row["thread"]
        peer: User | None = row["peer"]
        last: ChatMessage | None = row["last_message"]
        avatar = peer.specialist_profile.avatar_url if peer and peer.specialist_profile else None
        items.append(
            ThreadListItem(
                id=thread.id,
                request_id=thread.request_id,
                updated_at=thread.last_message_at,
                peer=PeerOut(id=thread.peer_of(user.id), display_name=peer_display_name(peer), avatar_url=avatar),
                last_message=(
                    LastMessageOut(
                        id=last.id, body=last.body, sender_id=last.sender_user_id, created_at=last.created_at
                    )
                    if last
                    else None
                ),
                unread_count=row["unread_count"],
            )
        )
    return ThreadListResponse(threads=items, total=total)


@router.get("/threads/{thread_id}/messages", response_model=MessagePage)
async def get_messages(
    thread_id: str,
    limit: int = Query(50, ge=1, le=100),
    before_id: str | None = Query(None, alias="beforeId"),
    user: User = Depends(get_active_user),
    db: AsyncSession = Depends(get_session),
) -> MessagePage:
    """A page of messages, oldest first."""
    thread = await get_thread_for_participant(db, thread_id, user.id)
    messages, has_more = await list_messages(db, thread, limit=limit, before_id=before_id)
    return MessagePage(items=[_message_out(m) for m in messages], has_more=has_more)


@router.post("/threads/{thread_id}/messages", response_model=MessageCreatedResponse, status_code=201)
async def post_message(
    thread_id: str,
    body: SendMessageRequest,
    background: BackgroundTasks,
    user: User = Depends(get_active_user),
    db: AsyncSession = Depends(get_session),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> MessageCreatedResponse:
    """Send a message; the peer gets message:new, both sides get thread:updated."""
    thread = await get_thread_for_participant(db, thread_id, user.id)
    message = await send_message(db, thread, user.id, body.body, body.attachment_url)
    await db.commit()

    background.add_task(publish_many, publisher, [thread.peer_of(user.id)], MESSAGE_NEW, message_event(message))
    background.add_task(publish_many, publisher, list(thread.participant_ids()), THREAD_UPDATED, thread_event(thread))
    return MessageCreatedResponse(id=message.id, created_at=message.created_at)


@router.post("/threads/{thread_id}/read", response_model=MarkReadResponse)
async def mark_read(
    thread_id: str,
    background: BackgroundTasks,
    body: MarkReadRequest | None = None,
    user: User = Depends(get_active_user),
    db: AsyncSession = Depends(get_session),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> MarkReadResponse:
    """Mark the peer's messages as read; the peer gets a read receipt when anything changed."""
    thread = await get_thread_for_participant(db, thread_id, user.id)
    up_to = body.up_to_message_id if body else None
    updated = await mark_thread_read(db, thread, user.id, up_to)
    await db.commit()

    if updated > 0:
        background.add_task(
            publish_many,
            publisher,
            [thread.peer_of(user.id)],
            MESSAGE_READ,
            {"threadId": thread.id, "readerId": user.id, "upToMessageId": up_to, "count": updated},
        )
    return MarkReadResponse(updated=updated)


@router.get("/unread-count", response_model=CountResponse)
async def unread_count(
    user: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_session),
) -> CountResponse:
    """Unread messages addressed to me; 0 for anonymous callers."""
    if user is None:
        return CountResponse(count=0)
    return CountResponse(count=await count_unread_messages(db, user.id))
