"""
Chat business logic.

Threads are idempotent per (client, specialist, request); the unique
constraint on ``chat_threads`` backs the find-or-create below. Read receipts
only ever touch messages the reader did not send.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError

from specmarket.auth.service import display_name_of
from specmarket.db.models import ChatMessage, ChatThread, User
from specmarket.errors import NotFoundError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

THREAD_NOT_FOUND = "Чат не найден"


# ---------------------------------------------------------------------------
# Threads
# ---------------------------------------------------------------------------


async def find_thread(
    db: AsyncSession,
    client_user_id: str,
    specialist_user_id: str,
    request_id: str | None,
) -> ChatThread | None:
    result = await db.execute(
        select(ChatThread)
        .where(ChatThread.client_user_id == client_user_id)
        .where(ChatThread.specialist_user_id == specialist_user_id)
        .where(ChatThread.request_key == (request_id or ""))
    )
    return result.scalar_one_or_none()


async def get_or_create_thread(
    db: AsyncSession,
    client_user_id: str,
    specialist_user_id: str,
    request_id: str | None = None,
) -> tuple[ChatThread, bool]:
    """
    Find the thread for the participant triple or create it.

    A concurrent insert of the same triple loses on the unique constraint;
    the loser re-reads the winner's row inside a savepoint so the caller's
    transaction survives.

    Returns:
        Tuple of (thread, created).
    """
    existing = await find_thread(db, client_user_id, specialist_user_id, request_id)
    if existing is not None:
        return existing, False

    now = datetime.now(timezone.utc)
    thread = ChatThread(
        client_user_id=client_user_id,
        specialist_user_id=specialist_user_id,
        request_id=request_id,
        request_key=request_id or "",
        created_at=now,
        last_message_at=now,
    )
    try:
        async with db.begin_nested():
            db.add(thread)
    except IntegrityError:
        winner = await find_thread(db, client_user_id, specialist_user_id, request_id)
        if winner is None:
            raise
        return winner, False

    logger.info(
        "chat_thread_created",
        thread_id=thread.id,
        client_id=client_user_id,
        specialist_id=specialist_user_id,
        request_id=request_id,
    )
    return thread, True


async def get_thread_for_participant(db: AsyncSession, thread_id: str, user_id: str) -> ChatThread:
    """
    Fetch a thread the user takes part in.

    Raises:
        NotFoundError: If the thread does not exist or the user is not a participant.
    """
    result = await db.execute(
        select(ChatThread)
        .where(ChatThread.id == thread_id)
        .where(or_(ChatThread.client_user_id == user_id, ChatThread.specialist_user_id == user_id))
    )
    thread = result.scalar_one_or_none()
    if thread is None:
        raise NotFoundError(THREAD_NOT_FOUND)
    return thread


def _participant_filter(user_id: str) -> Any:
    return or_(ChatThread.client_user_id == user_id, ChatThread.specialist_user_id == user_id)


async def list_threads(
    db: AsyncSession,
    user_id: str,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[dict[str, Any]], int]:
    """
    Threads of a user, most recently active first, with peer, last message and unread count.

    Returns:
        Tuple of (rows, total) where each row has keys thread, peer, last_message, unread_count.
    """
    total = (
        await db.execute(select(func.count(ChatThread.id)).where(_participant_filter(user_id)))
    ).scalar_one()

    result = await db.execute(
        select(ChatThread)
        .where(_participant_filter(user_id))
        .order_by(ChatThread.last_message_at.desc(), ChatThread.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    threads = list(result.scalars().all())
    if not threads:
        return [], total

    thread_ids = [t.id for t in threads]
    unread_rows = await db.execute(
        select(ChatMessage.thread_id, func.count(ChatMessage.id))
        .where(ChatMessage.thread_id.in_(thread_ids))
        .where(ChatMessage.sender_user_id != user_id)
        .where(ChatMessage.is_read.is_(False))
        .group_by(ChatMessage.thread_id)
    )
    unread = dict(unread_rows.all())

    peer_ids = {t.peer_of(user_id) for t in threads}
    peers_result = await db.execute(select(User).where(User.id.in_(peer_ids)))
    peers = {u.id: u for u in peers_result.scalars().all()}

    rows: list[dict[str, Any]] = []
    for thread in threads:
        last = await db.execute(
            select(ChatMessage)
            .where(ChatMessage.thread_id == thread.id)
            .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
            .limit(1)
        )
        rows.append(
            {
                "thread": thread,
                "peer": peers.get(thread.peer_of(user_id)),
                "last_message": last.scalar_one_or_none(),
                "unread_count": int(unread.get(thread.id, 0)),
            }
        )
    return rows, total


def peer_display_name(peer: User | None) -> str:
    if peer is None:
        return ""
    return display_name_of(peer) or peer.email


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


async def list_messages(
    db: AsyncSession,
    thread: ChatThread,
    limit: int = 50,
    before_id: str | None = None,
) -> tuple[list[ChatMessage], bool]:
    """
    A page of messages, returned oldest first.

    ``before_id`` pages backwards from a message of the same thread.

    Returns:
        Tuple of (messages, has_more).
    """
    query = (
        select(ChatMessage)
        .where(ChatMessage.thread_id == thread.id)
        .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
    )

    if before_id is not None:
        anchor = await _get_message_in_thread(db, thread.id, before_id)
        query = query.where(
            or_(
                ChatMessage.created_at < anchor.created_at,
                and_(ChatMessage.created_at == anchor.created_at, ChatMessage.id < anchor.id),
            )
        )

    # Fetch one extra to detect has_more
    result = await db.execute(query.limit(limit + 1))
    rows = list(result.scalars().all())
    has_more = len(rows) > limit
    page = rows[:limit]
    page.reverse()
    return page, has_more


async def _get_message_in_thread(db: AsyncSession, thread_id: str, message_id: str) -> ChatMessage:
    result = await db.execute(
        select(ChatMessage).where(ChatMessage.id == message_id).where(ChatMessage.thread_id == thread_id)
    )
    message = result.scalar_one_or_none()
    if message is None:
        msg = "Сообщение не найдено"
        raise NotFoundError(msg)
    return message


async def send_message(
    db: AsyncSession,
    thread: ChatThread,
    sender_user_id: str,
    body: str,
    attachment_url: str | None = None,
) -> ChatMessage:
    """Persist a message and bump the thread's activity timestamp."""
    now = datetime.now(timezone.utc)
    message = ChatMessage(
        thread_id=thread.id,
        sender_user_id=sender_user_id,
        body=body,
        attachment_url=attachment_url,
        is_read=False,
        created_at=now,
    )
    db.add(message)
    thread.last_message_at = now
    await db.flush()
    logger.info("chat_message_sent", thread_id=thread.id, message_id=message.id, sender_id=sender_user_id)
    return message


async def mark_thread_read(
    db: AsyncSession,
    thread: ChatThread,
    reader_user_id: str,
    up_to_message_id: str | None = None,
) -> int:
    """
    Mark the peer's unread messages in a thread as read.

    The reader's own messages are excluded by the WHERE clause, so they can
    never be flipped. With ``up_to_message_id`` only messages created at or
    before that message are marked.

    Returns:
        Number of messages marked.
    """
    stmt = (
        update(ChatMessage)
        .where(ChatMessage.thread_id == thread.id)
        .where(ChatMessage.sender_user_id != reader_user_id)
        .where(ChatMessage.is_read.is_(False))
    )
    if up_to_message_id is not None:
        anchor = await _get_message_in_thread(db, thread.id, up_to_message_id)
        stmt = stmt.where(ChatMessage.created_at <= anchor.created_at)

    result = await db.execute(
        stmt.values(is_read=True, read_at=datetime.now(timezone.utc)).execution_options(synchronize_session=False)
    )
    count = int(result.rowcount or 0)
    if count:
        logger.info("chat_messages_read", thread_id=thread.id, reader_id=reader_user_id, count=count)
    return count


async def count_unread_messages(db: AsyncSession, user_id: str) -> int:
    """Unread messages addressed to the user across all their threads."""
    result = await db.execute(
        select(func.count(ChatMessage.id))
        .join(ChatThread, ChatThread.id == ChatMessage.thread_id)
        .where(_participant_filter(user_id))
        .where(ChatMessage.sender_user_id != user_id)
        .where(ChatMessage.is_read.is_(False))
    )
    return int(result.scalar_one())


# ---------------------------------------------------------------------------
# Event payloads
# ---------------------------------------------------------------------------


def message_event(message: ChatMessage) -> dict[str, Any]:
    return {
        "id": message.id,
        "threadId": message.thread_id,
        "senderId": message.sender_user_id,
        "body": message.body,
        "attachmentUrl": message.attachment_url,
        "createdAt": message.created_at.isoformat(),
    }


def thread_event(thread: ChatThread) -> dict[str, Any]:
    return {
        "threadId": thread.id,
        "lastMessageAt": thread.last_message_at.isoformat() if thread.last_message_at else None,
    }
