"""
Sparkmatch — Message ledger.

Append-mostly store of the messages exchanged inside a match.  Every write
follows the same order inside one request: persist the message, advance the
match's recency pointer, commit, then push real-time events.  Delivery is
local and synchronous, so a stored message is marked delivered immediately.

Messages are never physically removed: deletion flips ``is_active`` and all
default reads filter on it.  Listing uses page/limit offsets, which can repeat
or skip rows across page boundaries while new messages arrive.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import Callable

import structlog
from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sparkmatch.config import get_settings
from sparkmatch.errors import (
    EditWindowExpiredError,
    InactiveMatchError,
    InvalidPayloadError,
    MessageNotEditableError,
    NotFoundOrUnauthorizedError,
)
from sparkmatch.models.message import Message
from sparkmatch.models.types import utcnow
from sparkmatch.models.user import User
from sparkmatch.realtime.notifier import (
    MESSAGE_DELETED,
    MESSAGE_EDITED,
    MESSAGE_READ,
    MESSAGE_SENT,
    MESSAGES_READ,
    RECEIVE_MESSAGE,
    Notifier,
)
from sparkmatch.schemas.message import MessagePayload, MessageResponse, MessageStats
from sparkmatch.services.match_service import MatchService

logger = structlog.get_logger("sparkmatch.message_service")


class MessageService:
    """Send, read, edit and soft-delete messages between matched users."""

    def __init__(
        self,
        match_service: MatchService,
        notifier: Notifier | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.match_service = match_service
        self.notifier = notifier or match_service.notifier
        self._clock = clock

        settings = get_settings()
        self.edit_window = timedelta(minutes=settings.EDIT_WINDOW_MINUTES)
        self.max_length: int = settings.MESSAGE_MAX_LENGTH

    # ── Send ──────────────────────────────────────────────────────────────

    async def send(
        self,
        match_id: uuid.UUID,
        sender: User,
        payload: MessagePayload,
        db_session: AsyncSession,
        reply_to_id: uuid.UUID | None = None,
    ) -> Message:
        """Append a message to the match ledger and notify both parties.

        Raises
        ------
        NotFoundOrUnauthorizedError
            The sender is not a participant, or ``reply_to_id`` does not
            name an active message of the same match.
        InactiveMatchError
            The match has been unmatched.
        InvalidPayloadError
            The payload breaks the per-type content rules.
        """
        log = logger.bind(match_id=str(match_id), sender=str(sender.id))

        match = await self.match_service.get_for_participant(
            match_id, sender.id, db_session, active_only=False, for_update=True
        )
        if not match.is_active:
            raise InactiveMatchError()

        columns = payload.columns()
        content = columns.get("content")
        if columns["message_type"] == "text" and (not content or len(content) > self.max_length):
            raise InvalidPayloadError(
                f"Content must be between 1 and {self.max_length} characters"
            )

        if reply_to_id is not None:
            parent = await self._find(
                db_session,
                Message.id == reply_to_id,
                Message.match_id == match.id,
            )
            if parent is None:
                raise NotFoundOrUnauthorizedError("Reply message not found")

        now = self._clock()
        message = Message(
            id=uuid.uuid4(),
            match_id=match.id,
            sender_id=sender.id,
            recipient_id=match.other_user_id(sender.id),
            reply_to_id=reply_to_id,
            is_read=False,
            is_delivered=True,
            delivered_at=now,
            is_active=True,
            created_at=now,
            **columns,
        )
        db_session.add(message)
        await db_session.flush()

        # Re-read inside the write transaction: without row locks (SQLite) an
        # unmatch may have committed since the check above.
        await db_session.refresh(match, attribute_names=["is_active"], with_for_update=True)
        if not match.is_active:
            await db_session.rollback()
            log.info("message_rejected", reason="unmatched_during_send")
            raise InactiveMatchError()

        match.add_message(message, now)
        await db_session.commit()

        log.info("message_sent", message_id=str(message.id), message_type=message.message_type)

        body = MessageResponse.model_validate(message)
        await self.notifier.emit(
            message.recipient_id,
            RECEIVE_MESSAGE,
            {
                "message": body,
                "match": {
                    "id": match.id,
                    "sender": {
                        "id": sender.id,
                        "name": sender.name,
                        "main_photo": sender.main_photo,
                    },
                },
            },
        )
        await self.notifier.emit(sender.id, MESSAGE_SENT, {"message": body, "match_id": match.id})
        return message

    # ── Read receipts ─────────────────────────────────────────────────────

    async def mark_read(
        self,
        message_id: uuid.UUID,
        reader_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> Message:
        """Mark one message read by its recipient.

        Only the unread → read transition writes and notifies; repeating
        the call returns the message untouched.
        """
        message = await self._find(
            db_session,
            Message.id == message_id,
            Message.recipient_id == reader_id,
            for_update=True,
        )
        if message is None:
            raise NotFoundOrUnauthorizedError("Message not found")

        if message.is_read:
            return message

        message.is_read = True
        message.read_at = self._clock()
        await db_session.commit()

        logger.info("message_read", message_id=str(message.id), reader=str(reader_id))
        await self.notifier.emit(
            message.sender_id,
            MESSAGE_READ,
            {"message_id": message.id, "read_by": reader_id, "read_at": message.read_at},
        )
        return message

    async def mark_all_read(
        self,
        match_id: uuid.UUID,
        reader_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> int:
        """Mark every unread message addressed to ``reader_id`` in the match."""
        match = await self.match_service.get_for_participant(
            match_id, reader_id, db_session, for_update=True
        )

        now = self._clock()
        result = await db_session.execute(
            update(Message)
            .where(
                Message.match_id == match.id,
                Message.recipient_id == reader_id,
                Message.is_read.is_(False),
                Message.is_active.is_(True),
            )
            .values(is_read=True, read_at=now)
        )
        await db_session.commit()
        count = result.rowcount

        logger.info("messages_read", match_id=str(match.id), reader=str(reader_id), count=count)
        await self.notifier.emit(
            match.other_user_id(reader_id),
            MESSAGES_READ,
            {"match_id": match.id, "read_by": reader_id, "read_count": count, "read_at": now},
        )
        return count

    # ── Edit / delete ─────────────────────────────────────────────────────

    async def edit(
        self,
        message_id: uuid.UUID,
        editor_id: uuid.UUID,
        new_content: str,
        db_session: AsyncSession,
    ) -> Message:
        """Replace the content of a text message within the edit window."""
        message = await self._find(
            db_session,
            Message.id == message_id,
            Message.sender_id == editor_id,
            for_update=True,
        )
        if message is None:
            raise NotFoundOrUnauthorizedError("Message not found or unauthorized")
        if message.message_type != "text":
            raise MessageNotEditableError()

        now = self._clock()
        if now - message.created_at > self.edit_window:
            raise EditWindowExpiredError()

        content = (new_content or "").strip()
        if not content or len(content) > self.max_length:
            raise InvalidPayloadError(
                f"Content must be between 1 and {self.max_length} characters"
            )

        message.content = content
        message.edited_at = now
        await db_session.commit()

        logger.info("message_edited", message_id=str(message.id))
        await self.notifier.emit(
            message.recipient_id,
            MESSAGE_EDITED,
            {
                "message": MessageResponse.model_validate(message),
                "edited_by": editor_id,
                "edited_at": now,
            },
        )
        return message

    async def soft_delete(
        self,
        message_id: uuid.UUID,
        requester_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> Message:
        """Hide a message from every default read; the row is kept."""
        message = await self._find(
            db_session,
            Message.id == message_id,
            Message.sender_id == requester_id,
            for_update=True,
        )
        if message is None:
            raise NotFoundOrUnauthorizedError("Message not found or unauthorized")

        message.is_active = False
        await db_session.commit()

        logger.info("message_deleted", message_id=str(message.id))
        await self.notifier.emit(
            message.recipient_id,
            MESSAGE_DELETED,
            {"message_id": message.id, "match_id": message.match_id, "deleted_by": requester_id},
        )
        return message

    # ── Queries ───────────────────────────────────────────────────────────

    async def list_messages(
        self,
        match_id: uuid.UUID,
        db_session: AsyncSession,
        page: int = 1,
        limit: int = 50,
        include_inactive: bool = False,
    ) -> list[Message]:
        """Messages of a match, newest first (callers reverse for display)."""
        stmt = select(Message).where(Message.match_id == match_id)
        if not include_inactive:
            stmt = stmt.where(Message.is_active.is_(True))
        stmt = (
            stmt.order_by(Message.created_at.desc(), Message.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list((await db_session.execute(stmt)).scalars().all())

    async def count_messages(
        self,
        match_id: uuid.UUID,
        db_session: AsyncSession,
        include_inactive: bool = False,
    ) -> int:
        stmt = select(func.count()).select_from(Message).where(Message.match_id == match_id)
        if not include_inactive:
            stmt = stmt.where(Message.is_active.is_(True))
        return (await db_session.execute(stmt)).scalar_one()

    async def get_message(
        self,
        message_id: uuid.UUID,
        db_session: AsyncSession,
        include_inactive: bool = False,
    ) -> Message | None:
        criteria = [Message.id == message_id]
        if include_inactive:
            stmt = select(Message).where(*criteria)
            return (await db_session.execute(stmt)).scalar_one_or_none()
        return await self._find(db_session, *criteria)

    async def unread_count(self, user_id: uuid.UUID, db_session: AsyncSession) -> int:
        stmt = (
            select(func.count())
            .select_from(Message)
            .where(
                Message.recipient_id == user_id,
                Message.is_read.is_(False),
                Message.is_active.is_(True),
            )
        )
        return (await db_session.execute(stmt)).scalar_one()

    async def message_stats(self, user_id: uuid.UUID, db_session: AsyncSession) -> MessageStats:
        now = self._clock()
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)

        async def _count(*criteria) -> int:
            stmt = (
                select(func.count())
                .select_from(Message)
                .where(Message.is_active.is_(True), *criteria)
            )
            return (await db_session.execute(stmt)).scalar_one()

        type_rows = await db_session.execute(
            select(Message.message_type, func.count())
            .where(Message.sender_id == user_id, Message.is_active.is_(True))
            .group_by(Message.message_type)
        )

        return MessageStats(
            total_sent=await _count(Message.sender_id == user_id),
            total_received=await _count(Message.recipient_id == user_id),
            unread_received=await _count(
                Message.recipient_id == user_id, Message.is_read.is_(False)
            ),
            todays_sent=await _count(
                Message.sender_id == user_id, Message.created_at >= midnight
            ),
            message_types={message_type: count for message_type, count in type_rows.all()},
        )

    async def search(
        self,
        user_id: uuid.UUID,
        query: str,
        db_session: AsyncSession,
        match_id: uuid.UUID | None = None,
        limit: int = 20,
    ) -> list[Message]:
        """Case-insensitive substring search over the user's text messages."""
        stmt = select(Message).where(
            or_(Message.sender_id == user_id, Message.recipient_id == user_id),
            Message.is_active.is_(True),
            Message.message_type == "text",
            Message.content.icontains(query, autoescape=True),
        )
        if match_id is not None:
            stmt = stmt.where(Message.match_id == match_id)
        stmt = stmt.order_by(Message.created_at.desc()).limit(limit)
        return list((await db_session.execute(stmt)).scalars().all())

    # ── Helpers ───────────────────────────────────────────────────────────

    async def _find(
        self,
        db_session: AsyncSession,
        *criteria,
        for_update: bool = False,
    ) -> Message | None:
        stmt = select(Message).where(Message.is_active.is_(True), *criteria)
        if for_update:
            stmt = stmt.with_for_update()
        return (await db_session.execute(stmt)).scalar_one_or_none()
