"""
Sparkmatch — Match aggregate service.

A match pairs exactly two users and has two states: active, and unmatched
(terminal).  Unmatching deactivates the match and every message under it in
the same transaction, then tells the other participant.

The per-user "match list" is not stored separately: it is the set of active
matches the user participates in, so creating a match adds it to both lists
and deactivating it removes it from both.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import Callable, Sequence

import structlog
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sparkmatch.config import get_settings
from sparkmatch.errors import NotAParticipantError
from sparkmatch.models.match import Match, pair_key
from sparkmatch.models.message import Message
from sparkmatch.models.types import utcnow
from sparkmatch.models.user import User
from sparkmatch.realtime.notifier import UNMATCHED, Notifier
from sparkmatch.schemas.match import (
    ActivitySummary,
    LastMessageSummary,
    MatchDetails,
    MatchStats,
    RecentActivity,
)
from sparkmatch.schemas.message import MessageResponse
from sparkmatch.schemas.user import PublicProfile

logger = structlog.get_logger("sparkmatch.match_service")


def participant_clause(user_id: uuid.UUID):
    return or_(Match.user_a_id == user_id, Match.user_b_id == user_id)


class MatchService:
    """Creation, lookup, rendering and termination of matches."""

    def __init__(
        self,
        notifier: Notifier | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.notifier = notifier or Notifier()
        self._clock = clock
        self.recent_days = get_settings().RECENT_ACTIVITY_DAYS

    # ── Creation ──────────────────────────────────────────────────────────

    async def create_match(
        self,
        users: Sequence[uuid.UUID],
        db_session: AsyncSession,
    ) -> tuple[Match, bool]:
        """Persist a new active match for ``users``.

        Returns ``(match, created)``.  If another transaction already
        created the active match for this pair, the unique index rejects
        the insert and the existing match is returned with
        ``created=False``.
        """
        match = Match.between(users, at=self._clock())

        try:
            async with db_session.begin_nested():
                db_session.add(match)
        except IntegrityError:
            existing = await self.find_active_between(users[0], users[1], db_session)
            if existing is None:
                raise
            logger.info("match_already_exists", match_id=str(existing.id))
            return existing, False

        logger.info(
            "match_created",
            match_id=str(match.id),
            user_a=str(match.user_a_id),
            user_b=str(match.user_b_id),
        )
        return match, True

    # ── Lookup ────────────────────────────────────────────────────────────

    async def find_active_between(
        self,
        user_a_id: uuid.UUID,
        user_b_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> Match | None:
        stmt = select(Match).where(
            Match.pair_key == pair_key(user_a_id, user_b_id),
            Match.is_active.is_(True),
        )
        return (await db_session.execute(stmt)).scalar_one_or_none()

    async def get_for_participant(
        self,
        match_id: uuid.UUID,
        user_id: uuid.UUID,
        db_session: AsyncSession,
        *,
        active_only: bool = True,
        for_update: bool = False,
    ) -> Match:
        """Load a match the user takes part in.

        Missing, foreign and (with ``active_only``) unmatched matches all
        raise the same ``NotAParticipantError``.  ``for_update`` locks the
        match row until the caller's transaction ends, so sends and
        unmatches on the same match run one after the other.
        """
        stmt = select(Match).where(Match.id == match_id, participant_clause(user_id))
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        match = (await db_session.execute(stmt)).scalar_one_or_none()
        if match is None or (active_only and not match.is_active):
            raise NotAParticipantError()
        return match

    # ── Termination ───────────────────────────────────────────────────────

    async def unmatch(
        self,
        match_id: uuid.UUID,
        by_user_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> Match:
        """Terminate an active match and cascade to its messages.

        The match flag and the message deactivation are committed together;
        a failure before the commit leaves the match active.
        """
        log = logger.bind(match_id=str(match_id), by_user=str(by_user_id))
        match = await self.get_for_participant(
            match_id, by_user_id, db_session, for_update=True
        )

        now = self._clock()
        match.deactivate(by_user_id, now)

        result = await db_session.execute(
            update(Message)
            .where(Message.match_id == match.id, Message.is_active.is_(True))
            .values(is_active=False, updated_at=now)
        )
        await db_session.commit()

        log.info("match_unmatched", messages_deactivated=result.rowcount)

        other_id = match.other_user_id(by_user_id)
        await self.notifier.emit(
            other_id,
            UNMATCHED,
            {
                "match_id": match.id,
                "unmatched_by": by_user_id,
                "message": "Someone unmatched with you",
            },
        )
        return match

    # ── Read projections ──────────────────────────────────────────────────

    async def unread_count(
        self,
        match_id: uuid.UUID,
        user_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> int:
        stmt = (
            select(func.count())
            .select_from(Message)
            .where(
                Message.match_id == match_id,
                Message.sender_id != user_id,
                Message.is_read.is_(False),
                Message.is_active.is_(True),
            )
        )
        return (await db_session.execute(stmt)).scalar_one()

    async def details_for_user(
        self,
        match: Match,
        user_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> MatchDetails:
        """Render a match from ``user_id``'s point of view."""
        other = await db_session.get(User, match.other_user_id(user_id))

        last_message = None
        if match.last_message_id is not None:
            stmt = select(Message).where(
                Message.id == match.last_message_id,
                Message.is_active.is_(True),
            )
            last = (await db_session.execute(stmt)).scalar_one_or_none()
            if last is not None:
                last_message = LastMessageSummary.model_validate(last)

        return MatchDetails(
            match_id=match.id,
            user=PublicProfile.model_validate(other) if other is not None else None,
            last_message=last_message,
            last_activity=match.last_activity,
            created_at=match.created_at,
            unread_count=await self.unread_count(match.id, user_id, db_session),
        )

    async def list_matches(
        self,
        user_id: uuid.UUID,
        db_session: AsyncSession,
        page: int = 1,
        limit: int = 20,
    ) -> list[MatchDetails]:
        """Active matches of the user, most recent activity first."""
        stmt = (
            select(Match)
            .where(participant_clause(user_id), Match.is_active.is_(True))
            .order_by(Match.last_activity.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        matches = (await db_session.execute(stmt)).scalars().all()
        return [await self.details_for_user(m, user_id, db_session) for m in matches]

    async def count_active(self, user_id: uuid.UUID, db_session: AsyncSession) -> int:
        stmt = (
            select(func.count())
            .select_from(Match)
            .where(participant_clause(user_id), Match.is_active.is_(True))
        )
        return (await db_session.execute(stmt)).scalar_one()

    async def match_stats(self, user_id: uuid.UUID, db_session: AsyncSession) -> MatchStats:
        now = self._clock()
        active = and_(participant_clause(user_id), Match.is_active.is_(True))

        async def _count(*criteria) -> int:
            stmt = select(func.count()).select_from(Match).where(active, *criteria)
            return (await db_session.execute(stmt)).scalar_one()

        total = await _count()
        recent = await _count(Match.created_at >= now - timedelta(days=self.recent_days))
        with_messages = await _count(Match.last_message_id.is_not(None))

        unread_filter = (
            Message.recipient_id == user_id,
            Message.is_read.is_(False),
            Message.is_active.is_(True),
        )
        unread_matches = (
            await db_session.execute(
                select(func.count(func.distinct(Message.match_id)))
                .select_from(Message)
                .join(Match, Match.id == Message.match_id)
                .where(Match.is_active.is_(True), *unread_filter)
            )
        ).scalar_one()
        total_unread = (
            await db_session.execute(
                select(func.count()).select_from(Message).where(*unread_filter)
            )
        ).scalar_one()

        return MatchStats(
            total_matches=total,
            recent_matches=recent,
            matches_with_messages=with_messages,
            conversion_rate=round(with_messages / total * 100, 1) if total else 0.0,
            unread_matches_count=unread_matches,
            total_unread_messages=total_unread,
        )

    async def recent_activity(
        self,
        user_id: uuid.UUID,
        db_session: AsyncSession,
        days: int = 7,
    ) -> RecentActivity:
        since = self._clock() - timedelta(days=days)

        match_stmt = (
            select(Match)
            .where(
                participant_clause(user_id),
                Match.is_active.is_(True),
                Match.created_at >= since,
            )
            .order_by(Match.created_at.desc())
            .limit(20)
        )
        matches = (await db_session.execute(match_stmt)).scalars().all()

        message_stmt = (
            select(Message)
            .where(
                or_(Message.sender_id == user_id, Message.recipient_id == user_id),
                Message.is_active.is_(True),
                Message.created_at >= since,
            )
            .order_by(Message.created_at.desc())
            .limit(50)
        )
        messages = (await db_session.execute(message_stmt)).scalars().all()

        return RecentActivity(
            period=f"Last {days} days",
            recent_matches=[await self.details_for_user(m, user_id, db_session) for m in matches],
            recent_messages=[MessageResponse.model_validate(m) for m in messages],
            summary=ActivitySummary(
                new_matches=len(matches),
                messages_sent=sum(1 for m in messages if m.sender_id == user_id),
                messages_received=sum(1 for m in messages if m.recipient_id == user_id),
            ),
        )

    async def report(
        self,
        match_id: uuid.UUID,
        reporter_id: uuid.UUID,
        reason: str,
        description: str,
        db_session: AsyncSession,
    ) -> None:
        """Record a report against the other participant of a match."""
        match = await self.get_for_participant(match_id, reporter_id, db_session)
        logger.warning(
            "match_reported",
            match_id=str(match.id),
            reported_by=str(reporter_id),
            reported_user=str(match.other_user_id(reporter_id)),
            reason=reason,
            description=description,
        )
