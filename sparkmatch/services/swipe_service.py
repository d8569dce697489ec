"""
Sparkmatch — Swipe evaluator and candidate discovery.

A swipe is a one-directional ``like`` or ``pass``.  A match is created by
whichever of two reciprocal likes arrives second; the first like is recorded
and stays inert until then.

Mutual-like detection is serialised per unordered pair: on PostgreSQL a
transaction-scoped advisory lock keyed on the pair is taken after the swipe
row is written, so of two concurrent reciprocal likes the later one always
sees the earlier one once it holds the lock.  The partial unique index on
active match pairs backs this up on every backend.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import AsyncIterator, Callable

import structlog
from sqlalchemy import case, delete, func, select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sparkmatch.config import get_settings
from sparkmatch.errors import (
    DuplicateSwipeError,
    SelfSwipeError,
    TargetNotFoundError,
    ValidationFailure,
)
from sparkmatch.models.match import SWIPE_ACTIONS, Match, Swipe, pair_key
from sparkmatch.models.types import utcnow
from sparkmatch.models.user import User
from sparkmatch.realtime.notifier import NEW_MATCH, Notifier
from sparkmatch.schemas.user import SwipeStats
from sparkmatch.services.match_service import MatchService
from sparkmatch.utils.geo import bounding_box, haversine_km

logger = structlog.get_logger("sparkmatch.swipe_service")


@dataclass
class SwipeOutcome:
    action: str
    matched: bool
    match: Match | None = None

    @property
    def match_id(self) -> uuid.UUID | None:
        return self.match.id if self.match is not None else None


class SwipeService:
    """Records swipes, detects mutual likes and feeds discovery."""

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
        self.batch_size: int = settings.DISCOVERY_BATCH_SIZE

    # ── Swipes ────────────────────────────────────────────────────────────

    async def record_swipe(
        self,
        actor: User,
        target_id: uuid.UUID,
        action: str,
        db_session: AsyncSession,
    ) -> SwipeOutcome:
        """Record ``actor``'s swipe on ``target_id`` and report any match.

        Raises
        ------
        SelfSwipeError
            ``target_id`` is the actor.
        TargetNotFoundError
            The target does not exist or is inactive.
        DuplicateSwipeError
            The actor already swiped on the target.
        """
        log = logger.bind(actor=str(actor.id), target=str(target_id), action=action)

        if action not in SWIPE_ACTIONS:
            raise ValidationFailure("Action must be either like or pass")
        if target_id == actor.id:
            raise SelfSwipeError()

        target = (
            await db_session.execute(
                select(User).where(User.id == target_id, User.is_active.is_(True))
            )
        ).scalar_one_or_none()
        if target is None:
            raise TargetNotFoundError()

        existing = (
            await db_session.execute(
                select(Swipe.id).where(Swipe.swiper_id == actor.id, Swipe.target_id == target_id)
            )
        ).scalar_one_or_none()
        if existing is not None:
            log.info("swipe_duplicate")
            raise DuplicateSwipeError()

        now = self._clock()
        swipe = Swipe(swiper_id=actor.id, target_id=target_id, action=action, created_at=now)
        try:
            async with db_session.begin_nested():
                db_session.add(swipe)
        except IntegrityError:
            # Lost a race against a double-submit of the same swipe.
            log.info("swipe_duplicate", reason="unique_constraint")
            raise DuplicateSwipeError() from None

        log.info("swipe_recorded")

        match: Match | None = None
        created = False
        if action == "like":
            await self._lock_pair(actor.id, target_id, db_session)
            reciprocal = (
                await db_session.execute(
                    select(Swipe.id).where(
                        Swipe.swiper_id == target_id,
                        Swipe.target_id == actor.id,
                        Swipe.action == "like",
                    )
                )
            ).scalar_one_or_none()
            if reciprocal is not None:
                match, created = await self.match_service.create_match(
                    [actor.id, target_id], db_session
                )

        await db_session.commit()

        if match is not None and created:
            log.info("mutual_like", match_id=str(match.id))
            await self._announce_match(match, actor, target, db_session)

        return SwipeOutcome(action=action, matched=match is not None, match=match)

    async def _lock_pair(
        self,
        user_a_id: uuid.UUID,
        user_b_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> None:
        if db_session.get_bind().dialect.name != "postgresql":
            return
        await db_session.execute(
            text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
            {"key": pair_key(user_a_id, user_b_id)},
        )

    async def _announce_match(
        self,
        match: Match,
        actor: User,
        target: User,
        db_session: AsyncSession,
    ) -> None:
        for recipient, other in ((target, actor), (actor, target)):
            details = await self.match_service.details_for_user(match, recipient.id, db_session)
            await self.notifier.emit(
                recipient.id,
                NEW_MATCH,
                {"match": details, "message": f"You have a new match with {other.name}!"},
            )

    # ── Discovery ─────────────────────────────────────────────────────────

    async def potential_matches(
        self,
        actor: User,
        db_session: AsyncSession,
        limit: int = 10,
    ) -> AsyncIterator[User]:
        """Lazily yield up to ``limit`` candidates for ``actor``.

        Candidates are active, not the actor, not already swiped, inside
        the actor's age range, of the gender the actor is interested in
        (unless ``both``) and, when the actor has a location, within
        ``max_distance_km``.  Most recently active first.
        """
        swiped = select(Swipe.target_id).where(Swipe.swiper_id == actor.id)
        stmt = select(User).where(
            User.id != actor.id,
            User.is_active.is_(True),
            User.id.not_in(swiped),
            User.age >= actor.age_min,
            User.age <= actor.age_max,
        )
        if actor.interested_in != "both":
            stmt = stmt.where(User.gender == actor.interested_in)

        use_distance = actor.has_location
        if use_distance:
            box = bounding_box(actor.longitude, actor.latitude, actor.max_distance_km)
            if box is not None:
                min_lon, min_lat, max_lon, max_lat = box
                stmt = stmt.where(
                    User.longitude.between(min_lon, max_lon),
                    User.latitude.between(min_lat, max_lat),
                )

        stmt = stmt.order_by(User.last_active.desc(), User.id)

        yielded = 0
        offset = 0
        while yielded < limit:
            batch = (
                await db_session.execute(stmt.offset(offset).limit(self.batch_size))
            ).scalars().all()
            if not batch:
                return
            offset += len(batch)

            for candidate in batch:
                if use_distance:
                    distance = haversine_km(
                        actor.longitude, actor.latitude,
                        candidate.longitude, candidate.latitude,
                    )
                    if distance > actor.max_distance_km:
                        continue
                yield candidate
                yielded += 1
                if yielded >= limit:
                    return

    # ── Maintenance & statistics ──────────────────────────────────────────

    async def prune_swipes(
        self,
        user_id: uuid.UUID,
        db_session: AsyncSession,
        older_than_days: int | None = None,
    ) -> int:
        """Delete the user's swipes older than the retention window.

        Pruned targets become eligible for discovery again.
        """
        days = older_than_days
        if days is None:
            days = get_settings().SWIPE_RETENTION_DAYS
        cutoff = self._clock() - timedelta(days=days)
        result = await db_session.execute(
            delete(Swipe).where(Swipe.swiper_id == user_id, Swipe.created_at < cutoff)
        )
        logger.info("swipes_pruned", user_id=str(user_id), removed=result.rowcount, days=days)
        return result.rowcount

    async def swipe_stats(self, user_id: uuid.UUID, db_session: AsyncSession) -> SwipeStats:
        since = self._clock() - timedelta(days=7)
        stmt = select(
            func.count(Swipe.id),
            func.coalesce(func.sum(case((Swipe.action == "like", 1), else_=0)), 0),
            func.coalesce(func.sum(case((Swipe.created_at >= since, 1), else_=0)), 0),
        ).where(Swipe.swiper_id == user_id)
        total, likes, recent = (await db_session.execute(stmt)).one()

        return SwipeStats(
            total=total,
            likes=likes,
            passes=total - likes,
            recent_week=recent,
            like_rate=round(likes / total * 100, 1) if total else 0.0,
        )
