"""
Sparkmatch — Profile management.

Registration, profile edits, photo list upkeep, location and presence.  The
photo list lives in a JSON column, so every change builds a new list and
reassigns it; in-place mutation would not be flushed.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime
from typing import Any, Callable

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sparkmatch.errors import (
    AuthenticationError,
    NotFoundOrUnauthorizedError,
    ValidationFailure,
)
from sparkmatch.models.types import utcnow
from sparkmatch.models.user import User
from sparkmatch.schemas.user import LocationUpdate, UserCreate, UserUpdate
from sparkmatch.utils.passwords import hash_password, verify_password

logger = structlog.get_logger("sparkmatch.profile_service")


class ProfileService:
    """Owns every write to the ``users`` table outside of swiping."""

    COMPLETENESS_FIELDS: tuple[str, ...] = ("name", "age", "bio", "gender", "interested_in")
    FIELD_POINTS: int = 20
    PHOTO_POINTS: int = 10
    PHOTO_POINTS_CAP: int = 30

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock

    # ── Account ───────────────────────────────────────────────────────────

    async def register(self, payload: UserCreate, db_session: AsyncSession) -> User:
        log = logger.bind(email=payload.email)

        existing = (
            await db_session.execute(select(User.id).where(User.email == payload.email))
        ).scalar_one_or_none()
        if existing is not None:
            log.warning("register_duplicate_email")
            raise ValidationFailure("User already exists with this email")

        password_hash = await asyncio.to_thread(hash_password, payload.password)
        now = self._clock()
        user = User(
            id=uuid.uuid4(),
            email=payload.email,
            password_hash=password_hash,
            name=payload.name,
            age=payload.age,
            gender=payload.gender,
            interested_in=payload.interested_in,
            bio=payload.bio,
            photos=[],
            is_online=True,
            last_active=now,
            created_at=now,
        )
        try:
            async with db_session.begin_nested():
                db_session.add(user)
        except IntegrityError:
            log.warning("register_duplicate_email", reason="unique_constraint")
            raise ValidationFailure("User already exists with this email") from None

        await db_session.commit()
        log.info("user_registered", user_id=str(user.id))
        return user

    async def authenticate(self, email: str, password: str, db_session: AsyncSession) -> User:
        """Return the active account for ``email`` if ``password`` matches.

        Unknown, inactive and wrong-password cases all raise the same
        ``AuthenticationError``.
        """
        log = logger.bind(email=email)
        user = (
            await db_session.execute(select(User).where(User.email == email))
        ).scalar_one_or_none()

        valid = user is not None and await asyncio.to_thread(
            verify_password, password, user.password_hash
        )
        if not valid or not user.is_active:
            log.info("login_rejected")
            raise AuthenticationError("Invalid email or password")

        user.is_online = True
        user.last_active = self._clock()
        await db_session.commit()
        log.info("user_logged_in", user_id=str(user.id))
        return user

    async def update_profile(
        self,
        user: User,
        payload: UserUpdate,
        db_session: AsyncSession,
    ) -> User:
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)

        age_min = changes.get("age_min", user.age_min)
        age_max = changes.get("age_max", user.age_max)
        if age_min > age_max:
            raise ValidationFailure("age_min cannot exceed age_max")

        for field, value in changes.items():
            setattr(user, field, value)
        await db_session.commit()

        logger.info("profile_updated", user_id=str(user.id), fields=sorted(changes))
        return user

    async def deactivate(self, user: User, db_session: AsyncSession) -> None:
        """Soft-delete the account; it stops appearing in discovery."""
        user.is_active = False
        user.is_online = False
        await db_session.commit()
        logger.info("user_deactivated", user_id=str(user.id))

    async def get_public(self, user_id: uuid.UUID, db_session: AsyncSession) -> User | None:
        stmt = select(User).where(User.id == user_id, User.is_active.is_(True))
        return (await db_session.execute(stmt)).scalar_one_or_none()

    # ── Photos ────────────────────────────────────────────────────────────

    async def add_photo(
        self,
        user: User,
        url: str,
        is_main: bool,
        db_session: AsyncSession,
    ) -> list[dict[str, Any]]:
        photos = [dict(p) for p in user.photos or []]
        # The first photo is always the main one.
        is_main = is_main or not photos
        if is_main:
            for photo in photos:
                photo["is_main"] = False

        photos.append(
            {
                "id": uuid.uuid4().hex,
                "url": url,
                "is_main": is_main,
                "uploaded_at": self._clock().isoformat(),
            }
        )
        user.photos = photos
        await db_session.commit()

        logger.info("photo_added", user_id=str(user.id), photo_count=len(photos))
        return photos

    async def remove_photo(
        self,
        user: User,
        photo_id: str,
        db_session: AsyncSession,
    ) -> list[dict[str, Any]]:
        photos = [dict(p) for p in user.photos or []]
        removed = next((p for p in photos if p["id"] == photo_id), None)
        if removed is None:
            raise NotFoundOrUnauthorizedError("Photo not found")

        photos.remove(removed)
        if removed.get("is_main") and photos:
            photos[0]["is_main"] = True

        user.photos = photos
        await db_session.commit()

        logger.info("photo_removed", user_id=str(user.id), photo_id=photo_id)
        return photos

    async def set_main_photo(
        self,
        user: User,
        photo_id: str,
        db_session: AsyncSession,
    ) -> list[dict[str, Any]]:
        photos = [dict(p) for p in user.photos or []]
        if not any(p["id"] == photo_id for p in photos):
            raise NotFoundOrUnauthorizedError("Photo not found")

        for photo in photos:
            photo["is_main"] = photo["id"] == photo_id
        user.photos = photos
        await db_session.commit()
        return photos

    # ── Location & presence ───────────────────────────────────────────────

    async def update_location(
        self,
        user: User,
        payload: LocationUpdate,
        db_session: AsyncSession,
    ) -> User:
        user.longitude, user.latitude = payload.coordinates
        user.city = payload.city or user.city
        user.country = payload.country or user.country
        await db_session.commit()

        logger.info("location_updated", user_id=str(user.id))
        return user

    async def set_presence(
        self,
        user_id: uuid.UUID,
        online: bool,
        db_session: AsyncSession,
    ) -> None:
        """Flag the user on- or offline and stamp ``last_active``."""
        user = await db_session.get(User, user_id)
        if user is None:
            return
        user.is_online = online
        user.last_active = self._clock()
        await db_session.commit()

    # ── Derived ───────────────────────────────────────────────────────────

    def completeness(self, user: User) -> int:
        """Percentage score: 20 per filled core field plus up to 30 for photos."""
        score = 0
        for field in self.COMPLETENESS_FIELDS:
            value = getattr(user, field, None)
            if value is not None and str(value).strip():
                score += self.FIELD_POINTS
        score += min(len(user.photos or []) * self.PHOTO_POINTS, self.PHOTO_POINTS_CAP)
        return min(score, 100)
