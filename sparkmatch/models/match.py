"""
Sparkmatch — Match and Swipe models.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Sequence

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from sparkmatch.database import Base
from sparkmatch.errors import InvalidMatchSizeError
from sparkmatch.models.types import UTCDateTime, utcnow

if TYPE_CHECKING:
    from sparkmatch.models.message import Message

SWIPE_ACTIONS = ("like", "pass")


def pair_key(user_a_id: uuid.UUID, user_b_id: uuid.UUID) -> str:
    """Order-independent key for an unordered pair of users."""
    low, high = sorted((str(user_a_id), str(user_b_id)))
    return f"{low}:{high}"


class Match(Base):
    __tablename__ = "matches"
    __table_args__ = (
        CheckConstraint("user_a_id <> user_b_id", name="ck_match_distinct_users"),
        # At most one *active* match per pair; unmatched rows stay as history.
        Index(
            "uq_active_match_pair",
            "pair_key",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
        Index("ix_matches_last_activity", "last_activity"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_a_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    user_b_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    pair_key: Mapped[str] = mapped_column(String(80), nullable=False)
    last_message_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, nullable=True, comment="Recency pointer to the newest message"
    )
    last_activity: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    unmatched_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    unmatched_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, onupdate=utcnow, nullable=True)

    @classmethod
    def between(cls, users: Sequence[uuid.UUID], at: datetime | None = None) -> "Match":
        """Build a new active match for exactly two distinct users."""
        if len(users) != 2 or users[0] == users[1]:
            raise InvalidMatchSizeError(details={"user_count": len(set(users))})
        at = at or utcnow()
        return cls(
            user_a_id=users[0],
            user_b_id=users[1],
            pair_key=pair_key(users[0], users[1]),
            is_active=True,
            last_activity=at,
            created_at=at,
        )

    @property
    def users(self) -> tuple[uuid.UUID, uuid.UUID]:
        return (self.user_a_id, self.user_b_id)

    def has_participant(self, user_id: uuid.UUID) -> bool:
        return user_id in self.users

    def other_user_id(self, user_id: uuid.UUID) -> uuid.UUID:
        return self.user_b_id if self.user_a_id == user_id else self.user_a_id

    def add_message(self, message: "Message", at: datetime) -> None:
        """Advance the recency pointer; called by the ledger on every send."""
        self.last_message_id = message.id
        self.last_activity = at

    def deactivate(self, by_user_id: uuid.UUID, at: datetime) -> None:
        self.is_active = False
        self.unmatched_by = by_user_id
        self.unmatched_at = at

    def __repr__(self) -> str:
        state = "active" if self.is_active else "unmatched"
        return f"<Match {self.user_a_id} <-> {self.user_b_id} {state}>"


class Swipe(Base):
    __tablename__ = "swipes"
    __table_args__ = (
        UniqueConstraint("swiper_id", "target_id", name="uq_swipe_pair"),
        CheckConstraint("swiper_id <> target_id", name="ck_swipe_not_self"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    swiper_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    target_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    action: Mapped[str] = mapped_column(String(8), nullable=False, comment="like / pass")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Swipe {self.swiper_id} -> {self.target_id} action={self.action!r}>"
