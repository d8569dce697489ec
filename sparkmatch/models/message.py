"""
Sparkmatch — Message model.
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from sparkmatch.database import Base
from sparkmatch.models.types import UTCDateTime, utcnow

MESSAGE_TYPES = ("text", "image", "gif", "emoji")


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (
        CheckConstraint("sender_id <> recipient_id", name="ck_message_distinct_parties"),
        CheckConstraint(
            "(message_type <> 'text' OR content IS NOT NULL) "
            "AND (message_type <> 'emoji' OR content IS NOT NULL) "
            "AND (message_type <> 'image' OR image_url IS NOT NULL) "
            "AND (message_type <> 'gif' OR gif_url IS NOT NULL)",
            name="ck_message_payload",
        ),
        Index("ix_messages_match_created", "match_id", "created_at"),
        Index("ix_messages_recipient_read", "recipient_id", "is_read"),
        Index("ix_messages_sender_created", "sender_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    match_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False
    )
    sender_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    recipient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    message_type: Mapped[str] = mapped_column(String(8), default="text", nullable=False)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    gif_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)

    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    is_delivered: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    delivered_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True, nullable=False)
    edited_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    reply_to_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("messages.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, onupdate=utcnow, nullable=True)

    def __repr__(self) -> str:
        return f"<Message {self.id} {self.message_type} {self.sender_id} -> {self.recipient_id}>"
