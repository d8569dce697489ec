"""Initial schema — users, swipes, matches, messages.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    # ── 1. users ────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(254), unique=True, index=True, nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("age", sa.Integer, nullable=False),
        sa.Column("gender", sa.String(16), nullable=False),
        sa.Column("interested_in", sa.String(16), nullable=False),
        sa.Column("role", sa.String(16), server_default="user", nullable=False),
        sa.Column("bio", sa.String(500), server_default="", nullable=False),
        sa.Column("longitude", sa.Float, server_default="0", nullable=False),
        sa.Column("latitude", sa.Float, server_default="0", nullable=False),
        sa.Column("city", sa.String(100), server_default="", nullable=False),
        sa.Column("country", sa.String(100), server_default="", nullable=False),
        sa.Column(
            "photos",
            postgresql.JSONB,
            server_default="[]",
            nullable=False,
            comment="Array of {id, url, is_main, uploaded_at}",
        ),
        sa.Column("age_min", sa.Integer, server_default="18", nullable=False),
        sa.Column("age_max", sa.Integer, server_default="50", nullable=False),
        sa.Column("max_distance_km", sa.Integer, server_default="50", nullable=False),
        sa.Column("is_active", sa.Boolean, server_default="true", nullable=False),
        sa.Column("is_online", sa.Boolean, server_default="false", nullable=False),
        sa.Column(
            "last_active",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        *_timestamps(),
        sa.CheckConstraint("age >= 18 AND age <= 100", name="ck_user_age"),
        sa.CheckConstraint("age_min <= age_max", name="ck_user_age_range"),
    )
    op.create_index("ix_users_last_active", "users", ["last_active"])

    # ── 2. swipes ───────────────────────────────────────────────────
    op.create_table(
        "swipes",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "swiper_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            index=True,
            nullable=False,
        ),
        sa.Column(
            "target_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            index=True,
            nullable=False,
        ),
        sa.Column("action", sa.String(8), nullable=False, comment="like / pass"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("swiper_id", "target_id", name="uq_swipe_pair"),
        sa.CheckConstraint("swiper_id <> target_id", name="ck_swipe_not_self"),
    )

    # ── 3. matches ──────────────────────────────────────────────────
    op.create_table(
        "matches",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_a_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            index=True,
            nullable=False,
        ),
        sa.Column(
            "user_b_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            index=True,
            nullable=False,
        ),
        sa.Column("pair_key", sa.String(80), nullable=False),
        sa.Column(
            "last_message_id",
            postgresql.UUID(as_uuid=True),
            nullable=True,
            comment="Recency pointer to the newest message",
        ),
        sa.Column(
            "last_activity",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("is_active", sa.Boolean, server_default="true", nullable=False),
        sa.Column(
            "unmatched_by",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("unmatched_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("user_a_id <> user_b_id", name="ck_match_distinct_users"),
    )
    op.create_index(
        "uq_active_match_pair",
        "matches",
        ["pair_key"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )
    op.create_index("ix_matches_last_activity", "matches", ["last_activity"])

    # ── 4. messages ─────────────────────────────────────────────────
    op.create_table(
        "messages",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "match_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("matches.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "sender_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "recipient_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("message_type", sa.String(8), server_default="text", nullable=False),
        sa.Column("content", sa.Text, nullable=True),
        sa.Column("image_url", sa.String(2048), nullable=True),
        sa.Column("gif_url", sa.String(2048), nullable=True),
        sa.Column("is_read", sa.Boolean, server_default="false", nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_delivered", sa.Boolean, server_default="false", nullable=False),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean, server_default="true", nullable=False),
        sa.Column("edited_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "reply_to_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("messages.id", ondelete="SET NULL"),
            nullable=True,
        ),
        *_timestamps(),
        sa.CheckConstraint("sender_id <> recipient_id", name="ck_message_distinct_parties"),
        sa.CheckConstraint(
            "(message_type <> 'text' OR content IS NOT NULL) "
            "AND (message_type <> 'emoji' OR content IS NOT NULL) "
            "AND (message_type <> 'image' OR image_url IS NOT NULL) "
            "AND (message_type <> 'gif' OR gif_url IS NOT NULL)",
            name="ck_message_payload",
        ),
    )
    op.create_index("ix_messages_is_active", "messages", ["is_active"])
    op.create_index("ix_messages_match_created", "messages", ["match_id", "created_at"])
    op.create_index("ix_messages_recipient_read", "messages", ["recipient_id", "is_read"])
    op.create_index("ix_messages_sender_created", "messages", ["sender_id", "created_at"])


def downgrade() -> None:
    # Drop in reverse order (children / dependents first).
    op.drop_index("ix_messages_sender_created", table_name="messages")
    op.drop_index("ix_messages_recipient_read", table_name="messages")
    op.drop_index("ix_messages_match_created", table_name="messages")
    op.drop_index("ix_messages_is_active", table_name="messages")
    op.drop_table("messages")

    op.drop_index("ix_matches_last_activity", table_name="matches")
    op.drop_index("uq_active_match_pair", table_name="matches")
    op.drop_table("matches")

    op.drop_table("swipes")

    op.drop_index("ix_users_last_active", table_name="users")
    op.drop_table("users")
