"""Initial schema — profiles, swipes, matches, messages, notifications.

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

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
_BIGINT_ID = sa.BigInteger().with_variant(sa.Integer, "sqlite")


def upgrade() -> None:
    # ── 1. profiles ─────────────────────────────────────────────────
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String, nullable=False),
        sa.Column("bio", sa.Text, nullable=True),
        sa.Column("age", sa.Integer, nullable=True),
        sa.Column("gender", sa.String, nullable=True),
        sa.Column("location", sa.String, nullable=True),
        sa.Column("occupation", sa.String, nullable=True),
        sa.Column(
            "photos",
            sa.JSON().with_variant(postgresql.JSONB, "postgresql"),
            nullable=True,
            comment="Array of photo URLs, primary first",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_profiles_user_id", "profiles", ["user_id"], unique=True)

    # ── 2. swipes ───────────────────────────────────────────────────
    op.create_table(
        "swipes",
        sa.Column("id", _BIGINT_ID, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column(
            "profile_id",
            sa.String(64),
            sa.ForeignKey("profiles.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("is_like", sa.Boolean, nullable=False),
        sa.Column(
            "message",
            sa.Text,
            nullable=True,
            comment="Optional note attached to a like",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("user_id", "profile_id", name="uq_swipe_pair"),
    )
    op.create_index("ix_swipes_user_id", "swipes", ["user_id"])

    # ── 3. matches ──────────────────────────────────────────────────
    op.create_table(
        "matches",
        sa.Column("id", _BIGINT_ID, primary_key=True, autoincrement=True),
        sa.Column("user_a_id", sa.String(64), nullable=False),
        sa.Column("user_b_id", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_message_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("user_a_last_read", sa.DateTime(timezone=True), nullable=False),
        sa.Column("user_b_last_read", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_a_id", "user_b_id", name="uq_match_pair"),
        sa.CheckConstraint("user_a_id < user_b_id", name="ck_match_pair_order"),
    )
    op.create_index("ix_matches_user_b_id", "matches", ["user_b_id"])

    # ── 4. messages ─────────────────────────────────────────────────
    op.create_table(
        "messages",
        sa.Column("id", _BIGINT_ID, primary_key=True, autoincrement=True),
        sa.Column(
            "match_id",
            _BIGINT_ID,
            sa.ForeignKey("matches.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sender_id", sa.String(64), nullable=False),
        sa.Column("body", sa.Text, nullable=False),
        sa.Column(
            "is_read",
            sa.Boolean,
            server_default=sa.false(),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_messages_match_created",
        "messages",
        ["match_id", "created_at"],
    )

    # ── 5. notifications ────────────────────────────────────────────
    op.create_table(
        "notifications",
        sa.Column("id", _BIGINT_ID, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column(
            "type",
            sa.String(32),
            nullable=False,
            comment="match / message",
        ),
        sa.Column(
            "target_id",
            sa.BigInteger,
            nullable=True,
            comment="Match id the event refers to",
        ),
        sa.Column("body", sa.Text, nullable=False),
        sa.Column(
            "is_read",
            sa.Boolean,
            server_default=sa.false(),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_notifications_user_created",
        "notifications",
        ["user_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_notifications_user_created", table_name="notifications")
    op.drop_table("notifications")

    op.drop_index("ix_messages_match_created", table_name="messages")
    op.drop_table("messages")

    op.drop_index("ix_matches_user_b_id", table_name="matches")
    op.drop_table("matches")

    op.drop_index("ix_swipes_user_id", table_name="swipes")
    op.drop_table("swipes")

    op.drop_index("ix_profiles_user_id", table_name="profiles")
    op.drop_table("profiles")
