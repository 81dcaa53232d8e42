"""Baseline schema: accounts, chat, training, engagement.

Revision ID: 001
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: str | None = None
branch_labels: tuple[str, ...] | None = None
depends_on: str | None = None


def _ts(name: str, *, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def _user_fk(name: str = "user_id", **kwargs: object) -> sa.Column:
    return sa.Column(
        name,
        sa.String(36),
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        **kwargs,
    )


def upgrade() -> None:
    # ── Accounts ──
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(128), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="member"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _ts("confirmed_at", nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "auth_codes",
        sa.Column("code", sa.String(64), primary_key=True),
        _user_fk(),
        sa.Column("redirect_to", sa.String(255), nullable=True),
        _ts("created_at"),
        _ts("expires_at"),
        _ts("used_at", nullable=True),
    )
    op.create_index("ix_auth_codes_user_id", "auth_codes", ["user_id"])

    op.create_table(
        "profiles",
        sa.Column(
            "id",
            sa.String(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(100), nullable=False, server_default=""),
        sa.Column("avatar_url", sa.String(500), nullable=True),
        sa.Column("stripe_customer_id", sa.String(64), nullable=True),
        sa.Column("subscription_status", sa.String(20), nullable=True),
        sa.Column("subscription_plan", sa.String(20), nullable=True),
        _ts("trial_end_date", nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index(
        "ix_profiles_stripe_customer_id", "profiles", ["stripe_customer_id"]
    )

    # ── Community chat ──
    op.create_table(
        "messages",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("channel", sa.String(100), nullable=False),
        _user_fk(),
        sa.Column(
            "parent_id",
            sa.String(36),
            sa.ForeignKey("messages.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("image_url", sa.String(500), nullable=True),
        sa.Column("vote_count", sa.Integer(), nullable=False, server_default="0"),
        _ts("created_at"),
    )
    op.create_index(
        "ix_messages_channel_created_at", "messages", ["channel", "created_at"]
    )
    op.create_index("ix_messages_parent_id", "messages", ["parent_id"])

    op.create_table(
        "message_votes",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "message_id",
            sa.String(36),
            sa.ForeignKey("messages.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _user_fk(),
        sa.Column("vote_type", sa.Integer(), nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("message_id", "user_id", name="uq_message_votes_pair"),
        sa.CheckConstraint("vote_type IN (1, -1)", name="ck_message_votes_type"),
    )
    op.create_index("ix_message_votes_message_id", "message_votes", ["message_id"])
    op.create_index("ix_message_votes_user_id", "message_votes", ["user_id"])

    # ── Training ──
    op.create_table(
        "workouts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column(
            "difficulty", sa.String(20), nullable=False, server_default="beginner"
        ),
        sa.Column(
            "duration_seconds", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("video_url", sa.String(500), nullable=True),
        _ts("created_at"),
    )

    op.create_table(
        "workout_progress",
        sa.Column("id", sa.String(36), primary_key=True),
        _user_fk(),
        sa.Column(
            "workout_id",
            sa.String(36),
            sa.ForeignKey("workouts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _ts("completed_at"),
        sa.Column(
            "duration_seconds", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("rating", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.CheckConstraint(
            "rating IS NULL OR (rating >= 1 AND rating <= 5)",
            name="ck_workout_progress_rating",
        ),
    )
    op.create_index(
        "ix_workout_progress_user_completed",
        "workout_progress",
        ["user_id", "completed_at"],
    )
    op.create_index(
        "ix_workout_progress_workout_id", "workout_progress", ["workout_id"]
    )

    op.create_table(
        "user_achievements",
        sa.Column("id", sa.String(36), primary_key=True),
        _user_fk(),
        sa.Column("achievement_id", sa.String(50), nullable=False),
        _ts("earned_at"),
        sa.UniqueConstraint("user_id", "achievement_id", name="uq_user_achievements"),
    )
    op.create_index(
        "ix_user_achievements_user_id", "user_achievements", ["user_id"]
    )

    op.create_table(
        "user_streaks",
        _user_fk(primary_key=True),
        sa.Column("current_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("best_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_workout_date", sa.Date(), nullable=True),
        _ts("updated_at"),
    )

    # ── Engagement ──
    op.create_table(
        "notifications",
        sa.Column("id", sa.String(36), primary_key=True),
        _user_fk(),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("created_at"),
    )
    op.create_index(
        "ix_notifications_user_read", "notifications", ["user_id", "read"]
    )

    op.create_table(
        "notification_preferences",
        _user_fk(primary_key=True),
        *(
            sa.Column(name, sa.Boolean(), nullable=False, server_default=sa.true())
            for name in (
                "achievement",
                "friend_request",
                "friend_activity",
                "streak",
                "milestone",
            )
        ),
        _ts("updated_at"),
    )

    op.create_table(
        "social_follows",
        sa.Column("id", sa.String(36), primary_key=True),
        _user_fk("follower_id"),
        _user_fk("following_id"),
        _ts("created_at"),
        sa.UniqueConstraint(
            "follower_id", "following_id", name="uq_social_follows"
        ),
        sa.CheckConstraint(
            "follower_id != following_id", name="ck_social_follows_self"
        ),
    )
    op.create_index("ix_social_follows_follower_id", "social_follows", ["follower_id"])
    op.create_index(
        "ix_social_follows_following_id", "social_follows", ["following_id"]
    )


def downgrade() -> None:
    for table in (
        "social_follows",
        "notification_preferences",
        "notifications",
        "user_streaks",
        "user_achievements",
        "workout_progress",
        "workouts",
        "message_votes",
        "messages",
        "profiles",
        "auth_codes",
        "users",
    ):
        op.drop_table(table)
