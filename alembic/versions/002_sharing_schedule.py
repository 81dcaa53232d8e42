"""Shared workouts and achievements, comments, likes, workout schedule.

Revision ID: 002
Revises: 001
Create Date: 2026-10-17
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision: str = "002"
down_revision: str | None = "001"
branch_labels: tuple[str, ...] | None = None
depends_on: str | None = None

_ITEM_TYPES = "item_type IN ('workout', 'achievement')"


def _ts(name: str, *, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def _fk(name: str, target: str, *, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.String(36),
        sa.ForeignKey(target, ondelete="CASCADE"),
        nullable=nullable,
    )


def _counter(name: str) -> sa.Column:
    return sa.Column(name, sa.Integer(), nullable=False, server_default="0")


def upgrade() -> None:
    op.create_table(
        "shared_workouts",
        sa.Column("id", sa.String(36), primary_key=True),
        _fk("user_id", "users.id"),
        _fk("workout_id", "workouts.id"),
        _counter("duration_seconds"),
        sa.Column("rating", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _counter("likes_count"),
        _counter("comments_count"),
        _ts("shared_at"),
    )
    op.create_index(
        "ix_shared_workouts_user_shared_at",
        "shared_workouts",
        ["user_id", "shared_at"],
    )

    op.create_table(
        "shared_achievements",
        sa.Column("id", sa.String(36), primary_key=True),
        _fk("user_id", "users.id"),
        sa.Column("achievement_id", sa.String(50), nullable=False),
        _counter("likes_count"),
        _counter("comments_count"),
        _ts("shared_at"),
    )
    op.create_index(
        "ix_shared_achievements_user_shared_at",
        "shared_achievements",
        ["user_id", "shared_at"],
    )

    op.create_table(
        "shared_item_likes",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("item_type", sa.String(20), nullable=False),
        sa.Column("item_id", sa.String(36), nullable=False),
        _fk("user_id", "users.id"),
        _ts("created_at"),
        sa.UniqueConstraint(
            "item_type", "item_id", "user_id", name="uq_shared_item_likes"
        ),
        sa.CheckConstraint(_ITEM_TYPES, name="ck_shared_item_likes_type"),
    )
    op.create_index(
        "ix_shared_item_likes_user_id", "shared_item_likes", ["user_id"]
    )

    op.create_table(
        "comments",
        sa.Column("id", sa.String(36), primary_key=True),
        _fk("user_id", "users.id"),
        sa.Column("item_type", sa.String(20), nullable=False),
        sa.Column("item_id", sa.String(36), nullable=False),
        _fk("parent_id", "comments.id", nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        _counter("likes_count"),
        _ts("created_at"),
        _ts("updated_at"),
        sa.CheckConstraint(_ITEM_TYPES, name="ck_comments_type"),
    )
    op.create_index(
        "ix_comments_item", "comments", ["item_type", "item_id", "created_at"]
    )

    op.create_table(
        "comment_likes",
        sa.Column("id", sa.String(36), primary_key=True),
        _fk("comment_id", "comments.id"),
        _fk("user_id", "users.id"),
        _ts("created_at"),
        sa.UniqueConstraint("comment_id", "user_id", name="uq_comment_likes_pair"),
    )
    op.create_index("ix_comment_likes_comment_id", "comment_likes", ["comment_id"])
    op.create_index("ix_comment_likes_user_id", "comment_likes", ["user_id"])

    op.create_table(
        "workout_schedule",
        sa.Column("id", sa.String(36), primary_key=True),
        _fk("user_id", "users.id"),
        _fk("workout_id", "workouts.id"),
        _ts("scheduled_for"),
        sa.Column(
            "completed", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index(
        "ix_workout_schedule_user_for",
        "workout_schedule",
        ["user_id", "scheduled_for"],
    )


def downgrade() -> None:
    for table in (
        "workout_schedule",
        "comment_likes",
        "comments",
        "shared_item_likes",
        "shared_achievements",
        "shared_workouts",
    ):
        op.drop_table(table)
