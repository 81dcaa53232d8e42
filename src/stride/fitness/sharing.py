"""Sharing workouts and achievements with followers, and commenting on them.

Every write here flushes only; the caller commits.  Shares notify each
follower with a ``friend_activity`` notification unless they switched
that type off.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from stride.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from stride.core.validation import validate_comment
from stride.db.models import as_utc
from stride.fitness.achievements import get_achievement

if TYPE_CHECKING:
    from stride.db.models import Comment, SharedAchievement, SharedWorkout
    from stride.db.repository import Repository

logger = logging.getLogger(__name__)

FEED_LIMIT = 20


@dataclass
class FeedEntry:
    """One shared workout or achievement in a follower's feed."""

    item_type: str
    id: str
    user_id: str
    shared_at: datetime
    title: str
    likes_count: int
    comments_count: int
    detail: dict[str, Any] = field(default_factory=dict)
    liked: bool = False


@dataclass
class CommentNode:
    id: str
    user_id: str
    content: str
    parent_id: str | None
    likes_count: int
    created_at: datetime
    updated_at: datetime
    liked: bool = False
    replies: list[CommentNode] = field(default_factory=list)


async def _notify_followers(
    repo: Repository, user_id: str, title: str, message: str, data: dict[str, Any]
) -> int:
    sent = 0
    for follower in await repo.follower_ids(user_id):
        prefs = await repo.get_preferences(follower)
        if not prefs.friend_activity:
            continue
        await repo.create_notification(
            follower, "friend_activity", title, message, data=data
        )
        sent += 1
    return sent


async def _display_name(repo: Repository, user_id: str) -> str:
    profile = await repo.get_profile(user_id)
    return (profile.full_name if profile else "") or "Someone"


async def share_workout(
    repo: Repository,
    user_id: str,
    workout_id: str,
    *,
    duration_seconds: int,
    rating: int | None = None,
    notes: str | None = None,
) -> SharedWorkout:
    workout = await repo.get_workout(workout_id)
    if workout is None:
        msg = f"Workout not found: {workout_id}"
        raise NotFoundError(msg)
    shared = await repo.share_workout(
        user_id,
        workout_id,
        duration_seconds=duration_seconds,
        rating=rating,
        notes=notes,
    )
    name = await _display_name(repo, user_id)
    sent = await _notify_followers(
        repo,
        user_id,
        f"{name} finished a workout",
        f"{name} completed {workout.title}",
        {"item_type": "workout", "item_id": shared.id, "user_id": user_id},
    )
    logger.info("User %s shared workout %s (%d notified)", user_id, workout_id, sent)
    return shared


async def share_achievement(
    repo: Repository, user_id: str, achievement_id: str
) -> SharedAchievement:
    """Share an achievement the user has earned.

    Raises:
        NotFoundError: Unknown achievement id.
        PermissionDeniedError: The achievement has not been earned.
    """
    achievement = get_achievement(achievement_id)
    if achievement is None:
        msg = f"Achievement not found: {achievement_id}"
        raise NotFoundError(msg)
    if achievement_id not in await repo.list_achievement_ids(user_id):
        msg = "You can only share achievements you have earned."
        raise PermissionDeniedError(msg)
    shared = await repo.share_achievement(user_id, achievement_id)
    name = await _display_name(repo, user_id)
    sent = await _notify_followers(
        repo,
        user_id,
        f"{name} earned an achievement",
        f"{name} unlocked {achievement.name}",
        {"item_type": "achievement", "item_id": shared.id, "user_id": user_id},
    )
    logger.info(
        "User %s shared achievement %s (%d notified)", user_id, achievement_id, sent
    )
    return shared


async def load_feed(
    repo: Repository, viewer_id: str, *, limit: int = FEED_LIMIT
) -> list[FeedEntry]:
    """Shares by everyone *viewer_id* follows, newest first."""
    following = await repo.following_ids(viewer_id)
    if not following:
        return []

    entries = [
        FeedEntry(
            item_type="workout",
            id=shared.id,
            user_id=shared.user_id,
            shared_at=as_utc(shared.shared_at),
            title=workout.title,
            likes_count=shared.likes_count,
            comments_count=shared.comments_count,
            detail={
                "workout_id": workout.id,
                "difficulty": workout.difficulty,
                "duration_seconds": shared.duration_seconds,
                "rating": shared.rating,
                "notes": shared.notes,
            },
        )
        for shared, workout in await repo.list_shared_workouts(following, limit=limit)
    ]
    for shared in await repo.list_shared_achievements(following, limit=limit):
        achievement = get_achievement(shared.achievement_id)
        entries.append(
            FeedEntry(
                item_type="achievement",
                id=shared.id,
                user_id=shared.user_id,
                shared_at=as_utc(shared.shared_at),
                title=achievement.name if achievement else shared.achievement_id,
                likes_count=shared.likes_count,
                comments_count=shared.comments_count,
                detail={
                    "achievement_id": shared.achievement_id,
                    "points": achievement.points if achievement else 0,
                },
            )
        )
    entries.sort(key=lambda e: e.shared_at, reverse=True)
    entries = entries[:limit]

    for item_type in ("workout", "achievement"):
        ids = [e.id for e in entries if e.item_type == item_type]
        liked = await repo.liked_item_ids(viewer_id, item_type, ids)
        for entry in entries:
            if entry.item_type == item_type:
                entry.liked = entry.id in liked
    return entries


# ── Comments ─────────────────────────────────────────────────────


async def add_comment(
    repo: Repository,
    item_type: str,
    item_id: str,
    user_id: str,
    content: str | None,
    *,
    parent_id: str | None = None,
) -> Comment:
    text = validate_comment(content)
    if parent_id is not None:
        parent = await repo.get_comment(parent_id)
        if parent is None or (parent.item_type, parent.item_id) != (
            item_type,
            item_id,
        ):
            raise ValidationError("parent_id", "Reply target is not on this item")
    return await repo.create_comment(
        item_type, item_id, user_id, text, parent_id=parent_id
    )


async def _own_comment(repo: Repository, comment_id: str, user_id: str) -> Comment:
    comment = await repo.get_comment(comment_id)
    if comment is None:
        msg = f"Comment not found: {comment_id}"
        raise NotFoundError(msg)
    if comment.user_id != user_id:
        msg = "You can only change your own comments"
        raise PermissionDeniedError(msg)
    return comment


async def edit_comment(
    repo: Repository, comment_id: str, user_id: str, content: str | None
) -> Comment:
    await _own_comment(repo, comment_id, user_id)
    return await repo.edit_comment(comment_id, validate_comment(content))


async def delete_comment(repo: Repository, comment_id: str, user_id: str) -> list[str]:
    await _own_comment(repo, comment_id, user_id)
    return await repo.delete_comment(comment_id)


def thread_comments(
    rows: list[Comment], liked: set[str] | None = None
) -> list[CommentNode]:
    """Nest *rows* (oldest first) into top-level comments with replies.

    A reply whose parent is not among *rows* is listed at the top level.
    """
    liked = liked or set()
    nodes = {
        row.id: CommentNode(
            id=row.id,
            user_id=row.user_id,
            content=row.content,
            parent_id=row.parent_id,
            likes_count=row.likes_count,
            created_at=as_utc(row.created_at),
            updated_at=as_utc(row.updated_at),
            liked=row.id in liked,
        )
        for row in rows
    }
    top: list[CommentNode] = []
    for row in rows:
        node = nodes[row.id]
        parent = nodes.get(row.parent_id) if row.parent_id else None
        if parent is None:
            top.append(node)
        else:
            parent.replies.append(node)
    return top
