"""Social: follows, user search, shared workouts and achievements, comments."""

from __future__ import annotations

import logging
from typing import Any, Literal

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from stride.api.auth import get_current_user, get_optional_user
from stride.api.errors import http_error
from stride.core.errors import StrideError
from stride.db.repository import Repository
from stride.fitness import sharing

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/social", tags=["social"])

ItemType = Literal["workout", "achievement"]

MIN_SEARCH_LENGTH = 2


class ShareWorkoutRequest(BaseModel):
    workout_id: str
    duration_seconds: int = Field(default=0, ge=0)
    rating: int | None = Field(default=None, ge=1, le=5)
    notes: str | None = None


class ShareAchievementRequest(BaseModel):
    achievement_id: str


class CommentRequest(BaseModel):
    content: str
    parent_id: str | None = None


class EditCommentRequest(BaseModel):
    content: str


def _comment_dict(node: sharing.CommentNode) -> dict[str, Any]:
    return {
        "id": node.id,
        "user_id": node.user_id,
        "content": node.content,
        "parent_id": node.parent_id,
        "likes_count": node.likes_count,
        "is_liked": node.liked,
        "created_at": node.created_at.isoformat(),
        "updated_at": node.updated_at.isoformat(),
        "replies": [_comment_dict(r) for r in node.replies],
    }


# ── Follows & search ─────────────────────────────────────────────


@router.post("/follow/{user_id}")
async def toggle_follow(
    user_id: str,
    request: Request,
    user: Any = Depends(get_current_user),  # noqa: B008
) -> dict[str, Any]:
    """Follow *user_id*, or unfollow if already following."""
    if user_id == user.id:
        raise HTTPException(status_code=400, detail="You cannot follow yourself")

    try:
        async with request.app.state.db_factory() as session:
            repo = Repository(session)
            if await repo.get_user(user_id) is None:
                raise HTTPException(status_code=404, detail="User not found")
            if await repo.is_following(user.id, user_id):
                await repo.unfollow(user.id, user_id)
                following = False
            else:
                await repo.follow(user.id, user_id)
                following = True
                prefs = await repo.get_preferences(user_id)
                if prefs.friend_request:
                    profile = await repo.get_profile(user.id)
                    name = (profile.full_name if profile else "") or "Someone"
                    await repo.create_notification(
                        user_id,
                        "friend_request",
                        "New follower",
                        f"{name} started following you",
                        data={"follower_id": user.id},
                    )
            await session.commit()
    except StrideError as e:
        raise http_error(e) from e

    logger.info(
        "User %s %s %s", user.id, "followed" if following else "unfollowed", user_id
    )
    return {"following": following}


@router.get("/{user_id}/counts")
async def follow_counts(user_id: str, request: Request) -> dict[str, int]:
    async with request.app.state.db_factory() as session:
        followers, following = await Repository(session).follow_counts(user_id)
    return {"followers": followers, "following": following}


@router.get("/users/search")
async def search_users(
    request: Request,
    q: str = "",
    viewer: Any = Depends(get_optional_user),  # noqa: B008
) -> list[dict[str, Any]]:
    """Members whose name or email contains *q*; the caller is left out."""
    if len(q.strip()) < MIN_SEARCH_LENGTH:
        return []
    viewer_id = viewer.id if viewer is not None else None
    async with request.app.state.db_factory() as session:
        repo = Repository(session)
        profiles = await repo.search_profiles(q, exclude=viewer_id)
        following = set(await repo.following_ids(viewer_id)) if viewer_id else set()
    return [
        {
            "id": p.id,
            "full_name": p.full_name,
            "avatar_url": p.avatar_url,
            "is_following": p.id in following,
        }
        for p in profiles
    ]


# ── Sharing ──────────────────────────────────────────────────────


@router.get("/feed")
async def feed(
    request: Request,
    user: Any = Depends(get_current_user),  # noqa: B008
) -> list[dict[str, Any]]:
    """Recent shares by everyone the caller follows."""
    async with request.app.state.db_factory() as session:
        entries = await sharing.load_feed(Repository(session), user.id)
    return [
        {
            "item_type": e.item_type,
            "id": e.id,
            "user_id": e.user_id,
            "shared_at": e.shared_at.isoformat(),
            "title": e.title,
            "likes_count": e.likes_count,
            "comments_count": e.comments_count,
            "is_liked": e.liked,
            **e.detail,
        }
        for e in entries
    ]


@router.post("/share/workout", status_code=201)
async def share_workout(
    body: ShareWorkoutRequest,
    request: Request,
    user: Any = Depends(get_current_user),  # noqa: B008
) -> dict[str, str]:
    try:
        async with request.app.state.db_factory() as session:
            shared = await sharing.share_workout(
                Repository(session),
                user.id,
                body.workout_id,
                duration_seconds=body.duration_seconds,
                rating=body.rating,
                notes=body.notes,
            )
            await session.commit()
    except StrideError as e:
        raise http_error(e) from e
    return {"id": shared.id}


@router.post("/share/achievement", status_code=201)
async def share_achievement(
    body: ShareAchievementRequest,
    request: Request,
    user: Any = Depends(get_current_user),  # noqa: B008
) -> dict[str, str]:
    try:
        async with request.app.state.db_factory() as session:
            shared = await sharing.share_achievement(
                Repository(session), user.id, body.achievement_id
            )
            await session.commit()
    except StrideError as e:
        raise http_error(e) from e
    return {"id": shared.id}


# ── Comments ─────────────────────────────────────────────────────
# Must precede the item routes: /comments/{id}/like also matches them.


@router.patch("/comments/{comment_id}")
async def edit_comment(
    comment_id: str,
    body: EditCommentRequest,
    request: Request,
    user: Any = Depends(get_current_user),  # noqa: B008
) -> dict[str, str]:
    try:
        async with request.app.state.db_factory() as session:
            comment = await sharing.edit_comment(
                Repository(session), comment_id, user.id, body.content
            )
            await session.commit()
    except StrideError as e:
        raise http_error(e) from e
    return {"id": comment.id, "content": comment.content}


@router.delete("/comments/{comment_id}")
async def delete_comment(
    comment_id: str,
    request: Request,
    user: Any = Depends(get_current_user),  # noqa: B008
) -> dict[str, list[str]]:
    """Delete the caller's comment together with its replies."""
    try:
        async with request.app.state.db_factory() as session:
            deleted = await sharing.delete_comment(
                Repository(session), comment_id, user.id
            )
            await session.commit()
    except StrideError as e:
        raise http_error(e) from e
    return {"deleted": deleted}


@router.post("/comments/{comment_id}/like")
async def like_comment(
    comment_id: str,
    request: Request,
    user: Any = Depends(get_current_user),  # noqa: B008
) -> dict[str, Any]:
    try:
        async with request.app.state.db_factory() as session:
            liked, count = await Repository(session).toggle_comment_like(
                comment_id, user.id
            )
            await session.commit()
    except StrideError as e:
        raise http_error(e) from e
    return {"liked": liked, "likes_count": count}


@router.get("/{item_type}/{item_id}/comments")
async def list_comments(
    item_type: ItemType,
    item_id: str,
    request: Request,
    viewer: Any = Depends(get_optional_user),  # noqa: B008
) -> list[dict[str, Any]]:
    async with request.app.state.db_factory() as session:
        repo = Repository(session)
        rows = await repo.list_comments(item_type, item_id)
        liked = (
            await repo.liked_comment_ids(viewer.id, [r.id for r in rows])
            if viewer is not None
            else set()
        )
    return [_comment_dict(n) for n in sharing.thread_comments(rows, liked)]


@router.post("/{item_type}/{item_id}/comments", status_code=201)
async def add_comment(
    item_type: ItemType,
    item_id: str,
    body: CommentRequest,
    request: Request,
    user: Any = Depends(get_current_user),  # noqa: B008
) -> dict[str, Any]:
    try:
        async with request.app.state.db_factory() as session:
            comment = await sharing.add_comment(
                Repository(session),
                item_type,
                item_id,
                user.id,
                body.content,
                parent_id=body.parent_id,
            )
            await session.commit()
    except StrideError as e:
        raise http_error(e) from e
    return {"id": comment.id, "parent_id": comment.parent_id}


@router.post("/{item_type}/{item_id}/like")
async def like_item(
    item_type: ItemType,
    item_id: str,
    request: Request,
    user: Any = Depends(get_current_user),  # noqa: B008
) -> dict[str, Any]:
    """Like a shared workout or achievement, or take the like back."""
    try:
        async with request.app.state.db_factory() as session:
            liked, count = await Repository(session).toggle_item_like(
                item_type, item_id, user.id
            )
            await session.commit()
    except StrideError as e:
        raise http_error(e) from e
    return {"liked": liked, "likes_count": count}
