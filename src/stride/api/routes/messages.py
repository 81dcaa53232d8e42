"""Community chat over HTTP: threaded listing, posting, deleting, voting."""

from __future__ import annotations

from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from stride.api.auth import get_current_user, get_optional_user
from stride.api.errors import http_error
from stride.api.rbac import is_admin
from stride.chat.tree import MessageTree, SortOrder
from stride.core.errors import NotFoundError, StrideError
from stride.db.repository import Repository

router = APIRouter(prefix="/api", tags=["messages"])


class PostMessageRequest(BaseModel):
    content: str = ""
    parent_id: str | None = None
    image_url: str | None = None


class VoteRequest(BaseModel):
    vote_type: int = Field(description="1 for an upvote, -1 for a downvote")


class VoteResponse(BaseModel):
    message_id: str
    vote_count: int
    user_vote: int | None


class MessageTreeResponse(BaseModel):
    channel: str
    sort: str
    total: int
    messages: list[dict[str, Any]]


def _parse_sort(sort: str) -> SortOrder:
    try:
        return SortOrder(sort)
    except ValueError as e:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown sort {sort!r}; use best, top, new or old",
        ) from e


async def _load_tree(
    request: Request, channel: str, viewer: Any, sort: SortOrder
) -> MessageTree:
    backend = request.app.state.chat_backend
    rows = await backend.list_messages(channel, viewer.id if viewer else None)
    return MessageTree.build(rows, sort)


@router.get("/channels/{channel}/messages", response_model=MessageTreeResponse)
async def list_messages(
    channel: str,
    request: Request,
    sort: str = "best",
    viewer: Any = Depends(get_optional_user),  # noqa: B008
) -> MessageTreeResponse:
    """The channel's recent messages as a threaded forest."""
    order = _parse_sort(sort)
    tree = await _load_tree(request, channel, viewer, order)
    return MessageTreeResponse(
        channel=channel, sort=order.value, total=len(tree), messages=tree.to_forest()
    )


@router.get("/channels/{channel}/search")
async def search_messages(
    channel: str,
    request: Request,
    q: str = "",
    only_top_level: bool = False,
    only_replies: bool = False,
    from_date: date | None = None,
    to_date: date | None = None,
    min_votes: int | None = None,
    author: str | None = None,
    viewer: Any = Depends(get_optional_user),  # noqa: B008
) -> dict[str, Any]:
    """Filter the channel's recent messages."""
    tree = await _load_tree(request, channel, viewer, SortOrder.BEST)
    found = tree.search(
        q,
        only_top_level=only_top_level,
        only_replies=only_replies,
        from_date=from_date,
        to_date=to_date,
        min_votes=min_votes,
        author=author,
    )
    return {
        "channel": channel,
        "total": len(found),
        "messages": [m.model_dump(mode="json") for m in found],
    }


@router.post("/channels/{channel}/messages", status_code=201)
async def post_message(
    channel: str,
    body: PostMessageRequest,
    request: Request,
    user: Any = Depends(get_current_user),  # noqa: B008
) -> dict[str, Any]:
    """Post a message or a reply."""
    backend = request.app.state.chat_backend
    try:
        message = await backend.post_message(
            channel,
            user.id,
            body.content,
            parent_id=body.parent_id,
            image_url=body.image_url,
        )
    except StrideError as e:
        raise http_error(e) from e
    return message.model_dump(mode="json")


@router.delete("/messages/{message_id}")
async def delete_message(
    message_id: str,
    request: Request,
    user: Any = Depends(get_current_user),  # noqa: B008
) -> dict[str, Any]:
    """Delete a message and its replies (author or admin)."""
    backend = request.app.state.chat_backend
    try:
        removed = await backend.delete_message(
            message_id, user.id, is_admin=is_admin(user)
        )
    except StrideError as e:
        raise http_error(e) from e
    return {"deleted": removed}


@router.put("/messages/{message_id}/vote", response_model=VoteResponse)
async def put_vote(
    message_id: str,
    body: VoteRequest,
    request: Request,
    user: Any = Depends(get_current_user),  # noqa: B008
) -> VoteResponse:
    """Set the caller's vote on a message."""
    if body.vote_type not in (1, -1):
        raise HTTPException(status_code=400, detail="vote_type must be 1 or -1")
    backend = request.app.state.chat_backend
    async with request.app.state.db_factory() as session:
        existing = await Repository(session).get_vote(message_id, user.id)
        current = existing.vote_type if existing is not None else None
    try:
        if current is None:
            count = await backend.insert_vote(message_id, user.id, body.vote_type)
        elif current != body.vote_type:
            count = await backend.update_vote(message_id, user.id, body.vote_type)
        else:
            async with request.app.state.db_factory() as session:
                message = await Repository(session).get_message(message_id)
            if message is None:
                raise NotFoundError("This message no longer exists.")
            count = message.vote_count
    except StrideError as e:
        raise http_error(e) from e
    return VoteResponse(
        message_id=message_id, vote_count=count, user_vote=body.vote_type
    )


@router.delete("/messages/{message_id}/vote", response_model=VoteResponse)
async def delete_vote(
    message_id: str,
    request: Request,
    user: Any = Depends(get_current_user),  # noqa: B008
) -> VoteResponse:
    """Withdraw the caller's vote."""
    backend = request.app.state.chat_backend
    try:
        count = await backend.delete_vote(message_id, user.id)
    except StrideError as e:
        raise http_error(e) from e
    return VoteResponse(message_id=message_id, vote_count=count, user_vote=None)
