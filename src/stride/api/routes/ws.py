"""WebSocket /ws/chat/{channel} -- live threaded chat."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect

from stride.api.auth import decode_token
from stride.api.rbac import is_admin
from stride.chat.session import ChatSession
from stride.chat.tree import SortOrder
from stride.core.errors import StrideError, ValidationError, VoteError
from stride.db.repository import Repository

if TYPE_CHECKING:
    from stride.chat.feed import Subscription

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


async def _viewer(websocket: WebSocket) -> Any:
    """The signed-in user for this socket, ``None`` if anonymous."""
    config = websocket.app.state.config
    token = websocket.query_params.get("token") or websocket.cookies.get(
        config.auth.session_cookie
    )
    if not token:
        return None
    payload = decode_token(token, config.auth.jwt_secret)
    async with websocket.app.state.db_factory() as session:
        user = await Repository(session).get_user(payload.get("sub"))
    if user is None or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    return user


class _Connection:
    """One socket bound to one :class:`ChatSession`."""

    def __init__(self, websocket: WebSocket, session: ChatSession) -> None:
        self.websocket = websocket
        self.session = session
        self._lock = asyncio.Lock()

    async def send(self, event: dict[str, Any]) -> None:
        async with self._lock:
            await self.websocket.send_json(event)

    async def send_error(self, message: str, **extra: Any) -> None:
        await self.send({"type": "error", "message": message, **extra})

    async def send_snapshot(self) -> None:
        await self.send(
            {
                "type": "snapshot",
                "channel": self.session.channel,
                "sort": self.session.sort.value,
                "messages": self.session.view(),
            }
        )

    async def pump(self, sub: Subscription) -> None:
        """Forward feed events that changed the tree."""
        async for event in sub:
            result = self.session.apply(event)
            if not result.applied:
                continue
            if result.action == "removed":
                await self.send({"type": "removed", "ids": list(result.removed)})
            elif result.message_id is not None:
                await self.send(
                    {
                        "type": result.action,
                        "message": self.session.message_json(result.message_id),
                    }
                )

    async def handle(self, data: dict[str, Any]) -> None:
        kind = data.get("type")
        if kind == "vote":
            await self._vote(data)
        elif kind == "post":
            message = await self.session.post(
                str(data.get("content") or ""),
                parent_id=data.get("parent_id"),
                image_url=data.get("image_url"),
            )
            await self.send(
                {"type": "inserted", "message": message.model_dump(mode="json")}
            )
        elif kind == "delete":
            removed = await self.session.delete(str(data.get("message_id")))
            await self.send({"type": "removed", "ids": removed})
        elif kind == "sort":
            try:
                sort = SortOrder(data.get("sort"))
            except ValueError:
                await self.send_error(f"Unknown sort: {data.get('sort')!r}")
                return
            self.session.set_sort(sort)
            await self.send_snapshot()
        else:
            await self.send_error(f"Unknown command: {kind!r}")

    async def _vote(self, data: dict[str, Any]) -> None:
        message_id = str(data.get("message_id"))
        try:
            vote_type = int(data.get("vote_type", 0))
        except (TypeError, ValueError):
            await self.send_error("vote_type must be 1 or -1")
            return
        try:
            outcome = await self.session.vote(message_id, vote_type)
        except VoteError as e:
            await self.send_error(str(e), message_id=message_id)
            # Tell the client what the rolled-back state is.
            current = self.session.message_json(message_id)
            if current is not None:
                await self.send({"type": "updated", "message": current})
            return
        await self.send(
            {
                "type": "vote",
                "message_id": outcome.message_id,
                "vote_count": outcome.vote_count,
                "user_vote": outcome.user_vote,
            }
        )


@router.websocket("/ws/chat/{channel}")
async def ws_chat(websocket: WebSocket, channel: str, sort: str = "best") -> None:
    """Live view of *channel*.

    Server sends::

        {"type": "snapshot", "channel": "...", "sort": "best", "messages": [...]}
        {"type": "inserted" | "updated" | "moved", "message": {...}}
        {"type": "removed", "ids": ["...", ...]}
        {"type": "vote", "message_id": "...", "vote_count": 3, "user_vote": 1}
        {"type": "error", "message": "..."}

    Client sends::

        {"type": "post", "content": "...", "parent_id": null, "image_url": null}
        {"type": "vote", "message_id": "...", "vote_type": 1}
        {"type": "delete", "message_id": "..."}
        {"type": "sort", "sort": "new"}

    A ``token`` query parameter or the session cookie identifies the
    viewer; anonymous viewers are read-only.
    """
    await websocket.accept()

    try:
        order = SortOrder(sort)
    except ValueError:
        await websocket.send_json(
            {"type": "error", "message": f"Unknown sort: {sort!r}"}
        )
        await websocket.close(code=1008)
        return

    try:
        user = await _viewer(websocket)
    except HTTPException as e:
        await websocket.send_json({"type": "error", "message": str(e.detail)})
        await websocket.close(code=1008)
        return

    session = ChatSession(
        channel,
        user.id if user is not None else None,
        websocket.app.state.chat_backend,
        sort=order,
        is_admin=is_admin(user),
    )
    conn = _Connection(websocket, session)

    # Subscribe first so nothing committed during the load is missed.
    sub = websocket.app.state.feed.subscribe(channel)
    pump: asyncio.Task[None] | None = None
    try:
        await session.load()
        await conn.send_snapshot()
        pump = asyncio.create_task(conn.pump(sub))
        while True:
            data = await websocket.receive_json()
            if not isinstance(data, dict):
                await conn.send_error("Commands must be JSON objects")
                continue
            try:
                await conn.handle(data)
            except ValidationError as e:
                await conn.send_error(e.message, field=e.field)
            except StrideError as e:
                await conn.send_error(str(e))
    except WebSocketDisconnect:
        logger.debug("Chat socket on %s closed", channel)
    except Exception as e:
        logger.exception("WebSocket error during /ws/chat/%s", channel)
        with contextlib.suppress(Exception):
            await websocket.send_json({"type": "error", "message": str(e)})
            await websocket.close()
    finally:
        sub.cancel()
        if pump is not None:
            pump.cancel()
            await asyncio.gather(pump, return_exceptions=True)
