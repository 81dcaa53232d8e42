"""In-app notifications and per-type notification preferences."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from stride.api.auth import get_current_user
from stride.api.errors import http_error
from stride.core.errors import StrideError
from stride.db.repository import NOTIFICATION_TYPES, Repository

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


class NotificationResponse(BaseModel):
    id: str
    type: str
    title: str
    message: str
    data: dict[str, Any] | None = None
    read: bool
    created_at: datetime


class PreferencesBody(BaseModel):
    achievement: bool | None = None
    friend_request: bool | None = None
    friend_activity: bool | None = None
    streak: bool | None = None
    milestone: bool | None = None


def _preferences(prefs: Any) -> dict[str, bool]:
    return {name: bool(getattr(prefs, name)) for name in NOTIFICATION_TYPES}


@router.get("", response_model=list[NotificationResponse])
async def list_notifications(
    request: Request,
    unread_only: bool = False,
    limit: int = 50,
    user: Any = Depends(get_current_user),  # noqa: B008
) -> list[NotificationResponse]:
    async with request.app.state.db_factory() as session:
        rows = await Repository(session).list_notifications(
            user.id, unread_only=unread_only, limit=limit
        )
    return [
        NotificationResponse(
            id=n.id,
            type=n.type,
            title=n.title,
            message=n.message,
            data=n.data,
            read=n.read,
            created_at=n.created_at,
        )
        for n in rows
    ]


@router.post("/{notification_id}/read")
async def mark_read(
    notification_id: str,
    request: Request,
    user: Any = Depends(get_current_user),  # noqa: B008
) -> dict[str, bool]:
    try:
        async with request.app.state.db_factory() as session:
            await Repository(session).mark_notification_read(user.id, notification_id)
            await session.commit()
    except StrideError as e:
        raise http_error(e) from e
    return {"success": True}


@router.post("/read-all")
async def mark_all_read(
    request: Request,
    user: Any = Depends(get_current_user),  # noqa: B008
) -> dict[str, int]:
    async with request.app.state.db_factory() as session:
        count = await Repository(session).mark_all_notifications_read(user.id)
        await session.commit()
    return {"updated": count}


@router.get("/preferences")
async def get_preferences(
    request: Request,
    user: Any = Depends(get_current_user),  # noqa: B008
) -> dict[str, bool]:
    async with request.app.state.db_factory() as session:
        prefs = await Repository(session).get_preferences(user.id)
    return _preferences(prefs)


@router.put("/preferences")
async def put_preferences(
    body: PreferencesBody,
    request: Request,
    user: Any = Depends(get_current_user),  # noqa: B008
) -> dict[str, bool]:
    """Change only the switches present in the body."""
    switches = body.model_dump(exclude_none=True)
    async with request.app.state.db_factory() as session:
        prefs = await Repository(session).save_preferences(user.id, **switches)
        await session.commit()
        return _preferences(prefs)
