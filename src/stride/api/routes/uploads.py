"""Image uploads to object storage.

The body is the raw file; the name travels in ``X-Filename`` and the
type in ``Content-Type``.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request

from stride.api.auth import get_current_user
from stride.api.errors import http_error
from stride.core.errors import StrideError
from stride.db.repository import Repository

router = APIRouter(prefix="/api/uploads", tags=["uploads"])


def _storage(request: Request) -> Any:
    storage = getattr(request.app.state, "storage", None)
    if storage is None:
        raise HTTPException(status_code=503, detail="Object storage is not configured")
    return storage


async def _read_upload(request: Request, limit: int) -> tuple[str, bytes, str]:
    """Read the body, refusing anything over ``limit`` bytes without buffering it."""
    filename = request.headers.get("X-Filename", "upload")
    content_type = request.headers.get("Content-Type", "application/octet-stream")
    too_large = HTTPException(
        status_code=413,
        detail=f"Images must be smaller than {limit / (1024 * 1024):g}MB",
    )
    declared = request.headers.get("Content-Length", "")
    if declared.isdigit() and int(declared) > limit:
        raise too_large
    data = bytearray()
    async for chunk in request.stream():
        data.extend(chunk)
        if len(data) > limit:
            raise too_large
    return filename, bytes(data), content_type


@router.post("/images", status_code=201)
async def upload_image(
    request: Request,
    user: Any = Depends(get_current_user),  # noqa: B008
) -> dict[str, str]:
    """Store a chat image and return its public URL."""
    storage = _storage(request)
    filename, data, content_type = await _read_upload(request, storage.max_bytes)
    try:
        key, url = await storage.upload_image(user.id, filename, data, content_type)
    except StrideError as e:
        raise http_error(e) from e
    return {"key": key, "url": url}


@router.post("/avatar", status_code=201)
async def upload_avatar(
    request: Request,
    user: Any = Depends(get_current_user),  # noqa: B008
) -> dict[str, str]:
    """Store an avatar and point the caller's profile at it."""
    storage = _storage(request)
    filename, data, content_type = await _read_upload(request, storage.max_bytes)
    try:
        key, url = await storage.upload_avatar(user.id, filename, data, content_type)
        async with request.app.state.db_factory() as session:
            await Repository(session).update_profile(user.id, avatar_url=url)
            await session.commit()
    except StrideError as e:
        raise http_error(e) from e
    return {"key": key, "url": url}
