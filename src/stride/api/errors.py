"""Translate domain errors into HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException

from stride.core.errors import (
    AuthError,
    ForeignKeyViolationError,
    NotFoundError,
    PaymentsError,
    PermissionDeniedError,
    StrideError,
    UniqueViolationError,
    UploadError,
    ValidationError,
    VoteError,
)

ITEM_GONE = "This item no longer exists."


def http_error(e: StrideError) -> HTTPException:
    """Status code and detail for a domain error."""
    if isinstance(e, ValidationError):
        return HTTPException(
            status_code=400, detail={"field": e.field, "message": e.message}
        )
    if isinstance(e, AuthError):
        return HTTPException(status_code=401, detail=str(e))
    if isinstance(e, PermissionDeniedError):
        return HTTPException(status_code=403, detail=str(e))
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ForeignKeyViolationError):
        return HTTPException(status_code=404, detail=ITEM_GONE)
    if isinstance(e, UniqueViolationError):
        return HTTPException(status_code=409, detail="Already exists")
    if isinstance(e, VoteError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, (PaymentsError, UploadError)):
        return HTTPException(status_code=502, detail=str(e))
    return HTTPException(
        status_code=500, detail="Something went wrong. Please try again."
    )
