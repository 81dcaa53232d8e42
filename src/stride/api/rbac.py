"""Role-based access control for the stride API.

Roles: admin > member.
Use ``require_role`` to create a FastAPI dependency that checks the
authenticated user has at least the given role level.

Example::

    @router.post("/workouts")
    async def create_workout(user=Depends(require_admin)):
        ...
"""

from __future__ import annotations

from typing import Any

from fastapi import Depends, HTTPException

from stride.api.auth import get_current_user

# Role hierarchy: higher number = more privileges.
ROLE_HIERARCHY: dict[str, int] = {"admin": 2, "member": 1}


def is_admin(user: Any) -> bool:
    return getattr(user, "role", "") == "admin"


def require_role(minimum_role: str):  # type: ignore[no-untyped-def]
    """FastAPI dependency factory: require user has at least *minimum_role*.

    Raises:
        HTTPException 401: If no authenticated user is present.
        HTTPException 403: If the user's role is below the minimum.
    """
    min_level = ROLE_HIERARCHY.get(minimum_role, 0)

    async def _check_role(
        user: Any = Depends(get_current_user),  # noqa: B008
    ) -> Any:
        user_level = ROLE_HIERARCHY.get(getattr(user, "role", ""), 0)
        if user_level < min_level:
            raise HTTPException(
                status_code=403,
                detail=f"Requires {minimum_role} role",
            )
        return user

    return _check_role


require_admin = require_role("admin")
