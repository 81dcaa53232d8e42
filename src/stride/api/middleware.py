"""API middleware: session identity and rate limiting."""

from __future__ import annotations

import time
from collections import defaultdict
from typing import TYPE_CHECKING

from fastapi import HTTPException
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from stride.api.auth import decode_token, token_from_headers

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from fastapi import Request, Response


class SessionIdentityMiddleware(BaseHTTPMiddleware):
    """Put the session's user id on ``request.state`` when a valid token is sent.

    Never rejects a request; route dependencies do full authentication.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        config = request.app.state.config
        token = token_from_headers(
            request.headers, request.cookies, config.auth.session_cookie
        )
        if token and config.auth.jwt_secret:
            try:
                payload = decode_token(token, config.auth.jwt_secret)
            except HTTPException:
                payload = {}
            request.state.user_id = payload.get("sub")
        return await call_next(request)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-user (or per-IP) rate limiting using a sliding window."""

    EXEMPT_PATHS: frozenset[str] = frozenset({"/api/health", "/api/billing/webhook"})

    def __init__(self, app: object, rate_limit: int = 60, window: int = 60) -> None:
        super().__init__(app)  # type: ignore[arg-type]
        self.rate_limit = rate_limit
        self.window = window
        self._requests: dict[str, list[float]] = defaultdict(list)

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        if request.url.path in self.EXEMPT_PATHS:
            return await call_next(request)

        user_id = getattr(request.state, "user_id", None)
        ip_addr = request.client.host if request.client else "unknown"
        key_id = f"user:{user_id}" if user_id else f"ip:{ip_addr}"

        now = time.monotonic()
        # Clean old entries
        self._requests[key_id] = [
            t for t in self._requests[key_id] if now - t < self.window
        ]

        if len(self._requests[key_id]) >= self.rate_limit:
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded. Try again later."},
                headers={"Retry-After": str(self.window)},
            )

        self._requests[key_id].append(now)
        response = await call_next(request)

        remaining = self.rate_limit - len(self._requests[key_id])
        response.headers["X-RateLimit-Limit"] = str(self.rate_limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        response.headers["X-RateLimit-Key"] = key_id
        return response
