"""Accounts: password hashing, JWT sessions, sign-up and the auth callback.

Sign-up creates an unconfirmed user plus a one-time code.  Visiting
``/auth/callback?code=...`` exchanges the code for a session cookie and
redirects into the app; every failure on that route redirects to
``/login`` with ``error`` and ``error_description`` query parameters.
"""

from __future__ import annotations

import logging
import secrets
from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import urlencode

import bcrypt
import jwt
from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import RedirectResponse
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from stride.core.errors import (
    NotFoundError,
    PaymentsError,
    StorageError,
    StrideError,
    UniqueViolationError,
    ValidationError,
)
from stride.core.validation import (
    validate_email,
    validate_full_name,
    validate_password,
)
from stride.db.models import as_utc
from stride.db.repository import Repository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])
callback_router = APIRouter(tags=["auth"])

DEFAULT_REDIRECT = "/dashboard"
PRICING_REDIRECT = "/pricing"

# --- Password hashing ---


def hash_password(password: str) -> str:
    """Hash password with bcrypt."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, password_hash: str) -> bool:
    """Verify password against hash."""
    return bcrypt.checkpw(password.encode(), password_hash.encode())


# --- JWT ---


def create_token(user_id: str, secret: str, expiry_hours: int = 24) -> str:
    """Create a JWT token."""
    payload = {
        "sub": user_id,
        "exp": datetime.now(UTC) + timedelta(hours=expiry_hours),
        "iat": datetime.now(UTC),
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def decode_token(token: str, secret: str) -> dict[str, Any]:
    """Decode and validate a JWT token."""
    try:
        return jwt.decode(token, secret, algorithms=["HS256"])
    except jwt.ExpiredSignatureError as err:
        raise HTTPException(status_code=401, detail="Token expired") from err
    except jwt.InvalidTokenError as err:
        raise HTTPException(status_code=401, detail="Invalid token") from err


def token_from_headers(headers: Any, cookies: Any, cookie_name: str) -> str | None:
    """Bearer token from the Authorization header, else the session cookie."""
    auth_header = headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return str(auth_header.split(" ", 1)[1])
    token = cookies.get(cookie_name)
    return str(token) if token else None


def safe_redirect(target: str | None, default: str = DEFAULT_REDIRECT) -> str:
    """Only same-site relative paths are honoured."""
    if not target or not target.startswith("/") or target.startswith("//"):
        return default
    if "\\" in target or "\n" in target or "\r" in target:
        return default
    return target


def login_redirect(error: str, description: str) -> RedirectResponse:
    query = urlencode({"error": error, "error_description": description})
    return RedirectResponse(url=f"/login?{query}", status_code=303)


def set_session_cookie(response: Response, token: str, config: Any) -> None:
    response.set_cookie(
        config.auth.session_cookie,
        token,
        max_age=config.auth.token_expiry_hours * 3600,
        httponly=True,
        samesite="lax",
    )


# --- Request models ---


class SignUpRequest(BaseModel):
    email: str | None = None
    password: str | None = None
    full_name: str | None = None
    selected_plan: str | None = None
    redirect_to: str | None = None


class SignUpResponse(BaseModel):
    success: bool = True
    message: str
    user_id: str
    redirect_to: str


class LoginRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str
    role: str


class UserResponse(BaseModel):
    id: str
    email: str
    full_name: str
    avatar_url: str | None = None
    role: str
    is_active: bool
    subscription_status: str | None = None
    subscription_plan: str | None = None


# --- Dependency: get current user from JWT ---


async def _user_from_token(request: Request, token: str) -> Any:
    config = request.app.state.config
    payload = decode_token(token, config.auth.jwt_secret)
    user_id = payload.get("sub")

    db_factory = request.app.state.db_factory
    async with db_factory() as session:
        user = await Repository(session).get_user(user_id)

    if user is None or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    return user


async def get_current_user(request: Request) -> Any:
    """FastAPI dependency: the signed-in user (Bearer token or session cookie)."""
    config = request.app.state.config
    token = token_from_headers(
        request.headers, request.cookies, config.auth.session_cookie
    )
    if token is None:
        raise HTTPException(status_code=401, detail="Not signed in")
    return await _user_from_token(request, token)


async def get_optional_user(request: Request) -> Any:
    """Like :func:`get_current_user` but ``None`` for anonymous requests."""
    config = request.app.state.config
    token = token_from_headers(
        request.headers, request.cookies, config.auth.session_cookie
    )
    if token is None:
        return None
    return await _user_from_token(request, token)


# --- Sign-up ---


async def _undo_sign_up(
    request: Request, user_id: str, customer_id: str | None
) -> None:
    """Compensate a half-finished sign-up."""
    try:
        async with request.app.state.db_factory() as session:
            await Repository(session).delete_user(user_id)
            await session.commit()
    except (StrideError, SQLAlchemyError):
        logger.exception("Could not remove user %s after failed sign-up", user_id)

    payments = getattr(request.app.state, "payments", None)
    if customer_id and payments is not None:
        try:
            await payments.delete_customer(customer_id)
        except PaymentsError:
            logger.exception("Could not remove billing customer %s", customer_id)


@router.post("/sign-up", response_model=SignUpResponse)
async def sign_up(body: SignUpRequest, request: Request) -> SignUpResponse:
    """Register a new, unconfirmed account."""
    config = request.app.state.config
    if not config.auth.registration_enabled:
        raise HTTPException(status_code=403, detail="Registration is disabled")
    if not body.email or not body.password or not body.full_name:
        raise HTTPException(status_code=400, detail="Missing required fields")

    try:
        email = validate_email(body.email)
        password = validate_password(body.password)
        full_name = validate_full_name(body.full_name)
    except ValidationError as e:
        raise HTTPException(
            status_code=400, detail={"field": e.field, "message": e.message}
        ) from e

    redirect_to = (
        PRICING_REDIRECT if body.selected_plan else safe_redirect(body.redirect_to)
    )
    code = secrets.token_urlsafe(32)

    db_factory = request.app.state.db_factory
    async with db_factory() as session:
        repo = Repository(session)
        if await repo.get_user_by_email(email) is not None:
            raise HTTPException(status_code=409, detail="Email already registered")
        try:
            user = await repo.create_user(email, hash_password(password))
        except UniqueViolationError as e:
            raise HTTPException(
                status_code=409, detail="Email already registered"
            ) from e
        await repo.create_auth_code(
            user.id,
            code,
            ttl=timedelta(hours=config.auth.confirmation_code_ttl_hours),
            redirect_to=redirect_to,
        )
        await session.commit()

    customer_id: str | None = None
    payments = getattr(request.app.state, "payments", None)
    if payments is not None:
        try:
            customer_id = await payments.create_customer(email, full_name, user.id)
        except PaymentsError as e:
            # Billing can be attached later from a customer.created webhook.
            logger.warning("Billing customer not created for %s: %s", user.id, e)

    try:
        async with db_factory() as session:
            await Repository(session).create_profile(
                user.id, email, full_name, stripe_customer_id=customer_id
            )
            await session.commit()
    except (StrideError, SQLAlchemyError):
        logger.exception("Profile creation failed for %s", user.id)
        await _undo_sign_up(request, user.id, customer_id)
        raise HTTPException(
            status_code=500,
            detail="Failed to create user profile. Please try again.",
        ) from None

    confirm_url = f"{config.auth.app_url.rstrip('/')}/auth/callback?code={code}"
    logger.info("Confirmation link for %s: %s", email, confirm_url)
    return SignUpResponse(
        message="Please check your email to confirm your account",
        user_id=user.id,
        redirect_to=redirect_to,
    )


# --- Callback ---


@callback_router.get("/auth/callback")
async def auth_callback(
    request: Request,
    code: str | None = None,
    redirect_to: str | None = None,
    error: str | None = None,
    error_description: str | None = None,
) -> RedirectResponse:
    """Exchange a one-time code for a session and route the user in."""
    config = request.app.state.config

    if error:
        description = error_description or error
        if "expired" in description.lower() or "expired" in error.lower():
            description = (
                "Your verification link has expired. Please request a new one."
            )
        return login_redirect(error, description)

    if not code:
        return login_redirect(
            "no_code",
            "No verification code was provided. Please try signing in again.",
        )

    try:
        async with request.app.state.db_factory() as session:
            repo = Repository(session)
            auth_code = await repo.consume_auth_code(code)
            user = await repo.get_user(auth_code.user_id)
            if user is None or not user.is_active:
                await session.rollback()
                return login_redirect(
                    "no_session",
                    "Could not establish a session. Please sign in again.",
                )
            profile = await repo.get_profile(user.id)
            if profile is None:
                profile = await repo.create_profile(user.id, user.email, "")
            await session.commit()
    except NotFoundError:
        return login_redirect(
            "exchange_failed",
            "This verification link is invalid or has already been used.",
        )
    except StorageError as e:
        if "expired" in str(e).lower():
            description = (
                "Your verification link has expired. "
                "Please sign up again or request a password reset."
            )
        else:
            logger.exception("Code exchange failed")
            description = "We could not verify your link. Please try again."
        return login_redirect("exchange_failed", description)
    except (StrideError, SQLAlchemyError):
        logger.exception("Unexpected error in auth callback")
        return login_redirect(
            "unexpected", "An unexpected error occurred. Please try again."
        )

    age = datetime.now(UTC) - as_utc(profile.created_at)
    returning = age > timedelta(minutes=config.auth.returning_user_after_minutes)
    if returning:
        target = DEFAULT_REDIRECT
    else:
        target = safe_redirect(redirect_to or auth_code.redirect_to)

    token = create_token(
        user.id, config.auth.jwt_secret, config.auth.token_expiry_hours
    )
    response = RedirectResponse(url=target, status_code=303)
    set_session_cookie(response, token, config)
    return response


# --- Login / session ---


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest, request: Request, response: Response
) -> TokenResponse:
    """Authenticate and get token."""
    config = request.app.state.config
    if not config.auth.jwt_secret:
        raise HTTPException(status_code=500, detail="JWT secret not configured")

    db_factory = request.app.state.db_factory
    async with db_factory() as session:
        user = await Repository(session).get_user_by_email(body.email)

    if user is None or not verify_password(body.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account disabled")

    if user.confirmed_at is None:
        raise HTTPException(
            status_code=403, detail="Please confirm your email before signing in"
        )

    token = create_token(
        user.id, config.auth.jwt_secret, config.auth.token_expiry_hours
    )
    set_session_cookie(response, token, config)
    return TokenResponse(access_token=token, user_id=user.id, role=user.role)


@router.post("/sign-out")
async def sign_out(request: Request, response: Response) -> dict[str, bool]:
    """Clear the session cookie."""
    response.delete_cookie(request.app.state.config.auth.session_cookie)
    return {"success": True}


@router.get("/me", response_model=UserResponse)
async def me(
    request: Request,
    user: Any = Depends(get_current_user),  # noqa: B008
) -> UserResponse:
    """Get current user info."""
    async with request.app.state.db_factory() as session:
        profile = await Repository(session).get_profile(user.id)
    return UserResponse(
        id=user.id,
        email=user.email,
        full_name=profile.full_name if profile else "",
        avatar_url=profile.avatar_url if profile else None,
        role=user.role,
        is_active=user.is_active,
        subscription_status=profile.subscription_status if profile else None,
        subscription_plan=profile.subscription_plan if profile else None,
    )
