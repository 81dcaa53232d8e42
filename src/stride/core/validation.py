"""Form field validation shared by the API and the CLI.

Each validator raises :class:`~stride.core.errors.ValidationError` with
the form field name and a message ready to show next to it.
"""

from __future__ import annotations

import re

from stride.core.errors import ValidationError

_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

MIN_PASSWORD_LENGTH = 6
MIN_NAME_LENGTH = 2


def validate_email(email: str | None) -> str:
    value = (email or "").strip()
    if not value:
        raise ValidationError("email", "Email is required")
    if not _EMAIL.match(value):
        raise ValidationError("email", "Please enter a valid email address")
    return value.lower()


def validate_password(password: str | None) -> str:
    if not password:
        raise ValidationError("password", "Password is required")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            "password",
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
        )
    return password


def validate_full_name(full_name: str | None) -> str:
    value = (full_name or "").strip()
    if not value:
        raise ValidationError("full-name", "Full name is required")
    if len(value) < MIN_NAME_LENGTH:
        raise ValidationError(
            "full-name",
            f"Full name must be at least {MIN_NAME_LENGTH} characters",
        )
    return value


MAX_COMMENT_LENGTH = 2000


def validate_comment(content: str | None) -> str:
    value = (content or "").strip()
    if not value:
        raise ValidationError("content", "Comment cannot be empty")
    if len(value) > MAX_COMMENT_LENGTH:
        raise ValidationError(
            "content",
            f"Comment must be at most {MAX_COMMENT_LENGTH} characters",
        )
    return value
