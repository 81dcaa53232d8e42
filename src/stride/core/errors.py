"""Exception hierarchy for stride.

Every module imports from here. The hierarchy is:

    StrideError
    ├── ConfigError
    ├── AuthError
    ├── ValidationError(field, message)
    ├── NotFoundError
    ├── PermissionDeniedError
    ├── StorageError
    │   └── ConstraintViolationError
    │       ├── ForeignKeyViolationError
    │       └── UniqueViolationError
    ├── VoteError
    ├── UploadError
    └── PaymentsError(provider_id)
"""

from __future__ import annotations


class StrideError(Exception):
    """Base exception for all stride errors."""


# ─── Configuration Errors ─────────────────────────────────────


class ConfigError(StrideError):
    """Invalid configuration."""


# ─── Request Errors ───────────────────────────────────────────


class AuthError(StrideError):
    """Authentication or session failure."""


class ValidationError(StrideError):
    """A single input field failed validation.

    ``field`` names the offending form field so callers can render
    the message inline next to it.
    """

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(message)


class NotFoundError(StrideError):
    """Requested row does not exist."""


class PermissionDeniedError(StrideError):
    """Authenticated user may not perform this action."""


# ─── Storage Errors ───────────────────────────────────────────


class StorageError(StrideError):
    """Database layer error."""


class ConstraintViolationError(StorageError):
    """A database integrity constraint rejected the write."""


class ForeignKeyViolationError(ConstraintViolationError):
    """Referenced row is missing (e.g. voting on a deleted message)."""


class UniqueViolationError(ConstraintViolationError):
    """Row conflicts with an existing unique key."""


# ─── Domain Errors ────────────────────────────────────────────


class VoteError(StrideError):
    """A vote could not be persisted; the optimistic change was undone."""


class UploadError(StrideError):
    """Object storage rejected or failed an upload."""


class PaymentsError(StrideError):
    """Payments provider call failed."""

    def __init__(self, provider_id: str, message: str) -> None:
        self.provider_id = provider_id
        super().__init__(f"[{provider_id}] {message}")
