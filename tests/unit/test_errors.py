"""Tests for the core error hierarchy."""

from stride.core.errors import (
    AuthError,
    ConfigError,
    ConstraintViolationError,
    ForeignKeyViolationError,
    NotFoundError,
    PaymentsError,
    PermissionDeniedError,
    StorageError,
    StrideError,
    UniqueViolationError,
    UploadError,
    ValidationError,
    VoteError,
)


class TestHierarchy:
    """All errors inherit from StrideError."""

    def test_request_errors_are_stride_errors(self):
        for err in (
            AuthError("no session"),
            NotFoundError("gone"),
            PermissionDeniedError("nope"),
            ConfigError("bad config"),
            VoteError("failed"),
            UploadError("too big"),
        ):
            assert isinstance(err, StrideError)

    def test_constraint_violations_are_storage_errors(self):
        for err in (ForeignKeyViolationError("fk"), UniqueViolationError("dup")):
            assert isinstance(err, ConstraintViolationError)
            assert isinstance(err, StorageError)
            assert isinstance(err, StrideError)

    def test_foreign_key_is_not_unique(self):
        assert not isinstance(ForeignKeyViolationError("fk"), UniqueViolationError)

    def test_no_shadow_builtin_memory_error(self):
        assert not isinstance(StorageError("db"), MemoryError)


class TestValidationError:
    """ValidationError carries the offending form field."""

    def test_field_and_message(self):
        err = ValidationError("email", "Email is required")
        assert err.field == "email"
        assert err.message == "Email is required"
        assert str(err) == "Email is required"

    def test_is_not_pydantic_error(self):
        from pydantic import ValidationError as PydanticValidationError

        assert not isinstance(ValidationError("f", "m"), PydanticValidationError)


class TestPaymentsError:
    """PaymentsError carries provider_id and formats messages."""

    def test_provider_id_attribute(self):
        err = PaymentsError("stripe", "card declined")
        assert err.provider_id == "stripe"

    def test_message_format(self):
        err = PaymentsError("stripe", "timeout")
        assert str(err) == "[stripe] timeout"
