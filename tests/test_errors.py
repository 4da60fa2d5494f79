"""Retry classification keys off the error kind, not a status code."""

from sqlalchemy.exc import OperationalError

from payproc.common.errors import (
    ConflictError,
    ErrorKind,
    InfrastructureError,
    NotFoundError,
    PersistenceError,
    ValidationError,
    is_retryable,
)


def test_infrastructure_class_errors_are_retryable():
    assert is_retryable(PersistenceError("store down"))
    assert is_retryable(InfrastructureError("broker down"))


def test_domain_errors_are_not_retryable():
    assert not is_retryable(ValidationError("bad id"))
    assert not is_retryable(NotFoundError("missing"))
    assert not is_retryable(ConflictError("duplicate"))


def test_foreign_exceptions_are_not_retryable():
    """Raw driver errors must be wrapped by the service before they count."""

    assert not is_retryable(OperationalError("SELECT 1", {}, Exception("db down")))
    assert not is_retryable(RuntimeError("boom"))
    assert not is_retryable(None)


def test_error_payload_and_message():
    exc = NotFoundError("Payment not found", "The specified payment could not be found")

    assert exc.kind is ErrorKind.NOT_FOUND
    assert exc.to_payload() == {
        "code": 404,
        "message": "Payment not found",
        "description": "The specified payment could not be found",
    }
    assert "NOT_FOUND" in str(exc)


def test_error_str_includes_cause():
    try:
        try:
            raise OSError("connection refused")
        except OSError as cause:
            raise PersistenceError("Failed to fetch payment") from cause
    except PersistenceError as exc:
        assert "connection refused" in str(exc)
