"""Typed error taxonomy shared by the service, consumer and intake API.

Every error carries a `kind` tag. The consumer decides retry/ack disposition
from the tag alone; the API renders `code`/`message`/`description`.
"""

from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    PERSISTENCE = "PERSISTENCE"
    INFRASTRUCTURE = "INFRASTRUCTURE"


RETRYABLE_KINDS = frozenset({ErrorKind.PERSISTENCE, ErrorKind.INFRASTRUCTURE})


class PaymentError(Exception):
    """Base class for all domain errors raised by payproc."""

    kind: ErrorKind
    code: int

    def __init__(self, message: str, description: str = "", params: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.description = description
        self.params = params or {}

    def __str__(self) -> str:
        text = f"{self.kind.value}: {self.message}"
        if self.description:
            text = f"{text} ({self.description})"
        if self.__cause__ is not None:
            text = f"{text} cause={self.__cause__}"
        return text

    def to_payload(self) -> dict:
        """Stable structure returned to intake callers."""

        payload = {"code": self.code, "message": self.message, "description": self.description}
        if self.params:
            payload["params"] = self.params
        return payload


class ValidationError(PaymentError):
    """Malformed identifier or request. Never retried."""

    kind = ErrorKind.VALIDATION
    code = 400


class NotFoundError(PaymentError):
    kind = ErrorKind.NOT_FOUND
    code = 404


class ConflictError(PaymentError):
    """Duplicate reference on create."""

    kind = ErrorKind.CONFLICT
    code = 409


class PersistenceError(PaymentError):
    """Store I/O failure. Retryable."""

    kind = ErrorKind.PERSISTENCE
    code = 500


class InfrastructureError(PaymentError):
    """Broker or processing-provider failure. Retryable."""

    kind = ErrorKind.INFRASTRUCTURE
    code = 503


def is_retryable(exc: BaseException | None) -> bool:
    """True only for persistence/infrastructure-class failures."""

    if not isinstance(exc, PaymentError):
        return False
    return exc.kind in RETRYABLE_KINDS
