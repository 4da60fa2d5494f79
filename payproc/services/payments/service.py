"""Payment business logic.

Creates payments once per reference, fetches them, and drives the idempotent
PENDING -> SUCCESS/FAILED transition under a row lock. Every failure surfaces
as a typed `PaymentError`; the queue consumer decides what to do with it.
"""

from time import perf_counter
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from payproc.common.errors import (
    ConflictError,
    InfrastructureError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from payproc.common.logging import logger
from payproc.common.metrics import (
    duplicate_deliveries_skipped_total,
    payment_failure_total,
    payment_success_total,
    payments_created_total,
    processing_duration_seconds,
    publish_failures_total,
)
from payproc.common.state_machine import PaymentStatus, is_terminal, validate_transition
from payproc.services.payments import repository
from payproc.services.payments.models import Payment
from payproc.services.payments.processor import PaymentProcessor
from payproc.services.payments.schemas import PaymentCreateRequest


def canonical_payment_id(raw: str) -> str:
    """Normalize an identifier to lowercase hyphenated UUID form."""

    try:
        return str(UUID(raw))
    except (TypeError, ValueError, AttributeError) as exc:
        raise ValidationError(
            "Invalid payment ID format",
            "The provided payment ID is not a valid UUID format",
        ) from exc


class PaymentService:
    """Owns payment creation and the processing state transition."""

    def __init__(
        self,
        session_factory,
        processor: PaymentProcessor | None = None,
        publisher=None,
        service_name: str = "payproc",
    ) -> None:
        self.session_factory = session_factory
        self.processor = processor
        self.publisher = publisher
        self.service_name = service_name

    async def create_payment(self, req: PaymentCreateRequest) -> Payment:
        """Persist one PENDING payment per reference and enqueue its processing.

        A publish failure is logged and swallowed: the payment stays PENDING
        and is not re-published automatically.
        """

        with self.session_factory() as db:
            try:
                existing = repository.get_payment_by_reference(db, req.reference)
                if existing is not None:
                    raise ConflictError(
                        "Payment with this reference already exists",
                        "A payment with the same reference has already been created",
                        {"reference": req.reference},
                    )
                payment = repository.create_payment(db, req.amount, req.currency, req.reference)
                db.commit()
                db.refresh(payment)
            except IntegrityError as exc:
                db.rollback()
                raise ConflictError(
                    "Payment with this reference already exists",
                    "A payment with the same reference was created concurrently",
                    {"reference": req.reference},
                ) from exc
            except SQLAlchemyError as exc:
                db.rollback()
                raise PersistenceError("Failed to create payment", str(exc)) from exc

        payments_created_total.labels(service=self.service_name).inc()
        logger.info("payment_created payment_id=%s reference=%s", payment.id, payment.reference)

        if self.publisher is not None:
            try:
                await self.publisher.publish(payment.id)
            except InfrastructureError as exc:
                # No outbox: this payment stays PENDING until re-published by hand.
                publish_failures_total.labels(
                    service=self.service_name,
                    queue=getattr(self.publisher, "queue_name", ""),
                ).inc()
                logger.exception("publish_failed payment_id=%s error=%s", payment.id, exc)
        return payment

    def get_payment(self, payment_id: str) -> Payment:
        canonical_id = canonical_payment_id(payment_id)
        with self.session_factory() as db:
            try:
                payment = repository.get_payment(db, canonical_id)
            except SQLAlchemyError as exc:
                raise PersistenceError(
                    "Failed to fetch payment",
                    "Error occurred while retrieving payment information",
                ) from exc
        if payment is None:
            raise NotFoundError("Payment not found", "The specified payment could not be found")
        return payment

    def process_payment(self, payment_id: str) -> None:
        """Move one PENDING payment to its terminal status exactly once.

        Blocking: the row lock is held for the whole effect, so a concurrent
        call for the same id waits here and then observes the terminal status.
        Already-terminal payments return without running the effect.
        """

        if self.processor is None:
            raise InfrastructureError("No payment processor configured", f"service={self.service_name}")
        canonical_id = canonical_payment_id(payment_id)
        start = perf_counter()
        with self.session_factory() as db:
            try:
                payment = repository.get_payment_for_update(db, canonical_id)
            except SQLAlchemyError as exc:
                raise PersistenceError(
                    "Failed to fetch payment",
                    "Error occurred while retrieving payment information",
                ) from exc
            if payment is None:
                raise NotFoundError("Payment not found", "The specified payment could not be found")

            if is_terminal(payment.status):
                logger.info(
                    "payment_already_processed payment_id=%s status=%s",
                    canonical_id,
                    payment.status.value,
                )
                duplicate_deliveries_skipped_total.labels(service=self.service_name).inc()
                return

            try:
                new_status = self.processor.process(payment)
            except Exception as exc:
                raise InfrastructureError(
                    "Payment processing effect failed",
                    f"payment_id={canonical_id}",
                ) from exc
            try:
                validate_transition(payment.status, new_status)
            except ValueError as exc:
                raise InfrastructureError(
                    "Payment processing effect returned an invalid status",
                    str(exc),
                ) from exc

            try:
                updated = repository.update_payment_status(db, canonical_id, new_status)
                if updated != 1:
                    raise PersistenceError(
                        "Failed to update payment status",
                        f"expected one row, updated {updated}",
                    )
                db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                raise PersistenceError(
                    "Failed to update payment status",
                    "Error occurred while updating payment status in the database",
                ) from exc

        processing_duration_seconds.labels(service=self.service_name).observe(
            max(0.0, perf_counter() - start)
        )
        if new_status == PaymentStatus.SUCCESS:
            payment_success_total.labels(service=self.service_name).inc()
        else:
            payment_failure_total.labels(service=self.service_name).inc()
        logger.info("payment_processed payment_id=%s status=%s", canonical_id, new_status.value)
