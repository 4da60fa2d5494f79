"""Store access for the `payments` table.

Helpers take an open session and never commit; transaction boundaries belong
to the caller.
"""

from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from payproc.common.state_machine import PaymentStatus
from payproc.services.payments.models import Currency, Payment


def get_payment(db: Session, payment_id: str) -> Payment | None:
    return db.get(Payment, payment_id)


def get_payment_by_reference(db: Session, reference: str) -> Payment | None:
    return db.execute(select(Payment).where(Payment.reference == reference)).scalar_one_or_none()


def get_payment_for_update(db: Session, payment_id: str) -> Payment | None:
    """Read one payment with a row lock held until the transaction ends.

    Concurrent lockers of the same row block here instead of racing.
    """

    return db.execute(
        select(Payment).where(Payment.id == payment_id).with_for_update()
    ).scalar_one_or_none()


def update_payment_status(db: Session, payment_id: str, status: PaymentStatus) -> int:
    """Write a new status; returns the number of rows updated."""

    result = db.execute(
        update(Payment)
        .where(Payment.id == payment_id)
        .values(status=status)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def create_payment(db: Session, amount: Decimal, currency: Currency, reference: str) -> Payment:
    payment = Payment(amount=amount, currency=currency, reference=reference, status=PaymentStatus.PENDING)
    db.add(payment)
    db.flush()
    return payment
