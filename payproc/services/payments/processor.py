"""Processing effect applied to a PENDING payment.

The service depends only on the `PaymentProcessor` protocol so the effect can
be swapped (real provider, simulator, deterministic test double).
"""

import random
import time
from typing import Protocol

from payproc.common.state_machine import PaymentStatus
from payproc.services.payments.models import Payment


class PaymentProcessor(Protocol):
    def process(self, payment: Payment) -> PaymentStatus:
        """Run the effect and return the terminal status to record."""
        ...


class SimulatedPaymentProcessor:
    """Provider simulation: fixed latency, random SUCCESS/FAILED outcome."""

    def __init__(
        self,
        latency_seconds: float = 2.0,
        failure_rate: float = 0.3,
        rng: random.Random | None = None,
    ) -> None:
        self.latency_seconds = latency_seconds
        self.failure_rate = failure_rate
        self.rng = rng or random.Random()

    def process(self, payment: Payment) -> PaymentStatus:
        if self.latency_seconds:
            time.sleep(self.latency_seconds)
        if self.rng.random() < self.failure_rate:
            return PaymentStatus.FAILED
        return PaymentStatus.SUCCESS
