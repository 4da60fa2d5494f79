"""API request/response schemas for payment endpoints."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from payproc.common.state_machine import PaymentStatus
from payproc.services.payments.models import Currency


class PaymentCreateRequest(BaseModel):
    """Payment creation payload accepted from intake callers."""

    amount: Decimal = Field(ge=Decimal("0.01"), max_digits=18, decimal_places=2)
    currency: Currency
    reference: str = Field(min_length=1)


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    amount: Decimal
    currency: Currency
    reference: str
    status: PaymentStatus
    created_at: datetime | None = None
    updated_at: datetime | None = None
