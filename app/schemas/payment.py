"""Pydantic schemas for payment initiation."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field


class PaymentInitRequest(BaseModel):
    """Request body for starting a hosted checkout."""

    transaction_id: UUID
    customer_email: str = Field(
        ...,
        min_length=3,
        max_length=255,
        pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$",
    )
    customer_name: str = Field("Customer", max_length=100)


class PaymentInitResponse(BaseModel):
    payment_id: UUID
    payment_url: str
    payment_reference: str
    ercaspay_reference: str
    amount: Decimal
    currency: str
