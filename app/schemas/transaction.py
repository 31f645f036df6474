"""Pydantic schemas for purchase transactions."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.services.phone import SUPPORTED_NETWORKS, normalize_network


class TransactionCreate(BaseModel):
    """Request body for starting a purchase."""

    phone_number: str = Field(
        ...,
        min_length=1,
        max_length=20,
        description="Recipient number: 0803..., 234803..., +234803... or 803...",
    )
    network: str = Field(
        ...,
        description="mtn | airtel | glo | 9mobile",
    )
    data_plan_id: UUID
    amount: Decimal = Field(
        ...,
        gt=0,
        max_digits=10,
        decimal_places=2,
        description="Must equal the plan's current price",
    )

    @field_validator("network")
    @classmethod
    def check_network(cls, value: str) -> str:
        network = normalize_network(value)
        if network is None:
            raise ValueError(
                f"Unsupported network '{value}'. "
                f"Supported: {', '.join(SUPPORTED_NETWORKS)}"
            )
        return network


class TransactionResponse(BaseModel):
    """Full transaction record."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    phone_number: str
    network: str
    data_plan_id: UUID
    data_plan_name: str
    amount: Decimal
    status: str
    payment_reference: Optional[str] = None
    provider_reference: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TransactionStatusResponse(BaseModel):
    """Projection returned to a polling client."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    status: str
    network: str
    phone_number: str
    data_plan_name: str
    amount: Decimal
    payment_reference: Optional[str] = None
    provider_reference: Optional[str] = None
    provider_response: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PurchaseResponse(BaseModel):
    """Result of a synchronous delivery or a retry."""

    success: bool
    transaction_id: str
    status: Optional[str] = None
    provider_reference: Optional[str] = None
    message: str
    provider_response: Optional[dict[str, Any]] = None
