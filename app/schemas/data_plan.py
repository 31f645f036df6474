"""Pydantic schemas for the data plan catalogue."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class DataPlanResponse(BaseModel):
    """One plan as shown to the customer."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    network: str
    plan_name: str
    data_amount: str
    price: Decimal
    validity: str
    plan_type: Optional[str] = None


class DataPlanList(BaseModel):
    network: str
    plans: list[DataPlanResponse]
