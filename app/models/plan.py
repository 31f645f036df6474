"""Data plan model - the provider-agnostic catalogue."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, Index, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


class DataPlan(Base):
    """A data bundle offered to customers on one network.

    ``price`` is what the customer pays; ``cost_price`` is what the
    aggregator charges us.  Only plans with ``is_available`` set can be
    picked for a new transaction.
    """

    __tablename__ = "data_plans"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    network: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="mtn | airtel | glo | 9mobile",
    )
    plan_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    data_amount: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="Human readable size, e.g. '2 GB'",
    )
    price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
    )
    cost_price: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(10, 2),
        nullable=True,
    )
    validity: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )
    plan_type: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="SME | Corporate Gifting | ...",
    )
    is_available: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        onupdate=func.now(),
    )

    # -- Relationships --
    mappings: Mapped[list[ProviderPlanMapping]] = relationship(
        "ProviderPlanMapping",
        lazy="select",
    )

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_data_plans_price_non_negative"),
        Index("ix_data_plans_network_available", "network", "is_available"),
    )

    def __repr__(self) -> str:
        return (
            f"<DataPlan(network={self.network!r}, plan_name={self.plan_name!r}, "
            f"price={self.price})>"
        )
