"""Transaction model - one end-to-end purchase attempt (payment + delivery)."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class TransactionStatus:
    """Values stored in ``transactions.status``."""

    PENDING = "pending"
    PAYMENT_COMPLETED = "payment_completed"
    PAYMENT_FAILED = "payment_failed"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    ALL = (
        PENDING,
        PAYMENT_COMPLETED,
        PAYMENT_FAILED,
        PROCESSING,
        COMPLETED,
        FAILED,
    )


class Transaction(Base):
    """Root aggregate of a purchase.

    Created as ``pending`` by the API; moved forward only by the purchase
    orchestrator and the webhook receiver through conditional updates
    (see ``app.services.purchase.state``).
    """

    __tablename__ = "transactions"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    phone_number: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )
    network: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )
    data_plan_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("data_plans.id"),
        nullable=False,
    )
    data_plan_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=TransactionStatus.PENDING,
        comment=(
            "pending | payment_completed | payment_failed "
            "| processing | completed | failed"
        ),
    )
    payment_reference: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
    )
    data_provider_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("data_providers.id"),
        nullable=True,
    )
    provider_reference: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        index=True,
    )
    provider_response: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (Index("ix_transactions_status", "status"),)

    def __repr__(self) -> str:
        return (
            f"<Transaction(id={self.id!r}, network={self.network!r}, "
            f"status={self.status!r})>"
        )
