"""Webhook model - audit trail of every inbound callback."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class WebhookStatus:
    RECEIVED = "received"
    PROCESSED = "processed"
    FAILED = "failed"


class Webhook(Base):
    """One callback received from ErcasPay or GladTidings.

    Used for idempotency (a ``processed`` row for a reference means the
    callback was already applied) and for diagnostics.  Never drives
    business state on its own.
    """

    __tablename__ = "webhooks"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    source: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="ercaspay | gladtidings",
    )
    event_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )
    reference_id: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    transaction_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("transactions.id"),
        nullable=True,
    )
    payload: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=True,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=WebhookStatus.RECEIVED,
        comment="received | processed | failed",
    )
    error_message: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )

    __table_args__ = (
        Index("ix_webhooks_source_reference", "source", "reference_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Webhook(source={self.source!r}, reference_id={self.reference_id!r}, "
            f"status={self.status!r})>"
        )
