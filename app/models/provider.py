"""Data provider models - upstream aggregators and their plan identifiers."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


class DataProvider(Base):
    """A configured upstream telecom aggregator (e.g. GladTidings).

    ``name`` is the stable key used to pick the adapter client; ``priority``
    orders providers when a plan is mapped to more than one.
    """

    __tablename__ = "data_providers"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        comment="gladtidings | vtpass | clubkonnect",
    )
    display_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    base_url: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    api_key: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    config: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )
    priority: Mapped[int] = mapped_column(
        Integer,
        default=1,
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

    def __repr__(self) -> str:
        return (
            f"<DataProvider(name={self.name!r}, is_active={self.is_active}, "
            f"priority={self.priority})>"
        )


class ProviderPlanMapping(Base):
    """Links a catalogue plan to a provider's own plan identifier."""

    __tablename__ = "provider_plan_mappings"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    data_plan_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("data_plans.id"),
        nullable=False,
        index=True,
    )
    data_provider_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("data_providers.id"),
        nullable=False,
    )
    provider_plan_id: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    provider_network_id: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
    )
    provider_metadata: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(
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
    provider: Mapped[DataProvider] = relationship(
        "DataProvider",
        lazy="joined",
    )

    def __repr__(self) -> str:
        return (
            f"<ProviderPlanMapping(data_plan_id={self.data_plan_id!r}, "
            f"provider_plan_id={self.provider_plan_id!r})>"
        )
