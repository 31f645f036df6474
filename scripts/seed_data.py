#!/usr/bin/env python3
"""
Seed the DataVend database with the GladTidings provider and plan catalogue.

Creates (or updates):
  - the ``gladtidings`` row in data_providers
  - one data_plans row per GladTidings plan (customer price = resell amount)
  - one provider_plan_mappings row linking each plan to its GladTidings id

Safe to run repeatedly: plans are matched on (network, plan_name, validity)
and mappings on (plan, provider), so a second run only refreshes prices.
"""

from __future__ import annotations

import os
import sys
from decimal import Decimal
from pathlib import Path
from typing import Any

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from sqlalchemy.orm import Session  # noqa: E402

from app.core.config import settings  # noqa: E402
from app.core.database import Base, SessionLocal, engine  # noqa: E402
from app.core.logging import get_logger, setup_logging  # noqa: E402
from app.models.plan import DataPlan  # noqa: E402
from app.models.provider import DataProvider, ProviderPlanMapping  # noqa: E402
from app.services.providers.gladtidings import NETWORK_IDS  # noqa: E402

logger = get_logger(__name__)

# ---------------------------------------------------------------------------
# Catalogue
# ---------------------------------------------------------------------------
PROVIDER_NAME = "gladtidings"

# (provider plan id, network, data amount, validity, original, api, resell)
GLADTIDINGS_PLANS: list[tuple[str, str, str, str, str, str, str]] = [
    # MTN
    ("167", "mtn", "2 GB", "30 days", "1448.00", "1448.00", "1498.00"),
    ("168", "mtn", "3.5 GB", "30 days", "2412.00", "2407.00", "2457.00"),
    ("169", "mtn", "6 GB", "7 days", "2412.00", "2412.00", "2462.00"),
    ("486", "mtn", "1 GB", "7 days", "750.00", "620.00", "670.00"),
    ("506", "mtn", "2 GB", "7 days", "2400.00", "2400.00", "2450.00"),
    ("528", "mtn", "500 MB", "7 days", "485.00", "480.00", "530.00"),
    ("539", "mtn", "10 GB", "30 days", "4943.00", "4943.00", "4993.00"),
    ("649", "mtn", "1 GB", "30 days", "750.00", "740.00", "790.00"),
    # Glo
    ("491", "glo", "750 MB", "1 day", "196.00", "196.00", "246.00"),
    ("492", "glo", "1.5 GB", "1 day", "290.00", "290.00", "340.00"),
    ("493", "glo", "2.5 GB", "2 days", "478.00", "478.00", "528.00"),
    ("494", "glo", "10 GB", "7 days", "1888.00", "1888.00", "1938.00"),
    # Airtel
    ("476", "airtel", "150 MB", "1 day", "58.00", "55.00", "105.00"),
    ("477", "airtel", "300 MB", "2 days", "105.00", "100.00", "150.00"),
    ("478", "airtel", "600 MB", "2 days", "210.00", "205.00", "255.00"),
    ("481", "airtel", "3 GB", "2 days", "980.00", "980.00", "1030.00"),
    ("482", "airtel", "7 GB", "7 days", "2010.00", "2010.00", "2060.00"),
    ("483", "airtel", "10 GB", "30 days", "3010.00", "3010.00", "3060.00"),
    ("534", "airtel", "10 GB", "30 days", "4875.00", "4875.00", "4925.00"),
    # 9mobile
    ("344", "9mobile", "500 MB", "30 days", "125.00", "120.00", "170.00"),
    ("346", "9mobile", "3.5 GB", "30 days", "875.00", "840.00", "890.00"),
    ("349", "9mobile", "7 GB", "30 days", "1680.00", "1400.00", "1450.00"),
    ("350", "9mobile", "15 GB", "30 days", "3000.00", "3000.00", "3050.00"),
    ("499", "9mobile", "250 MB", "14 days", "75.00", "75.00", "125.00"),
]

PLAN_TYPE = "SME"


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------
def _upsert_provider(db: Session) -> DataProvider:
    provider = db.query(DataProvider).filter(DataProvider.name == PROVIDER_NAME).first()
    if provider is None:
        provider = DataProvider(name=PROVIDER_NAME)
        db.add(provider)

    provider.display_name = "GladTidings Data"
    provider.base_url = settings.gladtidings_base_url
    provider.api_key = settings.gladtidings_api_key or None
    provider.config = {"timeout_seconds": settings.gladtidings_timeout_seconds}
    provider.is_active = True
    provider.priority = 1
    db.flush()
    return provider


def _upsert_plan(
    db: Session, network: str, data_amount: str, validity: str, price: Decimal, cost: Decimal
) -> DataPlan:
    plan_name = f"{data_amount} {PLAN_TYPE}"
    # Two airtel "10 GB SME 30 days" plans exist at different prices
    plan = (
        db.query(DataPlan)
        .filter(DataPlan.network == network)
        .filter(DataPlan.plan_name == plan_name)
        .filter(DataPlan.validity == validity)
        .filter(DataPlan.cost_price == cost)
        .first()
    )
    if plan is None:
        plan = DataPlan(
            network=network,
            plan_name=plan_name,
            data_amount=data_amount,
            validity=validity,
            plan_type=PLAN_TYPE,
        )
        db.add(plan)

    plan.price = price
    plan.cost_price = cost
    plan.is_available = True
    db.flush()
    return plan


def seed_database(db: Session) -> dict[str, Any]:
    """Insert or refresh the provider, plans and mappings.

    Returns:
        Counts of what was written, keyed by ``plans`` and ``mappings`` plus a
        per-network plan count under ``networks``.
    """
    provider = _upsert_provider(db)
    networks: dict[str, int] = {}
    mappings = 0

    for provider_plan_id, network, data_amount, validity, original, api, resell in GLADTIDINGS_PLANS:
        plan = _upsert_plan(db, network, data_amount, validity, Decimal(resell), Decimal(api))

        mapping = (
            db.query(ProviderPlanMapping)
            .filter(ProviderPlanMapping.data_plan_id == plan.id)
            .filter(ProviderPlanMapping.data_provider_id == provider.id)
            .first()
        )
        if mapping is None:
            mapping = ProviderPlanMapping(data_plan_id=plan.id, data_provider_id=provider.id)
            db.add(mapping)

        mapping.provider_plan_id = provider_plan_id
        mapping.provider_network_id = str(NETWORK_IDS[network])
        mapping.provider_metadata = {
            "original_amount": original,
            "api_amount": api,
            "resell_amount": resell,
            "plan_type": PLAN_TYPE,
        }
        mapping.is_active = True

        networks[network] = networks.get(network, 0) + 1
        mappings += 1

    db.commit()
    logger.info("Seeded provider %s with %d plans", PROVIDER_NAME, mappings)
    return {"plans": len(GLADTIDINGS_PLANS), "mappings": mappings, "networks": networks}


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def main() -> None:
    setup_logging(os.environ.get("LOG_LEVEL", settings.log_level))
    Base.metadata.create_all(bind=engine)

    print("=" * 70)
    print("DataVend - Catalogue Seeder")
    print("=" * 70)

    db = SessionLocal()
    try:
        summary = seed_database(db)
    finally:
        db.close()

    print(f"  Provider : {PROVIDER_NAME}")
    print(f"  Plans    : {summary['plans']}")
    print(f"  Mappings : {summary['mappings']}")
    for network, count in summary["networks"].items():
        print(f"    - {network.upper()}: {count} plans")
    print("\nDone.")


if __name__ == "__main__":
    main()
