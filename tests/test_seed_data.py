"""Tests for the catalogue seeding script."""

from __future__ import annotations

from decimal import Decimal

from app.models.plan import DataPlan
from app.models.provider import DataProvider, ProviderPlanMapping
from scripts.seed_data import GLADTIDINGS_PLANS, seed_database


def test_seed_creates_provider_plans_and_mappings(db_session):
    summary = seed_database(db_session)

    assert summary["plans"] == len(GLADTIDINGS_PLANS)
    assert summary["networks"] == {"mtn": 8, "glo": 4, "airtel": 7, "9mobile": 5}

    provider = db_session.query(DataProvider).one()
    assert provider.name == "gladtidings"
    assert provider.is_active is True

    assert db_session.query(DataPlan).count() == len(GLADTIDINGS_PLANS)
    assert db_session.query(ProviderPlanMapping).count() == len(GLADTIDINGS_PLANS)


def test_mtn_2gb_plan(db_session):
    seed_database(db_session)

    plan = (
        db_session.query(DataPlan)
        .filter(DataPlan.network == "mtn")
        .filter(DataPlan.plan_name == "2 GB SME")
        .filter(DataPlan.validity == "30 days")
        .one()
    )
    assert plan.price == Decimal("1498.00")
    assert plan.cost_price == Decimal("1448.00")

    mapping = plan.mappings[0]
    assert mapping.provider_plan_id == "167"
    assert mapping.provider_network_id == "1"
    assert mapping.provider_metadata["resell_amount"] == "1498.00"


def test_seed_is_idempotent(db_session):
    seed_database(db_session)
    seed_database(db_session)

    assert db_session.query(DataProvider).count() == 1
    assert db_session.query(DataPlan).count() == len(GLADTIDINGS_PLANS)
    assert db_session.query(ProviderPlanMapping).count() == len(GLADTIDINGS_PLANS)


def test_9mobile_uses_network_code_4(db_session):
    seed_database(db_session)
    codes = {
        m.provider_network_id
        for m in db_session.query(ProviderPlanMapping)
        .join(DataPlan, ProviderPlanMapping.data_plan_id == DataPlan.id)
        .filter(DataPlan.network == "9mobile")
    }
    assert codes == {"4"}
