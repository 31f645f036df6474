"""API tests for the data plan catalogue endpoint."""

from __future__ import annotations

from conftest import create_plan


def test_list_plans_empty(client):
    """GET /api/v1/data-plans/mtn returns an empty list when nothing is seeded."""
    response = client.get("/api/v1/data-plans/mtn")
    assert response.status_code == 200
    assert response.json() == {"network": "mtn", "plans": []}


def test_list_plans_filters_network_and_availability(client, db_session):
    cheap = create_plan(db_session, data_amount="1 GB", price="670.00", validity="7 days")
    create_plan(db_session, data_amount="2 GB", price="1498.00")
    create_plan(db_session, data_amount="6 GB", price="2462.00", is_available=False)
    create_plan(db_session, network="glo", data_amount="750 MB", price="246.00")

    response = client.get("/api/v1/data-plans/mtn")
    assert response.status_code == 200
    data = response.json()
    assert data["network"] == "mtn"
    assert [p["plan_name"] for p in data["plans"]] == ["1 GB SME", "2 GB SME"]

    first = data["plans"][0]
    assert first["id"] == str(cheap.id)
    assert first["data_amount"] == "1 GB"
    assert first["validity"] == "7 days"
    assert float(first["price"]) == 670.0


def test_network_is_case_insensitive(client, db_session):
    create_plan(db_session, network="9mobile", data_amount="500 MB", price="170.00")
    response = client.get("/api/v1/data-plans/9MOBILE")
    assert response.status_code == 200
    assert response.json()["network"] == "9mobile"
    assert len(response.json()["plans"]) == 1


def test_invalid_network(client):
    response = client.get("/api/v1/data-plans/etisalat")
    assert response.status_code == 400
    data = response.json()
    assert data["code"] == "invalid_network"
    assert "etisalat" in data["detail"]
