"""API tests for transaction creation, status polling, delivery and retry."""

from __future__ import annotations

import uuid

from app.models.transaction import Transaction, TransactionStatus
from conftest import (
    create_mapping,
    create_plan,
    create_provider,
    create_transaction,
    make_receipt,
    provider_error,
    reload,
)


def _create_body(plan, **overrides):
    body = {
        "phone_number": "08031234567",
        "network": "mtn",
        "data_plan_id": str(plan.id),
        "amount": "1498.00",
    }
    body.update(overrides)
    return body


# ── POST /transactions ───────────────────────────────────────────────


class TestCreateTransaction:
    def test_creates_pending_transaction(self, client, db_session, catalog):
        plan = catalog["plan"]
        response = client.post("/api/v1/transactions", json=_create_body(plan))

        assert response.status_code == 201, response.text
        data = response.json()
        assert data["status"] == "pending"
        assert data["network"] == "mtn"
        assert data["phone_number"] == "08031234567"
        assert data["data_plan_name"] == "2 GB SME"
        assert float(data["amount"]) == 1498.0
        assert data["provider_reference"] is None
        assert data["payment_reference"] is None

        txn = reload(db_session, Transaction, uuid.UUID(data["id"]))
        assert txn.status == TransactionStatus.PENDING

    def test_phone_is_stored_normalized(self, client, catalog):
        body = _create_body(catalog["plan"], phone_number="+234 803 123 4567")
        response = client.post("/api/v1/transactions", json=body)
        assert response.status_code == 201
        assert response.json()["phone_number"] == "08031234567"

    def test_network_mismatch_names_detected_network(self, client, db_session):
        plan = create_plan(db_session, network="airtel", data_amount="3 GB", price="1030.00")
        body = _create_body(plan, network="airtel", amount="1030.00")

        response = client.post("/api/v1/transactions", json=body)

        assert response.status_code == 400
        data = response.json()
        assert data["code"] == "network_mismatch"
        assert data["detected_network"] == "mtn"
        assert "MTN" in data["detail"]
        assert db_session.query(Transaction).count() == 0

    def test_invalid_phone_format(self, client, catalog):
        body = _create_body(catalog["plan"], phone_number="12345")
        response = client.post("/api/v1/transactions", json=body)
        assert response.status_code == 400
        assert response.json()["code"] == "invalid_phone_format"

    def test_unsupported_network_is_validation_error(self, client, catalog):
        body = _create_body(catalog["plan"], network="etisalat")
        response = client.post("/api/v1/transactions", json=body)
        assert response.status_code == 400
        data = response.json()
        assert data["code"] == "validation_error"
        assert data["errors"]

    def test_missing_field_is_validation_error(self, client, catalog):
        body = _create_body(catalog["plan"])
        del body["amount"]
        response = client.post("/api/v1/transactions", json=body)
        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"

    def test_unknown_plan(self, client):
        body = {
            "phone_number": "08031234567",
            "network": "mtn",
            "data_plan_id": str(uuid.uuid4()),
            "amount": "1498.00",
        }
        response = client.post("/api/v1/transactions", json=body)
        assert response.status_code == 404
        assert response.json()["code"] == "plan_not_found"

    def test_unavailable_plan(self, client, db_session):
        plan = create_plan(db_session, is_available=False)
        response = client.post("/api/v1/transactions", json=_create_body(plan))
        assert response.status_code == 400
        assert response.json()["code"] == "plan_unavailable"

    def test_plan_from_another_network(self, client, db_session):
        plan = create_plan(db_session, network="glo", data_amount="10 GB", price="1938.00")
        body = _create_body(plan, amount="1938.00")
        response = client.post("/api/v1/transactions", json=body)
        assert response.status_code == 400
        assert response.json()["code"] == "plan_network_mismatch"

    def test_amount_must_match_plan_price(self, client, catalog):
        body = _create_body(catalog["plan"], amount="1000.00")
        response = client.post("/api/v1/transactions", json=body)
        assert response.status_code == 400
        assert response.json()["code"] == "amount_mismatch"


# ── GET /transactions/{id}/status ────────────────────────────────────


class TestTransactionStatus:
    def test_returns_projection(self, client, db_session, catalog):
        txn = create_transaction(db_session, catalog["plan"])
        response = client.get(f"/api/v1/transactions/{txn.id}/status")
        assert response.status_code == 200
        data = response.json()
        assert data["id"] == str(txn.id)
        assert data["status"] == "pending"
        assert data["data_plan_name"] == "2 GB SME"

    def test_not_found(self, client):
        response = client.get(f"/api/v1/transactions/{uuid.uuid4()}/status")
        assert response.status_code == 404
        data = response.json()
        assert "not found" in data["detail"].lower()
        assert data["code"] == "transaction_not_found"

    def test_malformed_id(self, client):
        response = client.get("/api/v1/transactions/FAKE-ID/status")
        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"


# ── POST /transactions/{id}/purchase-data ────────────────────────────


class TestPurchaseData:
    def test_delivers_and_completes(self, client, db_session, catalog, provider_client):
        txn = create_transaction(db_session, catalog["plan"])
        provider_client.queue(make_receipt("GT-555"))

        response = client.post(f"/api/v1/transactions/{txn.id}/purchase-data")

        assert response.status_code == 200, response.text
        data = response.json()
        assert data["success"] is True
        assert data["status"] == "completed"
        assert data["provider_reference"] == "GT-555"
        assert data["provider_response"]["Status"] == "successful"

        call = provider_client.calls[0]
        assert call["plan_id"] == "167"
        assert call["network_id"] == "1"
        assert call["phone_number"] == "08031234567"

        stored = reload(db_session, Transaction, txn.id)
        assert stored.status == TransactionStatus.COMPLETED
        assert stored.provider_reference == "GT-555"
        assert stored.data_provider_id == catalog["provider"].id

    def test_completed_transaction_short_circuits(
        self, client, db_session, catalog, provider_client
    ):
        txn = create_transaction(
            db_session,
            catalog["plan"],
            status=TransactionStatus.COMPLETED,
            provider_reference="GT-OLD",
        )

        response = client.post(f"/api/v1/transactions/{txn.id}/purchase-data")

        assert response.status_code == 200
        assert response.json()["provider_reference"] == "GT-OLD"
        assert provider_client.calls == []

    def test_not_found(self, client):
        response = client.post(f"/api/v1/transactions/{uuid.uuid4()}/purchase-data")
        assert response.status_code == 404

    def test_wrong_state_is_conflict(self, client, db_session, catalog, provider_client):
        txn = create_transaction(
            db_session, catalog["plan"], status=TransactionStatus.PAYMENT_FAILED
        )
        response = client.post(f"/api/v1/transactions/{txn.id}/purchase-data")
        assert response.status_code == 409
        data = response.json()
        assert data["code"] == "invalid_state"
        assert data["current_status"] == "payment_failed"
        assert provider_client.calls == []

    def test_missing_mapping(self, client, db_session, provider_client):
        plan = create_plan(db_session)
        txn = create_transaction(db_session, plan)

        response = client.post(f"/api/v1/transactions/{txn.id}/purchase-data")

        assert response.status_code == 400
        assert response.json()["code"] == "mapping_not_found"
        assert reload(db_session, Transaction, txn.id).status == TransactionStatus.FAILED

    def test_inactive_provider(self, client, db_session, provider_client):
        provider = create_provider(db_session, is_active=False)
        plan = create_plan(db_session)
        create_mapping(db_session, plan, provider)
        txn = create_transaction(db_session, plan)

        response = client.post(f"/api/v1/transactions/{txn.id}/purchase-data")

        assert response.status_code == 503
        assert response.json()["code"] == "provider_inactive"
        assert provider_client.calls == []

    def test_provider_failure_is_bad_gateway(
        self, client, db_session, catalog, provider_client
    ):
        txn = create_transaction(db_session, catalog["plan"])
        provider_client.queue(provider_error("timeout", "retryable"))

        response = client.post(f"/api/v1/transactions/{txn.id}/purchase-data")

        assert response.status_code == 502
        data = response.json()
        assert data["code"] == "timeout"
        assert data["can_retry"] is True

        stored = reload(db_session, Transaction, txn.id)
        assert stored.status == TransactionStatus.FAILED
        assert stored.provider_response["error_code"] == "timeout"
        assert stored.provider_response["retryable"] is True

    def test_unexpected_error_hides_details(
        self, client, db_session, catalog, provider_client
    ):
        txn = create_transaction(db_session, catalog["plan"])
        provider_client.queue(RuntimeError("postgres://admin:secret@db/internal"))

        response = client.post(f"/api/v1/transactions/{txn.id}/purchase-data")

        assert response.status_code == 500
        assert response.json() == {
            "detail": "Internal server error",
            "code": "internal_error",
            "can_retry": True,
        }
        assert "secret" not in response.text

        stored = reload(db_session, Transaction, txn.id)
        assert stored.status == TransactionStatus.FAILED
        assert "secret" in stored.provider_response["error"]

    def test_declined_purchase_cannot_be_retried_automatically(
        self, client, db_session, catalog, provider_client
    ):
        txn = create_transaction(db_session, catalog["plan"])
        provider_client.queue(provider_error("purchase_declined", "terminal"))

        response = client.post(f"/api/v1/transactions/{txn.id}/purchase-data")

        assert response.status_code == 502
        assert response.json()["can_retry"] is False


# ── POST /transactions/{id}/retry-data-purchase ──────────────────────


class TestRetryDataPurchase:
    def test_retry_failed_transaction(self, client, db_session, catalog, provider_client):
        txn = create_transaction(db_session, catalog["plan"], status=TransactionStatus.FAILED)
        provider_client.queue(make_receipt("GT-RETRY"))

        response = client.post(f"/api/v1/transactions/{txn.id}/retry-data-purchase")

        assert response.status_code == 200, response.text
        data = response.json()
        assert data["success"] is True
        assert data["status"] == "completed"
        assert data["provider_reference"] == "GT-RETRY"
        assert len(provider_client.calls) == 1

    def test_retry_that_fails_again(self, client, db_session, catalog, provider_client):
        txn = create_transaction(db_session, catalog["plan"], status=TransactionStatus.FAILED)
        provider_client.queue(provider_error("network_error", "retryable"))

        response = client.post(f"/api/v1/transactions/{txn.id}/retry-data-purchase")

        assert response.status_code == 502
        assert response.json()["can_retry"] is True
        assert reload(db_session, Transaction, txn.id).status == TransactionStatus.FAILED

    def test_retry_completed_is_rejected(self, client, db_session, catalog, provider_client):
        txn = create_transaction(
            db_session,
            catalog["plan"],
            status=TransactionStatus.COMPLETED,
            provider_reference="GT-DONE",
        )

        response = client.post(f"/api/v1/transactions/{txn.id}/retry-data-purchase")

        assert response.status_code == 409
        assert response.json()["current_status"] == "completed"
        assert provider_client.calls == []

    def test_retry_pending_is_rejected(self, client, db_session, catalog):
        txn = create_transaction(db_session, catalog["plan"])
        response = client.post(f"/api/v1/transactions/{txn.id}/retry-data-purchase")
        assert response.status_code == 409
        assert response.json()["current_status"] == "pending"

    def test_retry_not_found(self, client):
        response = client.post(f"/api/v1/transactions/{uuid.uuid4()}/retry-data-purchase")
        assert response.status_code == 404
