"""Shared test fixtures for the DataVend API tests.

Uses a SQLite file database so tests run without PostgreSQL, and fake
adapters so nothing talks to ErcasPay or GladTidings.
"""

from __future__ import annotations

import os

# Override settings before importing anything from app: the Settings model
# reads .env eagerly via pydantic-settings, and the module-level ``engine``
# in app.core.database would try to connect to PostgreSQL.
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["APP_ENV"] = "test"
os.environ["ERCASPAY_WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["ERCASPAY_SANDBOX_SECRET_KEY"] = "ECRS-TEST-SK-123"
os.environ["DELIVERY_BACKOFF_SECONDS"] = "0"

import json
from decimal import Decimal
from typing import Any, Optional, Union
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from app.api.deps import (
    get_payment_gateway,
    get_provider_clients,
    get_retry_policy,
    get_session_factory,
)
from app.core.database import Base, get_db
from app.main import app
from app.models.payment import Payment, PaymentStatus
from app.models.plan import DataPlan
from app.models.provider import DataProvider, ProviderPlanMapping
from app.models.transaction import Transaction, TransactionStatus
from app.services.payments.base import PaymentGatewayError, PaymentInitResult
from app.services.payments.ercaspay import ErcasPayClient
from app.services.providers.base import (
    DataProviderClient,
    DataProviderError,
    DataPurchaseReceipt,
)
from app.services.purchase import delivery
from app.services.purchase.delivery import RetryPolicy

# Use SQLite file-based database for tests (no PostgreSQL needed)
TEST_DATABASE_URL = "sqlite:///./test.db"
WEBHOOK_SECRET = "test-webhook-secret"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)


# Enable WAL mode + foreign keys for SQLite
@event.listens_for(engine, "connect")
def _set_sqlite_pragma(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# ── Fake adapters ────────────────────────────────────────────────────


class FakePaymentGateway(ErcasPayClient):
    """ErcasPay client with real webhook signing and canned outbound calls."""

    def __init__(self, webhook_secret: str = WEBHOOK_SECRET) -> None:
        super().__init__(
            base_url="https://ercaspay.test/api/v1",
            secret_key="ECRS-TEST-SK-123",
            webhook_secret=webhook_secret,
            session=MagicMock(),
        )
        self.init_calls: list[dict[str, Any]] = []
        self.next_reference = "ERCS|20240101|0001"
        self.init_error: Optional[PaymentGatewayError] = None
        self.refuse = False

    def initiate_payment(self, **kwargs: Any) -> PaymentInitResult:
        self.init_calls.append(kwargs)
        if self.init_error is not None:
            raise self.init_error
        if self.refuse:
            return PaymentInitResult(
                request_successful=False,
                response_message="Customer email is invalid",
                response_code="failed",
            )
        return PaymentInitResult(
            request_successful=True,
            response_message="success",
            response_code="success",
            checkout_url=f"https://checkout.ercaspay.test/{self.next_reference}",
            transaction_reference=self.next_reference,
        )

    def verify_payment(self, transaction_reference: str) -> dict[str, Any]:
        return {
            "requestSuccessful": True,
            "responseBody": {
                "transactionReference": transaction_reference,
                "status": "SUCCESSFUL",
            },
        }


class FakeProviderClient(DataProviderClient):
    """Records purchase calls and replays queued receipts or errors."""

    provider_name = "gladtidings"

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.outcomes: list[Union[DataPurchaseReceipt, Exception]] = []

    def queue(self, *outcomes: Union[DataPurchaseReceipt, Exception]) -> None:
        self.outcomes.extend(outcomes)

    def purchase_data(
        self,
        network: str,
        phone_number: str,
        plan_id: str,
        transaction_id: str,
        ported_number: Optional[bool] = None,
        ident: Optional[str] = None,
        network_id: Optional[str] = None,
    ) -> DataPurchaseReceipt:
        self.calls.append(
            {
                "network": network,
                "phone_number": phone_number,
                "plan_id": plan_id,
                "transaction_id": transaction_id,
                "ident": ident,
                "network_id": network_id,
            }
        )
        if self.outcomes:
            outcome = self.outcomes.pop(0)
        else:
            outcome = make_receipt(f"GT-{len(self.calls)}")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def make_receipt(reference: str = "GT-1001") -> DataPurchaseReceipt:
    raw = {
        "id": reference,
        "Status": "successful",
        "api_response": "Dear Customer, You have successfully shared 2GB Data",
        "balance_before": "10000.00",
        "balance_after": "8552.00",
    }
    return DataPurchaseReceipt(
        id=reference,
        status="successful",
        api_response=raw["api_response"],
        balance_before=raw["balance_before"],
        balance_after=raw["balance_after"],
        raw=raw,
    )


def provider_error(code: str = "timeout", kind: str = "retryable") -> DataProviderError:
    return DataProviderError(f"GladTidings {code}", code=code, kind=kind)


# ── Data helpers ─────────────────────────────────────────────────────


def create_provider(
    db: Session, name: str = "gladtidings", is_active: bool = True, priority: int = 1
) -> DataProvider:
    provider = DataProvider(
        name=name,
        display_name=name.title(),
        base_url=f"https://{name}.test",
        is_active=is_active,
        priority=priority,
    )
    db.add(provider)
    db.commit()
    return provider


def create_plan(
    db: Session,
    network: str = "mtn",
    data_amount: str = "2 GB",
    price: str = "1498.00",
    validity: str = "30 days",
    is_available: bool = True,
) -> DataPlan:
    plan = DataPlan(
        network=network,
        plan_name=f"{data_amount} SME",
        data_amount=data_amount,
        price=Decimal(price),
        cost_price=Decimal(price) - Decimal("50.00"),
        validity=validity,
        plan_type="SME",
        is_available=is_available,
    )
    db.add(plan)
    db.commit()
    return plan


def create_mapping(
    db: Session,
    plan: DataPlan,
    provider: DataProvider,
    provider_plan_id: str = "167",
    provider_network_id: Optional[str] = "1",
) -> ProviderPlanMapping:
    mapping = ProviderPlanMapping(
        data_plan_id=plan.id,
        data_provider_id=provider.id,
        provider_plan_id=provider_plan_id,
        provider_network_id=provider_network_id,
        is_active=True,
    )
    db.add(mapping)
    db.commit()
    return mapping


def create_transaction(
    db: Session,
    plan: DataPlan,
    status: str = TransactionStatus.PENDING,
    phone_number: str = "08031234567",
    **values: Any,
) -> Transaction:
    txn = Transaction(
        phone_number=phone_number,
        network=plan.network,
        data_plan_id=plan.id,
        data_plan_name=plan.plan_name,
        amount=plan.price,
        status=status,
        **values,
    )
    db.add(txn)
    db.commit()
    return txn


def create_payment(
    db: Session,
    txn: Transaction,
    reference: str = "ERCS|20240101|0001",
    status: str = PaymentStatus.PENDING,
) -> Payment:
    payment = Payment(
        transaction_id=txn.id,
        ercaspay_reference=reference,
        amount=txn.amount,
        status=status,
    )
    db.add(payment)
    db.commit()
    return payment


def reload(db: Session, model, pk):
    """Fetch a fresh copy of a row, ignoring the session's identity map."""
    db.expire_all()
    return db.get(model, pk)


def ercaspay_payload(
    reference: str = "ERCS|20240101|0001",
    status: str = "SUCCESSFUL",
    amount: str = "1498.00",
) -> dict[str, Any]:
    return {
        "transaction_reference": reference,
        "payment_reference": "PAY_ref",
        "amount": amount,
        "currency": "NGN",
        "payment_method": "card",
        "status": status,
        "paid_at": "2024-01-01T10:00:00Z",
        "customer": {
            "name": "Ada Obi",
            "email": "ada@example.com",
            "phone": "08031234567",
        },
    }


def signed_body(payload: dict[str, Any], secret: str = WEBHOOK_SECRET) -> tuple[bytes, str]:
    raw = json.dumps(payload).encode()
    signer = ErcasPayClient("https://ercaspay.test", "sk", webhook_secret=secret, session=MagicMock())
    return raw, signer.sign(raw)


# ── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _clear_jobs():
    """Reset the in-memory delivery job tracker between tests."""
    delivery._jobs.clear()
    yield
    delivery._jobs.clear()


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def gateway() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest.fixture
def provider_client() -> FakeProviderClient:
    return FakeProviderClient()


@pytest.fixture
def catalog(db_session):
    """An active GladTidings provider with the MTN 2 GB plan mapped to it."""
    provider = create_provider(db_session)
    plan = create_plan(db_session)
    mapping = create_mapping(db_session, plan, provider)
    return {"provider": provider, "plan": plan, "mapping": mapping}


@pytest.fixture(scope="function")
def client(db_session, gateway, provider_client):
    """FastAPI test client with overridden DB and adapter dependencies."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_provider_clients] = lambda: {
        provider_client.provider_name: provider_client
    }
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    app.dependency_overrides[get_retry_policy] = lambda: RetryPolicy(
        max_attempts=3, backoff_seconds=0, backoff_max_seconds=0
    )
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
