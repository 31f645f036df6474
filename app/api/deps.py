"""FastAPI dependencies for the external adapters.

Routes never build clients themselves; tests swap these out through
``app.dependency_overrides``.
"""

from functools import lru_cache
from typing import Callable

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import SessionLocal
from app.services.payments.base import PaymentGateway
from app.services.payments.ercaspay import ErcasPayClient
from app.services.providers.base import DataProviderClient
from app.services.providers.gladtidings import GladTidingsClient
from app.services.purchase.delivery import RetryPolicy


@lru_cache
def get_payment_gateway() -> PaymentGateway:
    return ErcasPayClient.from_settings(settings)


@lru_cache
def _build_provider_clients() -> dict[str, DataProviderClient]:
    client = GladTidingsClient.from_settings(settings)
    return {client.provider_name: client}


def get_provider_clients() -> dict[str, DataProviderClient]:
    """Registered data provider clients keyed by ``DataProvider.name``."""
    return _build_provider_clients()


def get_session_factory() -> Callable[[], Session]:
    """Session factory for work that outlives the request (background delivery)."""
    return SessionLocal


def get_retry_policy() -> RetryPolicy:
    return RetryPolicy.from_settings(settings)
