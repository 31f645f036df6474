"""SQLAlchemy models for the data storefront."""

from app.models.plan import DataPlan
from app.models.provider import DataProvider, ProviderPlanMapping
from app.models.transaction import Transaction
from app.models.payment import Payment
from app.models.webhook import Webhook

__all__ = [
    "DataPlan",
    "DataProvider",
    "ProviderPlanMapping",
    "Transaction",
    "Payment",
    "Webhook",
]
