"""Abstract base class and shared types for payment gateways."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional, Union


class PaymentGatewayError(Exception):
    """A gateway call failed at the transport, HTTP, or configuration level.

    ``message`` keeps the gateway's own explanation when it sent one.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response = response


@dataclass
class PaymentInitResult:
    """Normalized result of a hosted-checkout initiation."""

    request_successful: bool
    response_message: str
    response_code: str
    checkout_url: Optional[str] = None
    transaction_reference: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class PaymentWebhookEvent:
    """Canonical shape of a gateway callback, whatever field names it used."""

    transaction_reference: Optional[str]
    payment_reference: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: str = "NGN"
    payment_method: Optional[str] = None
    payment_status: Optional[str] = None
    transaction_status: Optional[str] = None
    paid_at: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone_number: Optional[str] = None
    event_type: str = "payment_update"


class PaymentGateway(ABC):
    """Interface every payment gateway adapter implements.

    Adapters only talk to the network; all persistence is the caller's job.
    """

    gateway_name: str

    @abstractmethod
    def initiate_payment(
        self,
        amount: Decimal,
        currency: str,
        payment_reference: str,
        customer_name: str,
        customer_email: str,
        customer_phone_number: str,
        redirect_url: str,
        description: str,
    ) -> PaymentInitResult:
        """Start a hosted checkout and return its URL and gateway reference."""
        pass

    @abstractmethod
    def verify_payment(self, transaction_reference: str) -> dict[str, Any]:
        """Ask the gateway for the current record of a payment."""
        pass

    @abstractmethod
    def verify_webhook_signature(
        self, raw_body: Union[bytes, str], signature: Optional[str]
    ) -> bool:
        """Check that a callback body was signed with the shared secret."""
        pass

    @abstractmethod
    def parse_webhook_payload(self, body: dict[str, Any]) -> PaymentWebhookEvent:
        """Normalize a callback body into a ``PaymentWebhookEvent``."""
        pass
