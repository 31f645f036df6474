"""ErcasPay hosted-checkout adapter.

ErcasPay conventions handled here:
  - Bearer secret-key auth on every call.
  - ``POST /payment/initiate`` returns ``responseBody.checkoutUrl`` and
    ``responseBody.transactionReference``.
  - Webhooks are signed with HMAC-SHA512 (hex) over the raw body, sent in
    ``X-Ercaspay-Signature``, sometimes prefixed with ``sha512=``.
  - Webhook bodies come in camelCase, snake_case, or with a nested
    ``customer`` object depending on the event.
"""

from __future__ import annotations

import hashlib
import hmac
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union

import requests

from app.core.config import Settings
from app.core.logging import get_logger
from app.services.payments.base import (
    PaymentGateway,
    PaymentGatewayError,
    PaymentInitResult,
    PaymentWebhookEvent,
)

logger = get_logger(__name__)

SIGNATURE_HEADER = "X-Ercaspay-Signature"
PAYMENT_METHODS = "card,bank-transfer,ussd,qrcode"


class ErcasPayClient(PaymentGateway):
    """Client for the ErcasPay merchant API."""

    gateway_name = "ercaspay"

    def __init__(
        self,
        base_url: str,
        secret_key: str,
        webhook_secret: str = "",
        allow_unsigned_webhooks: bool = False,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.allow_unsigned_webhooks = allow_unsigned_webhooks
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, config: Settings) -> "ErcasPayClient":
        # Unsigned webhooks are a development convenience only.
        return cls(
            base_url=config.ercaspay_base_url,
            secret_key=config.ercaspay_secret_key,
            webhook_secret=config.ercaspay_webhook_secret,
            allow_unsigned_webhooks=not config.is_production,
            timeout=config.ercaspay_timeout_seconds,
        )

    # ── Outbound calls ───────────────────────────────────────────────

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
        payload = {
            "amount": float(amount),
            "currency": currency,
            "paymentReference": payment_reference,
            "customerName": customer_name,
            "customerEmail": customer_email,
            "customerPhoneNumber": customer_phone_number,
            "redirectUrl": redirect_url,
            "description": description,
            "paymentMethods": PAYMENT_METHODS,
            "feeBearer": "customer",
        }

        data = self._request("POST", "/payment/initiate", "Payment initialization", json=payload)
        body = data.get("responseBody") or {}

        result = PaymentInitResult(
            request_successful=bool(data.get("requestSuccessful")),
            response_message=str(data.get("responseMessage") or ""),
            response_code=str(data.get("responseCode") or ""),
            checkout_url=body.get("checkoutUrl"),
            transaction_reference=body.get("transactionReference"),
            raw=data,
        )
        logger.info(
            "ErcasPay initiate: reference=%s successful=%s code=%s",
            payment_reference,
            result.request_successful,
            result.response_code,
        )
        return result

    def verify_payment(self, transaction_reference: str) -> dict[str, Any]:
        return self._request(
            "GET",
            f"/payment/transaction/verify/{transaction_reference}",
            "Payment verification",
        )

    # ── Webhooks ─────────────────────────────────────────────────────

    def verify_webhook_signature(
        self, raw_body: Union[bytes, str], signature: Optional[str]
    ) -> bool:
        if not self.webhook_secret:
            if self.allow_unsigned_webhooks:
                logger.warning(
                    "Webhook secret not configured, skipping signature verification"
                )
                return True
            logger.error("Webhook secret not configured, rejecting webhook")
            return False

        if not signature:
            logger.warning("No signature provided in webhook")
            return False

        if isinstance(raw_body, str):
            raw_body = raw_body.encode("utf-8")

        provided = signature.strip()
        if provided.lower().startswith("sha512="):
            provided = provided[len("sha512="):]

        expected = hmac.new(
            self.webhook_secret.encode("utf-8"), raw_body, hashlib.sha512
        ).hexdigest()

        is_valid = hmac.compare_digest(expected, provided.lower())
        if not is_valid:
            logger.warning("Webhook signature verification failed")
        return is_valid

    def sign(self, raw_body: Union[bytes, str]) -> str:
        """Compute the signature ErcasPay would send for ``raw_body``."""
        if isinstance(raw_body, str):
            raw_body = raw_body.encode("utf-8")
        return hmac.new(
            self.webhook_secret.encode("utf-8"), raw_body, hashlib.sha512
        ).hexdigest()

    def parse_webhook_payload(self, body: dict[str, Any]) -> PaymentWebhookEvent:
        customer = body.get("customer") or {}

        return PaymentWebhookEvent(
            transaction_reference=body.get("transactionReference")
            or body.get("transaction_reference")
            or body.get("reference"),
            payment_reference=body.get("paymentReference")
            or body.get("payment_reference"),
            amount=_to_decimal(body.get("amount")),
            currency=body.get("currency") or "NGN",
            payment_method=body.get("paymentMethod") or body.get("payment_method"),
            payment_status=body.get("paymentStatus") or body.get("status"),
            transaction_status=body.get("transactionStatus")
            or body.get("transaction_status"),
            paid_at=body.get("paidAt") or body.get("paid_at"),
            customer_name=body.get("customerName") or customer.get("name"),
            customer_email=body.get("customerEmail") or customer.get("email"),
            customer_phone_number=body.get("customerPhoneNumber")
            or customer.get("phone"),
            event_type=body.get("event") or "payment_update",
        )

    # ── Private helpers ──────────────────────────────────────────────

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.secret_key}",
        }

    def _request(self, method: str, path: str, action: str, **kwargs: Any) -> dict[str, Any]:
        """Send a request and return the decoded JSON body.

        Raises:
            PaymentGatewayError: On missing credentials, transport failure,
                HTTP error status, or a body that is not a JSON object.
        """
        if not self.secret_key:
            raise PaymentGatewayError(f"{action} failed: ErcasPay secret key is not configured")

        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method, url, headers=self._headers(), timeout=self.timeout, **kwargs
            )
        except requests.RequestException as exc:
            logger.error("ErcasPay %s request error: %s", action.lower(), exc)
            raise PaymentGatewayError(f"{action} failed: {exc}") from exc

        try:
            data = response.json()
        except ValueError:
            data = None

        if response.status_code >= 400:
            message = None
            if isinstance(data, dict):
                message = data.get("responseMessage") or data.get("message")
            message = message or f"HTTP {response.status_code}"
            logger.error(
                "ErcasPay %s error: status=%s message=%s",
                action.lower(),
                response.status_code,
                message,
            )
            raise PaymentGatewayError(
                f"{action} failed: {message}",
                status_code=response.status_code,
                response=data if isinstance(data, dict) else None,
            )

        if not isinstance(data, dict):
            raise PaymentGatewayError(
                f"{action} failed: unexpected response from ErcasPay",
                status_code=response.status_code,
            )

        return data


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None
