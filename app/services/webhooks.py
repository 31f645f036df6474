"""Webhook receiver - applies gateway and aggregator callbacks.

Every callback is written to the ``webhooks`` audit table first.  A payment
callback whose reference already has a ``processed`` row is acknowledged
without touching anything (the gateway retries until it sees a 2xx).
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.exceptions import InvalidRequestError, NotFoundError
from app.core.logging import get_logger
from app.models.payment import Payment, PaymentStatus
from app.models.transaction import Transaction, TransactionStatus as S
from app.models.webhook import Webhook, WebhookStatus
from app.services.payments.base import PaymentGateway
from app.services.purchase.state import finalize_payment, transition

logger = get_logger(__name__)

AGGREGATOR_SOURCE = "gladtidings"

# Gateway payment status -> (payment status, transaction status, statuses it may
# move from).  A later checkout may succeed after an earlier one failed.
_PAYMENT_OUTCOMES: dict[str, tuple[str, str, tuple[str, ...]]] = {
    "successful": (
        PaymentStatus.COMPLETED,
        S.PAYMENT_COMPLETED,
        (S.PENDING, S.PAYMENT_FAILED),
    ),
    "failed": (PaymentStatus.FAILED, S.PAYMENT_FAILED, (S.PENDING,)),
}

# Column widths of webhooks.event_type and webhooks.reference_id
EVENT_TYPE_LENGTH = 50
REFERENCE_LENGTH = 100


@dataclass
class WebhookOutcome:
    """What the receiver did with a callback.

    ``result`` is ``processed``, ``duplicate`` or ``ignored``.  ``deliver``
    is set when a payment just succeeded and data delivery should start.
    """

    result: str
    reference: Optional[str] = None
    transaction_id: Optional[UUID] = None
    status: Optional[str] = None
    deliver: bool = False


class WebhookReceiver:
    """Authenticates, de-duplicates and applies inbound callbacks."""

    def __init__(self, db: Session, gateway: PaymentGateway) -> None:
        self.db = db
        self.gateway = gateway

    # ── Payment gateway ──────────────────────────────────────────────

    def handle_payment_webhook(
        self, raw_body: bytes, signature: Optional[str]
    ) -> WebhookOutcome:
        """Apply a payment gateway callback.

        Raises:
            InvalidRequestError: Bad signature, non-object body, or no reference.
            NotFoundError: No payment matches the gateway reference.
        """
        source = self.gateway.gateway_name
        body = _decode_body(raw_body)

        if not self.gateway.verify_webhook_signature(raw_body, signature):
            reference = None
            if body is not None:
                reference = self.gateway.parse_webhook_payload(body).transaction_reference
            self._record_rejected(source, body, raw_body, reference, "Invalid signature")
            logger.warning("Rejected %s webhook with invalid signature", source)
            raise InvalidRequestError("Invalid signature", code="invalid_signature")

        if body is None:
            self._record_rejected(source, None, raw_body, None, "Body is not a JSON object")
            raise InvalidRequestError(
                "Webhook body must be a JSON object", code="invalid_payload"
            )

        event = self.gateway.parse_webhook_payload(body)
        reference = event.transaction_reference
        if not reference:
            self._record_rejected(source, body, raw_body, None, "Missing transaction reference")
            raise InvalidRequestError(
                "Webhook is missing a transaction reference", code="missing_reference"
            )
        reference = str(reference)

        if self._already_processed(source, reference):
            logger.info("Duplicate %s webhook for %s ignored", source, reference)
            return WebhookOutcome(result="duplicate", reference=reference)

        record = Webhook(
            source=source,
            event_type=str(event.event_type)[:EVENT_TYPE_LENGTH],
            reference_id=reference[:REFERENCE_LENGTH],
            payload=body,
            status=WebhookStatus.RECEIVED,
        )
        self.db.add(record)
        self.db.flush()

        payment = (
            self.db.query(Payment)
            .filter(Payment.ercaspay_reference == reference)
            .first()
        )
        if payment is None:
            record.status = WebhookStatus.FAILED
            record.error_message = "Payment not found"
            self.db.commit()
            logger.warning("Payment not found for reference %s", reference)
            raise NotFoundError("Payment not found", code="payment_not_found")

        payment_id = payment.id
        transaction_id = payment.transaction_id
        record.transaction_id = transaction_id

        gateway_status = (event.payment_status or "").strip().lower()
        outcome = _PAYMENT_OUTCOMES.get(gateway_status)
        if outcome is None:
            # Non-final status: keep the row 'received' so the final
            # callback for this reference is still applied.
            self.db.commit()
            logger.info(
                "Non-final payment status %r for %s left unapplied", gateway_status, reference
            )
            return WebhookOutcome(
                result="ignored",
                reference=reference,
                transaction_id=transaction_id,
                status=gateway_status or None,
            )

        payment_status, transaction_status, from_statuses = outcome
        moved = False
        if finalize_payment(self.db, payment_id, payment_status, event.payment_method):
            moved = transition(self.db, transaction_id, from_statuses, transaction_status)
            if not moved:
                logger.warning(
                    "Transaction %s not in %s; left status unchanged on %s payment",
                    transaction_id,
                    "/".join(from_statuses),
                    payment_status,
                )
        else:
            logger.info("Payment %s already finalised, not updated again", payment_id)

        record.status = WebhookStatus.PROCESSED
        record.processed_at = datetime.utcnow()
        self.db.commit()

        logger.info(
            "Payment webhook applied: reference=%s payment=%s transaction=%s",
            reference,
            payment_status,
            transaction_id,
        )
        return WebhookOutcome(
            result="processed",
            reference=reference,
            transaction_id=transaction_id,
            status=payment_status,
            deliver=moved and payment_status == PaymentStatus.COMPLETED,
        )

    # ── Data aggregator ──────────────────────────────────────────────

    def handle_delivery_webhook(self, raw_body: bytes) -> WebhookOutcome:
        """Apply a data aggregator delivery callback.

        The transaction is found by ``provider_reference``; a ``completed``
        transaction is never moved.
        """
        body = _decode_body(raw_body)
        if body is None:
            self._record_rejected(
                AGGREGATOR_SOURCE, None, raw_body, None, "Body is not a JSON object"
            )
            raise InvalidRequestError(
                "Webhook body must be a JSON object", code="invalid_payload"
            )

        reference = body.get("reference") or body.get("transaction_id")
        record = Webhook(
            source=AGGREGATOR_SOURCE,
            event_type=str(body.get("event") or "data_delivery")[:EVENT_TYPE_LENGTH],
            reference_id=str(reference if reference is not None else "unknown")[
                :REFERENCE_LENGTH
            ],
            payload=body,
            status=WebhookStatus.RECEIVED,
        )
        self.db.add(record)
        self.db.flush()

        if reference is None:
            record.status = WebhookStatus.FAILED
            record.error_message = "Missing reference"
            self.db.commit()
            return WebhookOutcome(result="ignored")
        reference = str(reference)

        txn = (
            self.db.query(Transaction)
            .filter(Transaction.provider_reference == reference)
            .first()
        )
        if txn is None:
            record.status = WebhookStatus.FAILED
            record.error_message = "Transaction not found"
            self.db.commit()
            logger.warning("No transaction for provider reference %s", reference)
            return WebhookOutcome(result="ignored", reference=reference)

        transaction_id = txn.id
        record.transaction_id = transaction_id

        delivery_status = str(body.get("status") or "").strip().lower()
        if delivery_status in ("successful", "completed"):
            applied = transition(
                self.db,
                transaction_id,
                (S.PROCESSING, S.FAILED),
                S.COMPLETED,
                provider_response=body,
            )
        elif delivery_status == "failed":
            applied = transition(
                self.db,
                transaction_id,
                (S.PROCESSING,),
                S.FAILED,
                provider_response=body,
            )
        else:
            applied = False

        record.status = WebhookStatus.PROCESSED
        record.processed_at = datetime.utcnow()
        self.db.commit()

        logger.info(
            "Delivery webhook for %s: status=%s applied=%s",
            reference,
            delivery_status,
            applied,
        )
        return WebhookOutcome(
            result="processed",
            reference=reference,
            transaction_id=transaction_id,
            status=delivery_status or None,
        )

    # ── Private helpers ──────────────────────────────────────────────

    def _already_processed(self, source: str, reference: str) -> bool:
        return (
            self.db.query(Webhook.id)
            .filter(Webhook.source == source)
            .filter(Webhook.reference_id == reference[:REFERENCE_LENGTH])
            .filter(Webhook.status == WebhookStatus.PROCESSED)
            .first()
            is not None
        )

    def _record_rejected(
        self,
        source: str,
        body: Optional[dict[str, Any]],
        raw_body: bytes,
        reference: Optional[str],
        reason: str,
    ) -> None:
        payload = body if body is not None else {"raw": raw_body.decode("utf-8", "replace")}
        event_type = str((body or {}).get("event") or "unknown")
        self.db.add(
            Webhook(
                source=source,
                event_type=event_type[:EVENT_TYPE_LENGTH],
                reference_id=str(reference or "unknown")[:REFERENCE_LENGTH],
                payload=payload,
                status=WebhookStatus.FAILED,
                error_message=reason,
            )
        )
        self.db.commit()


def _decode_body(raw_body: bytes) -> Optional[dict[str, Any]]:
    """Return the JSON object in ``raw_body`` or None."""
    try:
        data = json.loads(raw_body or b"")
    except ValueError:
        return None
    return data if isinstance(data, dict) else None
