"""Inbound callbacks from ErcasPay and GladTidings.

Both handlers read the raw body themselves: the ErcasPay signature is an
HMAC over the exact bytes that were sent.
"""

from typing import Callable, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Request
from sqlalchemy.orm import Session

from app.api.deps import (
    get_payment_gateway,
    get_provider_clients,
    get_retry_policy,
    get_session_factory,
)
from app.core.database import get_db
from app.core.logging import get_logger
from app.services.payments.base import PaymentGateway
from app.services.providers.base import DataProviderClient
from app.services.purchase.delivery import RetryPolicy, schedule_data_delivery
from app.services.webhooks import WebhookReceiver

logger = get_logger(__name__)

router = APIRouter()


@router.post("/webhooks/ercaspay")
async def ercaspay_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    x_ercaspay_signature: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    clients: dict[str, DataProviderClient] = Depends(get_provider_clients),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    policy: RetryPolicy = Depends(get_retry_policy),
) -> dict:
    """Apply a payment status callback.

    A successful payment schedules data delivery to run after the response
    is sent; its outcome shows up only in the transaction status.
    """
    raw_body = await request.body()
    outcome = WebhookReceiver(db, gateway).handle_payment_webhook(
        raw_body, x_ercaspay_signature
    )

    if outcome.deliver and outcome.transaction_id is not None:
        try:
            schedule_data_delivery(
                background_tasks,
                session_factory,
                clients,
                outcome.transaction_id,
                policy,
            )
        except Exception:
            # The payment is already recorded; ErcasPay must still get its 200.
            logger.exception(
                "Could not schedule delivery for transaction %s", outcome.transaction_id
            )

    return {"status": "ok"}


@router.post("/webhooks/gladtidings")
async def gladtidings_webhook(
    request: Request,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> dict:
    """Apply a delivery status callback from the aggregator."""
    raw_body = await request.body()
    WebhookReceiver(db, gateway).handle_delivery_webhook(raw_body)
    return {"status": "ok"}
