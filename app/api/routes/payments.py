"""Payment endpoints: start a hosted checkout and verify it with the gateway."""

import time
from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_payment_gateway
from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import InvalidRequestError, NotFoundError, StateConflictError, UpstreamError
from app.core.logging import get_logger
from app.models.payment import Payment, PaymentStatus
from app.models.transaction import Transaction, TransactionStatus
from app.schemas.payment import PaymentInitRequest, PaymentInitResponse
from app.services.payments.base import PaymentGateway, PaymentGatewayError
from app.services.purchase.state import transition

logger = get_logger(__name__)

router = APIRouter()


@router.post("/payments/initialize", response_model=PaymentInitResponse)
def initialize_payment(
    payload: PaymentInitRequest,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> PaymentInitResponse:
    """Open an ErcasPay checkout for a ``pending`` transaction.

    On success a ``pending`` Payment row is stored under the gateway's
    reference and the transaction gets our ``payment_reference``.  Nothing
    is written when the gateway refuses.
    """
    txn = db.get(Transaction, payload.transaction_id)
    if txn is None:
        raise NotFoundError("Transaction not found", code="transaction_not_found")
    if txn.status != TransactionStatus.PENDING:
        raise StateConflictError(
            f"Transaction is not pending (status '{txn.status}')",
            current_status=txn.status,
        )

    payment_reference = f"PAY_{txn.id}_{int(time.time() * 1000)}"
    redirect_url = f"{settings.frontend_url}/payment/callback?reference={payment_reference}"

    try:
        init = gateway.initiate_payment(
            amount=txn.amount,
            currency=settings.ercaspay_currency,
            payment_reference=payment_reference,
            customer_name=payload.customer_name,
            customer_email=payload.customer_email,
            customer_phone_number=txn.phone_number,
            redirect_url=redirect_url,
            description=f"{txn.data_plan_name} for {txn.phone_number}",
        )
    except PaymentGatewayError as exc:
        logger.error("Payment initiation failed for %s: %s", txn.id, exc.message)
        raise UpstreamError(exc.message, code="payment_gateway_error")

    if not init.request_successful or not init.transaction_reference or not init.checkout_url:
        logger.warning(
            "Gateway refused payment for %s: %s (%s)",
            txn.id,
            init.response_message,
            init.response_code,
        )
        raise InvalidRequestError(
            init.response_message or "Payment initialization failed",
            code="payment_init_failed",
        )

    payment = Payment(
        transaction_id=txn.id,
        ercaspay_reference=init.transaction_reference,
        amount=txn.amount,
        status=PaymentStatus.PENDING,
    )
    db.add(payment)

    stamped = transition(
        db,
        txn.id,
        (TransactionStatus.PENDING,),
        TransactionStatus.PENDING,
        payment_reference=payment_reference,
    )
    if not stamped:
        db.rollback()
        db.refresh(txn)
        raise StateConflictError(
            f"Transaction is not pending (status '{txn.status}')",
            current_status=txn.status,
        )
    db.commit()
    db.refresh(payment)

    logger.info(
        "Payment %s initialised for transaction %s: ercaspay_reference=%s",
        payment.id,
        payment.transaction_id,
        payment.ercaspay_reference,
    )
    return PaymentInitResponse(
        payment_id=payment.id,
        payment_url=init.checkout_url,
        payment_reference=payment_reference,
        ercaspay_reference=init.transaction_reference,
        amount=payment.amount,
        currency=settings.ercaspay_currency,
    )


@router.get("/payments/verify/{ercaspay_reference}")
def verify_payment(
    ercaspay_reference: str,
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> dict[str, Any]:
    """Return the gateway's own record of a payment."""
    try:
        return gateway.verify_payment(ercaspay_reference)
    except PaymentGatewayError as exc:
        logger.error("Payment verification failed for %s: %s", ercaspay_reference, exc.message)
        raise UpstreamError(exc.message, code="payment_gateway_error")
