"""Transaction endpoints: create, poll, deliver and retry."""

from typing import Callable
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.api.deps import get_provider_clients
from app.core.database import get_db
from app.core.exceptions import (
    AppError,
    InvalidRequestError,
    NotFoundError,
    ServiceUnavailableError,
    StateConflictError,
    UpstreamError,
)
from app.core.logging import get_logger
from app.models.plan import DataPlan
from app.models.transaction import Transaction, TransactionStatus
from app.schemas.transaction import (
    PurchaseResponse,
    TransactionCreate,
    TransactionResponse,
    TransactionStatusResponse,
)
from app.services.phone import mask_phone_number, validate_phone
from app.services.providers.base import DataProviderClient
from app.services.purchase.orchestrator import PurchaseOrchestrator, PurchaseResult

logger = get_logger(__name__)

router = APIRouter()

# Orchestrator error codes that are not provider failures
_ERROR_CLASSES: dict[str, Callable[..., AppError]] = {
    "transaction_not_found": NotFoundError,
    "mapping_not_found": InvalidRequestError,
    "unsupported_provider": InvalidRequestError,
    "provider_inactive": ServiceUnavailableError,
}


@router.post(
    "/transactions",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_transaction(
    payload: TransactionCreate,
    db: Session = Depends(get_db),
) -> Transaction:
    """Create a ``pending`` transaction for a plan and phone number.

    The plan must exist, be available, belong to the selected network and
    cost exactly ``amount``.  The phone's prefix must match the network.
    """
    phone = validate_phone(payload.phone_number, payload.network)
    if not phone.is_valid:
        extra = {}
        if phone.detected_network:
            extra["detected_network"] = phone.detected_network
        raise InvalidRequestError(phone.error, code=phone.error_code, extra=extra)

    plan = db.get(DataPlan, payload.data_plan_id)
    if plan is None:
        raise NotFoundError("Data plan not found", code="plan_not_found")
    if not plan.is_available:
        raise InvalidRequestError("Data plan is not available", code="plan_unavailable")
    if plan.network != payload.network:
        raise InvalidRequestError(
            f"Data plan belongs to {plan.network}, not {payload.network}",
            code="plan_network_mismatch",
        )
    if payload.amount != plan.price:
        raise InvalidRequestError(
            f"Amount {payload.amount} does not match plan price {plan.price}",
            code="amount_mismatch",
        )

    txn = Transaction(
        phone_number=phone.normalized_phone,
        network=payload.network,
        data_plan_id=plan.id,
        data_plan_name=plan.plan_name,
        amount=payload.amount,
        status=TransactionStatus.PENDING,
    )
    db.add(txn)
    db.commit()
    db.refresh(txn)

    logger.info(
        "Transaction %s created: network=%s plan=%s phone=%s amount=%s",
        txn.id,
        txn.network,
        txn.data_plan_name,
        mask_phone_number(txn.phone_number),
        txn.amount,
    )
    return txn


@router.get("/transactions/{transaction_id}/status", response_model=TransactionStatusResponse)
def get_transaction_status(
    transaction_id: UUID,
    db: Session = Depends(get_db),
) -> Transaction:
    """Current status of a transaction (polled by the client)."""
    txn = db.get(Transaction, transaction_id)
    if txn is None:
        raise NotFoundError("Transaction not found", code="transaction_not_found")
    return txn


@router.post("/transactions/{transaction_id}/purchase-data", response_model=PurchaseResponse)
def purchase_data(
    transaction_id: UUID,
    db: Session = Depends(get_db),
    clients: dict[str, DataProviderClient] = Depends(get_provider_clients),
) -> PurchaseResponse:
    """Deliver the bundle now and wait for the provider's answer."""
    result = PurchaseOrchestrator(db, clients).process_data_purchase(transaction_id)
    return _purchase_response(result, "Data purchase completed successfully")


@router.post(
    "/transactions/{transaction_id}/retry-data-purchase",
    response_model=PurchaseResponse,
)
def retry_data_purchase(
    transaction_id: UUID,
    db: Session = Depends(get_db),
    clients: dict[str, DataProviderClient] = Depends(get_provider_clients),
) -> PurchaseResponse:
    """Retry delivery for a ``failed`` or ``payment_completed`` transaction."""
    result = PurchaseOrchestrator(db, clients).retry_data_purchase(transaction_id)
    return _purchase_response(result, "Data purchase retry completed successfully")


def _purchase_response(result: PurchaseResult, message: str) -> PurchaseResponse:
    if result.success:
        return PurchaseResponse(
            success=True,
            transaction_id=result.transaction_id,
            status=result.status,
            provider_reference=result.provider_reference,
            message=message,
            provider_response=result.provider_response,
        )

    error = result.error or "Data purchase failed"
    if result.error_code == "invalid_state":
        raise StateConflictError(error, current_status=result.status)

    error_class = _ERROR_CLASSES.get(result.error_code or "")
    if error_class is not None:
        raise error_class(error, code=result.error_code)

    if result.error_code == "internal_error":
        # Details are in the server log and the stored provider_response
        raise AppError(
            "Internal server error", code="internal_error", extra={"can_retry": True}
        )

    # Provider failure; the transaction is persisted as failed
    raise UpstreamError(
        error,
        code=result.error_code,
        extra={"can_retry": result.should_retry, "status": result.status},
    )
