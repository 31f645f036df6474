"""Purchase orchestrator - delivers a data bundle for a transaction.

A delivery attempt:
  1. Short-circuit if the transaction is already ``completed``.
  2. Pick the provider mapping for the plan (active provider first, then
     by priority).
  3. Claim the transaction (``pending``/``payment_completed`` -> ``processing``)
     with one conditional update; losing the claim means someone else is
     delivering it.
  4. Call the provider and persist ``completed`` or ``failed``.

Adapter failures are persisted and returned as a ``PurchaseResult``; nothing
here raises to the HTTP layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.logging import get_logger
from app.models.provider import DataProvider, ProviderPlanMapping
from app.models.transaction import Transaction, TransactionStatus as S
from app.services.phone import mask_phone_number
from app.services.providers.base import (
    DataProviderClient,
    DataProviderError,
    ErrorKind,
    build_ident,
)
from app.services.purchase.state import transition

logger = get_logger(__name__)

DELIVERY_START_STATUSES = (S.PENDING, S.PAYMENT_COMPLETED)
RETRY_STATUSES = (S.FAILED, S.PAYMENT_COMPLETED)


@dataclass
class PurchaseResult:
    """Outcome of one delivery attempt."""

    success: bool
    transaction_id: str
    status: Optional[str] = None
    provider_reference: Optional[str] = None
    provider_response: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    should_retry: bool = False


class PurchaseOrchestrator:
    """Runs delivery attempts against the configured data providers."""

    def __init__(self, db: Session, clients: dict[str, DataProviderClient]) -> None:
        self.db = db
        self.clients = clients

    # ── Public API ───────────────────────────────────────────────────

    def process_data_purchase(self, transaction_id: UUID) -> PurchaseResult:
        """Attempt delivery for a paid (or directly purchased) transaction."""
        logger.info("Processing data purchase for transaction %s", transaction_id)
        try:
            return self._process(transaction_id)
        except Exception as exc:
            self.db.rollback()
            logger.exception("Unexpected error processing transaction %s", transaction_id)
            marked = self._mark_failed(
                transaction_id,
                (S.PROCESSING,),
                str(exc),
                "internal_error",
                retryable=True,
            )
            return PurchaseResult(
                success=False,
                transaction_id=str(transaction_id),
                status=S.FAILED if marked else None,
                error="Internal error during data purchase",
                error_code="internal_error",
                should_retry=True,
            )

    def retry_data_purchase(self, transaction_id: UUID) -> PurchaseResult:
        """Reset a ``failed`` or ``payment_completed`` transaction and deliver again."""
        logger.info("Retrying data purchase for transaction %s", transaction_id)

        reset = transition(self.db, transaction_id, RETRY_STATUSES, S.PAYMENT_COMPLETED)
        self.db.commit()

        if not reset:
            txn = self.db.get(Transaction, transaction_id)
            if txn is None:
                return self._not_found(transaction_id)
            return PurchaseResult(
                success=False,
                transaction_id=str(transaction_id),
                status=txn.status,
                error="Transaction cannot be retried",
                error_code="invalid_state",
            )

        return self.process_data_purchase(transaction_id)

    # ── Private helpers ──────────────────────────────────────────────

    def _process(self, transaction_id: UUID) -> PurchaseResult:
        txn = self.db.get(Transaction, transaction_id)
        if txn is None:
            return self._not_found(transaction_id)

        if txn.status == S.COMPLETED:
            logger.info("Transaction %s already completed", transaction_id)
            return self._already_completed(txn)

        if txn.status not in DELIVERY_START_STATUSES:
            return PurchaseResult(
                success=False,
                transaction_id=str(transaction_id),
                status=txn.status,
                error=f"Transaction cannot be delivered from status '{txn.status}'",
                error_code="invalid_state",
            )

        mapping, client = self._select_provider(txn.data_plan_id)

        if mapping is None:
            return self._fail_unclaimed(
                transaction_id, "Data plan provider mapping not found", "mapping_not_found", False
            )
        provider: DataProvider = mapping.provider
        if not provider.is_active:
            return self._fail_unclaimed(
                transaction_id, "Data provider is currently unavailable", "provider_inactive", True
            )
        if client is None:
            return self._fail_unclaimed(
                transaction_id, "Unsupported data provider", "unsupported_provider", False
            )

        # Capture what the provider call needs before the commit expires txn.
        network = txn.network
        phone_number = txn.phone_number
        ident = build_ident(txn.id, txn.created_at or datetime.utcnow())
        provider_id = provider.id
        provider_plan_id = mapping.provider_plan_id
        provider_network_id = mapping.provider_network_id

        claimed = transition(
            self.db,
            transaction_id,
            DELIVERY_START_STATUSES,
            S.PROCESSING,
            data_provider_id=provider_id,
        )
        self.db.commit()
        if not claimed:
            return self._lost_claim(transaction_id)

        logger.info(
            "Transaction %s claimed: provider=%s plan=%s phone=%s",
            transaction_id,
            client.provider_name,
            provider_plan_id,
            mask_phone_number(phone_number),
        )

        try:
            receipt = client.purchase_data(
                network=network,
                phone_number=phone_number,
                plan_id=provider_plan_id,
                transaction_id=str(transaction_id),
                ident=ident,
                network_id=provider_network_id,
            )
        except DataProviderError as exc:
            logger.error(
                "Provider purchase failed for %s: code=%s kind=%s message=%s",
                transaction_id,
                exc.code,
                exc.kind,
                exc.message,
            )
            self._mark_failed(
                transaction_id,
                (S.PROCESSING,),
                exc.message,
                exc.code,
                retryable=exc.retryable,
                response=exc.response,
            )
            return PurchaseResult(
                success=False,
                transaction_id=str(transaction_id),
                status=S.FAILED,
                error=exc.message,
                error_code=exc.code,
                should_retry=exc.kind == ErrorKind.RETRYABLE,
            )

        completed = transition(
            self.db,
            transaction_id,
            (S.PROCESSING,),
            S.COMPLETED,
            provider_reference=receipt.id,
            provider_response=receipt.raw,
        )
        self.db.commit()
        if not completed:
            logger.warning(
                "Transaction %s left processing before completion was recorded",
                transaction_id,
            )

        logger.info(
            "Data purchase completed for %s: provider_reference=%s",
            transaction_id,
            receipt.id,
        )
        return PurchaseResult(
            success=True,
            transaction_id=str(transaction_id),
            status=S.COMPLETED,
            provider_reference=receipt.id,
            provider_response=receipt.raw,
        )

    def _select_provider(
        self, data_plan_id: UUID
    ) -> tuple[Optional[ProviderPlanMapping], Optional[DataProviderClient]]:
        """Return the mapping to use and its client.

        Mappings whose provider is active and has a registered client win,
        then lower ``priority`` values.  Returns ``(mapping, None)`` when a
        mapping exists but no client is registered for its provider.
        """
        mappings = (
            self.db.query(ProviderPlanMapping)
            .join(DataProvider, ProviderPlanMapping.data_provider_id == DataProvider.id)
            .filter(ProviderPlanMapping.data_plan_id == data_plan_id)
            .filter(ProviderPlanMapping.is_active.is_(True))
            .order_by(DataProvider.is_active.desc(), DataProvider.priority.asc())
            .all()
        )
        if not mappings:
            return None, None

        for mapping in mappings:
            client = self.clients.get(mapping.provider.name)
            if client is not None and mapping.provider.is_active:
                return mapping, client

        first = mappings[0]
        return first, self.clients.get(first.provider.name)

    def _already_completed(self, txn: Transaction) -> PurchaseResult:
        return PurchaseResult(
            success=True,
            transaction_id=str(txn.id),
            status=S.COMPLETED,
            provider_reference=txn.provider_reference,
            provider_response=txn.provider_response,
        )

    def _lost_claim(self, transaction_id: UUID) -> PurchaseResult:
        txn = self.db.get(Transaction, transaction_id)
        if txn is None:
            return self._not_found(transaction_id)
        if txn.status == S.COMPLETED:
            return self._already_completed(txn)

        logger.warning(
            "Transaction %s was claimed by another attempt (status=%s)",
            transaction_id,
            txn.status,
        )
        return PurchaseResult(
            success=False,
            transaction_id=str(transaction_id),
            status=txn.status,
            error="Transaction is already being processed",
            error_code="invalid_state",
        )

    def _fail_unclaimed(
        self, transaction_id: UUID, message: str, code: str, retryable: bool
    ) -> PurchaseResult:
        marked = self._mark_failed(
            transaction_id, DELIVERY_START_STATUSES, message, code, retryable=retryable
        )
        if not marked:
            return self._lost_claim(transaction_id)
        logger.warning("Transaction %s failed before delivery: %s", transaction_id, message)
        return PurchaseResult(
            success=False,
            transaction_id=str(transaction_id),
            status=S.FAILED,
            error=message,
            error_code=code,
            should_retry=retryable,
        )

    def _mark_failed(
        self,
        transaction_id: UUID,
        from_statuses: tuple[str, ...],
        message: str,
        code: str,
        retryable: bool,
        response: Optional[dict[str, Any]] = None,
    ) -> bool:
        detail: dict[str, Any] = {
            "error": message,
            "error_code": code,
            "retryable": retryable,
            "timestamp": datetime.utcnow().isoformat(),
        }
        values: dict[str, Any] = {"provider_response": detail}
        if response is not None:
            detail["response"] = response
            # A declined purchase still has a provider-side record id
            if response.get("id") is not None:
                values["provider_reference"] = str(response["id"])

        try:
            marked = transition(
                self.db,
                transaction_id,
                from_statuses,
                S.FAILED,
                **values,
            )
            self.db.commit()
            return marked
        except Exception:
            self.db.rollback()
            logger.exception("Failed to update transaction status for %s", transaction_id)
            return False

    @staticmethod
    def _not_found(transaction_id: UUID) -> PurchaseResult:
        return PurchaseResult(
            success=False,
            transaction_id=str(transaction_id),
            error="Transaction not found",
            error_code="transaction_not_found",
        )
