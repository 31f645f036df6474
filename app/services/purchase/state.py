"""Transaction and payment status transitions.

Every status change is one conditional UPDATE with the expected current
status in its WHERE clause.  A zero row count means the precondition did
not hold (another request got there first, or the transaction is in the
wrong state) and is reported as ``False``, never as success.

Callers own the commit.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional
from uuid import UUID

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from app.core.logging import get_logger
from app.models.payment import Payment, PaymentStatus
from app.models.transaction import Transaction, TransactionStatus as S

logger = get_logger(__name__)

# Allowed moves of the transaction status machine: from -> {to, ...}
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    S.PENDING: frozenset(
        {S.PENDING, S.PAYMENT_COMPLETED, S.PAYMENT_FAILED, S.PROCESSING, S.FAILED}
    ),
    S.PAYMENT_COMPLETED: frozenset({S.PAYMENT_COMPLETED, S.PROCESSING, S.FAILED}),
    S.PROCESSING: frozenset({S.COMPLETED, S.FAILED}),
    S.FAILED: frozenset({S.PAYMENT_COMPLETED, S.COMPLETED}),
    S.PAYMENT_FAILED: frozenset({S.PAYMENT_COMPLETED}),
    S.COMPLETED: frozenset(),
}


def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in ALLOWED_TRANSITIONS.get(from_status, frozenset())


def transition(
    db: Session,
    transaction_id: UUID,
    from_statuses: Iterable[str],
    to_status: str,
    **values: Any,
) -> bool:
    """Move a transaction to ``to_status`` if it is currently in ``from_statuses``.

    Args:
        db: Active session; the caller commits.
        transaction_id: Target transaction.
        from_statuses: Statuses the transaction must currently have.
        to_status: New status.
        **values: Extra columns to set in the same statement.

    Returns:
        True if exactly one row was updated.

    Raises:
        ValueError: If no status in ``from_statuses`` may move to ``to_status``.
    """
    sources = tuple(from_statuses)
    illegal = [s for s in sources if not can_transition(s, to_status)]
    if illegal:
        raise ValueError(f"Illegal transition {illegal} -> {to_status}")

    stmt = (
        update(Transaction)
        .where(Transaction.id == transaction_id)
        .where(Transaction.status.in_(sources))
        .values(status=to_status, updated_at=func.now(), **values)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    applied = result.rowcount == 1

    logger.debug(
        "Transition %s %s -> %s: %s",
        transaction_id,
        "|".join(sources),
        to_status,
        "applied" if applied else "precondition failed",
    )
    return applied


def finalize_payment(
    db: Session,
    payment_id: UUID,
    status: str,
    payment_method: Optional[str] = None,
) -> bool:
    """Record the gateway's final status on a payment still ``pending``."""
    values: dict[str, Any] = {"status": status}
    if payment_method:
        values["payment_method"] = payment_method

    stmt = (
        update(Payment)
        .where(Payment.id == payment_id)
        .where(Payment.status == PaymentStatus.PENDING)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return db.execute(stmt).rowcount == 1
