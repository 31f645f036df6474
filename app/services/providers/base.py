"""Abstract base class and shared types for data-bundle providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Union
from uuid import UUID

_IDENT_MAX_LENGTH = 30


def build_ident(transaction_id: Union[UUID, str], timestamp: datetime) -> str:
    """Derive the correlation token sent to providers as ``ident``.

    Same transaction id and timestamp always give the same ident, so a
    provider can reject a duplicate submission of the same purchase.
    """
    compact_id = str(transaction_id).replace("-", "")[:10]
    millis = int(timestamp.timestamp() * 1000)
    return f"Data{compact_id}{millis}"[:_IDENT_MAX_LENGTH]


class ErrorKind:
    """How the orchestrator should treat a provider failure."""

    RETRYABLE = "retryable"
    TERMINAL = "terminal"
    UNKNOWN = "unknown"


class DataProviderError(Exception):
    """A purchase call failed.

    ``code`` is stable and machine readable (``timeout``, ``network_error``,
    ``provider_unavailable``, ``bad_request``, ``purchase_declined``,
    ``invalid_response``, ...).  ``kind`` tells the caller whether retrying
    makes sense.
    """

    def __init__(
        self,
        message: str,
        code: str,
        kind: str = ErrorKind.TERMINAL,
        status_code: Optional[int] = None,
        response: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.kind = kind
        self.status_code = status_code
        self.response = response

    @property
    def retryable(self) -> bool:
        return self.kind == ErrorKind.RETRYABLE


@dataclass
class DataPurchaseReceipt:
    """The provider's own record of a successful purchase."""

    id: str
    status: str
    ident: Optional[str] = None
    api_response: Optional[str] = None
    balance_before: Optional[str] = None
    balance_after: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)


class DataProviderClient(ABC):
    """Interface every data provider adapter implements.

    Each adapter is responsible for:
    1. Translating our network key and phone format to the provider's
    2. Submitting the purchase with a correlation token
    3. Raising ``DataProviderError`` for transport *and* business failures
    """

    provider_name: str

    @abstractmethod
    def purchase_data(
        self,
        network: str,
        phone_number: str,
        plan_id: str,
        transaction_id: str,
        ported_number: Optional[bool] = None,
        ident: Optional[str] = None,
        network_id: Optional[str] = None,
    ) -> DataPurchaseReceipt:
        """Buy a data bundle for ``phone_number``.

        Args:
            network: Our network key (mtn, airtel, glo, 9mobile).
            phone_number: Recipient number in any accepted format.
            plan_id: The provider's plan identifier.
            transaction_id: Our transaction id (for correlation and logs).
            ported_number: Whether the number was ported across networks.
            ident: Correlation token; derived from ``transaction_id`` if None.
            network_id: Provider network code overriding the built-in table.

        Returns:
            The provider's receipt for the purchase.

        Raises:
            DataProviderError: On any failure.
        """
        pass
