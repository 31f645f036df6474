"""GladTidings data aggregator adapter.

GladTidings conventions handled here:
  - ``Authorization: Token <api key>``.
  - Numeric network codes: mtn=1, glo=2, airtel=3, 9mobile=4.
  - Local 11-digit phone numbers with a leading zero.
  - ``ident`` is the client correlation token the aggregator de-duplicates on.
  - HTTP 200 with ``Status != "successful"`` is a declined purchase.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

import requests

from app.core.config import Settings
from app.core.logging import get_logger
from app.services.phone import mask_phone_number, normalize_phone_number
from app.services.providers.base import (
    DataProviderClient,
    DataProviderError,
    DataPurchaseReceipt,
    ErrorKind,
    build_ident,
)

logger = get_logger(__name__)

NETWORK_IDS: dict[str, int] = {
    "mtn": 1,
    "glo": 2,
    "airtel": 3,
    "9mobile": 4,
}


class GladTidingsClient(DataProviderClient):
    """Client for the GladTidings data purchase API."""

    provider_name = "gladtidings"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 30.0,
        ported_number: bool = True,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.ported_number = ported_number
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, config: Settings) -> "GladTidingsClient":
        return cls(
            base_url=config.gladtidings_base_url,
            api_key=config.gladtidings_api_key,
            timeout=config.gladtidings_timeout_seconds,
            ported_number=config.gladtidings_ported_number,
        )

    # ── Public API ───────────────────────────────────────────────────

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
        mobile_number = self.format_phone_number(phone_number)
        request_data = {
            "network": self._network_code(network, network_id),
            "mobile_number": mobile_number,
            "plan": self._plan_code(plan_id),
            "Ported_number": self.ported_number if ported_number is None else ported_number,
            "ident": ident or build_ident(transaction_id, datetime.utcnow()),
        }

        logger.info(
            "Purchasing data for %s, plan=%s network=%s transaction=%s",
            mask_phone_number(mobile_number),
            plan_id,
            network,
            transaction_id,
        )

        data = self._post("/v2/api/data/", request_data)

        status = str(data.get("Status") or "")
        if status.lower() != "successful":
            message = data.get("api_response") or "Unknown error"
            logger.warning(
                "GladTidings declined purchase: transaction=%s status=%s response=%s",
                transaction_id,
                status,
                message,
            )
            raise DataProviderError(
                f"Data purchase failed: {message}",
                code="purchase_declined",
                kind=ErrorKind.TERMINAL,
                response=data,
            )

        logger.info("GladTidings purchase successful for transaction %s", transaction_id)
        return DataPurchaseReceipt(
            id=str(data.get("id")),
            status=status,
            ident=data.get("ident"),
            api_response=data.get("api_response"),
            balance_before=data.get("balance_before"),
            balance_after=data.get("balance_after"),
            raw=data,
        )

    def check_balance(self) -> dict[str, Any]:
        """Return the account balance record from GladTidings."""
        return self._send("GET", "/api/balance/")

    @staticmethod
    def format_phone_number(phone_number: str) -> str:
        """Convert any accepted format to the 11-digit local form."""
        normalized = normalize_phone_number(phone_number)
        if normalized is None:
            raise DataProviderError(
                f"Invalid phone number: {mask_phone_number(phone_number)}",
                code="invalid_phone_number",
                kind=ErrorKind.TERMINAL,
            )
        return normalized

    # ── Private helpers ──────────────────────────────────────────────

    def _network_code(self, network: str, network_id: Optional[str]) -> int:
        if network_id:
            try:
                return int(network_id)
            except ValueError:
                logger.warning("Ignoring non-numeric provider network id %r", network_id)

        code = NETWORK_IDS.get((network or "").lower())
        if code is None:
            raise DataProviderError(
                f"Unsupported network: {network}",
                code="unsupported_network",
                kind=ErrorKind.TERMINAL,
            )
        return code

    @staticmethod
    def _plan_code(plan_id: str) -> int:
        try:
            return int(plan_id)
        except (TypeError, ValueError):
            raise DataProviderError(
                f"Invalid GladTidings plan id: {plan_id!r}",
                code="invalid_plan",
                kind=ErrorKind.TERMINAL,
            )

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Token {self.api_key}",
        }

    def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        return self._send("POST", path, json=payload)

    def _send(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """Send a request, translating every failure to ``DataProviderError``."""
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method, url, headers=self._headers(), timeout=self.timeout, **kwargs
            )
        except requests.Timeout as exc:
            logger.error("GladTidings request timed out: %s %s", method, path)
            raise DataProviderError(
                "Request to GladTidings timed out. Please try again.",
                code="timeout",
                kind=ErrorKind.RETRYABLE,
            ) from exc
        except requests.ConnectionError as exc:
            logger.error("GladTidings connection error: %s", exc)
            raise DataProviderError(
                "Network error: Unable to connect to GladTidings API. Please try again.",
                code="network_error",
                kind=ErrorKind.RETRYABLE,
            ) from exc
        except requests.RequestException as exc:
            logger.error("GladTidings request failed: %s", exc)
            raise DataProviderError(
                f"GladTidings request failed: {exc}",
                code="request_failed",
                kind=ErrorKind.UNKNOWN,
            ) from exc

        try:
            data = response.json()
        except ValueError:
            data = None

        if response.status_code >= 400:
            detail = None
            if isinstance(data, dict):
                detail = data.get("message") or data.get("error") or data.get("detail")
            message = (
                f"GladTidings API Error ({response.status_code}): "
                f"{detail or 'Unknown error'}"
            )
            logger.error(message)
            if response.status_code >= 500 or response.status_code == 429:
                raise DataProviderError(
                    message,
                    code="provider_unavailable",
                    kind=ErrorKind.RETRYABLE,
                    status_code=response.status_code,
                    response=data if isinstance(data, dict) else None,
                )
            raise DataProviderError(
                message,
                code="bad_request",
                kind=ErrorKind.TERMINAL,
                status_code=response.status_code,
                response=data if isinstance(data, dict) else None,
            )

        if not isinstance(data, dict):
            raise DataProviderError(
                "Unexpected response from GladTidings",
                code="invalid_response",
                kind=ErrorKind.UNKNOWN,
                status_code=response.status_code,
            )

        return data
