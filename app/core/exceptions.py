"""Error taxonomy for the API boundary.

Every error that reaches a client carries a machine-stable ``code`` and a
human ``message``.  The handlers registered in ``app.main`` render them as
``{"detail": message, "code": code, **extra}``.
"""

from __future__ import annotations

from typing import Any, Optional


class AppError(Exception):
    """Base class for errors rendered by the API exception handler."""

    status_code: int = 500
    default_code: str = "internal_error"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        extra: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.extra = extra or {}

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "code": self.code, **self.extra}


class InvalidRequestError(AppError):
    """Missing field, bad enum value, bad phone number, etc."""

    status_code = 400
    default_code = "invalid_request"


class NotFoundError(AppError):
    status_code = 404
    default_code = "not_found"


class StateConflictError(AppError):
    """Operation is not valid for the transaction's current status."""

    status_code = 409
    default_code = "invalid_state"

    def __init__(self, message: str, current_status: Optional[str], code: Optional[str] = None) -> None:
        super().__init__(message, code=code, extra={"current_status": current_status})
        self.current_status = current_status


class UpstreamError(AppError):
    """The payment gateway or the data aggregator rejected or failed a call."""

    status_code = 502
    default_code = "upstream_error"


class ServiceUnavailableError(AppError):
    status_code = 503
    default_code = "service_unavailable"
