"""Nigerian mobile number utilities.

These functions give a single place to deal with the many ways customers
type a phone number (``+234 803 ...``, ``0803...``, ``803...``) and to
check that a number belongs to the network they picked.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

SUPPORTED_NETWORKS: tuple[str, ...] = ("mtn", "airtel", "glo", "9mobile")

# 4-digit local prefixes per network (the lists are disjoint)
NETWORK_PREFIXES: dict[str, tuple[str, ...]] = {
    "mtn": ("0803", "0806", "0813", "0816", "0903", "0906", "0913", "0916"),
    "airtel": (
        "0701",
        "0708",
        "0802",
        "0808",
        "0812",
        "0901",
        "0902",
        "0907",
        "0912",
    ),
    "glo": ("0705", "0805", "0807", "0811", "0815", "0905", "0915"),
    "9mobile": ("0809", "0817", "0818", "0909", "0908"),
}

_NETWORK_DISPLAY: dict[str, str] = {
    "mtn": "MTN",
    "airtel": "Airtel",
    "glo": "Glo",
    "9mobile": "9mobile",
}

_NON_DIGITS = re.compile(r"\D")


@dataclass
class PhoneValidationResult:
    """Outcome of ``validate_phone``."""

    is_valid: bool
    error: Optional[str] = None
    error_code: Optional[str] = None
    detected_network: Optional[str] = None
    normalized_phone: Optional[str] = None


def normalize_network(network: str) -> Optional[str]:
    """Return the canonical lowercase network key, or None if unsupported."""
    key = (network or "").strip().lower()
    return key if key in SUPPORTED_NETWORKS else None


def network_display_name(network: str) -> str:
    return _NETWORK_DISPLAY.get(network, network.upper())


def normalize_phone_number(phone: str) -> Optional[str]:
    """Normalize to the 11-digit local format (``0XXXXXXXXXX``).

    Accepts ``+234XXXXXXXXXX``, ``234XXXXXXXXXX``, ``0XXXXXXXXXX`` and the
    bare 10-digit ``XXXXXXXXXX``.  Returns None when the input cannot be
    a Nigerian mobile number.
    """
    digits = _NON_DIGITS.sub("", phone or "")

    if digits.startswith("234"):
        local = digits[3:]
        if len(local) == 10:
            return "0" + local
    elif digits.startswith("0"):
        if len(digits) == 11:
            return digits
    elif len(digits) == 10:
        return "0" + digits

    return None


def detect_network(phone: str) -> Optional[str]:
    """Detect the network that owns the number's prefix."""
    normalized = normalize_phone_number(phone)
    if normalized is None:
        return None

    prefix = normalized[:4]
    for network, prefixes in NETWORK_PREFIXES.items():
        if prefix in prefixes:
            return network
    return None


def validate_phone(phone: str, network: Optional[str] = None) -> PhoneValidationResult:
    """Validate a phone number, optionally against the selected network.

    Args:
        phone: Raw phone number as typed by the customer.
        network: If given, the number's prefix must belong to this network.

    Returns:
        A ``PhoneValidationResult``; ``error_code`` is one of
        ``phone_required``, ``invalid_phone_format``, ``unknown_prefix``
        or ``network_mismatch`` when invalid.
    """
    if not phone or not phone.strip():
        return PhoneValidationResult(
            is_valid=False,
            error="Phone number is required",
            error_code="phone_required",
        )

    normalized = normalize_phone_number(phone.strip())
    if normalized is None:
        return PhoneValidationResult(
            is_valid=False,
            error="Invalid phone number format. Use 0803XXXXXXX or 803XXXXXXX format",
            error_code="invalid_phone_format",
        )

    detected = detect_network(normalized)
    if detected is None:
        return PhoneValidationResult(
            is_valid=False,
            error=f"Unrecognised network prefix {normalized[:4]}",
            error_code="unknown_prefix",
            normalized_phone=normalized,
        )

    if network is not None and detected != network:
        return PhoneValidationResult(
            is_valid=False,
            error=(
                f"This number belongs to {network_display_name(detected)}, "
                f"but you selected {network_display_name(network)}. "
                f"Valid {network_display_name(network)} prefixes: "
                f"{', '.join(NETWORK_PREFIXES.get(network, ()))}"
            ),
            error_code="network_mismatch",
            detected_network=detected,
            normalized_phone=normalized,
        )

    return PhoneValidationResult(
        is_valid=True,
        detected_network=detected,
        normalized_phone=normalized,
    )


def mask_phone_number(phone: str) -> str:
    """Mask the middle of a phone number for logging: ``0803****4567``."""
    if not phone or len(phone) < 8:
        return phone
    return f"{phone[:4]}****{phone[-4:]}"
