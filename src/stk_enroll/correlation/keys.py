"""Correlation key strategies.

A strategy decides which identifier ties a push-payment request to its
callback, and how to find that identifier again in the callback payload.

- ``phone``: the normalized MSISDN is the key; the callback's PhoneNumber
  item carries it back.
- ``reference``: an opaque random token is the key; the callback carries it
  as an AccountReference item, or the initiator links it to the gateway's
  CheckoutRequestID so the callback envelope resolves it.
"""

import re
import secrets
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from stk_enroll.payments.stk_callback import WebhookResult

MSISDN_PATTERN = re.compile(r"^254\d{9}$")
REFERENCE_TOKEN_BYTES = 12

PHONE_ITEM_NAMES = ("PhoneNumber", "MSISDN")
REFERENCE_ITEM_NAMES = ("AccountReference", "BillRefNumber")


def normalize_phone(value: Any) -> Optional[str]:
    """Return the phone number as ``254XXXXXXXXX`` or None if it isn't one.

    Accepts ``+254...``, ``254...``, ``07...``/``01...`` and integers as
    delivered in callback metadata.
    """
    if value is None or isinstance(value, bool):
        return None
    digits = re.sub(r"[\s+\-()]", "", str(value))
    if digits.startswith("0") and len(digits) == 10:
        digits = "254" + digits[1:]
    if not MSISDN_PATTERN.match(digits):
        return None
    return digits


def _first_item(items: dict[str, Any], names: tuple[str, ...]) -> Any:
    for name in names:
        value = items.get(name)
        if value not in (None, ""):
            return value
    return None


class KeyStrategy(ABC):
    """Derives correlation keys on the way out and extracts them on the way back."""

    name: str = ""

    @abstractmethod
    def derive_key(self, phone: str) -> str:
        """Return the correlation key for a new subscription."""

    @abstractmethod
    def extract_key(self, result: "WebhookResult") -> Optional[str]:
        """Return the correlation key carried by a callback, or None."""


class PhoneKeyStrategy(KeyStrategy):
    name = "phone"

    def derive_key(self, phone: str) -> str:
        key = normalize_phone(phone)
        if key is None:
            raise ValueError(f"Not a valid phone number: {phone!r}")
        return key

    def extract_key(self, result: "WebhookResult") -> Optional[str]:
        # Cancelled prompts carry no metadata; the checkout id alias still resolves
        phone = normalize_phone(_first_item(result.metadata_items, PHONE_ITEM_NAMES))
        return phone or result.checkout_request_id or None


class ReferenceKeyStrategy(KeyStrategy):
    name = "reference"

    def __init__(self, prefix: str = "SUB"):
        self.prefix = prefix

    def derive_key(self, phone: str) -> str:
        return f"{self.prefix}{secrets.token_hex(REFERENCE_TOKEN_BYTES)}"

    def extract_key(self, result: "WebhookResult") -> Optional[str]:
        reference = _first_item(result.metadata_items, REFERENCE_ITEM_NAMES)
        if reference is not None:
            return str(reference)
        return result.checkout_request_id or None


def get_key_strategy(name: str, reference_prefix: str = "SUB") -> KeyStrategy:
    """Select a strategy by its configured name."""
    name = name.lower().strip()
    if name == PhoneKeyStrategy.name:
        return PhoneKeyStrategy()
    if name == ReferenceKeyStrategy.name:
        return ReferenceKeyStrategy(prefix=reference_prefix)
    raise ValueError(f"Unknown key strategy: {name!r} (expected 'phone' or 'reference')")
