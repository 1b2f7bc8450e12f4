"""Parser for Daraja STK push result callbacks.

Envelope::

    {"Body": {"stkCallback": {
        "MerchantRequestID": "...", "CheckoutRequestID": "...",
        "ResultCode": 0, "ResultDesc": "...",
        "CallbackMetadata": {"Item": [{"Name": "PhoneNumber", "Value": 2547...}, ...]}
    }}}

CallbackMetadata is only present on success, and individual items may be
missing or carry no Value.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from stk_enroll.common.exceptions import CallbackParseError
from stk_enroll.correlation.keys import normalize_phone

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WebhookResult:
    """Normalized outcome of one callback delivery."""

    result_code: int
    result_desc: str = ""
    merchant_request_id: str = ""
    checkout_request_id: str = ""
    metadata_items: dict[str, Any] = field(default_factory=dict)
    correlation_key: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.result_code == 0

    @property
    def phone_number(self) -> Optional[str]:
        return normalize_phone(self.metadata_items.get("PhoneNumber"))

    @property
    def receipt_number(self) -> Optional[str]:
        value = self.metadata_items.get("MpesaReceiptNumber")
        return str(value) if value is not None else None

    @property
    def amount(self) -> Any:
        return self.metadata_items.get("Amount")


def _metadata_items(callback: dict[str, Any]) -> dict[str, Any]:
    metadata = callback.get("CallbackMetadata")
    if not isinstance(metadata, dict):
        return {}
    items = metadata.get("Item")
    if not isinstance(items, list):
        return {}

    parsed: dict[str, Any] = {}
    for item in items:
        if not isinstance(item, dict) or not isinstance(item.get("Name"), str):
            logger.debug("Skipping malformed callback metadata item: %r", item)
            continue
        parsed[item["Name"]] = item.get("Value")
    return parsed


def _result_code(raw: Any) -> int:
    """Accept integers, integral floats and digit strings; reject everything else."""
    if isinstance(raw, bool):
        raise CallbackParseError(f"Invalid ResultCode: {raw!r}")
    if isinstance(raw, int):
        return raw
    # is_integer() is False for inf and nan too
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    if isinstance(raw, str):
        try:
            return int(raw.strip())
        except ValueError as exc:
            raise CallbackParseError(f"Invalid ResultCode: {raw!r}") from exc
    raise CallbackParseError(f"Invalid ResultCode: {raw!r}")


def parse_stk_callback(payload: Any) -> WebhookResult:
    """Turn a raw callback body into a WebhookResult.

    Raises CallbackParseError when the envelope or result code is missing.
    """
    if not isinstance(payload, dict):
        raise CallbackParseError("Callback body is not a JSON object")
    body = payload.get("Body")
    callback = body.get("stkCallback") if isinstance(body, dict) else None
    if not isinstance(callback, dict):
        raise CallbackParseError("No callback body present")

    return WebhookResult(
        result_code=_result_code(callback.get("ResultCode")),
        result_desc=str(callback.get("ResultDesc") or ""),
        merchant_request_id=str(callback.get("MerchantRequestID") or ""),
        checkout_request_id=str(callback.get("CheckoutRequestID") or ""),
        metadata_items=_metadata_items(callback),
    )
