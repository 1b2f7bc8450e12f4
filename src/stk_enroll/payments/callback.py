"""CallbackProcessor: resolves STK push results and triggers enrollment.

Every outcome is absorbed here. Daraja redelivers on any non-2xx, and the
record is already consumed by then.
"""

import enum
import json
import logging
from dataclasses import replace
from typing import Any

from stk_enroll.common.exceptions import CallbackParseError, KeyResolutionError
from stk_enroll.correlation.keys import KeyStrategy
from stk_enroll.correlation.store import CorrelationStore
from stk_enroll.enrollment.dispatcher import NotificationDispatcher
from stk_enroll.payments.stk_callback import WebhookResult, parse_stk_callback

logger = logging.getLogger(__name__)


class CallbackOutcome(str, enum.Enum):
    NO_BODY = "no_body"
    KEY_NOT_FOUND = "key_not_found"
    NO_ACTION = "no_action"
    PAYMENT_FAILED = "payment_failed"
    ENROLLED = "enrolled"
    ENROLLMENT_FAILED = "enrollment_failed"
    INTERNAL_ERROR = "internal_error"


class CallbackProcessor:
    """parse → extract key → take record → branch → dispatch."""

    def __init__(
        self,
        store: CorrelationStore,
        key_strategy: KeyStrategy,
        dispatcher: NotificationDispatcher,
    ):
        self.store = store
        self.key_strategy = key_strategy
        self.dispatcher = dispatcher

    def extract(self, payload: Any) -> WebhookResult:
        """Parse the envelope and attach the correlation key.

        Raises CallbackParseError or KeyResolutionError.
        """
        result = parse_stk_callback(payload)
        key = self.key_strategy.extract_key(result)
        if not key:
            raise KeyResolutionError(
                f"No {self.key_strategy.name} key in callback "
                f"(checkout {result.checkout_request_id or '<none>'}, result {result.result_code})"
            )
        return replace(result, correlation_key=key)

    async def process(self, payload: Any) -> CallbackOutcome:
        logger.debug("STK callback body: %s", json.dumps(payload, default=str))

        try:
            result = self.extract(payload)
        except CallbackParseError as exc:
            logger.warning("Ignoring callback: %s", exc.message)
            return CallbackOutcome.NO_BODY
        except KeyResolutionError as exc:
            logger.warning("Ignoring callback: %s", exc.message)
            return CallbackOutcome.KEY_NOT_FOUND

        key = result.correlation_key
        logger.info(
            "STK callback received",
            extra={
                "merchant_request_id": result.merchant_request_id,
                "checkout_request_id": result.checkout_request_id,
                "result_code": result.result_code,
            },
        )
        record = await self.store.take_if_present(key)
        if record is None:
            logger.info("No pending subscription for %s; no action taken", key)
            return CallbackOutcome.NO_ACTION

        if not result.succeeded:
            logger.info(
                "Payment failed for %s: %s",
                record.phone,
                result.result_desc or result.result_code,
                extra={"correlation_key": key, "result_code": result.result_code},
            )
            return CallbackOutcome.PAYMENT_FAILED

        logger.info(
            "Payment confirmed for %s",
            record.phone,
            extra={
                "correlation_key": key,
                "receipt": result.receipt_number,
                "amount": result.amount,
            },
        )
        try:
            await self.dispatcher.dispatch(record, webhook_phone=result.phone_number)
        except Exception:
            logger.exception("Enrollment failed for %s", record.email, extra={"correlation_key": key})
            return CallbackOutcome.ENROLLMENT_FAILED

        return CallbackOutcome.ENROLLED
