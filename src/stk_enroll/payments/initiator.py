"""PaymentInitiator: validates a subscription and triggers the push prompt."""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from stk_enroll.common.config import EnrollSettings
from stk_enroll.common.exceptions import GatewayError, ValidationError
from stk_enroll.correlation.keys import KeyStrategy, normalize_phone
from stk_enroll.correlation.store import CorrelationStore, PendingSubscription
from stk_enroll.payments.gateway import DarajaGateway
from stk_enroll.payments.schemas import SubscriptionRequest

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("name", "email", "phone", "industry")


@dataclass(frozen=True)
class InitiationResult:
    correlation_key: str
    acknowledgment: dict[str, Any]

    @property
    def checkout_request_id(self) -> Optional[str]:
        return self.acknowledgment.get("CheckoutRequestID")


def validate_request(request: SubscriptionRequest) -> str:
    """Check required fields and return the normalized phone number."""
    missing = [f for f in REQUIRED_FIELDS if not getattr(request, f)]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    phone = normalize_phone(request.phone)
    if phone is None:
        raise ValidationError("Phone number must look like 2547XXXXXXXX or 07XXXXXXXX")
    if "@" not in request.email.strip("@"):
        raise ValidationError("Email address is not valid")
    return phone


class PaymentInitiator:
    """Orchestrates validate → derive key → store → push prompt."""

    def __init__(
        self,
        settings: EnrollSettings,
        store: CorrelationStore,
        key_strategy: KeyStrategy,
        gateway: DarajaGateway,
    ):
        self.settings = settings
        self.store = store
        self.key_strategy = key_strategy
        self.gateway = gateway

    async def initiate(self, request: SubscriptionRequest) -> InitiationResult:
        phone = validate_request(request)
        key = self.key_strategy.derive_key(phone)

        record = PendingSubscription(
            correlation_key=key,
            name=request.name,
            email=request.email,
            industry=request.industry,
            phone=phone,
        )
        # DuplicateKeyError propagates untouched; the existing record is left alone
        stored = await self.store.put(record, replace=self.settings.allow_resubscribe)

        try:
            ack = await self.gateway.request_push_payment(
                phone=phone,
                amount=self.settings.payment_amount,
                callback_url=self.settings.daraja_callback_url,
                account_reference=self.settings.daraja_account_reference,
                transaction_desc=self.settings.daraja_transaction_desc,
            )
        except GatewayError as exc:
            # A concurrent re-subscribe may own the key by now; leave its record alone
            await self.store.discard(key, expected=stored)
            logger.error(
                "STK push failed: %s",
                exc.message,
                extra={"correlation_key": key, "response_body": exc.response_body},
            )
            raise

        checkout_id = ack.get("CheckoutRequestID")
        if checkout_id:
            await self.store.link(str(checkout_id), key, expected=stored)

        logger.info("Pending subscription recorded", extra={"correlation_key": key, "email": request.email})
        return InitiationResult(correlation_key=key, acknowledgment=ack)
