"""Subscription, callback and admin endpoints."""

import json
import logging

from fastapi import APIRouter, Depends, Request

from stk_enroll.common.security import require_admin_key
from stk_enroll.payments.callback import CallbackOutcome
from stk_enroll.payments.schemas import (
    CallbackAck,
    FailedEnrollmentView,
    PendingSubscriptionView,
    SubscriptionRequest,
    SubscriptionResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()
admin_router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin_key)])


def _get_initiator():
    from stk_enroll.deps import get_payment_initiator
    return get_payment_initiator()


def _get_processor():
    from stk_enroll.deps import get_callback_processor
    return get_callback_processor()


@router.post("/stkpush", response_model=SubscriptionResponse)
async def subscribe(body: SubscriptionRequest):
    """Record the subscription and send the STK push prompt.

    ValidationError, DuplicateKeyError and GatewayError are mapped to
    400/409/500 by the app's exception handlers.
    """
    result = await _get_initiator().initiate(body)
    ack = result.acknowledgment
    return SubscriptionResponse(
        message="Payment prompt sent. Complete the payment on your phone.",
        reference=result.correlation_key,
        merchant_request_id=ack.get("MerchantRequestID"),
        checkout_request_id=ack.get("CheckoutRequestID"),
        customer_message=ack.get("CustomerMessage"),
    )


@router.post("/callback", response_model=CallbackAck)
async def stk_callback(request: Request):
    """Daraja result callback. Always 200."""
    raw = await request.body()
    try:
        payload = json.loads(raw) if raw else None
    except (json.JSONDecodeError, UnicodeDecodeError, RecursionError):
        logger.warning("Callback body is not valid JSON")
        payload = None

    try:
        outcome = await _get_processor().process(payload)
    except Exception:
        logger.exception("Unhandled error processing STK callback")
        outcome = CallbackOutcome.INTERNAL_ERROR
    return CallbackAck(outcome=outcome.value)


@admin_router.get("/pending", response_model=list[PendingSubscriptionView])
async def list_pending():
    from stk_enroll.deps import get_store

    records = await get_store().snapshot()
    return [
        PendingSubscriptionView(
            correlation_key=r.correlation_key,
            name=r.name,
            email=r.email,
            industry=r.industry,
            phone=r.phone,
            created_at=r.created_at.isoformat(),
        )
        for r in records
    ]


@admin_router.get("/failed-enrollments", response_model=list[FailedEnrollmentView])
async def list_failed_enrollments():
    from stk_enroll.deps import get_notification_dispatcher

    return [
        FailedEnrollmentView(
            correlation_key=f.record.correlation_key,
            email=f.record.email,
            phone=f.phone,
            group=f.group,
            error=f.error,
            failed_at=f.failed_at.isoformat(),
        )
        for f in get_notification_dispatcher().failed_enrollments
    ]
