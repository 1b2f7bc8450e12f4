"""Pydantic schemas for the subscription and callback endpoints."""

from typing import Optional

from pydantic import BaseModel, ConfigDict


class SubscriptionRequest(BaseModel):
    """Contact details submitted with a subscription.

    Fields default to empty so missing values are reported by the initiator
    as a 400, not by request parsing.
    """

    model_config = ConfigDict(str_strip_whitespace=True, coerce_numbers_to_str=True)

    name: str = ""
    email: str = ""
    phone: str = ""
    industry: str = ""


class SubscriptionResponse(BaseModel):
    message: str
    reference: Optional[str] = None
    merchant_request_id: Optional[str] = None
    checkout_request_id: Optional[str] = None
    customer_message: Optional[str] = None


class CallbackAck(BaseModel):
    """Acknowledgment returned to Daraja; any 2xx stops redelivery."""

    ResultCode: int = 0
    ResultDesc: str = "Accepted"
    outcome: str = ""


class PendingSubscriptionView(BaseModel):
    correlation_key: str
    name: str
    email: str
    industry: str
    phone: str
    created_at: str


class FailedEnrollmentView(BaseModel):
    correlation_key: str
    email: str
    phone: str
    group: Optional[str] = None
    error: str
    failed_at: str
