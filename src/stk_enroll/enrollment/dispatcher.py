"""The single enrollment call after a confirmed payment."""

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from stk_enroll.common.exceptions import NotificationError
from stk_enroll.correlation.store import PendingSubscription
from stk_enroll.enrollment.groups import GroupResolver
from stk_enroll.enrollment.mailerlite import MailerLiteClient

logger = logging.getLogger(__name__)

MAX_FAILED_ENROLLMENTS = 500


@dataclass(frozen=True)
class EnrollmentReceipt:
    email: str
    phone: str
    group: Optional[str]
    response: dict[str, Any]


@dataclass(frozen=True)
class FailedEnrollment:
    """A paid subscriber whose enrollment call failed; kept for manual follow-up."""

    record: PendingSubscription
    phone: str
    group: Optional[str]
    error: str
    failed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class NotificationDispatcher:
    """Enrolls a confirmed subscriber exactly one time per call.

    The pending record has already left the store when this runs, so a
    failure is recorded in ``failed_enrollments`` and not retried.
    """

    def __init__(
        self,
        mailing_list: MailerLiteClient,
        group_resolver: GroupResolver,
        max_failed: int = MAX_FAILED_ENROLLMENTS,
    ):
        self.mailing_list = mailing_list
        self.group_resolver = group_resolver
        self.failed_enrollments: deque[FailedEnrollment] = deque(maxlen=max_failed)

    async def dispatch(
        self,
        record: PendingSubscription,
        webhook_phone: Optional[str] = None,
    ) -> EnrollmentReceipt:
        phone = webhook_phone or record.phone
        group = self.group_resolver.resolve(record.industry)

        try:
            response = await self.mailing_list.subscribe(
                email=record.email,
                name=record.name,
                phone=phone,
                industry=record.industry,
                group=group,
            )
        except NotificationError as exc:
            self._record_failure(record, phone, group, exc.message)
            logger.error(
                "Enrollment failed after confirmed payment: %s",
                exc.message,
                extra={
                    "correlation_key": record.correlation_key,
                    "email": record.email,
                    "response_body": exc.response_body,
                },
            )
            raise

        logger.info(
            "Subscriber enrolled",
            extra={"correlation_key": record.correlation_key, "email": record.email, "group": group},
        )
        return EnrollmentReceipt(email=record.email, phone=phone, group=group, response=response)

    def _record_failure(
        self, record: PendingSubscription, phone: str, group: Optional[str], error: str,
    ) -> None:
        self.failed_enrollments.append(
            FailedEnrollment(record=record, phone=phone, group=group, error=error)
        )
