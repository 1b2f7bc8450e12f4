"""STK-Enroll: mailing-list enrollment gated on M-Pesa STK push payments."""

from stk_enroll.correlation.keys import (
    KeyStrategy,
    PhoneKeyStrategy,
    ReferenceKeyStrategy,
    get_key_strategy,
    normalize_phone,
)
from stk_enroll.correlation.store import (
    CorrelationStore,
    InMemoryCorrelationStore,
    PendingSubscription,
)

__all__ = [
    "CorrelationStore",
    "InMemoryCorrelationStore",
    "PendingSubscription",
    "KeyStrategy",
    "PhoneKeyStrategy",
    "ReferenceKeyStrategy",
    "get_key_strategy",
    "normalize_phone",
]
__version__ = "0.1.0"
