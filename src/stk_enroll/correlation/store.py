"""Pending-subscription store with atomic check-and-remove.

The store is the only shared state between the subscription entry point and
the callback entry point. ``take_if_present`` is the at-most-once guard: two
concurrent deliveries of the same callback can never both receive the record.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable, Optional

from stk_enroll.common.exceptions import DuplicateKeyError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingSubscription:
    """A subscription awaiting payment confirmation."""

    correlation_key: str
    name: str
    email: str
    industry: str
    phone: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: Optional[float] = None  # monotonic deadline, set by the store

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class CorrelationStore(ABC):
    """Interface for pending-subscription storage.

    Swap the in-memory implementation for a persistent backend without
    touching the initiator or callback processor.
    """

    @abstractmethod
    async def put(self, record: PendingSubscription, *, replace: bool = False) -> PendingSubscription:
        """Insert under ``record.correlation_key``; raise DuplicateKeyError if taken."""

    @abstractmethod
    async def take_if_present(self, key: str) -> Optional[PendingSubscription]:
        """Atomically remove and return the record, or None."""

    @abstractmethod
    async def peek(self, key: str) -> Optional[PendingSubscription]:
        """Return the record without removing it (debug only)."""

    @abstractmethod
    async def discard(self, key: str, expected: Optional[PendingSubscription] = None) -> bool:
        """Remove the record if present; return whether anything was removed.

        With ``expected``, only remove it if it is still that exact record.
        """

    @abstractmethod
    async def link(self, alias: str, key: str, expected: Optional[PendingSubscription] = None) -> bool:
        """Make ``alias`` resolve to the record stored under ``key``.

        With ``expected``, only link if ``key`` still holds that exact record.
        """

    @abstractmethod
    async def snapshot(self) -> list[PendingSubscription]:
        """Return all live records."""

    @abstractmethod
    async def sweep_expired(self) -> list[PendingSubscription]:
        """Evict and return records past their deadline."""


class InMemoryCorrelationStore(CorrelationStore):
    """Process-local store guarded by a single asyncio.Lock."""

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._records: dict[str, PendingSubscription] = {}
        self._aliases: dict[str, str] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._records)

    # Helpers below assume the lock is held.

    def _resolve(self, key: str) -> str:
        return self._aliases.get(key, key)

    def _remove(self, key: str) -> Optional[PendingSubscription]:
        record = self._records.pop(key, None)
        if record is not None:
            for alias in [a for a, k in self._aliases.items() if k == key]:
                del self._aliases[alias]
        return record

    def _evict_if_expired(self, key: str) -> bool:
        record = self._records.get(key)
        if record is not None and record.is_expired(self._clock()):
            self._remove(key)
            logger.warning(
                "Pending subscription expired before confirmation",
                extra={"correlation_key": key, "email": record.email},
            )
            return True
        return False

    async def put(self, record: PendingSubscription, *, replace: bool = False) -> PendingSubscription:
        key = record.correlation_key
        if self.ttl_seconds is not None:
            record = _with_deadline(record, self._clock() + self.ttl_seconds)

        async with self._lock:
            self._evict_if_expired(key)
            if key in self._records:
                if not replace:
                    raise DuplicateKeyError(f"Pending subscription already exists for {key}")
                self._remove(key)
                logger.info("Replacing pending subscription", extra={"correlation_key": key})
            self._records[key] = record
            return record

    async def take_if_present(self, key: str) -> Optional[PendingSubscription]:
        async with self._lock:
            primary = self._resolve(key)
            if self._evict_if_expired(primary):
                return None
            return self._remove(primary)

    async def peek(self, key: str) -> Optional[PendingSubscription]:
        async with self._lock:
            return self._records.get(self._resolve(key))

    async def discard(self, key: str, expected: Optional[PendingSubscription] = None) -> bool:
        async with self._lock:
            primary = self._resolve(key)
            if expected is not None and self._records.get(primary) is not expected:
                return False
            return self._remove(primary) is not None

    async def link(self, alias: str, key: str, expected: Optional[PendingSubscription] = None) -> bool:
        async with self._lock:
            if key not in self._records or alias == key:
                return False
            if expected is not None and self._records[key] is not expected:
                return False
            self._aliases[alias] = key
            return True

    async def snapshot(self) -> list[PendingSubscription]:
        async with self._lock:
            now = self._clock()
            return [r for r in self._records.values() if not r.is_expired(now)]

    async def sweep_expired(self) -> list[PendingSubscription]:
        async with self._lock:
            now = self._clock()
            expired = [k for k, r in self._records.items() if r.is_expired(now)]
            evicted = [self._remove(k) for k in expired]

        for record in evicted:
            logger.warning(
                "Evicted unconfirmed subscription",
                extra={"correlation_key": record.correlation_key, "email": record.email},
            )
        return evicted


def _with_deadline(record: PendingSubscription, deadline: float) -> PendingSubscription:
    return replace(record, expires_at=deadline)


async def run_sweeper(store: CorrelationStore, interval: float) -> None:
    """Periodically evict expired records until cancelled."""
    while True:
        await asyncio.sleep(interval)
        try:
            evicted = await store.sweep_expired()
            if evicted:
                logger.info("Sweep evicted %d pending subscriptions", len(evicted))
        except Exception:
            logger.exception("Pending subscription sweep failed")
