"""Tests for the in-memory correlation store: atomicity, aliases, expiry."""

import asyncio
import contextlib
from unittest.mock import AsyncMock

import pytest

from stk_enroll.common.exceptions import DuplicateKeyError
from stk_enroll.correlation.store import InMemoryCorrelationStore, PendingSubscription, run_sweeper


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_record(key="254700111222", **overrides) -> PendingSubscription:
    fields = {
        "correlation_key": key,
        "name": "Jo",
        "email": "jo@x.com",
        "industry": "retail",
        "phone": "254700111222",
    }
    fields.update(overrides)
    return PendingSubscription(**fields)


class TestPutAndTake:
    async def test_take_returns_and_removes(self):
        store = InMemoryCorrelationStore()
        await store.put(make_record())
        record = await store.take_if_present("254700111222")
        assert record is not None
        assert record.email == "jo@x.com"
        assert await store.take_if_present("254700111222") is None
        assert len(store) == 0

    async def test_take_unknown_key(self):
        store = InMemoryCorrelationStore()
        assert await store.take_if_present("nope") is None

    async def test_duplicate_put_rejected(self):
        store = InMemoryCorrelationStore()
        await store.put(make_record())
        with pytest.raises(DuplicateKeyError):
            await store.put(make_record(email="other@x.com"))
        assert (await store.peek("254700111222")).email == "jo@x.com"

    async def test_replace_overwrites(self):
        store = InMemoryCorrelationStore()
        await store.put(make_record())
        await store.put(make_record(email="new@x.com"), replace=True)
        assert len(store) == 1
        assert (await store.peek("254700111222")).email == "new@x.com"

    async def test_peek_does_not_remove(self):
        store = InMemoryCorrelationStore()
        await store.put(make_record())
        assert await store.peek("254700111222") is not None
        assert await store.peek("254700111222") is not None
        assert len(store) == 1

    async def test_discard(self):
        store = InMemoryCorrelationStore()
        await store.put(make_record())
        assert await store.discard("254700111222") is True
        assert await store.discard("254700111222") is False

    async def test_discard_expected_leaves_replacement(self):
        store = InMemoryCorrelationStore()
        original = await store.put(make_record())
        await store.put(make_record(email="new@x.com"), replace=True)
        assert await store.discard("254700111222", expected=original) is False
        assert (await store.peek("254700111222")).email == "new@x.com"

    async def test_discard_expected_removes_same_record(self):
        store = InMemoryCorrelationStore()
        stored = await store.put(make_record())
        assert await store.discard("254700111222", expected=stored) is True
        assert len(store) == 0


class TestConcurrentTake:
    async def test_only_one_taker_wins(self):
        store = InMemoryCorrelationStore()
        await store.put(make_record())
        results = await asyncio.gather(
            *(store.take_if_present("254700111222") for _ in range(20))
        )
        assert sum(r is not None for r in results) == 1


class TestAliases:
    async def test_alias_resolves_record(self):
        store = InMemoryCorrelationStore()
        await store.put(make_record(key="SUBabc"))
        assert await store.link("ws_CO_1", "SUBabc") is True
        record = await store.take_if_present("ws_CO_1")
        assert record.correlation_key == "SUBabc"
        assert await store.take_if_present("SUBabc") is None

    async def test_alias_dropped_with_record(self):
        store = InMemoryCorrelationStore()
        await store.put(make_record(key="SUBabc"))
        await store.link("ws_CO_1", "SUBabc")
        await store.take_if_present("SUBabc")
        assert await store.take_if_present("ws_CO_1") is None

    async def test_link_unknown_key(self):
        store = InMemoryCorrelationStore()
        assert await store.link("ws_CO_1", "missing") is False

    async def test_replace_drops_old_alias(self):
        store = InMemoryCorrelationStore()
        await store.put(make_record(key="254700111222"))
        await store.link("ws_CO_old", "254700111222")
        await store.put(make_record(), replace=True)
        assert await store.peek("ws_CO_old") is None

    async def test_link_expected_refuses_replacement(self):
        store = InMemoryCorrelationStore()
        original = await store.put(make_record())
        await store.put(make_record(email="new@x.com"), replace=True)
        assert await store.link("ws_CO_stale", "254700111222", expected=original) is False
        assert await store.peek("ws_CO_stale") is None


class TestExpiry:
    async def test_put_sets_deadline(self):
        clock = FakeClock()
        store = InMemoryCorrelationStore(ttl_seconds=60, clock=clock)
        stored = await store.put(make_record())
        assert stored.expires_at == 1060.0

    async def test_expired_record_not_taken(self):
        clock = FakeClock()
        store = InMemoryCorrelationStore(ttl_seconds=60, clock=clock)
        await store.put(make_record())
        clock.now += 61
        assert await store.take_if_present("254700111222") is None
        assert len(store) == 0

    async def test_expired_record_does_not_block_put(self):
        clock = FakeClock()
        store = InMemoryCorrelationStore(ttl_seconds=60, clock=clock)
        await store.put(make_record())
        clock.now += 61
        await store.put(make_record(email="again@x.com"))
        assert (await store.peek("254700111222")).email == "again@x.com"

    async def test_sweep_evicts_only_expired(self):
        clock = FakeClock()
        store = InMemoryCorrelationStore(ttl_seconds=60, clock=clock)
        await store.put(make_record(key="old"))
        clock.now += 30
        await store.put(make_record(key="fresh"))
        clock.now += 31
        evicted = await store.sweep_expired()
        assert [r.correlation_key for r in evicted] == ["old"]
        assert [r.correlation_key for r in await store.snapshot()] == ["fresh"]

    async def test_no_ttl_never_expires(self):
        clock = FakeClock()
        store = InMemoryCorrelationStore(clock=clock)
        await store.put(make_record())
        clock.now += 10**9
        assert await store.sweep_expired() == []
        assert await store.take_if_present("254700111222") is not None


async def _wait_until(predicate, attempts: int = 200) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0.01)


class TestSweeper:
    async def test_background_sweep_evicts_expired(self):
        clock = FakeClock()
        store = InMemoryCorrelationStore(ttl_seconds=60, clock=clock)
        await store.put(make_record())
        await store.put(make_record(key="254700333444", phone="254700333444"))
        task = asyncio.create_task(run_sweeper(store, 0.01))
        try:
            await asyncio.sleep(0.03)
            assert len(store) == 2

            clock.now += 61
            await _wait_until(lambda: len(store) == 0)
            assert len(store) == 0
        finally:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def test_sweep_error_does_not_stop_loop(self):
        store = AsyncMock()
        store.sweep_expired.side_effect = [RuntimeError("boom")] + [[] for _ in range(1000)]
        task = asyncio.create_task(run_sweeper(store, 0.01))
        try:
            await _wait_until(lambda: store.sweep_expired.await_count >= 3)
            assert store.sweep_expired.await_count >= 3
            assert not task.done()
        finally:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
