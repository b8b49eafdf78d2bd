"""Tests for the in-process slot lock."""

import asyncio
from unittest.mock import patch

import pytest

from app.utils.slot_lock import SlotLock, SlotLockRegistry, run_lock_sweeper


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def lock(clock):
    return SlotLock(default_ttl_seconds=300, clock=clock)


def test_only_first_acquire_within_ttl_succeeds(lock, clock):
    results = [lock.acquire("2025-03-10", "10:00")]
    for _ in range(5):
        clock.advance(30)
        results.append(lock.acquire("2025-03-10", "10:00"))
    assert results.count(True) == 1
    assert results[0] is True


def test_acquire_succeeds_again_after_ttl(lock, clock):
    assert lock.acquire("2025-03-10", "10:00")
    clock.advance(299)
    assert not lock.acquire("2025-03-10", "10:00")
    clock.advance(1)
    assert lock.acquire("2025-03-10", "10:00")


def test_keys_are_normalised(lock):
    assert lock.acquire("2025-03-10", "9:00")
    assert not lock.acquire("2025-03-10", "09:00")
    assert SlotLock.key("2025-03-10", "9:00") == "2025-03-10__09:00"


def test_different_slots_do_not_interfere(lock):
    assert lock.acquire("2025-03-10", "10:00")
    assert lock.acquire("2025-03-10", "10:30")
    assert lock.acquire("2025-03-11", "10:00")


def test_release_reports_whether_an_entry_was_removed(lock):
    assert lock.release("2025-03-10", "10:00") is False
    lock.acquire("2025-03-10", "10:00")
    assert lock.release("2025-03-10", "10:00") is True
    assert lock.acquire("2025-03-10", "10:00")


def test_release_with_owner_only_removes_own_entry(lock):
    lock.acquire("2025-03-10", "10:00")
    lock.tag("2025-03-10", "10:00", "NAB_2025_0001")
    assert lock.release("2025-03-10", "10:00", "NAB_2025_0002") is False
    assert lock.is_locked("2025-03-10", "10:00")
    assert lock.release("2025-03-10", "10:00", "NAB_2025_0001") is True


def test_is_locked_purges_expired_entries(lock, clock):
    lock.acquire("2025-03-10", "10:00", ttl_seconds=10)
    assert lock.is_locked("2025-03-10", "10:00")
    clock.advance(10)
    assert not lock.is_locked("2025-03-10", "10:00")
    assert len(lock) == 0


def test_remaining_millis(lock, clock):
    assert lock.remaining_millis("2025-03-10", "10:00") == 0
    lock.acquire("2025-03-10", "10:00")
    clock.advance(60)
    assert lock.remaining_millis("2025-03-10", "10:00") == 240_000
    clock.advance(300)
    assert lock.remaining_millis("2025-03-10", "10:00") == 0


def test_cleanup_expired(lock, clock):
    lock.acquire("2025-03-10", "10:00", ttl_seconds=10)
    lock.acquire("2025-03-10", "11:00", ttl_seconds=100)
    clock.advance(50)
    assert lock.cleanup_expired() == 1
    assert len(lock) == 1


def test_registry_isolates_businesses(clock):
    registry = SlotLockRegistry(default_ttl_seconds=300, clock=clock)
    assert registry.for_business("a").acquire("2025-03-10", "10:00")
    assert registry.for_business("b").acquire("2025-03-10", "10:00")
    assert registry.for_business("a") is registry.for_business("a")
    clock.advance(301)
    assert registry.cleanup_expired() == 2


@pytest.mark.asyncio
async def test_sweeper_cleans_periodically(clock):
    registry = SlotLockRegistry(default_ttl_seconds=1, clock=clock)
    registry.for_business("a").acquire("2025-03-10", "10:00")
    clock.advance(5)

    with patch.object(registry, "cleanup_expired", wraps=registry.cleanup_expired) as cleanup:
        task = asyncio.create_task(run_lock_sweeper(registry, interval_seconds=0.01))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    assert cleanup.call_count >= 1
    assert len(registry.for_business("a")) == 0
