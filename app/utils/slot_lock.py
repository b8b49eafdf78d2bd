"""In-process, time-bounded slot locks.

Closes the gap between "this slot looked free" and "the draft booking is
written" inside one process. Entries live in memory only and are lost on
restart; the store-level overlap scan stays the authoritative conflict check.
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from datetime import date, time as dt_time
from typing import Callable

from app.utils.time_window import format_time_slot, parse_date, parse_time_slot

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TTL_SECONDS = 5 * 60


@dataclass
class SlotLockEntry:
    locked_at: float
    expires_at: float
    owner: str | None = None


class SlotLock:
    """Mutual-exclusion map keyed by ``date__time_slot``."""

    def __init__(
        self,
        default_ttl_seconds: float = DEFAULT_LOCK_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._entries: dict[str, SlotLockEntry] = {}
        self._mutex = threading.Lock()
        self._default_ttl = default_ttl_seconds
        self._clock = clock

    @staticmethod
    def key(day: date | str, time_slot: dt_time | str) -> str:
        return f"{parse_date(day).isoformat()}__{format_time_slot(parse_time_slot(time_slot))}"

    def acquire(self, day: date | str, time_slot: dt_time | str, ttl_seconds: float | None = None) -> bool:
        """Lock the slot. Returns False if an unexpired lock already exists."""
        key = self.key(day, time_slot)
        ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
        with self._mutex:
            now = self._clock()
            entry = self._entries.get(key)
            if entry and entry.expires_at > now:
                return False
            self._entries[key] = SlotLockEntry(locked_at=now, expires_at=now + ttl)
            return True

    def tag(self, day: date | str, time_slot: dt_time | str, owner: str) -> bool:
        """Record which booking holds an unexpired lock."""
        key = self.key(day, time_slot)
        with self._mutex:
            entry = self._entries.get(key)
            if entry is None or entry.expires_at <= self._clock():
                return False
            entry.owner = owner
            return True

    def release(self, day: date | str, time_slot: dt_time | str, owner: str | None = None) -> bool:
        """Remove the entry. With ``owner`` set, only an entry tagged with that owner is removed."""
        key = self.key(day, time_slot)
        with self._mutex:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if owner is not None and entry.owner != owner:
                return False
            del self._entries[key]
            return True

    def is_locked(self, day: date | str, time_slot: dt_time | str) -> bool:
        key = self.key(day, time_slot)
        with self._mutex:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if entry.expires_at <= self._clock():
                del self._entries[key]
                return False
            return True

    def remaining_millis(self, day: date | str, time_slot: dt_time | str) -> int:
        key = self.key(day, time_slot)
        with self._mutex:
            entry = self._entries.get(key)
            if entry is None:
                return 0
            return max(0, int((entry.expires_at - self._clock()) * 1000))

    def cleanup_expired(self) -> int:
        with self._mutex:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


class SlotLockRegistry:
    """One ``SlotLock`` per business, so equal slots of different businesses never collide."""

    def __init__(
        self,
        default_ttl_seconds: float = DEFAULT_LOCK_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._locks: dict[str, SlotLock] = {}
        self._mutex = threading.Lock()
        self._default_ttl = default_ttl_seconds
        self._clock = clock

    def for_business(self, business_id: str) -> SlotLock:
        with self._mutex:
            lock = self._locks.get(business_id)
            if lock is None:
                lock = SlotLock(self._default_ttl, self._clock)
                self._locks[business_id] = lock
            return lock

    def cleanup_expired(self) -> int:
        with self._mutex:
            locks = list(self._locks.values())
        return sum(lock.cleanup_expired() for lock in locks)


async def run_lock_sweeper(registry: SlotLockRegistry, interval_seconds: float = 60):
    """Periodically drop expired entries. Memory hygiene only; reads self-purge."""
    while True:
        await asyncio.sleep(interval_seconds)
        cleaned = registry.cleanup_expired()
        if cleaned:
            logger.info("Cleaned up %d expired slot locks", cleaned)
