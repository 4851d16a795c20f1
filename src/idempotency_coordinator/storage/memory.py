"""In-memory store adapter with asyncio concurrency control.

This module provides an in-process implementation of the StoreAdapter
protocol. Entries carry an absolute expiry taken from a monotonic clock and
disappear lazily once it passes, the same way a Redis key with EX vanishes.

The MemoryStore is suitable for:
    - Single-process applications
    - Development and testing
    - Simulating lease expiry deterministically (inject ``clock``)

For multi-process or multi-instance deployments use RedisStore.

Examples:
    Basic usage::

        store = MemoryStore()
        assert await store.acquire("k", "lease", ttl_seconds=30)
        assert not await store.acquire("k", "lease", ttl_seconds=30)

    Simulating expiry::

        now = [0.0]
        store = MemoryStore(clock=lambda: now[0])
        await store.acquire("k", "lease", ttl_seconds=30)
        now[0] += 31
        assert await store.read("k") is None
"""

import asyncio
import time
from collections.abc import Callable

from idempotency_coordinator.storage.base import StoreAdapter


class MemoryStore(StoreAdapter):
    """In-memory store with TTL-bearing entries.

    Attributes:
        _entries: Dictionary mapping keys to (value, expires_at) tuples.
        _lock: Lock making acquire() atomic across coroutines.
        _clock: Monotonic clock in seconds.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        """Initialize an empty store.

        Args:
            clock: Source of monotonic time in seconds. Tests inject a fake clock
                to expire leases without sleeping.
        """
        self._entries: dict[str, tuple[str, float]] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    async def acquire(self, key: str, value: str, ttl_seconds: int) -> bool:
        """Atomically create key if it is absent or expired.

        Args:
            key: Storage key.
            value: Value to store.
            ttl_seconds: Time-to-live in seconds.

        Returns:
            True if the key was created, False if a live entry exists.
        """
        async with self._lock:
            if self._get_live(key) is not None:
                return False
            self._entries[key] = (value, self._clock() + ttl_seconds)
            return True

    async def read(self, key: str) -> str | None:
        return self._get_live(key)

    async def write(self, key: str, value: str, ttl_seconds: int) -> None:
        async with self._lock:
            self._entries[key] = (value, self._clock() + ttl_seconds)

    async def remove(self, key: str) -> None:
        async with self._lock:
            self._entries.pop(key, None)

    async def ttl(self, key: str) -> float | None:
        """Remaining lifetime of key in seconds, or None if absent."""
        entry = self._entries.get(key)
        if entry is None or self._get_live(key) is None:
            return None
        return entry[1] - self._clock()

    async def cleanup_expired(self) -> int:
        """Remove expired entries.

        Returns:
            The number of entries removed.
        """
        now = self._clock()
        async with self._lock:
            expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        now = self._clock()
        return sum(1 for _, expires_at in self._entries.values() if expires_at > now)

    def _get_live(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            # Expired: behave as if the store already evicted it
            self._entries.pop(key, None)
            return None
        return value
