"""Store adapter protocol for the idempotency coordinator.

The coordinator keeps all of its state (leases and cached outcomes) in an
external key-value store reached through four primitives. Every call is
addressed by a single string key and carries string values.

Examples:
    Implementing a custom store::

        class MyStore:
            async def acquire(self, key: str, value: str, ttl_seconds: int) -> bool:
                return await self.backend.set_if_absent(key, value, ttl_seconds)

            async def read(self, key: str) -> str | None:
                return await self.backend.get(key)

            async def write(self, key: str, value: str, ttl_seconds: int) -> None:
                await self.backend.set(key, value, ttl_seconds)

            async def remove(self, key: str) -> None:
                await self.backend.delete(key)

Atomicity Requirements:
    1. **Atomic acquisition**: acquire() must create the key only if it does
       not exist, in one step. Exactly one of N concurrent callers wins.

    2. **Store-side expiry**: keys written with a TTL must vanish on their
       own once it elapses. Expired keys are treated as absent everywhere.

    3. **No hidden retries of writes**: write() and remove() are unconditional.
       The coordinator re-reads and re-validates a record before every
       destructive call instead of relying on compare-and-swap.

Error Handling:
    Implementations raise StorageError for backend failures and must not let
    backend-specific exceptions escape.
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class StoreAdapter(Protocol):
    """Protocol defining the key-value primitives the coordinator needs.

    All methods are async and must be safe to call concurrently from many
    tasks, threads and processes.
    """

    async def acquire(self, key: str, value: str, ttl_seconds: int) -> bool:
        """Set key to value with expiry only if the key does not exist.

        Args:
            key: Storage key.
            value: Serialized lease record.
            ttl_seconds: Lease lifetime.

        Returns:
            True if the caller now owns the key, False if it already existed.
        """
        ...

    async def read(self, key: str) -> str | None:
        """Return the stored value, or None if the key is absent or expired."""
        ...

    async def write(self, key: str, value: str, ttl_seconds: int) -> None:
        """Unconditionally overwrite key with value and a fresh expiry."""
        ...

    async def remove(self, key: str) -> None:
        """Unconditionally delete key. Deleting an absent key is not an error."""
        ...
