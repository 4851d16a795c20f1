"""Store adapters for the idempotency coordinator.

All adapters implement the StoreAdapter protocol defined in base.py.

Available Adapters:
    - MemoryStore: In-process store with lazy TTL expiry
    - RedisStore: Redis-backed store for multi-instance deployments
"""

from idempotency_coordinator.storage.base import StoreAdapter
from idempotency_coordinator.storage.memory import MemoryStore
from idempotency_coordinator.storage.redis_store import RedisStore, build_redis_client

__all__ = [
    "StoreAdapter",
    "MemoryStore",
    "RedisStore",
    "build_redis_client",
]
