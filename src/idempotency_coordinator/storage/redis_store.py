"""Redis store adapter.

Maps the four store primitives onto Redis commands:

    acquire -> SET key value EX ttl NX
    read    -> GET key
    write   -> SET key value EX ttl
    remove  -> DEL key

Redis expires leases on its own, which is what makes a crashed lease holder
recoverable. Every command runs with socket timeouts so a call can never block
indefinitely, and every ``RedisError`` is re-raised as ``StorageError``.

Examples:
    From settings::

        settings = IdempotencySettings(redis_url="redis://localhost:6379/0")
        store = RedisStore.from_settings(settings)
        await store.ping()

    With an existing client::

        store = RedisStore(Redis.from_url("redis://cache:6379/1", decode_responses=True))
"""

from redis.asyncio import Redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError, RedisError, TimeoutError

from idempotency_coordinator.config import IdempotencySettings
from idempotency_coordinator.exceptions import StorageError
from idempotency_coordinator.observability.logging import get_logger
from idempotency_coordinator.storage.base import StoreAdapter

logger = get_logger(__name__)

# Connection pool health check interval (seconds)
HEALTH_CHECK_INTERVAL = 30

MAX_CONNECTIONS = 50
SOCKET_CONNECT_TIMEOUT = 5.0  # seconds
SOCKET_TIMEOUT = 5.0  # seconds

RETRY_ON_ERROR = [ConnectionError, TimeoutError]
MAX_RETRIES = 3


def build_redis_client(url: str) -> Redis:
    """Build a pooled Redis client with bounded timeouts.

    Key configurations:
    - socket timeouts: no command waits forever
    - retry: reconnect on transient ConnectionError/TimeoutError
    - health_check_interval: periodic connection validation
    """
    retry = Retry(ExponentialBackoff(), retries=MAX_RETRIES)

    return Redis.from_url(
        url,
        encoding="utf-8",
        decode_responses=True,
        health_check_interval=HEALTH_CHECK_INTERVAL,
        socket_keepalive=True,
        socket_connect_timeout=SOCKET_CONNECT_TIMEOUT,
        socket_timeout=SOCKET_TIMEOUT,
        max_connections=MAX_CONNECTIONS,
        retry=retry,
        retry_on_error=RETRY_ON_ERROR,
    )


class RedisStore(StoreAdapter):
    """Store adapter backed by a Redis primary.

    Attributes:
        client: The redis.asyncio client. It must be created with
            ``decode_responses=True`` so reads return ``str``.
    """

    def __init__(self, client: Redis) -> None:
        self.client = client

    @classmethod
    def from_settings(cls, settings: IdempotencySettings) -> "RedisStore | None":
        """Build a store from settings, or None when no Redis URL is configured."""
        if settings.redis_url is None:
            return None
        return cls(build_redis_client(settings.redis_url))

    async def acquire(self, key: str, value: str, ttl_seconds: int) -> bool:
        try:
            created = await self.client.set(key, value, ex=ttl_seconds, nx=True)
        except RedisError as e:
            raise self._storage_error("acquire", e) from e
        return bool(created)

    async def read(self, key: str) -> str | None:
        try:
            value = await self.client.get(key)
        except RedisError as e:
            raise self._storage_error("read", e) from e
        if isinstance(value, bytes):
            return value.decode("utf-8", errors="replace")
        return value

    async def write(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self.client.set(key, value, ex=ttl_seconds)
        except RedisError as e:
            raise self._storage_error("write", e) from e

    async def remove(self, key: str) -> None:
        try:
            await self.client.delete(key)
        except RedisError as e:
            raise self._storage_error("remove", e) from e

    async def ping(self) -> None:
        """Check connectivity, raising StorageError when Redis is unreachable."""
        try:
            await self.client.ping()
        except RedisError as e:
            raise self._storage_error("ping", e) from e

    async def aclose(self) -> None:
        """Close the client and its connection pool."""
        await self.client.aclose()

    @staticmethod
    def _storage_error(operation: str, error: RedisError) -> StorageError:
        logger.error(
            "store.error",
            operation=operation,
            error=str(error),
            error_type=type(error).__name__,
        )
        return StorageError(message=f"Redis {operation} failed: {error}", cause=error)
