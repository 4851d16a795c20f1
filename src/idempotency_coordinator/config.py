"""Configuration module for the idempotency coordinator.

Two configuration objects exist:

- ``IdempotencyOptions`` is attached to a single protected operation when the
  route is registered. It says whether the key is mandatory and how long
  replays, waits and leases last.
- ``IdempotencySettings`` is engine-wide: where the store lives and the hard
  limits applied to every call.

Example:
    Per-route options:

        >>> options = IdempotencyOptions(required=True, wait_ms=500)
        >>> options.ttl_seconds
        86400

    Engine settings from the environment:

        >>> import os
        >>> os.environ['IDEMPOTENCY_REDIS_URL'] = 'redis://localhost:6379/0'
        >>> settings = IdempotencySettings.from_env()
        >>> settings.redis_url
        'redis://localhost:6379/0'
"""

import os
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator


class IdempotencyOptions(BaseModel):
    """Options for one protected write operation.

    Attributes:
        scope_key: Stable identifier for the logical operation. When omitted,
            the gateway falls back to an identifier derived from the route.
        required: Whether the Idempotency-Key header is mandatory.
        ttl_seconds: How long a completed response is cached for replay.
            Must be between 1 and 604800 (7 days). Default is 86400 (24 hours).
        wait_ms: How long to wait for a concurrently running duplicate before
            answering "in progress". 0 disables waiting. Default is 2000.
        lock_ttl_seconds: Lease lifetime. A crashed handler blocks retries for at
            most this long, so keep it larger than the expected handler time.
            Default is 30.

    Example:
        >>> options = IdempotencyOptions(scope_key="orders.create", required=True)
        >>> options.lock_ttl_seconds
        30
    """

    scope_key: str | None = Field(
        default=None,
        description="Stable scope identifier for the operation",
    )
    required: bool = Field(
        default=False,
        description="Whether the Idempotency-Key header is mandatory",
    )
    ttl_seconds: int = Field(
        default=86400,
        description="Replay cache lifetime in seconds (1-604800)",
    )
    wait_ms: int = Field(
        default=2000,
        description="Maximum wait for a concurrent duplicate in milliseconds (0-60000)",
    )
    lock_ttl_seconds: int = Field(
        default=30,
        description="Lease safety ceiling in seconds (1-3600)",
    )

    model_config = {"frozen": True}

    @field_validator("scope_key", mode="before")
    @classmethod
    def normalize_scope_key(cls, v: Any) -> str | None:
        """Treat blank scope keys as absent."""
        if v is None:
            return None
        if not isinstance(v, str):
            raise ValueError("scope_key must be a string")
        stripped = v.strip()
        return stripped or None

    @field_validator("ttl_seconds")
    @classmethod
    def validate_ttl_seconds(cls, v: int) -> int:
        if not (1 <= v <= 604800):
            raise ValueError(f"ttl_seconds must be between 1 and 604800 (7 days), got {v}")
        return v

    @field_validator("wait_ms")
    @classmethod
    def validate_wait_ms(cls, v: int) -> int:
        if not (0 <= v <= 60000):
            raise ValueError(f"wait_ms must be between 0 and 60000, got {v}")
        return v

    @field_validator("lock_ttl_seconds")
    @classmethod
    def validate_lock_ttl_seconds(cls, v: int) -> int:
        if not (1 <= v <= 3600):
            raise ValueError(f"lock_ttl_seconds must be between 1 and 3600, got {v}")
        return v

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "IdempotencyOptions":
        """Create options from a dictionary.

        Args:
            config_dict: Dictionary with option values.

        Returns:
            IdempotencyOptions instance populated from the dictionary.

        Raises:
            ValidationError: If the dictionary contains invalid values.
        """
        return cls(**config_dict)


class IdempotencySettings(BaseModel):
    """Engine-wide settings shared by every protected operation.

    Attributes:
        redis_url: Connection URL of the Redis store. None disables the store,
            and any request that asks for coordination then fails with 500.
        key_prefix: Namespace prepended to every storage key.
        max_key_length: Maximum accepted length of the Idempotency-Key header.
        max_record_chars: Maximum encoded size of a completed record. Larger
            outcomes are not cached.
        retry_after_seconds: Retry-After value sent with "in progress" errors.
        initial_poll_ms: First polling interval while waiting for a duplicate.
        max_poll_ms: Ceiling of the exponential polling interval.

    Note:
        This class is immutable (frozen=True). Create a new instance if you need
        different settings.
    """

    redis_url: str | None = Field(
        default=None,
        description="Connection URL for the Redis store",
    )
    key_prefix: str = Field(
        default="idempotency:v1",
        description="Namespace prepended to storage keys",
    )
    max_key_length: int = Field(
        default=128,
        description="Maximum Idempotency-Key length",
    )
    max_record_chars: int = Field(
        default=65536,
        description="Maximum encoded size of a cached record",
    )
    retry_after_seconds: int = Field(
        default=1,
        description="Retry-After hint for in-progress responses",
    )
    initial_poll_ms: int = Field(
        default=50,
        description="Initial polling interval while waiting for a duplicate",
    )
    max_poll_ms: int = Field(
        default=250,
        description="Maximum polling interval while waiting for a duplicate",
    )

    model_config = {"frozen": True}

    @field_validator("redis_url", mode="before")
    @classmethod
    def normalize_redis_url(cls, v: Any) -> str | None:
        """Treat blank URLs as "not configured".

        Example:
            >>> IdempotencySettings(redis_url="   ").redis_url is None
            True
        """
        if not isinstance(v, str):
            return None
        stripped = v.strip()
        return stripped or None

    @field_validator("key_prefix")
    @classmethod
    def validate_key_prefix(cls, v: str) -> str:
        if not v or v.endswith(":"):
            raise ValueError("key_prefix must be non-empty and must not end with ':'")
        return v

    @field_validator("max_key_length", "max_record_chars", "retry_after_seconds")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"value must be >= 1, got {v}")
        return v

    @model_validator(mode="after")
    def validate_poll_intervals(self) -> "IdempotencySettings":
        """Ensure the backoff starts below its own ceiling."""
        if self.initial_poll_ms < 1:
            raise ValueError(f"initial_poll_ms must be >= 1, got {self.initial_poll_ms}")
        if self.max_poll_ms < self.initial_poll_ms:
            raise ValueError("max_poll_ms must be >= initial_poll_ms")
        return self

    @classmethod
    def from_env(cls, prefix: str = "IDEMPOTENCY_") -> "IdempotencySettings":
        """Create settings from environment variables.

        Variable names are uppercase field names with the prefix, for example
        ``IDEMPOTENCY_REDIS_URL`` or ``IDEMPOTENCY_MAX_KEY_LENGTH``. Missing
        variables use the defaults defined on the model.

        Args:
            prefix: Prefix for environment variable names.

        Returns:
            IdempotencySettings populated from the environment.
        """
        config_dict: dict[str, Any] = {}

        field_types = {
            "redis_url": str,
            "key_prefix": str,
            "max_key_length": int,
            "max_record_chars": int,
            "retry_after_seconds": int,
            "initial_poll_ms": int,
            "max_poll_ms": int,
        }

        for field_name, field_type in field_types.items():
            env_value = os.environ.get(f"{prefix}{field_name.upper()}")
            if env_value is None:
                continue
            if field_type is int:
                config_dict[field_name] = int(env_value)
            else:
                config_dict[field_name] = env_value

        return cls(**config_dict)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "IdempotencySettings":
        """Create settings from a dictionary."""
        return cls(**config_dict)
