"""Custom exceptions for the idempotency coordinator.

This module defines the exception hierarchy used to signal every error
condition of the idempotency protocol. Each exception carries the HTTP status
and the structured error code that the gateway puts on the wire, so the
boundary translation is a plain attribute lookup.

Examples:
    Handling a key reuse conflict::

        from idempotency_coordinator.exceptions import ConflictError

        try:
            outcome = await coordinator.begin(request, options, "POST /v1/orders")
        except ConflictError as e:
            logger.warning("idempotency.conflict", key=e.key)
            return problem_response(e)

    Handling a store outage::

        from idempotency_coordinator.exceptions import StorageError

        try:
            raw = await store.read(key)
        except StorageError as e:
            # Coordination was requested, never bypass it
            raise
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Structured error codes carried by problem responses."""

    VALIDATION_FAILED = "VALIDATION_FAILED"
    CONFLICT = "CONFLICT"
    IDEMPOTENCY_IN_PROGRESS = "IDEMPOTENCY_IN_PROGRESS"
    INTERNAL = "INTERNAL"


class IdempotencyError(Exception):
    """Base exception for all idempotency-related errors.

    All exceptions raised by the coordinator inherit from this base class,
    allowing callers to catch every coordinator error with a single except
    clause.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status the gateway responds with.
        code: Structured error code for the problem body.
        title: Short problem title.
    """

    status_code: int = 500
    code: ErrorCode = ErrorCode.INTERNAL
    title: str = "Internal Server Error"

    def __init__(self, message: str) -> None:
        """Initialize the exception with a message.

        Args:
            message: Human-readable error description.
        """
        self.message = message
        super().__init__(message)


class ValidationFailedError(IdempotencyError):
    """The Idempotency-Key header failed validation.

    Raised before any store access when a required key is missing or a key
    exceeds the maximum length.

    Attributes:
        message: Human-readable error description.
        field: The request field that failed validation.
    """

    status_code = 400
    code = ErrorCode.VALIDATION_FAILED
    title = "Validation Failed"

    def __init__(self, message: str, field: str = "Idempotency-Key") -> None:
        super().__init__(message)
        self.field = field


class ConflictError(IdempotencyError):
    """Request conflict detected - same key, different fingerprint.

    This exception is raised when a request is received with an idempotency
    key that already exists in storage, but the request fingerprint does not
    match the stored fingerprint. The client reused a key for a logically
    different operation; this is never merged and never replayed.

    Attributes:
        message: Human-readable error description.
        key: The storage key that conflicted.
        stored_fingerprint: The fingerprint stored in the backend.
        request_fingerprint: The fingerprint of the incoming request.

    Examples:
        Raising a conflict error::

            if record.request_hash != request_hash:
                raise ConflictError(
                    message="Idempotency-Key reuse with a different request payload",
                    key=storage_key,
                    stored_fingerprint=record.request_hash,
                    request_fingerprint=request_hash,
                )
    """

    status_code = 409
    code = ErrorCode.CONFLICT
    title = "Conflict"

    def __init__(
        self,
        message: str,
        key: str,
        stored_fingerprint: str,
        request_fingerprint: str,
    ) -> None:
        """Initialize the conflict error with details.

        Args:
            message: Human-readable error description.
            key: The storage key that conflicted.
            stored_fingerprint: The fingerprint stored in the backend.
            request_fingerprint: The fingerprint of the incoming request.
        """
        super().__init__(message)
        self.key = key
        self.stored_fingerprint = stored_fingerprint
        self.request_fingerprint = request_fingerprint


class InProgressError(IdempotencyError):
    """An identical request is still executing.

    Raised when the wait budget for a concurrent duplicate elapsed without the
    duplicate completing, or when the slot is busy but unreadable. This is a
    normal timing race, so it is retryable and carries a retry hint.

    Attributes:
        message: Human-readable error description.
        retry_after_seconds: Suggested delay before the client retries.
    """

    status_code = 409
    code = ErrorCode.IDEMPOTENCY_IN_PROGRESS
    title = "Conflict"

    def __init__(
        self,
        message: str = "An identical request is already in progress",
        retry_after_seconds: int = 1,
    ) -> None:
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


class StorageError(IdempotencyError):
    """Storage backend operation failed or no store is configured.

    Once a caller opted into coordination, a store outage is fatal for that
    request. The coordinator never degrades to running the handler without
    protection.

    Attributes:
        message: Human-readable error description.
        cause: The underlying exception that caused the storage error.

    Examples:
        Raising a storage error::

            try:
                await redis.get(key)
            except RedisError as e:
                raise StorageError(
                    message=f"Failed to read key from Redis: {e}",
                    cause=e,
                ) from e
    """

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        """Initialize the storage error with details.

        Args:
            message: Human-readable error description.
            cause: The underlying exception that caused the storage error.
        """
        super().__init__(message)
        self.cause = cause


class PrincipalRequiredError(IdempotencyError):
    """Coordination was invoked without an authenticated principal.

    Idempotency identities are always scoped to a principal, so this signals a
    wiring bug in the calling layer rather than a client error.
    """

    def __init__(
        self,
        message: str = "Idempotency requires an authenticated principal",
    ) -> None:
        super().__init__(message)


class UnsupportedMethodError(IdempotencyError):
    """Coordination was invoked for a method that is not a write method."""

    def __init__(self, method: str) -> None:
        super().__init__(f"Idempotency is only supported for write endpoints, got {method!r}")
        self.method = method
