"""Idempotency coordination protocol.

This module implements the lease/replay protocol that lets a client retry an
unsafe request without its side effects happening twice. All coordination
state lives in the store; the coordinator holds no locks and starts no
background work, so any number of instances can share one store.

Protocol for one request:

    begin()
      |- no key, not required ............ SkipOutcome
      |- acquire succeeded ............... AcquiredOutcome -> complete() / release()
      |- completed record, same hash ..... ReplayOutcome
      |- in-progress record, same hash ... InProgressOutcome -> wait_for_completion()
      `- any record, different hash ...... ConflictError

Lifecycle of a stored record:

    (absent) --acquire--> in_progress --complete(<400)--> completed --TTL--> (absent)
                              |
                              |--complete(>=400) / oversized / release--> (absent)
                              `--lease TTL elapsed--> (absent)

Examples:
    Wrapping one operation by hand::

        coordinator = IdempotencyCoordinator(MemoryStore())
        outcome = await coordinator.begin(request, IdempotencyOptions(), "POST /v1/orders")

        if outcome.kind == "acquired":
            try:
                status, body = await create_order()
            except Exception:
                await coordinator.release(outcome.storage_key, outcome.request_hash)
                raise
            await coordinator.complete(
                outcome.storage_key, outcome.request_hash, status, body, {}, outcome.ttl_seconds
            )
"""

import asyncio
import time
from collections.abc import Mapping
from typing import Any

from idempotency_coordinator.codec import (
    create_completed_record,
    create_in_progress_record,
    decode_record,
    encode_record,
)
from idempotency_coordinator.config import IdempotencyOptions, IdempotencySettings
from idempotency_coordinator.exceptions import (
    ConflictError,
    InProgressError,
    PrincipalRequiredError,
    StorageError,
    UnsupportedMethodError,
    ValidationFailedError,
)
from idempotency_coordinator.fingerprint import compute_fingerprint, hash_scope_key
from idempotency_coordinator.models import (
    AcquiredOutcome,
    BeginOutcome,
    CompletedRecord,
    InProgressOutcome,
    InProgressRecord,
    ReplayOutcome,
    SkipOutcome,
    WriteRequest,
    is_write_method,
)
from idempotency_coordinator.observability.logging import get_logger, redact_key
from idempotency_coordinator.observability.metrics import (
    decrement_active_leases,
    increment_active_leases,
    record_begin,
    record_completion,
    record_wait,
)
from idempotency_coordinator.storage.base import StoreAdapter

logger = get_logger(__name__)

KEY_REUSE_MESSAGE = "Idempotency-Key reuse with a different request payload"


class IdempotencyCoordinator:
    """Coordinates begin/wait/complete/release against a shared store.

    Attributes:
        store: Store holding leases and cached outcomes. None means no store is
            configured; any call that needs coordination then fails.
        settings: Engine-wide limits and key layout.
    """

    def __init__(
        self,
        store: StoreAdapter | None,
        settings: IdempotencySettings | None = None,
    ) -> None:
        self.store = store
        self.settings = settings or IdempotencySettings()

    def storage_key(self, principal_id: str, scope_key: str, client_key: str) -> str:
        """Derive the storage key of an idempotency identity.

        The scope is hashed so keys stay short and internal names never reach
        the store.
        """
        scope_hash = hash_scope_key(scope_key)
        return f"{self.settings.key_prefix}:{principal_id}:{scope_hash}:{client_key}"

    async def begin(
        self,
        request: WriteRequest,
        options: IdempotencyOptions,
        scope_fallback: str,
    ) -> BeginOutcome:
        """Start coordination for one write request.

        Args:
            request: The inbound write request
            options: Options of the protected operation
            scope_fallback: Scope identifier used when options carry none

        Returns:
            SkipOutcome, AcquiredOutcome, ReplayOutcome or InProgressOutcome

        Raises:
            ValidationFailedError: Key required but missing, or too long
            ConflictError: A record with a different fingerprint exists
            InProgressError: The slot is busy and its record is unusable
            StorageError: No store configured, or the store failed
            PrincipalRequiredError: No authenticated principal
            UnsupportedMethodError: The method is not a write method
        """
        method = (request.method or "").upper()
        if not is_write_method(method):
            raise UnsupportedMethodError(request.method)

        client_key = _non_blank(request.idempotency_key)
        if client_key is None:
            if not options.required:
                record_begin("skip")
                return SkipOutcome()
            raise ValidationFailedError("Idempotency-Key header is required")

        store = self._require_store()

        if len(client_key) > self.settings.max_key_length:
            raise ValidationFailedError("Idempotency-Key header is too long")

        principal_id = _non_blank(request.principal_id)
        if principal_id is None:
            raise PrincipalRequiredError()

        scope_key = options.scope_key or scope_fallback
        storage_key = self.storage_key(principal_id, scope_key, client_key)
        request_hash = compute_fingerprint(method, request.path, request.query, request.body)
        log = logger.bind(scope=hash_scope_key(scope_key), key=redact_key(client_key))

        lease = encode_record(create_in_progress_record(request_hash)).payload
        if await store.acquire(storage_key, lease, options.lock_ttl_seconds):
            return self._acquired(log, storage_key, request_hash, options)

        existing_raw = await store.read(storage_key)
        if existing_raw is None:
            # The existing lease expired between acquire and read; try exactly once more
            if await store.acquire(storage_key, lease, options.lock_ttl_seconds):
                return self._acquired(log, storage_key, request_hash, options)
            record_begin("in_progress")
            raise InProgressError(retry_after_seconds=self.settings.retry_after_seconds)

        existing = decode_record(existing_raw)
        if existing is None:
            log.warning("idempotency.unreadable_record")
            record_begin("in_progress")
            raise InProgressError(retry_after_seconds=self.settings.retry_after_seconds)

        if existing.request_hash != request_hash:
            log.info("idempotency.conflict", state=existing.state)
            record_begin("conflict")
            raise ConflictError(
                message=KEY_REUSE_MESSAGE,
                key=storage_key,
                stored_fingerprint=existing.request_hash,
                request_fingerprint=request_hash,
            )

        if isinstance(existing, CompletedRecord):
            log.info("idempotency.replayed", status=existing.status)
            record_begin("replay")
            return ReplayOutcome(storage_key=storage_key, record=existing)

        log.info("idempotency.in_progress")
        record_begin("in_progress")
        return InProgressOutcome(
            storage_key=storage_key,
            request_hash=request_hash,
            wait_ms=options.wait_ms,
        )

    async def wait_for_completion(
        self,
        storage_key: str,
        request_hash: str,
        wait_ms: int,
    ) -> CompletedRecord | None:
        """Poll for a concurrent duplicate to finish.

        Polls with exponential backoff (``initial_poll_ms`` doubling up to
        ``max_poll_ms``) and never sleeps past the wait budget.

        Args:
            storage_key: Key of the in-progress identity
            request_hash: Fingerprint of the waiting request
            wait_ms: Wait budget in milliseconds

        Returns:
            The completed record to replay, or None if the record vanished,
            became unreadable, or the budget elapsed

        Raises:
            ConflictError: The slot now holds a different request
        """
        if self.store is None or wait_ms <= 0:
            return None

        start = time.monotonic()
        deadline = start + wait_ms / 1000
        delay = self.settings.initial_poll_ms / 1000
        max_delay = self.settings.max_poll_ms / 1000

        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break

            await asyncio.sleep(min(delay, remaining))
            delay = min(delay * 2, max_delay)

            record = decode_record(await self.store.read(storage_key))
            if record is None:
                record_wait("gone", time.monotonic() - start)
                return None

            if record.request_hash != request_hash:
                record_wait("conflict", time.monotonic() - start)
                raise ConflictError(
                    message=KEY_REUSE_MESSAGE,
                    key=storage_key,
                    stored_fingerprint=record.request_hash,
                    request_fingerprint=request_hash,
                )

            if isinstance(record, CompletedRecord):
                record_wait("replay", time.monotonic() - start)
                return record

        logger.info("idempotency.wait_timeout", wait_ms=wait_ms)
        record_wait("timeout", time.monotonic() - start)
        return None

    async def complete(
        self,
        storage_key: str,
        request_hash: str,
        status: int,
        body: Any,
        headers: Mapping[str, str],
        ttl_seconds: int,
        has_body: bool | None = None,
    ) -> None:
        """Finalize a lease after the operation ran.

        Failures (status >= 400) are never cached: the lease is released so a
        retry re-executes. Successful outcomes are cached for ``ttl_seconds``
        unless the encoded record is larger than ``max_record_chars`` or cannot
        be encoded, in which case the lease is released instead.

        Args:
            storage_key: Key of the held lease
            request_hash: Fingerprint of the lease holder
            status: HTTP status of the outcome
            body: Response body as sent (JSON value) or None
            headers: Response headers to reproduce on replay
            ttl_seconds: Replay cache lifetime
            has_body: Whether a body was sent; inferred from ``body`` when None
        """
        if self.store is None:
            return

        try:
            if status >= 400:
                await self._release(storage_key, request_hash)
                record_completion("released_error")
                return

            completed = create_completed_record(
                request_hash, status, body, headers, has_body=has_body
            )
            try:
                encoded = encode_record(completed)
            except ValueError as e:
                logger.warning("idempotency.cache_skipped_unencodable", error=str(e))
                await self._release(storage_key, request_hash)
                record_completion("released_unencodable")
                return

            if encoded.size > self.settings.max_record_chars:
                logger.info(
                    "idempotency.cache_skipped_oversized",
                    size=encoded.size,
                    limit=self.settings.max_record_chars,
                )
                await self._release(storage_key, request_hash)
                record_completion("released_oversized")
                return

            current = decode_record(await self.store.read(storage_key))
            if current is not None and current.request_hash != request_hash:
                # The lease expired and another request owns the slot now
                logger.warning("idempotency.lease_lost", state=current.state)
                record_completion("lease_lost")
                return

            await self.store.write(storage_key, encoded.payload, ttl_seconds)
            record_completion("cached")
        finally:
            decrement_active_leases()

    async def release(self, storage_key: str, request_hash: str) -> None:
        """Give up a held lease without caching anything.

        Used when the wrapped operation raised. The record is deleted only if it
        is still this caller's in-progress lease.
        """
        if self.store is None:
            return
        try:
            await self._release(storage_key, request_hash)
            record_completion("released")
        finally:
            decrement_active_leases()

    async def _release(self, storage_key: str, request_hash: str) -> None:
        store = self._require_store()
        record = decode_record(await store.read(storage_key))
        if record is None:
            return
        if record.request_hash != request_hash:
            return
        if not isinstance(record, InProgressRecord):
            return

        await store.remove(storage_key)
        logger.debug("idempotency.released")

    def _acquired(
        self,
        log: Any,
        storage_key: str,
        request_hash: str,
        options: IdempotencyOptions,
    ) -> AcquiredOutcome:
        log.info("idempotency.acquired", lock_ttl_seconds=options.lock_ttl_seconds)
        record_begin("acquired")
        increment_active_leases()
        return AcquiredOutcome(
            storage_key=storage_key,
            request_hash=request_hash,
            ttl_seconds=options.ttl_seconds,
            lock_ttl_seconds=options.lock_ttl_seconds,
            wait_ms=options.wait_ms,
        )

    def _require_store(self) -> StoreAdapter:
        if self.store is None:
            raise StorageError("Store is not configured (required for idempotency)")
        return self.store


def _non_blank(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None
