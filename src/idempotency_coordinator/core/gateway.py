"""Framework-agnostic gateway around one protected handler call.

The gateway runs the coordinator protocol for one request and translates its
outcomes into HTTP-facing responses:

    Skip / Acquired ............... run the handler
    Replay ........................ cached status + headers + body, Idempotency-Replayed: true
    InProgress, wait timed out .... 409 IDEMPOTENCY_IN_PROGRESS + Retry-After
    Conflict (key reuse) .......... 409 CONFLICT
    Missing/too long key .......... 400 VALIDATION_FAILED
    Store unavailable ............. 500 INTERNAL

Errors raised by the handler itself are not translated: the lease is released
and the original exception propagates unchanged.

Examples:
    Using the gateway directly::

        gateway = IdempotencyGateway(IdempotencyCoordinator(store))

        async def handler() -> GatewayResponse:
            order = await create_order()
            return GatewayResponse(201, {"Location": f"/v1/orders/{order.id}"}, order.dict())

        response = await gateway.process(request, IdempotencyOptions(), "POST /v1/orders", handler)
"""

from collections.abc import Awaitable, Callable

from idempotency_coordinator.config import IdempotencyOptions
from idempotency_coordinator.core.coordinator import IdempotencyCoordinator
from idempotency_coordinator.core.replay import GatewayResponse, replay_response
from idempotency_coordinator.exceptions import (
    IdempotencyError,
    InProgressError,
    ValidationFailedError,
)
from idempotency_coordinator.models import AcquiredOutcome, WriteRequest
from idempotency_coordinator.observability.logging import get_logger
from idempotency_coordinator.utils.headers import RETRY_AFTER_HEADER, pick_replay_headers

logger = get_logger(__name__)

PROBLEM_CONTENT_TYPE = "application/problem+json"

Handler = Callable[[], Awaitable[GatewayResponse]]


class IdempotencyGateway:
    """Runs a handler under the idempotency protocol.

    Attributes:
        coordinator: The coordinator driving the protocol
    """

    def __init__(self, coordinator: IdempotencyCoordinator) -> None:
        self.coordinator = coordinator

    async def process(
        self,
        request: WriteRequest,
        options: IdempotencyOptions,
        scope_fallback: str,
        handler: Handler,
    ) -> GatewayResponse:
        """Process one request with idempotency handling.

        Args:
            request: The inbound write request
            options: Options of the protected operation
            scope_fallback: Scope used when ``options.scope_key`` is unset
            handler: Runs the operation and returns its response

        Returns:
            The handler's response, a replayed response, or a problem response
        """
        try:
            return await self._process(request, options, scope_fallback, handler)
        except IdempotencyError as e:
            if e.status_code >= 500:
                logger.error(
                    "idempotency.error",
                    error=e.message,
                    error_type=type(e).__name__,
                )
            return problem_response(e)

    async def _process(
        self,
        request: WriteRequest,
        options: IdempotencyOptions,
        scope_fallback: str,
        handler: Handler,
    ) -> GatewayResponse:
        outcome = await self.coordinator.begin(request, options, scope_fallback)

        if outcome.kind == "skip":
            return await handler()

        if outcome.kind == "replay":
            return replay_response(outcome.record)

        if outcome.kind == "in_progress":
            completed = await self.coordinator.wait_for_completion(
                outcome.storage_key,
                outcome.request_hash,
                outcome.wait_ms,
            )
            if completed is not None:
                return replay_response(completed)
            raise InProgressError(
                retry_after_seconds=self.coordinator.settings.retry_after_seconds,
            )

        return await self._execute(outcome, handler)

    async def _execute(self, lease: AcquiredOutcome, handler: Handler) -> GatewayResponse:
        try:
            response = await handler()
        except BaseException:
            await self._release_quietly(lease)
            raise

        if not response.cacheable:
            logger.info("idempotency.cache_skipped_uncacheable", status=response.status)
            await self.coordinator.release(lease.storage_key, lease.request_hash)
            return response

        await self.coordinator.complete(
            lease.storage_key,
            lease.request_hash,
            response.status,
            response.body,
            pick_replay_headers(response.headers),
            lease.ttl_seconds,
            has_body=response.has_body,
        )
        return response

    async def _release_quietly(self, lease: AcquiredOutcome) -> None:
        # The handler's own exception must win over a cleanup failure
        try:
            await self.coordinator.release(lease.storage_key, lease.request_hash)
        except IdempotencyError as e:
            logger.error(
                "idempotency.release_failed",
                error=e.message,
                error_type=type(e).__name__,
            )


def problem_response(error: IdempotencyError) -> GatewayResponse:
    """Render an idempotency error as a problem response.

    Example:
        >>> response = problem_response(InProgressError(retry_after_seconds=1))
        >>> response.status, response.headers["Retry-After"]
        (409, '1')
    """
    body: dict[str, object] = {
        "title": error.title,
        "code": error.code.value,
        "detail": error.message,
    }
    headers = {"Content-Type": PROBLEM_CONTENT_TYPE}

    if isinstance(error, ValidationFailedError):
        body["errors"] = [{"field": error.field, "message": error.message}]
    if isinstance(error, InProgressError):
        headers[RETRY_AFTER_HEADER] = str(error.retry_after_seconds)
    if error.status_code >= 500:
        # Internal details stay in the logs
        body["detail"] = "Internal Server Error"

    return GatewayResponse(status=error.status_code, headers=headers, body=body)
