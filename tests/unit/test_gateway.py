"""Unit tests for IdempotencyGateway and problem responses."""

import asyncio

import pytest

from idempotency_coordinator.config import IdempotencyOptions
from idempotency_coordinator.core.coordinator import IdempotencyCoordinator
from idempotency_coordinator.core.gateway import IdempotencyGateway, problem_response
from idempotency_coordinator.core.replay import GatewayResponse
from idempotency_coordinator.exceptions import (
    ConflictError,
    InProgressError,
    StorageError,
    ValidationFailedError,
)

FALLBACK = "POST /v1/orders"


class CountingHandler:
    """Handler that counts its executions."""

    def __init__(self, response: GatewayResponse | None = None, delay: float = 0.0) -> None:
        self.calls = 0
        self.delay = delay
        self.response = response or GatewayResponse(
            status=201,
            headers={
                "Location": "/v1/orders/o1",
                "Content-Type": "application/json",
                "X-Request-Id": "r-1",
            },
            body={"id": "o1"},
        )

    async def __call__(self) -> GatewayResponse:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.response


@pytest.fixture
def gateway(coordinator: IdempotencyCoordinator) -> IdempotencyGateway:
    return IdempotencyGateway(coordinator)


@pytest.mark.asyncio
async def test_skip_runs_handler(gateway, make_request, options, store):
    handler = CountingHandler()

    response = await gateway.process(make_request(key=None), options, FALLBACK, handler)

    assert response is handler.response
    assert handler.calls == 1
    assert len(store) == 0


@pytest.mark.asyncio
async def test_first_request_executes_and_caches(gateway, make_request, options):
    handler = CountingHandler()

    first = await gateway.process(make_request(), options, FALLBACK, handler)
    second = await gateway.process(make_request(), options, FALLBACK, handler)

    assert first is handler.response
    assert first.replayed is False
    assert handler.calls == 1

    assert second.replayed is True
    assert second.status == 201
    assert second.body == {"id": "o1"}
    assert second.headers == {
        "Location": "/v1/orders/o1",
        "Content-Type": "application/json",
        "Idempotency-Replayed": "true",
    }


@pytest.mark.asyncio
async def test_handler_exception_propagates_and_releases(gateway, make_request, options):
    """Test that a crashing handler leaves the key free for a retry."""

    async def crash() -> GatewayResponse:
        raise RuntimeError("payment provider down")

    with pytest.raises(RuntimeError, match="payment provider down"):
        await gateway.process(make_request(), options, FALLBACK, crash)

    handler = CountingHandler()
    response = await gateway.process(make_request(), options, FALLBACK, handler)

    assert handler.calls == 1
    assert response.replayed is False


@pytest.mark.asyncio
async def test_cancelled_handler_releases(gateway, make_request, options):
    async def cancelled() -> GatewayResponse:
        raise asyncio.CancelledError()

    with pytest.raises(asyncio.CancelledError):
        await gateway.process(make_request(), options, FALLBACK, cancelled)

    handler = CountingHandler()
    await gateway.process(make_request(), options, FALLBACK, handler)
    assert handler.calls == 1


@pytest.mark.asyncio
async def test_failure_response_is_not_cached(gateway, make_request, options):
    failing = CountingHandler(GatewayResponse(status=502, body={"error": "upstream"}))

    first = await gateway.process(make_request(), options, FALLBACK, failing)
    second = await gateway.process(make_request(), options, FALLBACK, failing)

    assert first.status == 502
    assert second.status == 502
    assert second.replayed is False
    assert failing.calls == 2


@pytest.mark.asyncio
async def test_uncacheable_response_releases(gateway, make_request, options):
    handler = CountingHandler(GatewayResponse(status=200, body=None, cacheable=False))

    await gateway.process(make_request(), options, FALLBACK, handler)
    await gateway.process(make_request(), options, FALLBACK, handler)

    assert handler.calls == 2


@pytest.mark.asyncio
async def test_conflict_becomes_409_problem(gateway, make_request, options):
    await gateway.process(make_request(), options, FALLBACK, CountingHandler())

    response = await gateway.process(
        make_request(body={"amount": 20}), options, FALLBACK, CountingHandler()
    )

    assert response.status == 409
    assert response.headers["Content-Type"] == "application/problem+json"
    assert response.body["code"] == "CONFLICT"
    assert response.body["detail"] == "Idempotency-Key reuse with a different request payload"
    assert "Retry-After" not in response.headers


@pytest.mark.asyncio
async def test_in_progress_after_wait_becomes_409_with_retry_after(
    gateway, coordinator, make_request
):
    options = IdempotencyOptions(scope_key="orders.create", wait_ms=50)
    lease = await coordinator.begin(make_request(), options, FALLBACK)
    assert lease.kind == "acquired"

    handler = CountingHandler()
    response = await gateway.process(make_request(), options, FALLBACK, handler)

    assert handler.calls == 0
    assert response.status == 409
    assert response.body["code"] == "IDEMPOTENCY_IN_PROGRESS"
    assert response.headers["Retry-After"] == "1"


@pytest.mark.asyncio
async def test_concurrent_duplicates_execute_once(gateway, make_request, options):
    """Test that a duplicate arriving mid-flight waits and replays."""
    handler = CountingHandler(delay=0.05)

    results = await asyncio.gather(
        gateway.process(make_request(), options, FALLBACK, handler),
        gateway.process(make_request(), options, FALLBACK, handler),
    )

    assert handler.calls == 1
    assert [r.status for r in results] == [201, 201]
    assert sorted(r.replayed for r in results) == [False, True]


@pytest.mark.asyncio
async def test_missing_required_key_becomes_400(gateway, make_request):
    handler = CountingHandler()
    response = await gateway.process(
        make_request(key=None), IdempotencyOptions(required=True), FALLBACK, handler
    )

    assert handler.calls == 0
    assert response.status == 400
    assert response.body["code"] == "VALIDATION_FAILED"
    assert response.body["errors"] == [
        {"field": "Idempotency-Key", "message": "Idempotency-Key header is required"}
    ]


@pytest.mark.asyncio
async def test_missing_store_becomes_500(make_request, options):
    gateway = IdempotencyGateway(IdempotencyCoordinator(None))
    handler = CountingHandler()

    response = await gateway.process(make_request(), options, FALLBACK, handler)

    assert handler.calls == 0
    assert response.status == 500
    assert response.body["code"] == "INTERNAL"
    assert response.body["detail"] == "Internal Server Error"


class TestProblemResponse:
    """Tests for problem_response."""

    def test_in_progress(self):
        response = problem_response(InProgressError(retry_after_seconds=3))

        assert response.status == 409
        assert response.headers == {
            "Content-Type": "application/problem+json",
            "Retry-After": "3",
        }
        assert response.body == {
            "title": "Conflict",
            "code": "IDEMPOTENCY_IN_PROGRESS",
            "detail": "An identical request is already in progress",
        }

    def test_validation_failed(self):
        response = problem_response(ValidationFailedError("Idempotency-Key header is too long"))

        assert response.status == 400
        assert response.body["title"] == "Validation Failed"
        assert response.body["errors"][0]["field"] == "Idempotency-Key"

    def test_conflict(self):
        error = ConflictError("reuse", key="k", stored_fingerprint="a", request_fingerprint="b")
        response = problem_response(error)

        assert response.status == 409
        assert response.body == {"title": "Conflict", "code": "CONFLICT", "detail": "reuse"}

    def test_internal_details_are_hidden(self):
        response = problem_response(StorageError("Redis read failed: 10.0.0.5 refused"))

        assert response.status == 500
        assert "10.0.0.5" not in str(response.body)
