"""Scenario 6: Size Limits and Uncacheable Responses Conformance Tests

This module tests responses that cannot or should not be replayed:
- Responses larger than max_record_chars are returned but not cached
- Binary responses are returned byte for byte but not cached
- Oversized request bodies still fingerprint deterministically
- A missing store fails closed with 500 instead of running unprotected
"""

from typing import Any

import pytest
from fastapi import FastAPI, Request
from fastapi.responses import Response
from fastapi.testclient import TestClient

from idempotency_coordinator.adapters.asgi import IdempotencyMiddleware
from idempotency_coordinator.config import IdempotencyOptions, IdempotencySettings
from idempotency_coordinator.core.coordinator import IdempotencyCoordinator
from idempotency_coordinator.storage.memory import MemoryStore

PNG_BYTES = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\xff\xfe"

ROUTES = {
    "POST /v1/reports": IdempotencyOptions(scope_key="reports.create"),
    "POST /v1/thumbnails": IdempotencyOptions(scope_key="thumbnails.create"),
    "POST /v1/imports": IdempotencyOptions(scope_key="imports.create"),
}


def build_app(coordinator: IdempotencyCoordinator, executions: dict[str, int]) -> FastAPI:
    test_app = FastAPI()
    test_app.add_middleware(
        IdempotencyMiddleware,
        coordinator=coordinator,
        routes=ROUTES,
        principal_resolver=lambda request: "u1",
    )

    def count(name: str) -> int:
        executions[name] = executions.get(name, 0) + 1
        return executions[name]

    @test_app.post("/v1/reports", status_code=201)
    async def create_report(request: Request) -> dict[str, Any]:
        n = count("reports")
        size = int(request.query_params.get("size", "10"))
        return {"id": f"rep_{n}", "content": "x" * size}

    @test_app.post("/v1/thumbnails", status_code=201)
    async def create_thumbnail() -> Response:
        count("thumbnails")
        return Response(content=PNG_BYTES, media_type="image/png", status_code=201)

    @test_app.post("/v1/imports", status_code=202)
    async def create_import(request: Request) -> dict[str, Any]:
        n = count("imports")
        body = await request.json()
        return {"id": f"imp_{n}", "rows": len(body["rows"])}

    return test_app


@pytest.fixture
def executions() -> dict[str, int]:
    return {}


@pytest.fixture
def client(executions: dict[str, int]):
    coordinator = IdempotencyCoordinator(MemoryStore(), IdempotencySettings(max_record_chars=1024))
    with TestClient(build_app(coordinator, executions)) as test_client:
        yield test_client


def _post(client: TestClient, path: str, key: str = "K1", **kwargs):
    return client.post(path, headers={"Idempotency-Key": key}, **kwargs)


class TestRecordSizeLimit:
    """Outcomes above max_record_chars are not cached."""

    def test_small_response_is_replayed(self, client, executions):
        _post(client, "/v1/reports", params={"size": "100"})
        replay = _post(client, "/v1/reports", params={"size": "100"})

        assert replay.headers["idempotency-replayed"] == "true"
        assert executions["reports"] == 1

    def test_large_response_is_returned_but_not_cached(self, client, executions):
        first = _post(client, "/v1/reports", params={"size": "5000"})
        second = _post(client, "/v1/reports", params={"size": "5000"})

        assert first.status_code == second.status_code == 201
        assert len(first.json()["content"]) == 5000
        assert "idempotency-replayed" not in second.headers
        assert executions["reports"] == 2

    def test_uncached_outcome_frees_the_key(self, client, executions):
        """Nothing is stored for an uncached outcome, so the key is free again."""
        _post(client, "/v1/reports", params={"size": "5000"})
        other = _post(client, "/v1/reports", params={"size": "10"})

        assert other.status_code == 201
        assert executions["reports"] == 2


class TestBinaryResponses:
    """Bodies that are neither JSON nor text cannot be replayed faithfully."""

    def test_binary_response_passes_through_unchanged(self, client):
        response = _post(client, "/v1/thumbnails")

        assert response.status_code == 201
        assert response.content == PNG_BYTES
        assert response.headers["content-type"] == "image/png"

    def test_binary_response_is_not_cached(self, client, executions):
        _post(client, "/v1/thumbnails")
        second = _post(client, "/v1/thumbnails")

        assert second.content == PNG_BYTES
        assert "idempotency-replayed" not in second.headers
        assert executions["thumbnails"] == 2


class TestLargeRequests:
    """Request bodies beyond the canonicalization bounds still work."""

    def test_large_body_replays(self, client, executions):
        rows = [{"sku": f"sku-{i}", "qty": i} for i in range(1000)]

        first = _post(client, "/v1/imports", json={"rows": rows})
        second = _post(client, "/v1/imports", json={"rows": rows})

        assert first.status_code == 202
        assert first.json() == {"id": "imp_1", "rows": 1000}
        assert second.headers["idempotency-replayed"] == "true"
        assert executions["imports"] == 1


class TestMissingStore:
    """Coordination requested without a store fails closed."""

    @pytest.fixture
    def unconfigured_client(self, executions):
        coordinator = IdempotencyCoordinator(None)
        with TestClient(build_app(coordinator, executions)) as test_client:
            yield test_client

    def test_request_with_key_fails_with_500(self, unconfigured_client, executions):
        response = _post(unconfigured_client, "/v1/reports")

        assert response.status_code == 500
        assert response.headers["content-type"] == "application/problem+json"
        assert response.json() == {
            "title": "Internal Server Error",
            "code": "INTERNAL",
            "detail": "Internal Server Error",
        }
        assert executions == {}

    def test_request_without_key_still_runs(self, unconfigured_client, executions):
        response = unconfigured_client.post("/v1/reports")

        assert response.status_code == 201
        assert executions["reports"] == 1
