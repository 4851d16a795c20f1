"""
Pytest configuration and shared fixtures for idempotency_coordinator tests.
"""

from typing import Any

import pytest

from idempotency_coordinator.config import IdempotencyOptions, IdempotencySettings
from idempotency_coordinator.core.coordinator import IdempotencyCoordinator
from idempotency_coordinator.models import WriteRequest
from idempotency_coordinator.storage.memory import MemoryStore


class FakeClock:
    """Manually advanced monotonic clock for MemoryStore."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    """Provide a fake clock starting at t=1000s."""
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> MemoryStore:
    """Provide a fresh memory store driven by the fake clock."""
    return MemoryStore(clock=clock)


@pytest.fixture
def settings() -> IdempotencySettings:
    """Provide settings with short polling intervals so waits stay fast."""
    return IdempotencySettings(initial_poll_ms=5, max_poll_ms=20)


@pytest.fixture
def coordinator(store: MemoryStore, settings: IdempotencySettings) -> IdempotencyCoordinator:
    """Provide a coordinator bound to the memory store."""
    return IdempotencyCoordinator(store, settings)


@pytest.fixture
def options() -> IdempotencyOptions:
    """Provide default options for an orders.create operation."""
    return IdempotencyOptions(scope_key="orders.create")


@pytest.fixture
def make_request():
    """Factory for WriteRequest objects with sensible defaults."""

    def _make(
        body: Any = None,
        key: str | None = "K1",
        principal_id: str | None = "u1",
        method: str = "POST",
        path: str = "/v1/orders",
        query: dict[str, Any] | None = None,
    ) -> WriteRequest:
        return WriteRequest(
            method=method,
            path=path,
            query=query or {},
            body={"amount": 10} if body is None else body,
            idempotency_key=key,
            principal_id=principal_id,
        )

    return _make
