"""
Idempotency coordination for unsafe HTTP operations.

This package lets a client safely retry a state-mutating request: duplicates
of an in-flight request wait for it, completed requests are replayed from a
shared store, and key reuse with a different payload is rejected.
"""

from idempotency_coordinator.config import IdempotencyOptions, IdempotencySettings
from idempotency_coordinator.core.coordinator import IdempotencyCoordinator
from idempotency_coordinator.core.gateway import IdempotencyGateway
from idempotency_coordinator.core.replay import GatewayResponse
from idempotency_coordinator.models import WriteRequest

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "GatewayResponse",
    "IdempotencyCoordinator",
    "IdempotencyGateway",
    "IdempotencyOptions",
    "IdempotencySettings",
    "WriteRequest",
]
