"""Core logic of the idempotency coordinator.

This package contains the framework-agnostic protocol:
- Coordinator: begin / wait_for_completion / complete / release against the store
- Replay: response reconstruction from cached records
- Gateway: one handler call under the protocol, outcomes mapped to HTTP

Framework adapters (see ``idempotency_coordinator.adapters``) wrap the gateway.
"""

from idempotency_coordinator.core.coordinator import IdempotencyCoordinator
from idempotency_coordinator.core.gateway import IdempotencyGateway, problem_response
from idempotency_coordinator.core.replay import GatewayResponse, replay_response

__all__ = [
    "IdempotencyCoordinator",
    "IdempotencyGateway",
    "GatewayResponse",
    "problem_response",
    "replay_response",
]
