"""Framework adapters for the idempotency coordinator.

- asgi.py: Starlette middleware for FastAPI, Starlette, etc.

The adapters convert framework-specific request/response objects to and from
the gateway's internal representation.
"""

from idempotency_coordinator.adapters.asgi import IdempotencyMiddleware, ProtectedRoute

__all__ = ["IdempotencyMiddleware", "ProtectedRoute"]
