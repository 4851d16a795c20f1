"""End-to-end scenarios for the idempotency coordinator.

Each module drives a small FastAPI application through the ASGI middleware
and checks one observable behavior: replay, conflict, concurrency, expiry,
crash recovery or size limits.
"""
