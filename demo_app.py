"""Demo FastAPI application with idempotent order creation.

Run with: python demo_app.py
Set IDEMPOTENCY_REDIS_URL to use Redis; otherwise an in-memory store is used.

Try:
    curl -X POST localhost:8000/v1/orders -H 'X-User-Id: u1' \\
         -H 'Idempotency-Key: K1' -H 'Content-Type: application/json' -d '{"amount": 10}'

Repeat the same command to get the replayed response, or change the amount to
see the key reuse conflict.
"""

import asyncio
import uuid
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import uvicorn
from fastapi import FastAPI, Request, Response
from pydantic import BaseModel

from idempotency_coordinator.adapters.asgi import IdempotencyMiddleware
from idempotency_coordinator.config import IdempotencyOptions, IdempotencySettings
from idempotency_coordinator.core.coordinator import IdempotencyCoordinator
from idempotency_coordinator.observability.logging import configure_logging
from idempotency_coordinator.storage.memory import MemoryStore
from idempotency_coordinator.storage.redis_store import RedisStore

configure_logging(level="INFO", json_output=False)

settings = IdempotencySettings.from_env()
store = RedisStore.from_settings(settings) or MemoryStore()
coordinator = IdempotencyCoordinator(store, settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if isinstance(store, RedisStore):
        await store.ping()
    yield
    if isinstance(store, RedisStore):
        await store.aclose()


app = FastAPI(
    lifespan=lifespan,
    title="Idempotency Coordinator Demo",
    description="Demo API showing retry-safe order creation",
    version="0.1.0",
)

app.add_middleware(
    IdempotencyMiddleware,
    coordinator=coordinator,
    routes={
        "POST /v1/orders": IdempotencyOptions(scope_key="orders.create", required=True),
        "DELETE /v1/orders/{order_id}": IdempotencyOptions(wait_ms=500),
    },
)


@app.middleware("http")
async def demo_auth(request: Request, call_next):
    """Stand-in authentication layer: trusts the X-User-Id header."""
    request.state.principal_id = request.headers.get("x-user-id")
    return await call_next(request)


class OrderRequest(BaseModel):
    amount: int
    currency: str = "USD"


ORDERS: dict[str, dict] = {}


@app.post("/v1/orders", status_code=201)
async def create_order(order: OrderRequest, response: Response):
    """Create an order. Retries with the same Idempotency-Key are replayed."""
    await asyncio.sleep(0.1)

    order_id = f"ord_{uuid.uuid4().hex[:12]}"
    ORDERS[order_id] = {
        "id": order_id,
        "amount": order.amount,
        "currency": order.currency,
        "created_at": datetime.now(UTC).isoformat(),
    }
    response.headers["Location"] = f"/v1/orders/{order_id}"
    return ORDERS[order_id]


@app.delete("/v1/orders/{order_id}", status_code=204)
async def cancel_order(order_id: str):
    """Cancel an order. A replayed 204 carries no body."""
    ORDERS.pop(order_id, None)
    return Response(status_code=204)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000, log_level="info")
