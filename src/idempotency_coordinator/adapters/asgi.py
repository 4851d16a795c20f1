"""ASGI middleware adapter for FastAPI and Starlette applications.

Protected operations are declared explicitly when the middleware is added,
as a mapping from ``"METHOD /path/template"`` to ``IdempotencyOptions``.
Requests that match no declared operation pass straight through.

The middleware:
1. Matches the request against the declared operations
2. Converts it to a ``WriteRequest`` (JSON bodies are parsed, others kept as bytes)
3. Runs it through the gateway
4. Converts the gateway response back to a Starlette response

Examples:
    FastAPI integration::

        from fastapi import FastAPI

        app = FastAPI()
        app.add_middleware(
            IdempotencyMiddleware,
            coordinator=IdempotencyCoordinator(MemoryStore()),
            routes={
                "POST /v1/orders": IdempotencyOptions(required=True),
                "PATCH /v1/orders/{order_id}": IdempotencyOptions(scope_key="orders.patch"),
            },
        )

    The principal is read from ``request.state.principal_id`` (set by the
    authentication layer) unless a ``principal_resolver`` is supplied.
"""

import json
import re
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import compile_path

from idempotency_coordinator.config import IdempotencyOptions
from idempotency_coordinator.core.coordinator import IdempotencyCoordinator
from idempotency_coordinator.core.gateway import IdempotencyGateway
from idempotency_coordinator.core.replay import GatewayResponse
from idempotency_coordinator.models import WriteRequest, is_write_method

PrincipalResolver = Callable[[Request], str | None]


class ProtectedRoute:
    """One declared operation.

    Attributes:
        name: The declaration, e.g. "POST /v1/orders/{order_id}". Used as the
            scope fallback when the options carry no scope key.
        method: Uppercase HTTP method
        path_regex: Compiled path template
        options: Idempotency options of the operation
    """

    def __init__(self, name: str, options: IdempotencyOptions) -> None:
        parts = name.split(None, 1)
        if len(parts) != 2 or not is_write_method(parts[0]):
            raise ValueError(f"Protected route must look like 'POST /path', got {name!r}")
        self.name = f"{parts[0].upper()} {parts[1].strip()}"
        self.method = parts[0].upper()
        self.path_regex: re.Pattern[str] = compile_path(parts[1].strip())[0]
        self.options = options

    def matches(self, method: str, path: str) -> bool:
        return method.upper() == self.method and self.path_regex.match(path) is not None


def principal_from_state(request: Request) -> str | None:
    """Read the authenticated principal placed on request.state by auth middleware."""
    principal = getattr(request.state, "principal_id", None)
    return str(principal) if principal is not None else None


class IdempotencyMiddleware(BaseHTTPMiddleware):
    """ASGI middleware applying the idempotency protocol to declared routes.

    Attributes:
        gateway: Gateway running the protocol
        routes: Declared protected operations
        principal_resolver: Callable returning the caller's principal id
    """

    def __init__(
        self,
        app: Any,
        coordinator: IdempotencyCoordinator,
        routes: Mapping[str, IdempotencyOptions],
        principal_resolver: PrincipalResolver | None = None,
    ) -> None:
        """Initialize the ASGI middleware.

        Args:
            app: The ASGI application
            coordinator: Coordinator bound to the shared store
            routes: Mapping of "METHOD /path/template" to options
            principal_resolver: Returns the principal id for a request
        """
        super().__init__(app)
        self.gateway = IdempotencyGateway(coordinator)
        self.routes = [ProtectedRoute(name, options) for name, options in routes.items()]
        self.principal_resolver = principal_resolver or principal_from_state

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        """Process an ASGI request with idempotency handling.

        Args:
            request: The Starlette request object
            call_next: Function to call the next middleware/handler

        Returns:
            Starlette Response object
        """
        route = self._match(request)
        if route is None:
            return await call_next(request)

        write_request = await self._convert_request(request)
        downstream: dict[str, Any] = {}

        async def handler() -> GatewayResponse:
            response = await call_next(request)
            raw_body = await _read_body(response)
            downstream["response"] = Response(
                content=raw_body,
                status_code=response.status_code,
                headers=dict(response.headers),
            )
            downstream["result"] = _to_gateway_response(response, raw_body)
            return downstream["result"]

        result = await self.gateway.process(write_request, route.options, route.name, handler)

        # The handler ran and its own response goes out byte for byte
        if result is downstream.get("result"):
            return downstream["response"]
        return _render(result)

    def _match(self, request: Request) -> ProtectedRoute | None:
        for route in self.routes:
            if route.matches(request.method, request.url.path):
                return route
        return None

    async def _convert_request(self, request: Request) -> WriteRequest:
        """Convert a Starlette request to a WriteRequest."""
        raw_body = await request.body()

        return WriteRequest(
            method=request.method,
            path=request.url.path,
            query=_query_dict(request),
            body=_parse_body(raw_body, request.headers.get("content-type")),
            idempotency_key=request.headers.get("idempotency-key"),
            principal_id=self.principal_resolver(request),
        )


def _is_json(content_type: str | None) -> bool:
    if not content_type:
        return False
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


def _query_dict(request: Request) -> dict[str, Any]:
    grouped: dict[str, list[str]] = {}
    for key, value in request.query_params.multi_items():
        grouped.setdefault(key, []).append(value)
    return {key: values[0] if len(values) == 1 else values for key, values in grouped.items()}


def _parse_body(raw_body: bytes, content_type: str | None) -> Any:
    if not raw_body:
        return None
    if _is_json(content_type):
        try:
            return json.loads(raw_body)
        except ValueError:
            return raw_body
    return raw_body


async def _read_body(response: Response) -> bytes:
    body = b""
    if hasattr(response, "body_iterator"):
        async for chunk in response.body_iterator:
            if isinstance(chunk, str):
                body += chunk.encode("utf-8")
            else:
                body += bytes(chunk)
    else:
        body = bytes(getattr(response, "body", b""))
    return body


def _to_gateway_response(response: Response, raw_body: bytes) -> GatewayResponse:
    """Describe a downstream response for caching.

    JSON bodies are cached as JSON values and text bodies as text. A body that
    is neither cannot be replayed faithfully and is marked uncacheable. Whether
    a body was sent comes from the raw bytes, so a JSON ``null`` is kept.
    """
    headers = dict(response.headers)
    content_type = response.headers.get("content-type")

    if not raw_body:
        return GatewayResponse(status=response.status_code, headers=headers, body=None)

    if _is_json(content_type):
        try:
            body = json.loads(raw_body)
        except ValueError:
            return GatewayResponse(response.status_code, headers, None, cacheable=False)
        return GatewayResponse(response.status_code, headers, body, has_body=True)

    try:
        text = raw_body.decode("utf-8")
    except UnicodeDecodeError:
        return GatewayResponse(response.status_code, headers, None, cacheable=False)
    return GatewayResponse(status=response.status_code, headers=headers, body=text)


def _render(result: GatewayResponse) -> Response:
    """Render a replayed or problem response."""
    if not result.has_body:
        content = b""
    elif isinstance(result.body, str) and not _is_json(result.headers.get("Content-Type")):
        content = result.body.encode("utf-8")
    else:
        content = json.dumps(result.body, ensure_ascii=False, separators=(",", ":")).encode(
            "utf-8"
        )

    return Response(content=content, status_code=result.status, headers=result.headers)
