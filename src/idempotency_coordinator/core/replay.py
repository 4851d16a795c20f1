"""Response replay for the idempotency coordinator.

Reconstructs the HTTP-facing response from a cached ``CompletedRecord``:

1. The cached status is reused verbatim
2. Cached headers (e.g. Location) are reproduced
3. ``Idempotency-Replayed: true`` is added
4. The body is returned only if one was cached (never for a 204)

Examples:
    Basic replay::

        record = CompletedRecord(
            request_hash="h",
            status=201,
            has_body=True,
            body={"id": "o1"},
            headers={"Location": "/v1/orders/o1"},
            completed_at=1700000000000,
        )

        response = replay_response(record)
        # response.status == 201
        # response.headers["Idempotency-Replayed"] == "true"
        # response.body == {"id": "o1"}
"""

from typing import Any

from idempotency_coordinator.models import CompletedRecord
from idempotency_coordinator.utils.headers import add_replay_headers


class GatewayResponse:
    """An HTTP-facing response produced by a handler or by a replay.

    Attributes:
        status: HTTP status code
        headers: Response headers
        body: Response body, a JSON value or text. Bytes are not replayable;
            adapters mark binary responses uncacheable instead.
        has_body: Whether a body was sent. Defaults to ``body is not None``;
            set it explicitly to tell a JSON ``null`` body from no body.
        replayed: True if the response came from the replay cache
        cacheable: False if the body cannot be replayed faithfully
    """

    def __init__(
        self,
        status: int,
        headers: dict[str, str] | None = None,
        body: Any = None,
        replayed: bool = False,
        cacheable: bool = True,
        has_body: bool | None = None,
    ) -> None:
        self.status = status
        self.headers = headers if headers is not None else {}
        self.body = body
        self.has_body = body is not None if has_body is None else has_body
        self.replayed = replayed
        self.cacheable = cacheable

    def __repr__(self) -> str:
        return f"GatewayResponse(status={self.status}, replayed={self.replayed})"


def replay_response(record: CompletedRecord) -> GatewayResponse:
    """Reconstruct a response from a completed record.

    Args:
        record: The cached outcome

    Returns:
        GatewayResponse flagged as replayed
    """
    headers = add_replay_headers(dict(record.headers or {}))

    return GatewayResponse(
        status=record.status,
        headers=headers,
        body=record.body if record.has_body else None,
        replayed=True,
        has_body=record.has_body,
    )
