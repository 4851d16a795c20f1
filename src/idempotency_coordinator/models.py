"""Core type definitions for the idempotency coordinator.

This module provides the data structures shared by the coordinator, the
record codec and the gateway:

- ``WriteRequest``: the parts of an inbound write request the protocol needs.
- ``InProgressRecord`` / ``CompletedRecord``: the two persisted states of an
  idempotency identity. Both are versioned (``v=1``) and serialized with the
  camelCase field names used on the wire.
- ``SkipOutcome`` / ``AcquiredOutcome`` / ``ReplayOutcome`` /
  ``InProgressOutcome``: the results of ``IdempotencyCoordinator.begin``.

Examples:
    A lease record::

        record = InProgressRecord(request_hash="h-1", started_at=1700000000000)
        record.state  # 'in_progress'

    A cached 201 outcome::

        record = CompletedRecord(
            request_hash="h-1",
            status=201,
            has_body=True,
            body={"id": "o1"},
            headers={"Location": "/v1/orders/o1"},
            completed_at=1700000000500,
        )
"""

import math
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, StrictBool, field_validator, model_validator

WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

RECORD_VERSION = 1


def is_write_method(method: str | None) -> bool:
    """Return True for the unsafe methods the coordinator protects.

    Examples:
        >>> is_write_method("post")
        True
        >>> is_write_method("GET")
        False
    """
    return method is not None and method.upper() in WRITE_METHODS


def _truncate_number(v: Any) -> Any:
    """Accept finite floats for integer fields by truncating them."""
    if isinstance(v, bool):
        raise ValueError("expected a number, got a boolean")
    if isinstance(v, float) and math.isfinite(v):
        return int(v)
    return v


class WriteRequest(BaseModel):
    """The parts of an inbound write request used by the protocol.

    Framework adapters convert their own request objects into this shape.

    Attributes:
        method: HTTP method (POST, PUT, PATCH or DELETE)
        path: URL path; a trailing query string is ignored by the fingerprint
        query: Parsed query parameters
        body: Parsed body (any JSON value) or raw bytes
        idempotency_key: Raw Idempotency-Key header value, if any
        principal_id: Authenticated caller, supplied by the auth layer
    """

    method: str
    path: str
    query: dict[str, Any] = Field(default_factory=dict)
    body: Any = None
    idempotency_key: str | None = None
    principal_id: str | None = None


class InProgressRecord(BaseModel):
    """A lease: a request with this identity is currently executing.

    Attributes:
        v: Record schema version.
        state: Always "in_progress".
        request_hash: Fingerprint of the request holding the lease.
        started_at: Lease creation time, epoch milliseconds.
    """

    v: Literal[1] = RECORD_VERSION
    state: Literal["in_progress"] = "in_progress"
    request_hash: str = Field(..., alias="requestHash", min_length=1)
    started_at: int = Field(..., alias="startedAt")

    model_config = {"frozen": True, "populate_by_name": True}

    @field_validator("request_hash", mode="before")
    @classmethod
    def strip_request_hash(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("started_at", mode="before")
    @classmethod
    def truncate_started_at(cls, v: Any) -> Any:
        return _truncate_number(v)


class CompletedRecord(BaseModel):
    """A cached terminal outcome available for replay.

    ``body`` is present only when ``has_body`` is True. A 204 outcome never
    carries a body even if the handler produced one, so the replay mirrors
    what was actually sent on the wire.

    Attributes:
        v: Record schema version.
        state: Always "completed".
        request_hash: Fingerprint of the request that produced the outcome.
        status: HTTP status of the cached outcome.
        has_body: Whether a body was sent.
        body: The response body (JSON value), when has_body is True.
        headers: Response headers reproduced on replay (e.g. Location).
        completed_at: Completion time, epoch milliseconds.
    """

    v: Literal[1] = RECORD_VERSION
    state: Literal["completed"] = "completed"
    request_hash: str = Field(..., alias="requestHash", min_length=1)
    status: int = Field(..., ge=100, le=599)
    has_body: StrictBool = Field(..., alias="hasBody")
    body: Any = None
    headers: dict[str, str] | None = None
    completed_at: int = Field(..., alias="completedAt")

    model_config = {"frozen": True, "populate_by_name": True}

    @model_validator(mode="before")
    @classmethod
    def drop_body_without_flag(cls, data: Any) -> Any:
        """Discard a stray body when the record says no body was sent."""
        if not isinstance(data, dict):
            return data
        has_body = data.get("hasBody", data.get("has_body"))
        if has_body is not True and "body" in data:
            data = {k: v for k, v in data.items() if k != "body"}
        return data

    @field_validator("request_hash", mode="before")
    @classmethod
    def strip_request_hash(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("status", "completed_at", mode="before")
    @classmethod
    def truncate_numbers(cls, v: Any) -> Any:
        return _truncate_number(v)

    @field_validator("headers", mode="before")
    @classmethod
    def keep_non_blank_headers(cls, v: Any) -> dict[str, str] | None:
        """Keep only non-blank string header values; empty maps become None."""
        if not isinstance(v, dict):
            return None
        headers = {
            str(name): value.strip()
            for name, value in v.items()
            if isinstance(value, str) and value.strip()
        }
        return headers or None


StoredRecord = Annotated[InProgressRecord | CompletedRecord, Field(discriminator="state")]


class SkipOutcome(BaseModel):
    """No key supplied and none required: run the handler unprotected."""

    kind: Literal["skip"] = "skip"

    model_config = {"frozen": True}


class AcquiredOutcome(BaseModel):
    """The caller now holds the lease and must complete or release it once."""

    kind: Literal["acquired"] = "acquired"
    storage_key: str
    request_hash: str
    ttl_seconds: int
    lock_ttl_seconds: int
    wait_ms: int

    model_config = {"frozen": True}


class ReplayOutcome(BaseModel):
    """A matching completed record exists: return it instead of executing."""

    kind: Literal["replay"] = "replay"
    storage_key: str
    record: CompletedRecord

    model_config = {"frozen": True}


class InProgressOutcome(BaseModel):
    """A matching lease is held by a concurrent duplicate."""

    kind: Literal["in_progress"] = "in_progress"
    storage_key: str
    request_hash: str
    wait_ms: int

    model_config = {"frozen": True}


BeginOutcome = SkipOutcome | AcquiredOutcome | ReplayOutcome | InProgressOutcome
