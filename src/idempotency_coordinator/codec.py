"""Record codec for persisted idempotency state.

Records are stored as compact JSON documents::

    {"v":1,"state":"in_progress","requestHash":"...","startedAt":1700000000000}
    {"v":1,"state":"completed","requestHash":"...","status":201,"hasBody":true,
     "body":{"id":"o1"},"headers":{"Location":"/v1/orders/o1"},"completedAt":...}

Malformed JSON, missing fields, a wrong version or an unknown state all decode
to ``None`` instead of raising.
"""

import json
import time
from collections.abc import Mapping
from typing import Any, NamedTuple

from pydantic import TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError

from idempotency_coordinator.models import (
    RECORD_VERSION,
    CompletedRecord,
    InProgressRecord,
    StoredRecord,
)

_record_adapter: TypeAdapter[InProgressRecord | CompletedRecord] = TypeAdapter(StoredRecord)


class EncodedRecord(NamedTuple):
    """A serialized record and its size in characters."""

    payload: str
    size: int


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def create_in_progress_record(request_hash: str, started_at: int | None = None) -> InProgressRecord:
    """Build the lease record written on acquisition."""
    return InProgressRecord(
        request_hash=request_hash,
        started_at=now_ms() if started_at is None else started_at,
    )


def create_completed_record(
    request_hash: str,
    status: int,
    body: Any,
    headers: Mapping[str, str] | None = None,
    completed_at: int | None = None,
    has_body: bool | None = None,
) -> CompletedRecord:
    """Build the record cached after a successful operation.

    The body is kept only when one was actually sent. ``has_body`` says so
    explicitly, which keeps a JSON ``null`` body apart from an empty one; when
    omitted it is inferred from ``body is not None``. A 204 never has a body.

    Examples:
        >>> record = create_completed_record("h", 204, {"ignored": True})
        >>> record.has_body, record.body
        (False, None)
        >>> create_completed_record("h", 200, None, has_body=True).has_body
        True
    """
    if has_body is None:
        has_body = body is not None
    has_body = has_body and status != 204
    return CompletedRecord(
        request_hash=request_hash,
        status=status,
        has_body=has_body,
        body=body if has_body else None,
        headers=dict(headers) if headers else None,
        completed_at=now_ms() if completed_at is None else completed_at,
    )


def encode_record(record: InProgressRecord | CompletedRecord) -> EncodedRecord:
    """Serialize a record for the store.

    Absent optional fields (``body`` without a body, empty ``headers``) are
    omitted from the document entirely.

    Args:
        record: The record to serialize

    Returns:
        EncodedRecord with the JSON payload and its length in characters

    Raises:
        ValueError: If the body cannot be rendered as JSON
    """
    try:
        data = record.model_dump(by_alias=True, mode="json")
        if isinstance(record, CompletedRecord):
            if not record.has_body:
                data.pop("body", None)
            if not record.headers:
                data.pop("headers", None)
        payload = json.dumps(data, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
    except (PydanticSerializationError, TypeError, ValueError) as e:
        raise ValueError(f"Record cannot be encoded: {e}") from e

    return EncodedRecord(payload=payload, size=len(payload))


def decode_record(raw: str | bytes | None) -> InProgressRecord | CompletedRecord | None:
    """Parse a stored record, returning None for anything invalid.

    Examples:
        >>> decode_record("{bad-json") is None
        True
        >>> decode_record('{"v":1,"state":"unknown","requestHash":"h"}') is None
        True
    """
    if raw is None:
        return None

    try:
        data = json.loads(raw)
    except (ValueError, RecursionError):
        return None

    if not isinstance(data, dict):
        return None
    version = data.get("v")
    if isinstance(version, bool) or version != RECORD_VERSION:
        return None

    try:
        return _record_adapter.validate_python(data)
    except ValidationError:
        return None
