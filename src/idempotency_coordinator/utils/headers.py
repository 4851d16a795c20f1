"""Header utilities for the idempotency coordinator.

This module provides functions for:
- Case-insensitive header lookup
- Picking the response headers that are cached for replay
- Adding replay markers to replayed responses
"""

IDEMPOTENCY_KEY_HEADER = "Idempotency-Key"
REPLAYED_HEADER = "Idempotency-Replayed"
RETRY_AFTER_HEADER = "Retry-After"

# Response headers reproduced on replay, keyed by lowercase name
REPLAYABLE_HEADERS = {
    "location": "Location",
    "content-type": "Content-Type",
}


def get_header_value(
    headers: dict[str, str],
    header_name: str,
    default: str | None = None,
) -> str | None:
    """Get header value with case-insensitive lookup.

    Args:
        headers: Headers dictionary
        header_name: Name of header to find (case-insensitive)
        default: Default value if header not found

    Returns:
        Header value or default

    Example:
        >>> get_header_value({"Idempotency-Key": "K1"}, "idempotency-key")
        'K1'
        >>> get_header_value({}, "missing", "default")
        'default'
    """
    header_name_lower = header_name.lower()

    for key, value in headers.items():
        if key.lower() == header_name_lower:
            return value

    return default


def pick_replay_headers(headers: dict[str, str]) -> dict[str, str]:
    """Select the response headers that are cached for replay.

    Only stable, representation-level headers survive. Blank values are
    dropped and names are normalized to their canonical casing.

    Example:
        >>> pick_replay_headers({
        ...     "location": " /v1/orders/o1 ",
        ...     "content-type": "application/json",
        ...     "date": "Mon, 01 Oct 2025 12:00:00 GMT",
        ... })
        {'Location': '/v1/orders/o1', 'Content-Type': 'application/json'}
    """
    picked: dict[str, str] = {}
    for key, value in headers.items():
        canonical = REPLAYABLE_HEADERS.get(key.lower())
        if canonical is None:
            continue
        stripped = value.strip()
        if stripped:
            picked[canonical] = stripped
    return picked


def add_replay_headers(headers: dict[str, str]) -> dict[str, str]:
    """Return a copy of headers marked as a replayed response.

    Example:
        >>> add_replay_headers({"Location": "/v1/orders/o1"})
        {'Location': '/v1/orders/o1', 'Idempotency-Replayed': 'true'}
    """
    result = headers.copy()
    result[REPLAYED_HEADER] = "true"
    return result
