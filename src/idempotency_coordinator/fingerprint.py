"""Request fingerprinting for idempotency.

The fingerprint identifies the logical content of a write request so that a
retry can be told apart from a different request that reuses the same
Idempotency-Key. It is computed over ``(method, path, query, body)``:

1. Canonical method: uppercase
2. Canonical path: the URL path without its query string
3. Query and body: canonicalized recursively (see ``canonicalize``)
4. Final: SHA-256 of the canonical string, rendered base64url without padding

Canonicalization is total and bounded. It never raises, and pathological
payloads (deep nesting, huge arrays, long strings) are truncated with explicit
markers so they still hash deterministically.
"""

import base64
import hashlib
import json
import math
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlsplit

MAX_DEPTH = 5
MAX_ARRAY_LENGTH = 100
MAX_OBJECT_KEYS = 100
MAX_STRING_LENGTH = 1024
MAX_CANONICAL_CHARS = 32768

DEPTH_EXCEEDED_MARKER = "__idempotency_depth_exceeded__"
TRUNCATED_ARRAY_MARKER = "__idempotency_truncated_array__"
TRUNCATED_OBJECT_MARKER = "__idempotency_truncated_object__"
TRUNCATED_STRING_SUFFIX = "…"


def compute_fingerprint(
    method: str,
    path: str,
    query: Mapping[str, Any] | None,
    body: Any,
) -> str:
    """Compute a deterministic fingerprint for a write request.

    Args:
        method: HTTP method (e.g., "POST", "PUT")
        path: URL path; any query string attached to it is ignored
        query: Parsed query parameters
        body: Parsed request body (any JSON value) or raw bytes

    Returns:
        URL-safe base64 SHA-256 digest (43 characters)

    Examples:
        >>> a = compute_fingerprint("POST", "/v1/orders", {}, {"b": 2, "a": 1})
        >>> b = compute_fingerprint("post", "/v1/orders?x=1", {}, {"a": 1, "b": 2})
        >>> a == b
        True
    """
    payload = {
        "method": method.upper(),
        "path": _canonical_path(path),
        "query": query if query is not None else {},
        "body": body,
    }
    canonical = canonicalize(payload)
    return _sha256_base64url(canonical[:MAX_CANONICAL_CHARS])


def hash_scope_key(scope_key: str) -> str:
    """Hash a scope identifier so storage keys never carry internal names."""
    return _sha256_base64url(scope_key)


def canonicalize(value: Any, depth: int = 0) -> str:
    """Render any value as a canonical JSON-like string.

    Rules, applied recursively:

    - beyond ``MAX_DEPTH`` the value is replaced by a depth sentinel
    - None renders as ``null``
    - strings are clamped to ``MAX_STRING_LENGTH`` with a suffix marker
    - numbers render as decimals; NaN and infinities render as ``null``
    - bytes are base64-encoded
    - arrays keep at most ``MAX_ARRAY_LENGTH`` items plus a truncation marker
    - objects are key-sorted and keep at most ``MAX_OBJECT_KEYS`` keys plus a
      truncation key
    - anything else is rendered through ``str()``

    Args:
        value: The value to render
        depth: Current nesting depth

    Returns:
        Canonical string representation

    Examples:
        >>> canonicalize({"b": [1, 2.0], "a": None})
        '{"a":null,"b":[1,2]}'
    """
    if depth > MAX_DEPTH:
        return _quote(DEPTH_EXCEEDED_MARKER)

    if value is None:
        return "null"
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return _quote(_clamp_string(value))
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return _render_float(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return _quote(base64.b64encode(bytes(value)).decode("ascii"))
    if isinstance(value, Mapping):
        return _canonicalize_mapping(value, depth)
    if isinstance(value, (list, tuple)):
        return _canonicalize_sequence(list(value), depth)
    if isinstance(value, (set, frozenset)):
        rendered = sorted(canonicalize(item, depth + 1) for item in value)
        return _join_array(rendered, truncated=False)

    return _quote(_clamp_string(_safe_str(value)))


def _canonicalize_sequence(items: list[Any], depth: int) -> str:
    truncated = len(items) > MAX_ARRAY_LENGTH
    rendered = [canonicalize(item, depth + 1) for item in items[:MAX_ARRAY_LENGTH]]
    return _join_array(rendered, truncated)


def _join_array(rendered: list[str], truncated: bool) -> str:
    if truncated:
        rendered.append(_quote(TRUNCATED_ARRAY_MARKER))
    return "[" + ",".join(rendered) + "]"


def _canonicalize_mapping(value: Mapping[Any, Any], depth: int) -> str:
    entries = sorted(((_safe_str(k), v) for k, v in value.items()), key=lambda kv: kv[0])
    truncated = len(entries) > MAX_OBJECT_KEYS

    parts = [
        f"{_quote(key)}:{canonicalize(item, depth + 1)}" for key, item in entries[:MAX_OBJECT_KEYS]
    ]
    if truncated:
        parts.append(f"{_quote(TRUNCATED_OBJECT_MARKER)}:true")

    return "{" + ",".join(parts) + "}"


def _render_float(value: float) -> str:
    if not math.isfinite(value):
        return "null"
    # 2.0 and 2 are the same JSON number
    if value.is_integer():
        return str(int(value))
    return repr(value)


def _clamp_string(value: str) -> str:
    if len(value) <= MAX_STRING_LENGTH:
        return value
    return value[:MAX_STRING_LENGTH] + TRUNCATED_STRING_SUFFIX


def _quote(value: str) -> str:
    # ensure_ascii keeps lone surrogates encodable
    return json.dumps(value, ensure_ascii=True)


def _safe_str(value: Any) -> str:
    if isinstance(value, str):
        return value
    try:
        return str(value)
    except Exception:
        return f"<{type(value).__name__}>"


def _canonical_path(path: str) -> str:
    if not path:
        return "/"
    try:
        return urlsplit(path).path or "/"
    except ValueError:
        return path.split("?", 1)[0] or "/"


def _sha256_base64url(value: str) -> str:
    digest = hashlib.sha256(value.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
