"""Utility modules for the idempotency coordinator."""

from .headers import (
    IDEMPOTENCY_KEY_HEADER,
    REPLAYED_HEADER,
    RETRY_AFTER_HEADER,
    add_replay_headers,
    get_header_value,
    pick_replay_headers,
)

__all__ = [
    "IDEMPOTENCY_KEY_HEADER",
    "REPLAYED_HEADER",
    "RETRY_AFTER_HEADER",
    "add_replay_headers",
    "get_header_value",
    "pick_replay_headers",
]
