"""Observability utilities for the idempotency coordinator.

This package provides monitoring and debugging capabilities:
- Prometheus metrics for protocol outcomes and wait times
- Structured logging with contextual information
"""

from idempotency_coordinator.observability.logging import configure_logging, get_logger
from idempotency_coordinator.observability.metrics import (
    record_begin,
    record_completion,
    record_wait,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "record_begin",
    "record_completion",
    "record_wait",
]
