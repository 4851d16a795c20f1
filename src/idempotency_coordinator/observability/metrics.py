"""Prometheus metrics for the idempotency coordinator.

Metrics include:

- Begin outcomes (skip, acquired, replay, in_progress, conflict)
- Completion results (cached, released_error, released_oversized, ...)
- Time spent waiting for concurrent duplicates
- Leases currently held by this process

Examples:
    Recording a replay::

        from idempotency_coordinator.observability.metrics import record_begin

        record_begin("replay")

    Recording a wait::

        record_wait("timeout", seconds=2.0)
"""

from prometheus_client import Counter, Gauge, Histogram

# Labels: outcome (skip, acquired, replay, in_progress, conflict)
begin_total = Counter(
    "idempotency_begin_total",
    "Total number of begin() calls by outcome",
    ["outcome"],
)

# Labels: result (cached, released, released_error, released_oversized,
# released_unencodable, lease_lost)
completions_total = Counter(
    "idempotency_completions_total",
    "Total number of lease completions by result",
    ["result"],
)

# Labels: result (replay, gone, conflict, timeout)
wait_seconds = Histogram(
    "idempotency_wait_seconds",
    "Time spent waiting for a concurrent duplicate to complete",
    ["result"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0],
)

active_leases = Gauge(
    "idempotency_active_leases",
    "Number of leases acquired by this process and not yet completed or released",
)


def record_begin(outcome: str) -> None:
    """Record the outcome of a begin() call.

    Examples:
        >>> record_begin("acquired")
        >>> record_begin("conflict")
    """
    begin_total.labels(outcome=outcome).inc()


def record_completion(result: str) -> None:
    """Record how a lease was finalized."""
    completions_total.labels(result=result).inc()


def record_wait(result: str, seconds: float) -> None:
    """Record the duration and result of a wait for a concurrent duplicate."""
    wait_seconds.labels(result=result).observe(seconds)


def increment_active_leases() -> None:
    """Called when a lease is acquired."""
    active_leases.inc()


def decrement_active_leases() -> None:
    """Called when a lease is completed or released."""
    active_leases.dec()
