"""Structured logging configuration for the idempotency coordinator.

Logs are emitted through structlog as JSON documents with contextual fields.
Events bind the storage scope hash and a shortened client key, never the full
key, so logs cannot be used to replay someone else's request.

Examples:
    Configure logging::

        from idempotency_coordinator.observability.logging import configure_logging

        configure_logging(level="INFO", json_output=True)

    Use the logger::

        logger = get_logger(__name__)
        logger.info("idempotency.replayed", status=201, key=redact_key("K1"))

    Output (JSON)::

        {
            "event": "idempotency.replayed",
            "status": 201,
            "key": "K1",
            "timestamp": "2024-01-01T00:00:00.000000Z",
            "level": "info"
        }
"""

import logging
import sys
from typing import Any

import structlog

REDACTED_KEY_CHARS = 8


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
) -> None:
    """Configure structured logging for the application.

    This should be called once at application startup.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: If True, emit JSON logs; if False, use console format
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )

    processors: list[object] = [
        structlog.contextvars.merge_contextvars,
        redact_client_keys,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,  # type: ignore[arg-type]
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level.upper())),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__ from the calling module)

    Returns:
        A structlog logger instance
    """
    return structlog.get_logger(name)


def redact_key(client_key: str) -> str:
    """Shorten a client key for logging.

    Examples:
        >>> redact_key("order-2024-01-01-abcdef")
        'order-20…'
        >>> redact_key("K1")
        'K1'
    """
    if len(client_key) <= REDACTED_KEY_CHARS:
        return client_key
    return client_key[:REDACTED_KEY_CHARS] + "…"


def redact_client_keys(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Processor that shortens a ``key`` field bound anywhere in the chain.

    Example:
        >>> redact_client_keys(None, "info", {"event": "x", "key": "order-2024-01-01"})
        {'event': 'x', 'key': 'order-20…'}
    """
    key = event_dict.get("key")
    if isinstance(key, str):
        event_dict["key"] = redact_key(key)
    return event_dict
