"""Unit-of-work context binding for structured logging.

Binds correlation metadata (queue message, bulk batch, notification) to
every log entry emitted while a unit of work is processed.

Usage:
    from infrastructure.logging import bind_request_context

    with bind_request_context(correlation_id="msg-123", batch_id="batch-9"):
        logger.info("bulk_chunk_started")

Dependencies:
    - structlog.contextvars
"""

import uuid
from contextlib import contextmanager
from typing import Any, Generator, Optional

import structlog


@contextmanager
def bind_request_context(
    correlation_id: Optional[str] = None,
    user_id: Optional[str] = None,
    notification_id: Optional[str] = None,
    batch_id: Optional[str] = None,
    **extra_context: Any,
) -> Generator[None, None, None]:
    """Bind context to all logs within the context manager.

    Args:
        correlation_id: Unique unit-of-work identifier. Auto-generated if not provided.
        user_id: Recipient or requesting user ID (if known).
        notification_id: Notification being processed (if known).
        batch_id: Bulk batch identifier (if processing a bulk request).
        **extra_context: Additional key-value pairs to include in logs.

    Yields:
        None - context is bound to structlog's context vars.

    Example:
        with bind_request_context(
            correlation_id=envelope.idempotency_key,
            batch_id=request.batch_id,
        ):
            controller.send_bulk(request.content, request.recipient_ids)
    """
    context: dict[str, Any] = {"correlation_id": correlation_id or str(uuid.uuid4())}

    if user_id is not None:
        context["user_id"] = user_id

    if notification_id is not None:
        context["notification_id"] = notification_id

    if batch_id is not None:
        context["batch_id"] = batch_id

    context.update(extra_context)

    # Resetting the tokens restores any enclosing values
    tokens = structlog.contextvars.bind_contextvars(**context)
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)


def get_correlation_id() -> Optional[str]:
    """Get the current correlation ID from the logging context.

    Returns:
        The correlation ID if set, None otherwise.
    """
    ctx = structlog.contextvars.get_contextvars()
    return ctx.get("correlation_id")


def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID in the current logging context.

    Args:
        correlation_id: The correlation ID to set.
    """
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)


def clear_request_context() -> None:
    """Clear all bound context from the logging context.

    Worker threads should call this after each unit of work to prevent
    context leaking between messages.
    """
    structlog.contextvars.clear_contextvars()
