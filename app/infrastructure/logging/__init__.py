"""Structured logging infrastructure.

Centralized logging configuration and utilities for the notification
engine using structlog.

Public API:
    - configure_logging(): Initialize logging for the process
    - build_processors(): The processor chain configure_logging installs
    - get_module_logger(): Get a logger for the calling module
    - bind_request_context(): Context manager for unit-of-work logging
    - get_correlation_id(): Get current correlation ID from context
    - set_correlation_id(): Set correlation ID in context
    - clear_request_context(): Clear all bound context

Formatters:
    - add_app_info(): Processor to add app name and deployed version
    - mask_sensitive_data(): Processor to redact secrets
    - mask_contact_details(): Processor to partially mask emails and phones
    - truncate_large_values(): Processor to limit string lengths

Example:
    from infrastructure.logging import get_module_logger, bind_request_context

    logger = get_module_logger()

    with bind_request_context(correlation_id="msg-123"):
        logger.info("processing_envelope")
"""

from infrastructure.logging.setup import (
    configure_logging,
    build_processors,
    get_module_logger,
)

from infrastructure.logging.context import (
    bind_request_context,
    get_correlation_id,
    set_correlation_id,
    clear_request_context,
)

from infrastructure.logging.formatters import (
    add_app_info,
    mask_sensitive_data,
    mask_contact_details,
    truncate_large_values,
    SENSITIVE_PATTERNS,
    CONTACT_PATTERNS,
)

__all__ = [
    # Setup
    "configure_logging",
    "build_processors",
    "get_module_logger",
    # Context
    "bind_request_context",
    "get_correlation_id",
    "set_correlation_id",
    "clear_request_context",
    # Formatters
    "add_app_info",
    "mask_sensitive_data",
    "mask_contact_details",
    "truncate_large_values",
    "SENSITIVE_PATTERNS",
    "CONTACT_PATTERNS",
]
