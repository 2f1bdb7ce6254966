"""Operation status enumeration.

Classifies the outcome of a channel send or health check so callers can
tell retryable provider problems from permanent rejections.
"""

from enum import Enum


class OperationStatus(Enum):
    """Status codes for operation results.

    Attributes:
        SUCCESS: Operation completed successfully
        TRANSIENT_ERROR: Retryable error (network, timeout, provider throttling)
        PERMANENT_ERROR: Non-retryable error (invalid address, rejected content)
        NOT_FOUND: Target resource not found
    """

    SUCCESS = "success"
    TRANSIENT_ERROR = "transient_error"
    PERMANENT_ERROR = "permanent_error"
    NOT_FOUND = "not_found"
