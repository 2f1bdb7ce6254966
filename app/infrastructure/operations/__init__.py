"""Operation result types and status enums.

Standardized result type returned by channel senders and health checks.
"""

from infrastructure.operations.result import OperationResult
from infrastructure.operations.status import OperationStatus

__all__ = [
    "OperationResult",
    "OperationStatus",
]
