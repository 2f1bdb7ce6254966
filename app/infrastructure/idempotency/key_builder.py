"""Idempotency key builder for consistent key generation."""

import hashlib
from typing import Any


class IdempotencyKeyBuilder:
    """Build deterministic idempotency keys.

    Used when a producer does not supply its own key: the key is derived
    from the fields that identify the request.

    Example:
        builder = IdempotencyKeyBuilder(namespace="notifications")
        key = builder.build(
            operation="send",
            recipient_id="user-1",
            entity_id="insp-42",
        )
        # "notifications:send:<16 hex chars>"
    """

    def __init__(self, namespace: str):
        """Initialize key builder.

        Args:
            namespace: Namespace for key isolation (e.g., "notifications")
        """
        self.namespace = namespace

    def build(self, operation: str, **components: Any) -> str:
        """Build idempotency key from components.

        Args:
            operation: Operation type (e.g., "send", "send_bulk")
            **components: Key components (recipient_id, entity_id, etc.)

        Returns:
            Key of the form ``namespace:operation:<16 hex chars>``
        """
        key_parts = [self.namespace, operation]
        key_parts.extend(f"{k}={v}" for k, v in sorted(components.items()))
        key_string = "|".join(str(part) for part in key_parts)

        key_hash = hashlib.sha256(key_string.encode()).hexdigest()[:16]

        return f"{self.namespace}:{operation}:{key_hash}"
