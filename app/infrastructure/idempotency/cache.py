"""Idempotency cache abstract base class."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class IdempotencyCache(ABC):
    """Abstract base class for idempotency cache implementations.

    Caches the result of a processed queue envelope so a redelivered
    message with the same idempotency key is answered from the cache
    instead of sending the notification again.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Get cached result for an idempotency key.

        Args:
            key: Idempotency key.

        Returns:
            Cached result dict or None if not found/expired.
        """

    @abstractmethod
    def set(self, key: str, response: Dict[str, Any], ttl_seconds: int) -> None:
        """Cache a result for the given idempotency key.

        Args:
            key: Idempotency key.
            response: JSON-serialisable result dict.
            ttl_seconds: Time-to-live in seconds.
        """

    @abstractmethod
    def clear(self) -> None:
        """Clear all cached entries (for testing)."""

    @abstractmethod
    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics.

        Returns:
            Dict with cache statistics (implementation-specific).
        """
