"""Idempotency cache factory."""

from typing import Optional

from infrastructure.idempotency.cache import IdempotencyCache
from infrastructure.idempotency.memory import InMemoryCache
from infrastructure.logging import get_module_logger

logger = get_module_logger()

# Singleton cache instance
_cache_instance: Optional[IdempotencyCache] = None


def get_cache() -> IdempotencyCache:
    """Get the idempotency cache singleton.

    Returns:
        Process-wide InMemoryCache instance.
    """
    global _cache_instance

    if _cache_instance is not None:
        return _cache_instance

    _cache_instance = InMemoryCache()
    logger.info("initialized_idempotency_cache", backend="memory")

    return _cache_instance


def reset_cache() -> None:
    """Reset the cache singleton (for testing only)."""
    global _cache_instance
    _cache_instance = None
    logger.debug("reset_cache_singleton")
