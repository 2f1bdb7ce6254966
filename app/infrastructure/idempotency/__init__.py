"""Infrastructure idempotency cache.

Protects the queue consumer against redelivered messages: the result of a
processed envelope is cached under its idempotency key and returned for
duplicates.

Usage:

    from infrastructure.idempotency import get_cache

    cache = get_cache()

    cached = cache.get(idempotency_key)
    if cached:
        return cached

    result = process(envelope)
    cache.set(idempotency_key, result, ttl_seconds=3600)
"""

from infrastructure.idempotency.cache import IdempotencyCache
from infrastructure.idempotency.factory import get_cache, reset_cache
from infrastructure.idempotency.memory import InMemoryCache
from infrastructure.idempotency.key_builder import IdempotencyKeyBuilder

__all__ = [
    "IdempotencyCache",
    "get_cache",
    "reset_cache",
    "InMemoryCache",
    "IdempotencyKeyBuilder",
]
