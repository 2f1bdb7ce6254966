"""In-memory idempotency cache with TTL."""

import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from infrastructure.idempotency.cache import IdempotencyCache
from infrastructure.logging import get_module_logger

logger = get_module_logger()

CLEANUP_INTERVAL_SECONDS = 60


class InMemoryCache(IdempotencyCache):
    """Process-local idempotency cache.

    Entries are stored as ``(response, expiry_timestamp)``. Expired entries
    are evicted on read, and ``set`` sweeps the whole cache at most once per
    ``cleanup_interval_seconds`` so keys that are never read again do not
    accumulate. Suitable for a single consumer process and for tests.

    Args:
        time_func: Clock used for expiry, injectable for tests.
        cleanup_interval_seconds: Minimum time between sweeps triggered by ``set``.
    """

    def __init__(
        self,
        time_func: Callable[[], float] = time.time,
        cleanup_interval_seconds: float = CLEANUP_INTERVAL_SECONDS,
    ):
        self._entries: Dict[str, Tuple[Dict[str, Any], float]] = {}
        self._lock = threading.Lock()
        self._time = time_func
        self._cleanup_interval = cleanup_interval_seconds
        self._next_cleanup = time_func() + cleanup_interval_seconds

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            cached = self._entries.get(key)
            if cached is None:
                return None

            response, expiry = cached
            if self._time() >= expiry:
                self._entries.pop(key, None)
                logger.debug("idempotency_cache_expired", key=key)
                return None

        logger.info("idempotency_cache_hit", key=key)
        return response

    def set(self, key: str, response: Dict[str, Any], ttl_seconds: int) -> None:
        now = self._time()
        with self._lock:
            expired_count = 0
            if now >= self._next_cleanup:
                expired_count = len(self._evict_expired(now))
                self._next_cleanup = now + self._cleanup_interval
            self._entries[key] = (response, now + ttl_seconds)
            cache_size = len(self._entries)

        if expired_count:
            logger.debug(
                "idempotency_cache_cleanup",
                expired_count=expired_count,
                remaining_count=cache_size,
            )
        logger.info(
            "idempotency_cache_stored",
            key=key,
            ttl_seconds=ttl_seconds,
            cache_size=cache_size,
        )

    def cleanup_expired_entries(self) -> int:
        """Remove expired entries.

        Returns:
            Number of entries removed.
        """
        now = self._time()
        with self._lock:
            expired_keys = self._evict_expired(now)
            remaining = len(self._entries)

        if expired_keys:
            logger.debug(
                "idempotency_cache_cleanup",
                expired_count=len(expired_keys),
                remaining_count=remaining,
            )
        return len(expired_keys)

    def _evict_expired(self, now: float) -> List[str]:
        # Caller holds the lock
        expired_keys = [key for key, (_, expiry) in self._entries.items() if expiry <= now]
        for key in expired_keys:
            del self._entries[key]
        return expired_keys

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.debug("idempotency_cache_cleared")

    def get_stats(self) -> Dict[str, Any]:
        now = self._time()
        with self._lock:
            expired_count = sum(
                1 for _, expiry in self._entries.values() if expiry <= now
            )
            total = len(self._entries)
        return {
            "backend": "memory",
            "total_entries": total,
            "expired_entries": expired_count,
            "active_entries": total - expired_count,
        }
