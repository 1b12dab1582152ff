"""Cache manager - read-through caching where cache problems never reach callers."""

import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from backend.chatbot.cache.stores import CacheStore
from backend.chatbot.errors import CacheError
from backend.chatbot.tasks import BackgroundTaskRunner

T = TypeVar("T")

logger = logging.getLogger(__name__)

# TTLs (seconds)
CACHE_TTL_1_MIN = 60
CACHE_TTL_5_MINS = 5 * 60
CACHE_TTL_1_HOUR = 60 * 60
CACHE_TTL_12_HOUR = 12 * 60 * 60
CACHE_TTL_1_DAY = 24 * 60 * 60

# Keys
QUESTION_KEY_PREFIX = "question:"
DOCUMENT_CHUNKS_KEY = "document_chunks:all"
DOCUMENT_CHUNKS_PATTERN = "document_chunks*"


def question_cache_key(question_hash: str) -> str:
    """Exact-match cache key for a hashed question."""
    return f"{QUESTION_KEY_PREFIX}{question_hash}"


class CacheManager:
    """JSON get/set/delete over a CacheStore plus get-or-compute.

    Every store failure is logged and swallowed: reads degrade to a miss,
    writes and deletes become no-ops.
    """

    def __init__(self, store: CacheStore, tasks: BackgroundTaskRunner) -> None:
        self._store = store
        self._tasks = tasks
        # Bumped by every invalidation; computed values from an older generation are not written
        self._generation = 0

    @property
    def store(self) -> CacheStore:
        return self._store

    async def get(self, key: str) -> Any | None:
        """Get cached value or None on miss or any cache failure."""
        try:
            raw = await self._store.get(key)
        except CacheError as e:
            logger.error(f"Error getting from cache: {e}", extra={"structured": {"key": key}})
            return None

        if raw is None:
            return None

        try:
            return json.loads(raw)
        except ValueError:
            logger.error("Corrupt cache entry", extra={"structured": {"key": key}})
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store JSON-serializable value; failures are logged only."""
        try:
            await self._store.set(key, json.dumps(value, default=str), ttl_seconds)
        except (CacheError, TypeError, ValueError) as e:
            logger.error(f"Error setting cache: {e}", extra={"structured": {"key": key}})

    def set_in_background(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Schedule a cache write without waiting for it."""
        self._tasks.spawn(self.set(key, value, ttl_seconds), name=f"cache-set:{key}")

    async def delete(self, key: str) -> None:
        """Delete one key; failures are logged only."""
        try:
            await self._store.delete(key)
        except CacheError as e:
            logger.error(f"Error deleting from cache: {e}", extra={"structured": {"key": key}})

    async def invalidate_pattern(self, pattern: str) -> None:
        """Bulk-delete keys matching a glob pattern; failures are logged only.

        Pending get_or_compute writes started before this call are dropped.
        """
        self._generation += 1
        try:
            deleted = await self._store.delete_pattern(pattern)
        except CacheError as e:
            logger.error(f"Error deleting pattern from cache: {e}", extra={"structured": {"pattern": pattern}})
            return

        if deleted:
            logger.info(f"Deleted {deleted} keys matching pattern: {pattern}")

    async def get_or_compute(self, key: str, ttl_seconds: int, compute: Callable[[], Awaitable[T]]) -> T:
        """Return the cached value, or compute it and cache it in the background.

        The caller gets the computed value immediately; the cache write runs
        detached and is skipped if invalidate_pattern ran after compute started.
        Errors raised by compute propagate unchanged.
        """
        cached = await self.get(key)
        if cached is not None:
            return cached

        generation = self._generation
        value = await compute()
        self._tasks.spawn(self._set_if_current(key, value, ttl_seconds, generation), name=f"cache-set:{key}")
        return value

    async def _set_if_current(self, key: str, value: Any, ttl_seconds: int, generation: int) -> None:
        if generation != self._generation:
            logger.info("Skipping stale cache write", extra={"structured": {"key": key}})
            return
        await self.set(key, value, ttl_seconds)
