"""TTL key-value stores behind the cache manager."""

import fnmatch
import time
from collections.abc import Callable
from typing import Protocol

import redis
import redis.asyncio as aioredis

from backend.chatbot.errors import CacheError


class CacheStore(Protocol):
    """Key-value store with TTL and glob-pattern deletion."""

    async def get(self, key: str) -> str | None:
        """Get raw value or None if missing/expired."""
        ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store value; ttl_seconds <= 0 means no expiry."""
        ...

    async def delete(self, key: str) -> None:
        """Delete one key."""
        ...

    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern.

        Returns:
            Number of keys deleted
        """
        ...


class RedisCacheStore:
    """Redis-backed store using SET PX / SCAN MATCH."""

    def __init__(self, client: aioredis.Redis) -> None:
        self._redis = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCacheStore":
        """Create store from a redis:// URL."""
        return cls(aioredis.from_url(url, decode_responses=True, socket_timeout=2.0))

    async def get(self, key: str) -> str | None:
        try:
            return await self._redis.get(key)
        except redis.RedisError as e:
            raise CacheError(f"Error getting {key} from cache: {e}") from e

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            if ttl_seconds > 0:
                await self._redis.set(key, value, ex=ttl_seconds)
            else:
                await self._redis.set(key, value)
        except redis.RedisError as e:
            raise CacheError(f"Error setting {key} in cache: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(key)
        except redis.RedisError as e:
            raise CacheError(f"Error deleting {key} from cache: {e}") from e

    async def delete_pattern(self, pattern: str) -> int:
        try:
            keys = [key async for key in self._redis.scan_iter(match=pattern, count=100)]
            if keys:
                await self._redis.delete(*keys)
            return len(keys)
        except redis.RedisError as e:
            raise CacheError(f"Error deleting pattern {pattern} from cache: {e}") from e

    async def ping(self) -> bool:
        """Check connectivity."""
        try:
            return bool(await self._redis.ping())
        except redis.RedisError as e:
            raise CacheError(f"Redis ping failed: {e}") from e

    async def close(self) -> None:
        """Close the connection pool."""
        await self._redis.aclose()


class InMemoryCacheStore:
    """In-process store with monotonic-clock TTLs."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[str, float | None]] = {}

    async def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None

        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            # Expired - remove
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds > 0 else None
        self._entries[key] = (value, expires_at)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def delete_pattern(self, pattern: str) -> int:
        matched = [key for key in self._entries if fnmatch.fnmatchcase(key, pattern)]
        for key in matched:
            del self._entries[key]
        return len(matched)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._entries.clear()
