"""Async Redis client wrapper used as the shared key-value store."""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Protocol

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from bibresolve.core.exceptions import StoreError


class KeyValueStore(Protocol):
    """Shared store surface used by the cache, rate limiter and quota manager."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl: int = 3600) -> None: ...

    async def delete(self, key: str) -> bool: ...

    async def incr_by(self, key: str, amount: int, ttl: int | None = None) -> int: ...


class AsyncRedisClient:
    """Async Redis client wrapper with JSON serialization.

    Every Redis failure surfaces as StoreError so callers can choose their
    own degraded path.
    """

    def __init__(self, redis_url: str, max_connections: int = 20) -> None:
        self._redis_url = redis_url
        self._max_connections = max_connections
        self._pool: aioredis.ConnectionPool | None = None
        self._redis: aioredis.Redis | None = None

    async def connect(self) -> None:
        """Connect to Redis."""
        self._pool = aioredis.ConnectionPool.from_url(
            self._redis_url,
            max_connections=self._max_connections,
            decode_responses=True,
        )
        self._redis = aioredis.Redis(connection_pool=self._pool)

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._redis:
            await self._redis.aclose()
        if self._pool:
            await self._pool.disconnect()
        self._redis = None
        self._pool = None

    @property
    def redis(self) -> aioredis.Redis:
        if self._redis is None:
            raise StoreError("Redis client is not connected")
        return self._redis

    @contextmanager
    def _guard(self, operation: str, key: str) -> Iterator[None]:
        try:
            yield
        except RedisError as e:
            raise StoreError(
                f"Redis {operation} failed: {e}",
                details={"key": key},
            ) from e

    async def ping(self) -> bool:
        """Check connectivity."""
        with self._guard("ping", ""):
            return bool(await self.redis.ping())

    async def get(self, key: str) -> Any | None:
        """Get a value from the store."""
        with self._guard("get", key):
            value = await self.redis.get(key)
        if value is None:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value

    async def set(
        self,
        key: str,
        value: Any,
        ttl: int = 3600,
    ) -> None:
        """Set a value with TTL."""
        serialized = json.dumps(value, default=str)
        with self._guard("set", key):
            await self.redis.set(key, serialized, ex=ttl)

    async def delete(self, key: str) -> bool:
        """Delete a key."""
        with self._guard("delete", key):
            result = await self.redis.delete(key)
        return result > 0

    async def incr_by(self, key: str, amount: int, ttl: int | None = None) -> int:
        """Atomically add to an integer counter, returning the new value."""
        with self._guard("incrby", key):
            pipe = self.redis.pipeline()
            pipe.incrby(key, amount)
            if ttl:
                pipe.expire(key, ttl)
            results = await pipe.execute()
        return int(results[0])

    async def __aenter__(self) -> "AsyncRedisClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
