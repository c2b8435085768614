"""Expiring key-value stores used for conversation memory.

``RedisKVStore`` is the production backend.  ``InMemoryKVStore`` keeps the
same contract inside the process for development and tests.
"""

from __future__ import annotations

import time
from typing import Protocol

import redis.asyncio as redis

from vibecode.integrations.base import BaseIntegration


class KeyValueStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def health_check(self) -> bool: ...

    async def probe(self) -> bool: ...

    async def close(self) -> None: ...


class RedisKVStore(BaseIntegration):
    """String values in Redis with a sliding TTL refreshed on each write."""

    def __init__(self, url: str) -> None:
        super().__init__("redis")
        self._url = url
        self._redis: redis.Redis | None = None

    def _client(self) -> redis.Redis:
        if self._redis is None:
            self._redis = redis.from_url(self._url, decode_responses=True)
        return self._redis

    async def health_check(self) -> bool:
        try:
            return bool(await self._client().ping())
        except Exception as e:
            self.logger.error("Redis health check failed: %s", e)
            return False

    async def get(self, key: str) -> str | None:
        return await self._client().get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._client().set(key, value, ex=ttl_seconds)

    async def delete(self, key: str) -> None:
        await self._client().delete(key)

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


class InMemoryKVStore(BaseIntegration):
    def __init__(self) -> None:
        super().__init__("memory_kv")
        self._data: dict[str, tuple[str, float]] = {}

    async def health_check(self) -> bool:
        return True

    async def get(self, key: str) -> str | None:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at <= time.monotonic():
            self._data.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._data[key] = (value, time.monotonic() + ttl_seconds)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)
