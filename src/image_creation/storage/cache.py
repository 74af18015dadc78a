"""Read-model cache: string keys to serialized DTO JSON.

Keys are the bare image id for generated images and ``classified_<id>``
for classified ones, optionally namespaced by a configurable prefix so
several environments can share one Redis instance.

Uses ``redis.asyncio`` for non-blocking I/O.
"""

from __future__ import annotations

import logging
import uuid
from typing import Protocol

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

CLASSIFIED_PREFIX = "classified_"


# ---------------------------------------------------------------------------
# Key builders
# ---------------------------------------------------------------------------

def image_key(image_id: uuid.UUID | str) -> str:
    return str(image_id)


def classified_image_key(image_id: uuid.UUID | str) -> str:
    return f"{CLASSIFIED_PREFIX}{image_id}"


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------

class ICacheService(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...


# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------

class RedisCacheService:
    """Async Redis cache.

    Args:
        redis_url: Redis connection URL (e.g. ``redis://localhost:6379/0``).
        prefix: Key namespace prefix.  Defaults to ``""``.
        ttl_seconds: Expiry for every written key.  ``None`` keeps keys
            until overwritten.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        *,
        prefix: str = "",
        ttl_seconds: int | None = None,
    ) -> None:
        self._url = redis_url
        self._prefix = prefix
        self._ttl = ttl_seconds
        self._redis: aioredis.Redis | None = None

    # -- lifecycle -----------------------------------------------------------

    async def connect(self) -> None:
        """Establish the Redis connection pool."""
        if self._redis is not None:
            return
        self._redis = aioredis.from_url(
            self._url,
            decode_responses=True,
            max_connections=20,
        )
        await self._redis.ping()
        logger.info("Cache connected: %s", self._url.split("@")[-1])

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            logger.info("Cache connection closed.")

    @property
    def redis(self) -> aioredis.Redis:
        if self._redis is None:
            raise RuntimeError(
                "RedisCacheService not connected. Call connect() first."
            )
        return self._redis

    # -- cache contract ------------------------------------------------------

    async def get(self, key: str) -> str | None:
        raw = await self.redis.get(f"{self._prefix}{key}")
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return raw

    async def set(self, key: str, value: str) -> None:
        await self.redis.set(f"{self._prefix}{key}", value, ex=self._ttl)


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------

class InMemoryCacheService:
    """Dict-backed cache for tests and local development."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    # -- Testing helpers ---------------------------------------------------

    def keys(self) -> list[str]:
        return sorted(self._data)

    def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)
