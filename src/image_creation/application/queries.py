"""Cache-aside query handlers.

Lookup order: cache -> relational store -> ``None``.  A cached value that
is absent, empty, not JSON or the wrong shape counts as a miss, as does
a cache that cannot be reached; a store hit is written back to the cache
on a best-effort basis.  Cache trouble therefore only costs store latency.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from image_creation.storage.cache import (
    ICacheService,
    classified_image_key,
    image_key,
)
from image_creation.storage.read_store import IReadModelStore

from .dtos import ClassifiedImageDto, ImageDto

logger = logging.getLogger(__name__)

DtoT = TypeVar("DtoT", bound=BaseModel)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GetImageByIdQuery:
    id: uuid.UUID


@dataclass(frozen=True)
class GetImageBase64Query:
    id: uuid.UUID


@dataclass(frozen=True)
class GetClassifiedImageByIdQuery:
    id: uuid.UUID


# ---------------------------------------------------------------------------
# Cache-aside
# ---------------------------------------------------------------------------

async def _read_cache(
    cache: ICacheService, key: str, dto_cls: type[DtoT],
) -> DtoT | None:
    try:
        raw = await cache.get(key)
    except Exception:
        logger.warning("Cache read failed for %s, falling back to store", key, exc_info=True)
        return None
    if not raw:
        return None
    try:
        return dto_cls.model_validate_json(raw)
    except PydanticValidationError:
        logger.warning("Corrupt cache entry for %s, falling back to store", key)
        return None


async def _write_cache(cache: ICacheService, key: str, dto: BaseModel) -> None:
    try:
        await cache.set(key, dto.model_dump_json(by_alias=True))
    except Exception:
        logger.warning("Cache write-back failed for %s", key, exc_info=True)


async def cache_aside(
    cache: ICacheService,
    key: str,
    dto_cls: type[DtoT],
    load: Callable[[], Awaitable[DtoT | None]],
) -> DtoT | None:
    """Return the cached DTO at *key*, else ``load()`` it and cache it."""
    cached = await _read_cache(cache, key, dto_cls)
    if cached is not None:
        logger.debug("Cache hit for %s", key)
        return cached

    dto = await load()
    if dto is None:
        logger.info("%s not found in cache or store", key)
        return None
    await _write_cache(cache, key, dto)
    logger.info("%s loaded from store and cached", key)
    return dto


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

class GetImageByIdHandler:
    def __init__(self, store: IReadModelStore, cache: ICacheService) -> None:
        self._store = store
        self._cache = cache

    async def handle(self, query: GetImageByIdQuery) -> ImageDto | None:
        async def load() -> ImageDto | None:
            record = await self._store.get_image(query.id)
            return ImageDto.from_record(record) if record is not None else None

        return await cache_aside(self._cache, image_key(query.id), ImageDto, load)


class GetImageBase64Handler:
    """Same lookup as :class:`GetImageByIdHandler`, returns only the payload."""

    def __init__(self, store: IReadModelStore, cache: ICacheService) -> None:
        self._by_id = GetImageByIdHandler(store, cache)

    async def handle(self, query: GetImageBase64Query) -> str | None:
        dto = await self._by_id.handle(GetImageByIdQuery(query.id))
        return dto.base64_data if dto is not None else None


class GetClassifiedImageByIdHandler:
    def __init__(self, store: IReadModelStore, cache: ICacheService) -> None:
        self._store = store
        self._cache = cache

    async def handle(
        self, query: GetClassifiedImageByIdQuery,
    ) -> ClassifiedImageDto | None:
        async def load() -> ClassifiedImageDto | None:
            record = await self._store.get_classified_image(query.id)
            return (
                ClassifiedImageDto.from_record(record) if record is not None else None
            )

        return await cache_aside(
            self._cache, classified_image_key(query.id), ClassifiedImageDto, load,
        )
